# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/orchestrator/__init__.py
"""
Orchestrator package: the staged template migration and its value types.
"""

from .workflow import MigrationResult, MigrationWorkflow, PartialState

__all__ = [
    "MigrationResult",
    "MigrationWorkflow",
    "PartialState",
]
