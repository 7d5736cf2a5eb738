# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/__init__.py
"""
tmpl2vc - move VM templates between vCenter domains

Interactive tool that takes one prefixed template from a source vCenter,
exports it as an OVF appliance, imports it on a destination vCenter and
restores it as a template in the destination template folder.

Usage as a library:

    from tmpl2vc import MigrationWorkflow, MigrationSettings, Placement

    settings = MigrationSettings(placement=Placement("DC1", "Cluster-A", "ssd-01", "VM Network"))
    result = MigrationWorkflow(logger, settings, operator).run()
"""

__version__ = "0.1.0"

from .orchestrator import MigrationResult, MigrationWorkflow
from .orchestrator.models import MigrationSettings, Placement, WorkflowStage
from .vmware import VSphereClient

__all__ = [
    "__version__",
    "MigrationResult",
    "MigrationWorkflow",
    "MigrationSettings",
    "Placement",
    "WorkflowStage",
    "VSphereClient",
]
