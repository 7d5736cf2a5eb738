# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/vmware/__init__.py
"""vSphere/vCenter integration for template migration."""

from .clients.client import VSphereClient

__all__ = ["VSphereClient"]
