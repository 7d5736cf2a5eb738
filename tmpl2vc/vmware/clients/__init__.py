# SPDX-License-Identifier: LGPL-3.0-or-later
# tmpl2vc/vmware/clients/__init__.py
"""
vSphere API client modules.

- client: VSphereClient (pyvmomi session, inventory, template conversions, ovftool transfers)
"""

__all__ = []
