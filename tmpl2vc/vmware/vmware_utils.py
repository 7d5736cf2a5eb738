# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/vmware/vmware_utils.py
"""
Shared utility functions for VMware operations.
"""
from __future__ import annotations

import re
import sys
from typing import Optional
from urllib.parse import quote


def safe_vm_name(name: Optional[str]) -> str:
    """
    Sanitize VM name for use in filenames and paths.

    Replaces non-alphanumeric characters (except _, ., -) with underscores.
    Returns "vm" if the input is empty or None.

    Examples:
        >>> safe_vm_name("tmpl-web (v2)")
        'tmpl-web_v2_'
        >>> safe_vm_name(None)
        'vm'
    """
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", (name or "vm").strip()) or "vm"


def quote_inventory_path(path: str) -> str:
    """
    Percent-encode each segment of an inventory path for vi:// URLs,
    keeping the "/" separators intact.
    """
    parts = [p for p in (path or "").strip("/").split("/") if p]
    return "/".join(quote(p, safe="") for p in parts)


def mask_vi_credentials(s: str) -> str:
    """
    Mask vi://user:pass@host style credentials.

    vi://user:pass@host/... -> vi://user:****@host/...
    """
    return re.sub(r"(vi://[^/@:]+:)([^@]+)(@)", r"\1****\3", s or "")


def is_tty(stream=None) -> bool:
    """
    Check if the specified stream (or stdout by default) is a TTY.
    """
    try:
        if stream is None:
            stream = sys.stdout
        return stream.isatty()
    except Exception:
        return False
