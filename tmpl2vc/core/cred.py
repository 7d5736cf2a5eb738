# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/core/cred.py
"""
vCenter credential resolution.

The user name comes from configuration (vc_user). The password is read from
the environment variable named by vc_password_env; when that is unset a
hidden prompt is used. Passwords are never written to config dumps or logs.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .exceptions import ExitCode, Fatal

DEFAULT_PASSWORD_ENV = "TMPL2VC_PASSWORD"


@dataclass(frozen=True)
class VsphereCreds:
    host: str
    user: str
    password: str = field(repr=False)


def resolve_vsphere_creds(
    cfg: Dict[str, Any],
    host: str,
    *,
    prompt_secret: Optional[Callable[[str], str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> VsphereCreds:
    env = os.environ if environ is None else environ

    h = (host or "").strip()
    if not h:
        raise Fatal(ExitCode.USAGE, "vCenter host is empty")

    user = str(cfg.get("vc_user") or "").strip()
    if not user:
        raise Fatal(ExitCode.USAGE, "Missing vCenter user (vc_user / --vc-user)")

    env_name = str(cfg.get("vc_password_env") or DEFAULT_PASSWORD_ENV)
    password = env.get(env_name, "")
    if not password and prompt_secret is not None:
        password = prompt_secret(f"Password for {user}@{h}")
    if not password:
        raise Fatal(ExitCode.USAGE, f"Missing vCenter password (set ${env_name})")

    return VsphereCreds(host=h, user=user, password=password)
