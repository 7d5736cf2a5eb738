# SPDX-License-Identifier: LGPL-3.0-or-later
# tmpl2vc/core/__init__.py
from .exceptions import ExitCode, Fatal, MigrationError, Tmpl2VcError, VMwareError

__all__ = ["ExitCode", "Fatal", "MigrationError", "Tmpl2VcError", "VMwareError"]
