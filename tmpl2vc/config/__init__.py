# SPDX-License-Identifier: LGPL-3.0-or-later
# tmpl2vc/config/__init__.py
