# SPDX-License-Identifier: LGPL-3.0-or-later
# tmpl2vc/cli/__init__.py
