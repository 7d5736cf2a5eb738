# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/__main__.py
from __future__ import annotations

import sys
import traceback
from typing import Optional

from .cli.argument_parser import parse_args_with_config
from .cli.operator import ConsoleOperator
from .core.exceptions import ExitCode, Fatal, format_exception_for_cli
from .orchestrator.models import MigrationSettings
from .orchestrator.workflow import MigrationWorkflow


def _print_stderr(msg: str) -> None:
    print(msg, file=sys.stderr)


def _safe_log(logger, level: str, msg: str) -> None:
    if logger is None:
        _print_stderr(msg)
        return
    fn = getattr(logger, level, None)
    if callable(fn):
        fn(msg)
    else:
        _print_stderr(msg)


def main(argv: Optional[list] = None) -> None:
    logger: Optional[object] = None

    # Phase 1: parse (Fatal can happen here)
    try:
        args, _conf, logger = parse_args_with_config(argv)
    except Fatal as e:
        _safe_log(logger, "error", f"💥 ERROR    {format_exception_for_cli(e)}")
        raise SystemExit(e.code)
    except KeyboardInterrupt:
        _safe_log(logger, "warning", "Interrupted by user (Ctrl+C).")
        raise SystemExit(ExitCode.INTERRUPTED)

    verbose = int(getattr(args, "verbose", 0) or 0)

    # Phase 2: run the migration
    try:
        settings = MigrationSettings.from_args(args)
        result = MigrationWorkflow(logger, settings, ConsoleOperator()).run()
        rc = int(result.exit_code)
    except Fatal as e:
        _safe_log(logger, "error", format_exception_for_cli(e, verbose=verbose))
        rc = e.code
    except KeyboardInterrupt:
        _safe_log(logger, "warning", "Interrupted by user (Ctrl+C).")
        rc = ExitCode.INTERRUPTED
    except Exception as e:
        _safe_log(logger, "error", f"💥 UNHANDLED {type(e).__name__}: {e}")
        _safe_log(logger, "debug", traceback.format_exc())
        rc = ExitCode.UNKNOWN

    raise SystemExit(rc)


if __name__ == "__main__":
    main()
