# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/cli/argument_parser.py
from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, Optional, Sequence, Tuple

from .. import __version__
from ..config.config_loader import Config
from ..core.cred import DEFAULT_PASSWORD_ENV
from ..core.exceptions import ExitCode, Fatal, redact
from ..core.logger import c
from ..core.utils import U
from ..vmware.ovftool_client import DISK_MODES, SHA_ALGORITHMS

YAML_EXAMPLE = r"""# tmpl2vc configuration (YAML or JSON; keys match the long option names)
#
# Run:
#   tmpl2vc --config site.yaml
#
# Merge several files (later overrides earlier, CLI flags override both):
#   tmpl2vc --config site.yaml --config lab-a.yaml --source vc-lab-a.example.com
#
# Domains (prompted for when omitted):
# source: vc-lab-a.example.com
# destination: vc-lab-b.example.com
#
# Naming / safety:
# template_prefix: tmpl-
# safe_marker: lab            # a domain containing this marker skips the safety prompt
#
# Destination placement (required):
# datacenter: DC1
# cluster: Cluster-A
# datastore: ssd-01
# network: VM Network
# template_folder: Templates
#
# Local artifact:
# artifact_dir: ~/Downloads/tmpl2vc
# sha_algorithm: SHA256       # SHA1 | SHA256 | SHA512
# disk_mode: thin            # thin | thick | eagerZeroedThick (import provisioning)
#
# vCenter session (same credentials for both domains):
# vc_user: administrator@vsphere.local
# vc_password_env: TMPL2VC_PASSWORD
# vc_port: 443
# vc_insecure: false
#
# Waiting:
# task_timeout: 1800
# poll_interval: 2.0
#
# ovftool_path: /usr/lib/vmware-ovftool/ovftool
"""

_REQUIRED_PLACEMENT = ("datacenter", "cluster", "datastore", "network")


class HelpFormatter(argparse.RawDescriptionHelpFormatter, argparse.ArgumentDefaultsHelpFormatter):
    pass


def _add_global_config_logging(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--config",
        action="append",
        default=[],
        help="YAML/JSON config file (repeatable; later overrides earlier).",
    )
    p.add_argument("--dump-config", action="store_true", help="Print merged normalized config and exit.")
    p.add_argument("--dump-args", action="store_true", help="Print final parsed args and exit.")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="count", default=0, help="Verbosity: -v, -vv (debug), -vvv (trace)")
    p.add_argument("-q", "--quiet", action="count", default=0, help="Less output: -q (warnings), -qq (errors)")
    p.add_argument("--log-file", dest="log_file", default=None, help="Write logs to file.")
    p.add_argument("--json-logs", dest="json_logs", action="store_true", help="Emit NDJSON log records on stderr.")


def _add_domains(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Domains")
    g.add_argument("--source", default=None, help="Source vCenter host (prompted when omitted).")
    g.add_argument("--destination", default=None, help="Destination vCenter host (prompted when omitted).")
    g.add_argument("--template-prefix", dest="template_prefix", default="tmpl-", help="Only templates with this name prefix are offered.")
    g.add_argument(
        "--safe-marker",
        dest="safe_marker",
        default="lab",
        help="Domains whose name contains this marker (case-insensitive) skip the safety confirmation.",
    )


def _add_placement(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Destination placement")
    g.add_argument("--datacenter", default=None, help="Destination datacenter (required).")
    g.add_argument("--cluster", default=None, help="Destination cluster (required).")
    g.add_argument("--datastore", default=None, help="Destination datastore (required).")
    g.add_argument("--network", default=None, help="Destination network (required).")
    g.add_argument("--template-folder", dest="template_folder", default="Templates", help="VM folder the restored template is moved into.")


def _add_artifact(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Local artifact")
    g.add_argument("--artifact-dir", dest="artifact_dir", default="~/Downloads/tmpl2vc", help="Where the exported appliance is staged.")
    g.add_argument(
        "--sha-algorithm",
        dest="sha_algorithm",
        default="SHA256",
        type=str.upper,
        choices=list(SHA_ALGORITHMS),
        help="Manifest digest for the export.",
    )
    g.add_argument(
        "--disk-mode",
        dest="disk_mode",
        default=None,
        choices=list(DISK_MODES),
        help="Disk provisioning for the imported appliance (ovftool default when unset).",
    )


def _add_vcenter(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("vCenter session")
    g.add_argument("--vc-user", dest="vc_user", default=None, help="vCenter username (both domains).")
    g.add_argument(
        "--vc-password-env",
        dest="vc_password_env",
        default=DEFAULT_PASSWORD_ENV,
        help="Environment variable holding the vCenter password (prompted when unset).",
    )
    g.add_argument("--vc-port", dest="vc_port", type=int, default=443, help="vCenter HTTPS port.")
    g.add_argument("--vc-insecure", dest="vc_insecure", action="store_true", help="Skip TLS certificate verification.")
    g.add_argument("--vc-timeout", dest="vc_timeout", type=float, default=None, help="Connection timeout in seconds.")
    g.add_argument("--task-timeout", dest="task_timeout", type=float, default=1800.0, help="Upper bound for each remote task, seconds.")
    g.add_argument("--poll-interval", dest="poll_interval", type=float, default=2.0, help="Task polling interval, seconds.")
    g.add_argument("--ovftool-path", dest="ovftool_path", default=None, help="Explicit ovftool binary.")


def build_parser() -> argparse.ArgumentParser:
    epilog = c("YAML example:\n", "cyan", ["bold"]) + c(YAML_EXAMPLE, "cyan")
    p = argparse.ArgumentParser(
        prog="tmpl2vc",
        description=c("tmpl2vc: move a VM template between vCenter domains", "green", ["bold"]),
        formatter_class=HelpFormatter,
        epilog=epilog,
    )
    _add_global_config_logging(p)
    _add_domains(p)
    _add_placement(p)
    _add_artifact(p)
    _add_vcenter(p)
    return p


def _build_preparser() -> argparse.ArgumentParser:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", action="append", default=[])
    pre.add_argument("-v", "--verbose", action="count", default=0)
    pre.add_argument("-q", "--quiet", action="count", default=0)
    pre.add_argument("--log-file", dest="log_file", default=None)
    pre.add_argument("--json-logs", dest="json_logs", action="store_true")
    pre.add_argument("--dump-config", action="store_true")
    pre.add_argument("--dump-args", action="store_true")
    return pre


def _load_merged_config(logger: Any, cfgs: Sequence[str]) -> Dict[str, Any]:
    if not cfgs:
        return {}
    expanded = Config.expand_configs(logger, list(cfgs))
    return Config.load_many(logger, expanded)


def validate_args(args: argparse.Namespace, conf: Dict[str, Any]) -> None:
    missing = [k for k in _REQUIRED_PLACEMENT if not str(getattr(args, k, None) or "").strip()]
    if missing:
        flags = ", ".join("--" + k for k in missing)
        raise Fatal(ExitCode.USAGE, f"Missing destination placement: {flags} (CLI or config)")

    if not str(getattr(args, "template_prefix", "") or "").strip():
        raise Fatal(ExitCode.USAGE, "--template-prefix must not be empty")

    algo = str(getattr(args, "sha_algorithm", "") or "").upper()
    if algo not in SHA_ALGORITHMS:
        raise Fatal(ExitCode.USAGE, f"--sha-algorithm must be one of {', '.join(SHA_ALGORITHMS)}, got {algo!r}")
    args.sha_algorithm = algo

    if not str(getattr(args, "vc_user", None) or "").strip():
        raise Fatal(ExitCode.USAGE, "Missing vCenter user: --vc-user (CLI or config)")

    for name in ("task_timeout", "poll_interval"):
        try:
            v = float(getattr(args, name))
        except (TypeError, ValueError) as e:
            raise Fatal(ExitCode.USAGE, f"--{name.replace('_', '-')} must be a number", cause=e)
        if v <= 0:
            raise Fatal(ExitCode.USAGE, f"--{name.replace('_', '-')} must be positive, got {v}")
        setattr(args, name, v)

    port = getattr(args, "vc_port", 443)
    try:
        port = int(port)
    except (TypeError, ValueError) as e:
        raise Fatal(ExitCode.USAGE, f"--vc-port must be an integer, got {port!r}", cause=e)
    if not 0 < port < 65536:
        raise Fatal(ExitCode.USAGE, f"--vc-port out of range: {port}")
    args.vc_port = port

    src = str(getattr(args, "source", None) or "").strip()
    dst = str(getattr(args, "destination", None) or "").strip()
    if src and dst and src.lower() == dst.lower():
        raise Fatal(ExitCode.USAGE, f"Source and destination are the same domain: {src}")


def parse_args_with_config(
    argv: Optional[Sequence[str]] = None,
    logger: Any = None,
) -> Tuple[argparse.Namespace, Dict[str, Any], Any]:
    """
    Flow:
      Phase 0: parse only the flags needed to locate config/logging
      Phase 1: load+merge config files
      Phase 2: apply config as defaults onto the parser
      Phase 3: full parse (so required values may come from config)
      Phase 4: validate
    """
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    parser = build_parser()

    pre = _build_preparser()
    args0, _rest = pre.parse_known_args(argv)

    if logger is None:
        from ..core.logger import Log

        logger = Log.setup(
            getattr(args0, "verbose", 0),
            getattr(args0, "log_file", None),
            quiet=getattr(args0, "quiet", 0),
            json_logs=getattr(args0, "json_logs", False),
        )

    conf = _load_merged_config(logger, getattr(args0, "config", None) or [])

    if getattr(args0, "dump_config", False):
        print(U.json_dump(redact(conf)))
        raise SystemExit(0)

    Config.apply_as_defaults(logger, parser, conf)

    args = parser.parse_args(argv)

    if getattr(args0, "dump_args", False):
        print(U.json_dump(redact(vars(args))))
        raise SystemExit(0)

    validate_args(args, conf)
    return args, conf, logger
