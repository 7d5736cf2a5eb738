# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/vmware/ovftool_client.py
from __future__ import annotations

"""
ovftool wrapper for tmpl2vc.

Thin, no-threads wrapper around Broadcom/VMware OVF Tool ("ovftool") used to
move an appliance between two vCenters:

  - export:  vi://user:pass@source/<dc>/vm/<folder>/<vm>  ->  local OVF directory
  - import:  local OVF  ->  vi://user:pass@destination/<dc>/host/<cluster>/

ovftool is proprietary and must be installed by the user.
"""

import logging
import os
import re
import select
import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from .vmware_utils import is_tty, mask_vi_credentials


# --------------------------------------------------------------------------------------
# Errors
# --------------------------------------------------------------------------------------
class OvfToolError(RuntimeError):
    """Generic ovftool failure."""


class OvfToolNotFound(OvfToolError):
    """Raised when ovftool binary cannot be found."""


class OvfToolAuthError(OvfToolError):
    """Likely authentication/permission failure (best-effort classification)."""


class OvfToolSslError(OvfToolError):
    """Likely SSL/certificate/handshake failure (best-effort classification)."""


# --------------------------------------------------------------------------------------
# Output parsing
# --------------------------------------------------------------------------------------
_PROGRESS_RE = re.compile(r"^\s*(?:Disk\s+)?Progress:\s*(\d+)\s*%\s*$", re.IGNORECASE)
_VERSION_RE = re.compile(r"^\s*VMware\s+OVF\s+Tool\s+([\w\.\-\+]+)", re.IGNORECASE)
_ERROR_HINT_RE = re.compile(r"\b(error|failed|exception)\b", re.IGNORECASE)

_SSL_HINTS = ("ssl", "certificate", "handshake", "thumbprint", "x509")
_AUTH_HINTS = ("authentication", "permission", "not authorized", "unauthorized", "invalid login", "denied")

SHA_ALGORITHMS = ("SHA1", "SHA256", "SHA512")
DISK_MODES = ("thin", "thick", "eagerZeroedThick")


# --------------------------------------------------------------------------------------
# Options
# --------------------------------------------------------------------------------------
@dataclass(frozen=True)
class OvfToolPaths:
    """Resolved ovftool binary path."""

    ovftool_bin: str


@dataclass(frozen=True)
class OvfExportOptions:
    """
    Export options for ovftool.

    sha_algorithm selects the digest written to the OVF manifest (.mf).
    """

    no_ssl_verify: bool = False
    accept_all_eulas: bool = True
    overwrite: bool = True
    sha_algorithm: str = "SHA256"


@dataclass(frozen=True)
class OvfDeployOptions:
    """
    Deploy options for importing an OVF/OVA into vSphere via ovftool.
    """

    no_ssl_verify: bool = False
    accept_all_eulas: bool = True

    name: Optional[str] = None  # --name=...
    datastore: Optional[str] = None  # --datastore=...
    network: Optional[str] = None  # --network=...
    disk_mode: Optional[str] = None  # --diskMode=thin|thick|eagerZeroedThick


# --------------------------------------------------------------------------------------
# Public API
# --------------------------------------------------------------------------------------
def find_ovftool(explicit_path: Optional[str] = None) -> OvfToolPaths:
    """
    Resolve ovftool binary.

    Search order:
      1) explicit_path if provided
      2) $OVFTOOL or $OVFTOOL_BIN
      3) PATH via shutil.which("ovftool")
      4) common install locations
    """
    candidates: List[str] = []

    if explicit_path:
        candidates.append(explicit_path)

    env_bin = os.environ.get("OVFTOOL") or os.environ.get("OVFTOOL_BIN")
    if env_bin:
        candidates.append(env_bin)

    which = shutil.which("ovftool")
    if which:
        candidates.append(which)

    candidates.extend(
        [
            "/usr/bin/ovftool",
            "/usr/local/bin/ovftool",
            "/opt/vmware/ovftool/ovftool",
            "/opt/vmware/ovf-tool/ovftool",
        ]
    )

    for cand in candidates:
        p = Path(cand).expanduser()
        if p.is_file() and os.access(str(p), os.X_OK):
            return OvfToolPaths(ovftool_bin=str(p))

    raise OvfToolNotFound(
        "ovftool binary not found. Install OVF Tool and ensure 'ovftool' is in PATH, "
        "or set OVFTOOL=/path/to/ovftool."
    )


def ovftool_version(paths: OvfToolPaths) -> Optional[str]:
    """Return ovftool version string if detected, else None."""
    p = subprocess.run(
        [paths.ovftool_bin, "--version"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
    )
    if p.returncode != 0:
        return None
    for line in (p.stdout or "").splitlines():
        m = _VERSION_RE.search(line)
        if m:
            return m.group(1)
    return None


def build_export_cmd(paths: OvfToolPaths, source: str, destination: Union[str, Path], opt: OvfExportOptions) -> List[str]:
    algo = (opt.sha_algorithm or "").upper()
    if algo not in SHA_ALGORITHMS:
        raise ValueError(f"Unsupported sha algorithm {opt.sha_algorithm!r}; expected one of {SHA_ALGORITHMS}")

    cmd: List[str] = [paths.ovftool_bin]
    cmd.extend(_common_flags(no_ssl_verify=opt.no_ssl_verify))
    if opt.accept_all_eulas:
        cmd.append("--acceptAllEulas")
    if opt.overwrite:
        cmd.append("--overwrite")
    cmd.append(f"--shaAlgorithm={algo}")
    cmd.append(source)
    cmd.append(str(destination))
    return cmd


def build_deploy_cmd(paths: OvfToolPaths, source: Union[str, Path], target_vi: str, opt: OvfDeployOptions) -> List[str]:
    cmd: List[str] = [paths.ovftool_bin]
    cmd.extend(_common_flags(no_ssl_verify=opt.no_ssl_verify))
    if opt.accept_all_eulas:
        cmd.append("--acceptAllEulas")
    if opt.name:
        cmd.append(f"--name={opt.name}")
    if opt.datastore:
        cmd.append(f"--datastore={opt.datastore}")
    if opt.network:
        cmd.append(f"--network={opt.network}")
    if opt.disk_mode:
        cmd.append(f"--diskMode={opt.disk_mode}")
    cmd.append(str(source))
    cmd.append(target_vi)
    return cmd


def export_to_ovf(
    logger: logging.Logger,
    *,
    paths: OvfToolPaths,
    source: str,
    destination: Union[str, Path],
    options: Optional[OvfExportOptions] = None,
) -> Path:
    """
    Export from a vSphere endpoint to a local OVF descriptor path, e.g.
      source:      "vi://admin%40vsphere.local:pass@vc-a.example/DC/vm/tmpl-web"
      destination: "/home/me/Downloads/tmpl2vc/tmpl-web/tmpl-web.ovf"
    """
    opt = options or OvfExportOptions()
    dest = Path(destination).expanduser()
    dest.parent.mkdir(parents=True, exist_ok=True)

    cmd = build_export_cmd(paths, source, dest, opt)
    logger.info("Exporting %s -> %s (%s manifest)", mask_vi_credentials(source), dest, opt.sha_algorithm.upper())

    start = time.time()
    _run_streaming(logger, cmd=cmd, log_prefix="ovftool export")
    logger.info("Export completed in %s", _fmt_elapsed(start))
    return dest


def deploy_ovf(
    logger: logging.Logger,
    *,
    paths: OvfToolPaths,
    source: Union[str, Path],
    target_vi: str,
    options: Optional[OvfDeployOptions] = None,
) -> None:
    """
    Deploy/import an OVF descriptor (or OVA) into a vSphere target, e.g.
      target_vi: "vi://admin%40vsphere.local:pass@vc-b.example/DC/host/Cluster/"
    """
    opt = options or OvfDeployOptions()
    src = Path(source).expanduser()

    cmd = build_deploy_cmd(paths, src, target_vi, opt)
    logger.info("Importing %s -> %s", src, mask_vi_credentials(target_vi))

    start = time.time()
    _run_streaming(logger, cmd=cmd, log_prefix="ovftool import")
    logger.info("Import completed in %s", _fmt_elapsed(start))


# --------------------------------------------------------------------------------------
# Internals
# --------------------------------------------------------------------------------------
def _common_flags(*, no_ssl_verify: bool) -> List[str]:
    flags: List[str] = []
    if no_ssl_verify:
        flags.append("--noSSLVerify")
    return flags


def _fmt_elapsed(start_time: float) -> str:
    elapsed = time.time() - start_time
    return f"{int(elapsed // 60)}m {int(elapsed % 60)}s"


def fmt_cmd_for_log(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(mask_vi_credentials(t)) for t in cmd)


def classify_error(stderr: str, stdout: str) -> type:
    blob = (stdout + "\n" + stderr).lower()
    if any(h in blob for h in _SSL_HINTS):
        return OvfToolSslError
    if any(h in blob for h in _AUTH_HINTS):
        return OvfToolAuthError
    return OvfToolError


def _run_streaming(logger: logging.Logger, *, cmd: Sequence[str], log_prefix: str) -> None:
    """
    Run ovftool and stream its output line-by-line (no threads).

    On a TTY a rich progress bar follows "Progress: NN%" lines; otherwise
    every line goes to the logger. Rolling tails of stdout/stderr are kept
    for error classification.
    """
    cmd_list = list(cmd)
    logger.debug("%s: exec: %s", log_prefix, fmt_cmd_for_log(cmd_list))

    tail_max = 300
    out_tail: List[str] = []
    err_tail: List[str] = []

    use_rich = is_tty()
    progress: Optional[Progress] = None
    task_id = None
    if use_rich:
        progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=Console(stderr=True),
            transient=True,
        )
        progress.start()
        task_id = progress.add_task(log_prefix, total=100)

    def _handle_line(which: str, line: str) -> None:
        s = line.rstrip("\n")
        buf = out_tail if which == "stdout" else err_tail
        buf.append(s)
        if len(buf) > tail_max:
            del buf[0 : len(buf) - tail_max]

        m = _PROGRESS_RE.match(s)
        if progress is not None and task_id is not None:
            if m:
                progress.update(task_id, completed=max(0, min(100, int(m.group(1)))))
                return
            if which == "stderr" or _ERROR_HINT_RE.search(s):
                logger.warning("%s: %s", log_prefix, s)
            return

        if which == "stderr":
            logger.warning("%s: %s", log_prefix, s)
        elif s.strip():
            logger.info("%s: %s", log_prefix, s)

    try:
        p = subprocess.Popen(
            cmd_list,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,
        )
    except FileNotFoundError as e:
        if progress is not None:
            progress.stop()
        raise OvfToolNotFound(str(e)) from e

    assert p.stdout is not None
    assert p.stderr is not None

    open_streams: Dict[object, str] = {p.stdout: "stdout", p.stderr: "stderr"}
    try:
        while open_streams:
            ready, _, _ = select.select(list(open_streams.keys()), [], [], 0.2)
            if not ready:
                if p.poll() is not None:
                    break
                continue
            for st in ready:
                line = st.readline()
                if not line:
                    open_streams.pop(st, None)
                    continue
                _handle_line(open_streams[st], line)

        rc = p.wait()

        for st, which in ((p.stdout, "stdout"), (p.stderr, "stderr")):
            for line in st:
                _handle_line(which, line)
    finally:
        if progress is not None:
            progress.stop()

    if rc != 0:
        stdout_txt = "\n".join(out_tail)
        stderr_txt = "\n".join(err_tail)
        klass = classify_error(stderr_txt, stdout_txt)
        raise klass(
            f"ovftool failed rc={rc}\n"
            f"cmd={fmt_cmd_for_log(cmd_list)}\n"
            f"--- stdout (tail) ---\n{stdout_txt}\n"
            f"--- stderr (tail) ---\n{stderr_txt}\n"
        )
