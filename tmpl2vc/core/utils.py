# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/core/utils.py
from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any


class U:
    @staticmethod
    def json_dump(obj: Any) -> str:
        try:
            return json.dumps(obj, indent=2, sort_keys=True, default=str)
        except Exception:
            return repr(obj)

    @staticmethod
    def human_bytes(n: int) -> str:
        x = float(n)
        for unit in ["B", "KiB", "MiB", "GiB", "TiB"]:
            if x < 1024 or unit == "TiB":
                return f"{x:.2f} {unit}" if unit != "B" else f"{int(x)} {unit}"
            x /= 1024
        return f"{n} B"

    @staticmethod
    def remove_artifact(logger: logging.Logger, path: Path) -> int:
        """
        Delete an exported appliance (an OVF directory or a single OVA file)
        including its containing directory. Returns the number of bytes freed.
        """
        p = Path(path)
        if not p.exists():
            logger.debug("Artifact already gone: %s", p)
            return 0

        if p.is_file():
            size = p.stat().st_size
            p.unlink()
        else:
            size = sum(f.stat().st_size for f in p.rglob("*") if f.is_file())
            shutil.rmtree(p)

        logger.info("Removed local artifact %s (%s)", p, U.human_bytes(size))
        return size
