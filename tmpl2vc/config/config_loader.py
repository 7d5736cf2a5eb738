# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/config/config_loader.py
"""
YAML/JSON config loading.

Config keys mirror the argparse destinations (vc_user, datastore, ...);
dashes are accepted and normalized to underscores. Later files override
earlier ones and nested mappings are merged recursively.
"""
from __future__ import annotations

import argparse
import glob
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence

import yaml

from ..core.exceptions import ExitCode, Fatal


class Config:
    @staticmethod
    def expand_configs(logger: logging.Logger, cfgs: Sequence[str]) -> List[Path]:
        """Expand ~ and glob patterns; keep the given order, drop duplicates."""
        out: List[Path] = []
        seen = set()
        for raw in cfgs:
            pattern = str(Path(raw).expanduser())
            matches = sorted(glob.glob(pattern)) if any(ch in pattern for ch in "*?[") else [pattern]
            if not matches:
                raise Fatal(ExitCode.USAGE, f"Config pattern matched nothing: {raw}")
            for m in matches:
                p = Path(m).resolve()
                if p in seen:
                    continue
                seen.add(p)
                out.append(p)
        logger.debug("Config files: %s", [str(p) for p in out])
        return out

    @staticmethod
    def load_one(logger: logging.Logger, path: Path) -> Dict[str, Any]:
        p = Path(path)
        if not p.is_file():
            raise Fatal(ExitCode.USAGE, f"Config file not found: {p}")
        text = p.read_text(encoding="utf-8")
        try:
            if p.suffix.lower() == ".json":
                data = json.loads(text) if text.strip() else {}
            else:
                data = yaml.safe_load(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise Fatal(ExitCode.USAGE, f"Cannot parse config {p}: {e}", cause=e)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise Fatal(ExitCode.USAGE, f"Config {p} must be a mapping, got {type(data).__name__}")
        logger.debug("Loaded config %s (%d keys)", p, len(data))
        return Config.normalize(data)

    @staticmethod
    def normalize(data: Dict[str, Any]) -> Dict[str, Any]:
        return {str(k).replace("-", "_"): v for k, v in data.items()}

    @staticmethod
    def deep_merge(base: Dict[str, Any], over: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(base)
        for k, v in over.items():
            if isinstance(v, dict) and isinstance(out.get(k), dict):
                out[k] = Config.deep_merge(out[k], v)
            else:
                out[k] = v
        return out

    @staticmethod
    def load_many(logger: logging.Logger, paths: Sequence[Path]) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for p in paths:
            merged = Config.deep_merge(merged, Config.load_one(logger, p))
        return merged

    @staticmethod
    def apply_as_defaults(logger: logging.Logger, parser: argparse.ArgumentParser, conf: Dict[str, Any]) -> None:
        """Config values become parser defaults so explicit CLI flags still win."""
        dests = {a.dest for a in parser._actions}
        known = {k: v for k, v in conf.items() if k in dests}
        unknown = sorted(k for k in conf if k not in dests)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        parser.set_defaults(**known)
