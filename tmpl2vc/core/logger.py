# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/core/logger.py
"""
Logging for tmpl2vc.

Two renderings of the same records:
  - text: "12:00:01 ✅ INFO     [tmpl-web|EXPORTED] Appliance exported size=1.2 GiB"
  - NDJSON (--json-logs): one object per line, template/stage as top-level fields

Context travels in `extra={"ctx": {...}}` or through Log.bind(); secret-looking
keys are redacted before they reach any handler.
"""
from __future__ import annotations

import datetime as _dt
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..vmware.vmware_utils import is_tty
from .exceptions import redact

# Optional: colors
try:
    from termcolor import colored as _colored  # type: ignore
except Exception:  # pragma: no cover
    _colored = None

TRACE = 5
if not hasattr(logging, "TRACE"):
    logging.TRACE = TRACE  # type: ignore[attr-defined]
    logging.addLevelName(TRACE, "TRACE")


def _logger_trace(self: logging.Logger, msg: str, *args, **kwargs) -> None:
    if self.isEnabledFor(TRACE):
        self._log(TRACE, msg, args, **kwargs)


if not hasattr(logging.Logger, "trace"):
    logging.Logger.trace = _logger_trace  # type: ignore[attr-defined]

_LEVEL_EMOJI = {
    "TRACE": "🧬",
    "DEBUG": "🔍",
    "INFO": "✅",
    "WARNING": "⚠️",
    "ERROR": "💥",
    "CRITICAL": "🧨",
}
_LEVEL_COLOR = {
    "TRACE": "cyan",
    "DEBUG": "blue",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red",
}

# Context keys rendered as the leading [template|stage] tag instead of key=value.
_TAG_KEYS = ("template", "stage")


def _stderr_handles_emoji() -> bool:
    enc = getattr(sys.stderr, "encoding", None) or "utf-8"
    try:
        "✅".encode(enc)
    except (LookupError, UnicodeEncodeError):
        return False
    return True


def c(
    text: str,
    color: Optional[str] = None,
    attrs: Optional[List[str]] = None,
    *,
    enable: bool = True,
) -> str:
    """Colorize text if termcolor is available and enabled."""
    if not enable or _colored is None or not color:
        return text
    return _colored(text, color=color, attrs=attrs or [])


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

Ctx = Mapping[str, Any]


def _one_line(v: Any, *, max_len: int = 240) -> str:
    s = str(v).replace("\n", "\\n").replace("\r", "\\r")
    return s if len(s) <= max_len else s[: max_len - 1] + "…"


def _record_ctx(record: logging.LogRecord) -> Dict[str, Any]:
    ctx = getattr(record, "ctx", None)
    return redact(dict(ctx)) if ctx else {}


def _split_ctx(ctx: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """Pull template/stage out into a "[tmpl-web|EXPORTED]" tag; return the rest."""
    tag_parts = [str(ctx[k]) for k in _TAG_KEYS if ctx.get(k)]
    rest = {k: v for k, v in ctx.items() if k not in _TAG_KEYS}
    return ("[" + "|".join(tag_parts) + "] ") if tag_parts else "", rest


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    LoggerAdapter carrying a persistent context dict; per-call
    `extra={"ctx": {...}}` merges on top.

      log = Log.bind(logger, template="tmpl-web")
      log.info("Exported", extra={"ctx": {"stage": "EXPORTED"}})
    """

    def __init__(self, logger: logging.Logger, ctx: Optional[Ctx] = None):
        super().__init__(logger, extra={"ctx": dict(ctx or {})})

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:
        extra = kwargs.get("extra") or {}
        extra["ctx"] = {**self.extra.get("ctx", {}), **(extra.get("ctx") or {})}
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **ctx: Any) -> "ContextLoggerAdapter":
        return ContextLoggerAdapter(self.logger, {**self.extra.get("ctx", {}), **ctx})


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LogStyle:
    color: bool = True
    show_ms: bool = False
    show_src: bool = False  # module:line
    show_pid: bool = False
    show_logger: bool = False
    utc: bool = False
    unicode: bool = True


class EmojiFormatter(logging.Formatter):
    def __init__(self, style: LogStyle):
        super().__init__()
        self._style = style

    def _now(self, created: float) -> str:
        tz = _dt.timezone.utc if self._style.utc else None
        dt = _dt.datetime.fromtimestamp(created, tz=tz)
        return dt.strftime("%H:%M:%S.%f")[:-3] if self._style.show_ms else dt.strftime("%H:%M:%S")

    def _where(self, record: logging.LogRecord) -> str:
        bits: List[str] = []
        if self._style.show_pid:
            bits.append(f"pid={os.getpid()}")
        if self._style.show_logger:
            bits.append(record.name)
        if self._style.show_src:
            bits.append(f"{record.module}:{record.lineno}")
        return (" (" + " ".join(bits) + ")") if bits else ""

    def format(self, record: logging.LogRecord) -> str:
        color_ok = bool(self._style.color and _colored is not None and is_tty(sys.stderr))
        colour = _LEVEL_COLOR.get(record.levelname)

        emoji = _LEVEL_EMOJI.get(record.levelname, "•") if self._style.unicode else "·"
        level = c(f"{record.levelname:<8}", colour, enable=color_ok)

        tag, rest = _split_ctx(_record_ctx(record))
        msg = record.getMessage()
        if record.levelno >= logging.WARNING:
            msg = c(msg, colour, attrs=["bold"], enable=color_ok)
        tail = "".join(f" {k}={_one_line(v)}" for k, v in sorted(rest.items()))

        line = f"{self._now(record.created)} {emoji} {level}{self._where(record)} {c(tag, 'magenta', enable=color_ok)}{msg}{tail}"
        if record.exc_info:
            tb = "\n".join("  " + ln for ln in self.formatException(record.exc_info).splitlines())
            line += "\n" + c(tb, "red", enable=color_ok)
        return line


class JsonFormatter(logging.Formatter):
    """NDJSON: one object per record, for CI and log shipping."""

    def __init__(self, *, utc: bool = True, include_src: bool = True):
        super().__init__()
        self._utc = bool(utc)
        self._include_src = bool(include_src)

    def format(self, record: logging.LogRecord) -> str:
        tz = _dt.timezone.utc if self._utc else None
        obj: Dict[str, Any] = {
            "ts": _dt.datetime.fromtimestamp(record.created, tz=tz).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "pid": os.getpid(),
        }
        if self._include_src:
            obj["src"] = f"{record.module}:{record.lineno}"

        ctx = _record_ctx(record)
        for k in _TAG_KEYS:
            if ctx.get(k):
                obj[k] = str(ctx.pop(k))
        if ctx:
            obj["ctx"] = {str(k): _one_line(v) for k, v in ctx.items()}

        if record.exc_info:
            obj["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else "Exception"
            obj["traceback"] = self.formatException(record.exc_info)

        return json.dumps(obj, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class Log:
    @staticmethod
    def _level_from_flags(verbose: int, quiet: int) -> int:
        """
        default INFO, -q WARNING, -qq ERROR, -vv DEBUG, -vvv TRACE.
        Quiet wins over verbose.
        """
        if quiet >= 2:
            return logging.ERROR
        if quiet == 1:
            return logging.WARNING
        if verbose >= 3:
            return TRACE
        if verbose >= 2:
            return logging.DEBUG
        return logging.INFO

    @staticmethod
    def bind(logger: logging.Logger, **ctx: Any) -> ContextLoggerAdapter:
        return ContextLoggerAdapter(logger, ctx)

    @staticmethod
    def banner(logger: logging.Logger, title: str, *, char: str = "─") -> None:
        width = 72
        t = f" {title.strip()} "
        side = char * max(8, (width - len(t)) // 2)
        logger.info((side + t + side)[:width])

    @staticmethod
    def _emit(logger: logging.Logger, level: int, prefix: str, msg: str, ctx: Dict[str, Any]) -> None:
        logger.log(level, "%s%s", prefix, msg, extra={"ctx": ctx} if ctx else None)

    @staticmethod
    def step(logger: logging.Logger, msg: str, **ctx: Any) -> None:
        Log._emit(logger, logging.INFO, "➡️  ", msg, ctx)

    @staticmethod
    def ok(logger: logging.Logger, msg: str, **ctx: Any) -> None:
        Log._emit(logger, logging.INFO, "✅ ", msg, ctx)

    @staticmethod
    def warn(logger: logging.Logger, msg: str, **ctx: Any) -> None:
        Log._emit(logger, logging.WARNING, "⚠️  ", msg, ctx)

    @staticmethod
    def fail(logger: logging.Logger, msg: str, **ctx: Any) -> None:
        Log._emit(logger, logging.ERROR, "💥 ", msg, ctx)

    @staticmethod
    def checkpoint(logger: logging.Logger, reached: int, total: int, label: str, **ctx: Any) -> None:
        """Progress milestone, e.g. "■■□□ 2/4 Appliance exported"."""
        bar = "■" * reached + "□" * max(0, total - reached)
        Log._emit(logger, logging.INFO, f"{bar} {reached}/{total} ", label, ctx)

    @staticmethod
    def trace(logger: logging.Logger, msg: str, *args: Any, **ctx: Any) -> None:
        fn = getattr(logger, "trace", None)
        if fn is None:
            return
        if ctx:
            fn(msg, *args, extra={"ctx": ctx})
        else:
            fn(msg, *args)

    @staticmethod
    def setup(
        verbose: int = 0,
        log_file: Optional[str] = None,
        *,
        quiet: int = 0,
        color: bool = True,
        utc: bool = False,
        logger_name: str = "tmpl2vc",
        json_logs: bool = False,
    ) -> logging.Logger:
        """
        Configure and return the project's logger.

        The stderr handler follows -v/-q; a log file, when given, records the
        same level uncolored with pid, logger name and source location.
        """
        logger = logging.getLogger(logger_name)
        logger.propagate = False

        level = Log._level_from_flags(verbose, quiet)
        logger.setLevel(level)

        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()

        unicode_ok = _stderr_handles_emoji()
        sh = logging.StreamHandler(stream=sys.stderr)
        sh.setLevel(level)
        if json_logs:
            sh.setFormatter(JsonFormatter(utc=utc))
        else:
            sh.setFormatter(
                EmojiFormatter(
                    LogStyle(
                        color=color,
                        show_ms=verbose >= 3,
                        show_src=verbose >= 3,
                        show_pid=verbose >= 2,
                        utc=utc,
                        unicode=unicode_ok,
                    )
                )
            )
        logger.addHandler(sh)

        if log_file:
            fp = Path(log_file).expanduser().resolve()
            fp.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(fp, encoding="utf-8")
            fh.setLevel(level)
            if json_logs:
                fh.setFormatter(JsonFormatter(utc=utc))
            else:
                fh.setFormatter(
                    EmojiFormatter(
                        LogStyle(color=False, show_ms=True, show_src=True, show_pid=True, show_logger=True, utc=utc)
                    )
                )
            logger.addHandler(fh)

        logger.debug("Logger initialized (level=%s, pid=%s)", logging.getLevelName(level), os.getpid())
        return logger
