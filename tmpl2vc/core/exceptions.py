# SPDX-License-Identifier: LGPL-3.0-or-later
# tmpl2vc/core/exceptions.py
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional


class ExitCode(IntEnum):
    OK = 0
    UNKNOWN = 1
    USAGE = 2

    SAFETY_DECLINED = 10
    NO_SELECTION = 11
    USER_CANCELLED = 12

    NO_CANDIDATES = 20

    REMOTE_CALL_FAILED = 30
    CONNECT_FAILED = 31
    PLACEMENT_INVALID = 32

    IMPORT_REJECTED = 40

    INTERRUPTED = 130


def _safe_int(x: Any, default: int = 1) -> int:
    try:
        return int(x)
    except Exception:
        return default


def _clamp_exit_code(code: int) -> int:
    # Exit codes are 0..255.
    if code < 0:
        return 1
    if code > 255:
        return 255
    return code


def _one_line(s: str, limit: int = 600) -> str:
    s = (s or "").strip().replace("\r", " ").replace("\n", " ")
    s = " ".join(s.split())
    return s if len(s) <= limit else (s[: limit - 3] + "...")


_SECRET_KEY_PARTS = (
    "pass",
    "password",
    "passwd",
    "pwd",
    "secret",
    "token",
    "apikey",
    "api_key",
    "auth",
    "cookie",
    "bearer",
    "private",
)

REDACTED = "***REDACTED***"


def _is_secret_key(k: str) -> bool:
    ks = (k or "").lower()
    return any(p in ks for p in _SECRET_KEY_PARTS)


def redact(value: Any) -> Any:
    """Return a copy of `value` with secret-looking mapping keys redacted (recursive)."""
    if isinstance(value, dict):
        out: Dict[str, Any] = {}
        for k, v in value.items():
            out[k] = REDACTED if _is_secret_key(str(k)) else redact(v)
        return out
    if isinstance(value, (list, tuple)):
        return type(value)(redact(v) for v in value)
    return value


def _format_context_compact(ctx: Dict[str, Any]) -> str:
    # Stable order, redaction, single-line.
    safe = redact(ctx)
    return ", ".join(f"{k}={safe[k]!r}" for k in sorted(safe.keys()))


@dataclass(eq=False)
class Tmpl2VcError(Exception):
    """
    Base project error with:
      - stable fields for reporting/JSON
      - readable __str__ (what users see)
      - safe code handling (never crashes on int())
    """
    code: int = 1
    msg: str = "error"
    cause: Optional[BaseException] = None
    context: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        self.code = _clamp_exit_code(_safe_int(self.code, default=1))
        self.msg = _one_line(self.msg) or self.__class__.__name__
        if self.context is None:
            self.context = {}
        super().__init__(self.msg)
        self.args = (self.msg,)

    def with_context(self, **ctx: Any) -> "Tmpl2VcError":
        self.context.update(ctx)
        return self

    def user_message(self, *, include_context: bool = False, include_cause: bool = False) -> str:
        """
        Human-friendly message for CLI output/logs.
        """
        parts = [self.msg or self.__class__.__name__]

        if include_context and self.context:
            parts.append(f"[{_one_line(_format_context_compact(self.context), limit=600)}]")

        if include_cause and self.cause is not None:
            parts.append(f"(cause: {type(self.cause).__name__}: {_one_line(str(self.cause))})")

        return " ".join(parts)

    def __str__(self) -> str:
        return self.user_message(include_context=False, include_cause=False)

    def to_dict(self, *, include_cause: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "code": self.code,
            "message": self.msg,
            "context": redact(self.context or {}),
        }
        if include_cause and self.cause is not None:
            d["cause"] = {"type": type(self.cause).__name__, "message": _one_line(str(self.cause))}
        return d


class Fatal(Tmpl2VcError):
    """
    User-facing fatal error (exit code should be honored by top-level main()).
    """
    pass


class VMwareError(Tmpl2VcError):
    """
    vSphere/vCenter operation failed.
    Use for pyvmomi / ovftool / SDK errors inside the service adapter.
    """
    pass


# ---------------------------------------------------------------------------
# Migration workflow taxonomy
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class MigrationError(Tmpl2VcError):
    """
    Terminal outcome of the migration workflow.

    `reason` is the short, stable name shown to the operator (NoSelection,
    ImportRejected, ...); `code` is the process exit code for that reason.
    """
    reason: str = "Unknown"
    stage: Optional[str] = None


@dataclass(eq=False)
class UserAborted(MigrationError):
    code: int = ExitCode.USER_CANCELLED
    reason: str = "UserCancelled"


@dataclass(eq=False)
class PreconditionFailed(MigrationError):
    code: int = ExitCode.NO_CANDIDATES
    reason: str = "NoCandidates"


@dataclass(eq=False)
class RemoteCallFailed(MigrationError):
    code: int = ExitCode.REMOTE_CALL_FAILED
    reason: str = "RemoteCallFailed"


@dataclass(eq=False)
class ConnectFailed(RemoteCallFailed):
    code: int = ExitCode.CONNECT_FAILED
    reason: str = "ConnectFailed"


@dataclass(eq=False)
class PlacementInvalid(RemoteCallFailed):
    code: int = ExitCode.PLACEMENT_INVALID
    reason: str = "PlacementInvalid"


@dataclass(eq=False)
class ImportRejected(MigrationError):
    code: int = ExitCode.IMPORT_REJECTED
    reason: str = "ImportRejected"


@dataclass(eq=False)
class Interrupted(MigrationError):
    code: int = ExitCode.INTERRUPTED
    reason: str = "Interrupted"


def safety_declined(msg: str, **context: Any) -> UserAborted:
    return UserAborted(code=ExitCode.SAFETY_DECLINED, msg=msg, reason="SafetyDeclined", context=context or None)


def no_selection(msg: str, **context: Any) -> UserAborted:
    return UserAborted(code=ExitCode.NO_SELECTION, msg=msg, reason="NoSelection", context=context or None)


def format_exception_for_cli(e: BaseException, *, verbose: int = 0) -> str:
    """
    One-liner output for CLI.

    verbose=0: just message
    verbose=1: message + compact context (if any)
    verbose>=2: message + context + cause
    """
    if isinstance(e, Tmpl2VcError):
        return e.user_message(
            include_context=(verbose >= 1),
            include_cause=(verbose >= 2),
        )

    if verbose >= 2:
        return f"{type(e).__name__}: {_one_line(str(e))}"
    return _one_line(str(e)) or type(e).__name__
