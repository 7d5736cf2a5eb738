# SPDX-License-Identifier: LGPL-3.0-or-later
import logging

_NAMES = {5: "trace", logging.DEBUG: "debug", logging.INFO: "info", logging.WARNING: "warning", logging.ERROR: "error"}


class FakeLogger:
    def __init__(self):
        self.records = []

    def _log(self, level, msg, *a):
        try:
            text = str(msg) % a if a else str(msg)
        except (TypeError, ValueError):
            text = str(msg)
        self.records.append((level, text))

    def log(self, lvl, msg, *a, **k): self._log(_NAMES.get(lvl, "info"), msg, *a)
    def trace(self, msg, *a, **k): self._log("trace", msg, *a)
    def info(self, msg, *a, **k): self._log("info", msg, *a)
    def warning(self, msg, *a, **k): self._log("warning", msg, *a)
    def error(self, msg, *a, **k): self._log("error", msg, *a)
    def debug(self, msg, *a, **k): self._log("debug", msg, *a)

    def isEnabledFor(self, _lvl):
        return False

    def messages(self, level=None):
        return [m for (lvl, m) in self.records if level is None or lvl == level]
