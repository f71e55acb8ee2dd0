# nest_solver/logger.py
# Print-based logging for the nesting engines.
# One global logger; level threshold + on/off switch, info to stdout,
# warnings and errors to stderr. Errors are printed even when disabled.

from __future__ import annotations

import sys
from dataclasses import dataclass

LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


@dataclass
class Logger:
    enabled: bool = True
    level: str = "INFO"
    prefix: str = "[NEST]"

    @property
    def verbose(self) -> bool:
        return LEVELS[self.level] <= LEVELS["DEBUG"]

    def _emit(self, level: str, msg: str) -> None:
        if level != "ERROR" and (not self.enabled or LEVELS[level] < LEVELS[self.level]):
            return
        if level in ("WARN", "ERROR"):
            tag = "WARNING" if level == "WARN" else "ERROR"
            print(f"{self.prefix} {tag}: {msg}", file=sys.stderr)
        else:
            print(f"{self.prefix} {msg}", file=sys.stdout)

    def debug(self, msg: str) -> None:
        self._emit("DEBUG", msg)

    def info(self, msg: str) -> None:
        self._emit("INFO", msg)

    def warn(self, msg: str) -> None:
        self._emit("WARN", msg)

    def error(self, msg: str) -> None:
        self._emit("ERROR", msg)


LOGGER = Logger()


def set_enabled(flag: bool) -> None:
    LOGGER.enabled = bool(flag)


def set_verbose(flag: bool) -> None:
    LOGGER.level = "DEBUG" if flag else "INFO"


def set_level(level: str) -> None:
    level = level.upper()
    if level not in LEVELS:
        raise ValueError(f"Unknown log level {level!r}, expected one of {sorted(LEVELS)}")
    LOGGER.level = level


def get_logger() -> Logger:
    return LOGGER
