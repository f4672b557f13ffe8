"""Logging helpers for cpuwatch."""

import logging


class ProgramLogger(logging.LoggerAdapter):
    """Logger adapter that prefixes every message with the program name."""

    def __init__(self, logger: logging.Logger, prog: str) -> None:
        super().__init__(logger, {"prog": prog})

    @property
    def prog(self) -> str:
        """Name the program was invoked as."""
        return self.extra["prog"]

    def process(self, msg, kwargs):
        # The prefix is part of the format string, so escape it
        prefix = self.prog.replace("%", "%%")
        return f"{prefix}: {msg}", kwargs
