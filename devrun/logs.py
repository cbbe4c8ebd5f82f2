from __future__ import annotations

import logging
import sys

from .settings import settings

ROOT_LOGGER = "devrun"
EMULATOR_LOGGER = "devrun.emulator"
GATEWAY_LOGGER = "devrun.gateway"


class LabelFormatter(logging.Formatter):
    """Console formatter: ` <Label>  |  message`, coloured per source.

    Records from the orchestrator itself carry the `Serverless` label;
    output forwarded from a backend process carries that backend's label.
    """

    COLORS = {
        "yellow": "\033[33m",
        "green": "\033[32m",
        "blue": "\033[34m",
        "red": "\033[31m",
        "ENDC": "\033[0m",
    }

    LABELS = {
        ROOT_LOGGER: ("Serverless", "yellow"),
        EMULATOR_LOGGER: ("Local Emulator", "green"),
        GATEWAY_LOGGER: ("Event Gateway", "blue"),
    }

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color
        self.width = max(len(label) for label, _ in self.LABELS.values())

    def format(self, record: logging.LogRecord) -> str:
        label, color = self.LABELS.get(record.name, self.LABELS[ROOT_LOGGER])
        if record.levelno >= logging.ERROR:
            color = "red"

        line = f" {label:<{self.width}} |  {record.getMessage().strip()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        if not self.color:
            return line
        return f"{self.COLORS[color]}{line}{self.COLORS['ENDC']}"


def setup_logging(level: str = "INFO", color: bool | None = None, stream=None) -> logging.Logger:
    """Attach the console sink to the `devrun` logger hierarchy."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level.upper())
    logger.propagate = False

    for h in list(logger.handlers):
        logger.removeHandler(h)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(LabelFormatter(color=settings.color if color is None else color))
    logger.addHandler(handler)
    return logger
