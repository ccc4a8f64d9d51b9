"""
Logging setup for the model lifecycle engine.

Library modules only call ``logging.getLogger(__name__)``. The CLI calls
``configure_logging(config.logging)`` once per command; an application that
embeds the engine configures the root logger itself and never calls it.

Text lines (timestamps are UTC)::

    2026-10-19T09:00:00Z [INFO] model_lifecycle.pipeline.orchestrator: Trained tenant=acme ...

With ``json_format = true`` every record is one JSON object with ``ts``,
``level``, ``logger`` and ``msg``, plus ``exc`` when a traceback is attached
and any ``extra=`` fields (``tenant_id``, ``model_type``, ...).
"""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from model_lifecycle.config import LoggingConfig

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Third-party loggers capped at WARNING whatever the engine's level.
QUIET_LOGGERS = ("lightgbm", "asyncio", "joblib")

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class UtcFormatter(logging.Formatter):
    converter = time.gmtime


class JsonLineFormatter(UtcFormatter):
    """One JSON object per record; ``extra=`` fields land at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, TIME_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        return json.dumps(payload, default=str)


def build_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return JsonLineFormatter()
    return UtcFormatter(TEXT_FORMAT, datefmt=TIME_FORMAT)


def configure_logging(config: "LoggingConfig") -> None:
    """Point the root logger at stdout (and ``config.log_file`` when set).

    Replaces any handlers installed by an earlier call.
    """
    level = logging.getLevelName(config.level.upper())
    formatter = build_formatter(config.json_format)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
