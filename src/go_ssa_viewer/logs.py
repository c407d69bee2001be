"""Logging configuration: structlog formatting over stdlib logging."""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Optional

import structlog


def setup_logging(log_file: Optional[Path] = None, level: Optional[str] = None, to_stderr: bool = False) -> None:
    """Configure stdlib logging with a structlog renderer.

    The TUI owns the terminal, so records only go to ``log_file`` unless
    ``to_stderr`` is set (used by ``--print``). With neither, logging is muted.

    Reads from environment variables:
        GO_SSA_VIEWER_LOG_LEVEL : default level when ``level`` is None (default: WARNING)
        GO_SSA_VIEWER_LOG_FORMAT: console | json (default: console)
    """
    log_level = (level or os.environ.get("GO_SSA_VIEWER_LOG_LEVEL", "WARNING")).upper()
    log_format = os.environ.get("GO_SSA_VIEWER_LOG_FORMAT", "console").lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=to_stderr and log_file is None)

    handlers: dict[str, dict] = {}
    if log_file is not None:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": str(log_file),
            "encoding": "utf-8",
            "formatter": "structlog",
        }
    if to_stderr:
        handlers["stderr"] = {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "formatter": "structlog",
        }
    if not handlers:
        handlers["null"] = {"class": "logging.NullHandler"}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": handlers,
            "root": {
                "handlers": list(handlers),
                "level": log_level,
            },
            "loggers": {
                "go_ssa_viewer": {"level": log_level},
                "asyncio": {"level": "WARNING"},
            },
        }
    )
