"""Logging configuration for gke-sandbox.

Progress and diagnostics go through loguru to stderr. Components bind their
own context and the CLI installs the sinks once per invocation:

    from loguru import logger

    log = logger.bind(component="firewall")
    log.info("Creating IAP firewall rule {name}", name=rule)

Prompts, menus and tables are rendered separately by the terminal
(``gke_sandbox.terminal``), and command results are return values, so log
output never mixes with anything a caller has to parse.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, TextIO

from loguru import logger

type LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "TRACE"]

_CONTEXT_KEYS = ("component", "sandbox", "network", "cluster", "project")

CONSOLE_FORMAT = "<level>[{level}]</level> {message}"

VERBOSE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan>"
    "<dim>{extra[_ctx]}</dim> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line}{extra[_ctx]} - {message}"
)


def _format_context(record: Any) -> str:
    extra = record.get("extra", {})
    parts = [f"{k}={extra[k]}" for k in _CONTEXT_KEYS if k in extra]
    return f" [{' '.join(parts)}]" if parts else ""


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Logging configuration for one CLI invocation.

    Attributes:
        level: Minimum console log level.
        verbose: Use the detailed console format (time, location, context).
        file: Optional path to a rotating log file that always records DEBUG.
        rotation: File rotation policy (e.g., "10 MB").
        retention: Number of old log files to keep.
    """

    level: LogLevel = "INFO"
    verbose: bool = False
    file: str | None = None
    rotation: str = "10 MB"
    retention: int = 5


def setup_logging(config: LogConfig, sink: TextIO | None = None) -> list[int]:
    """Replace loguru's default handler and return the new handler IDs."""
    logger.remove()
    logger.enable("gke_sandbox")
    logger.configure(patcher=lambda r: r["extra"].update(_ctx=_format_context(r)))

    handler_ids = [
        logger.add(
            sink or sys.stderr,
            level=config.level,
            format=VERBOSE_FORMAT if config.verbose else CONSOLE_FORMAT,
            colorize=sink is None,
            filter="gke_sandbox",
        )
    ]

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handler_ids.append(
            logger.add(
                config.file,
                level="DEBUG",
                format=FILE_FORMAT,
                rotation=config.rotation,
                retention=config.retention,
                diagnose=False,
            )
        )

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
