"""Logging setup for test runs and scripts using walletpilot."""

from __future__ import annotations

import logging

import structlog


def configure_logging(verbose: bool = False, debug: bool = False) -> None:
    """
    Configure structlog console output.

    WARNING by default, INFO with ``verbose`` and DEBUG with ``debug``.
    Popup resolution and retry decisions are logged at DEBUG.
    """
    log_level = "DEBUG" if debug else "INFO" if verbose else "WARNING"

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=debug),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
