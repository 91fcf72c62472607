"""
Centralized logging for the InsightStream backend and dashboard.

Usage:
    from insight_stream.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Report %s saved", report_id)
"""

from __future__ import annotations

import logging
import sys

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once; later calls are no-ops."""
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
