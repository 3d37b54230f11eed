"""Logging setup shared by the API process and scripts."""

from __future__ import annotations

import logging

from vendorflow.core.config import get_settings


def configure_logging(level: str | None = None) -> None:
    """Initialize root logging with a shared format.

    ``level`` wins over the ``LOG_LEVEL`` setting, which defaults to ``INFO``.
    """
    resolved_level = (level or get_settings().log_level or "INFO").upper()
    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
