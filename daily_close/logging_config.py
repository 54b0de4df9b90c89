from __future__ import annotations

import logging

from daily_close.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str | None = None) -> None:
    resolved = (level or settings.log_level).strip().upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )
