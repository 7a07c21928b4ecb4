"""Logging setup for processes embedding the engine"""
import logging
from typing import Optional

from prayer_engine.config import LOG_LEVEL

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging; falls back to LOG_LEVEL from the environment."""
    level_name = (level or LOG_LEVEL).upper()
    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, level_name, logging.INFO)
    )
