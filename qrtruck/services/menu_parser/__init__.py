"""
Menu Parser Factory

    - ENV_MODE=development → MockMenuParser (no API calls)
    - ENV_MODE=staging/production → GeminiMenuParser
"""

import logging
from functools import lru_cache

from qrtruck.core.config import get_settings
from qrtruck.services.menu_parser.base import (
    BaseMenuParser,
    MenuParseError,
    ParseErrorKind,
    ParsedMenuItem,
    classify_error,
    extract_menu_items,
)
from qrtruck.services.menu_parser.gemini import GeminiMenuParser
from qrtruck.services.menu_parser.mock import MockMenuParser

logger = logging.getLogger(__name__)


@lru_cache()
def get_menu_parser() -> BaseMenuParser:
    settings = get_settings()

    if settings.is_development:
        logger.info("Menu Parser: Using MockMenuParser (development mode)")
        return MockMenuParser()

    logger.info(f"Menu Parser: Using GeminiMenuParser ({settings.env_mode.value} mode)")
    return GeminiMenuParser()


def reset_menu_parser() -> None:
    get_menu_parser.cache_clear()


__all__ = [
    "get_menu_parser",
    "reset_menu_parser",
    "BaseMenuParser",
    "MenuParseError",
    "ParseErrorKind",
    "ParsedMenuItem",
    "classify_error",
    "extract_menu_items",
    "GeminiMenuParser",
    "MockMenuParser",
]
