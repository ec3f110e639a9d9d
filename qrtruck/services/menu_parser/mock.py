"""
Mock Menu Parser

Deterministic, offline parser for development and tests. Reads one item
per line in forms such as::

    BURGERS
    Classic Burger - Beef patty, cheddar ... $12.99
    Fries 4.50

A line without a price that is short and has no digits starts a new
category.
"""

import logging
import re

from qrtruck.services.menu_parser.base import BaseMenuParser, ParsedMenuItem

logger = logging.getLogger(__name__)

_PRICE = re.compile(r"\$?\s*(\d+(?:[.,]\d{1,2})?)\s*$")
_LEADER = re.compile(r"[\s.\-:|]+$")
_SEPARATOR = re.compile(r"\s+[-:|]\s+")


class MockMenuParser(BaseMenuParser):
    """Line-based parser used instead of the AI model in development."""

    @property
    def provider_name(self) -> str:
        return "mock"

    def _parse_line(self, line: str, category: str):
        match = _PRICE.search(line)
        if not match:
            return None

        price = round(float(match.group(1).replace(",", ".")), 2)
        head = _LEADER.sub("", line[:match.start()]).strip()
        if not head:
            return None

        parts = _SEPARATOR.split(head, maxsplit=1)
        name = parts[0].strip()
        description = parts[1].strip() if len(parts) > 1 else ""
        return ParsedMenuItem(
            name=name,
            description=description or f"{name} from our {category.lower()} menu",
            price=price,
            category=category,
        )

    async def parse(self, menu_text: str) -> list[ParsedMenuItem]:
        text = self.check_text(menu_text)

        items = []
        category = "Other"
        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line:
                continue

            item = self._parse_line(line, category)
            if item is not None:
                items.append(item)
            elif len(line) <= 40 and not any(ch.isdigit() for ch in line):
                category = line.rstrip(":").strip().title()

        logger.debug(f"Mock: Parsed {len(items)} menu items")
        return items
