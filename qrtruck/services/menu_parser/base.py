"""
Menu Parser Abstract Base Class

Turns free-form menu text pasted by a merchant into structured items.
Implementations differ in how they read the text; the shape of the result
and the user-facing error kinds are shared.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

MIN_MENU_TEXT_LENGTH = 10


class ParseErrorKind(str, Enum):
    """User-facing categories of parsing failures."""
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    MODEL_UNAVAILABLE = "model_unavailable"
    INVALID_RESPONSE = "invalid_response"
    NETWORK = "network"
    UNKNOWN = "unknown"


USER_MESSAGES: dict[ParseErrorKind, tuple[str, str]] = {
    ParseErrorKind.AUTH: (
        "API Key Error",
        "Invalid or missing Google Gemini API key. Please check your .env file.",
    ),
    ParseErrorKind.RATE_LIMIT: (
        "Rate Limit Exceeded",
        "You've hit the API rate limit. Please wait 60 seconds and try again.",
    ),
    ParseErrorKind.MODEL_UNAVAILABLE: (
        "Model Not Available",
        "None of the configured AI models is available for this API key.",
    ),
    ParseErrorKind.INVALID_RESPONSE: (
        "Invalid Response Format",
        "The AI returned an invalid format. Please try again.",
    ),
    ParseErrorKind.NETWORK: (
        "Network Error",
        "Failed to connect to the AI service. Please check your internet connection.",
    ),
    ParseErrorKind.UNKNOWN: (
        "Parsing failed",
        "Unknown error occurred",
    ),
}


def _contains_any(message: str, needles: tuple[str, ...]) -> bool:
    return any(needle in message for needle in needles)


def is_rate_limit_message(message: str) -> bool:
    return _contains_any(message, ("429", "quota", "Too Many Requests", "rate limit"))


def is_model_not_found_message(message: str) -> bool:
    return _contains_any(message, ("404", "not found", "Model", "model"))


def classify_error(message: str) -> ParseErrorKind:
    """Map a raw error message to the kind shown to the merchant."""
    if _contains_any(message, ("API key", "authentication", "401")):
        return ParseErrorKind.AUTH
    if is_rate_limit_message(message):
        return ParseErrorKind.RATE_LIMIT
    if is_model_not_found_message(message):
        return ParseErrorKind.MODEL_UNAVAILABLE
    if _contains_any(message, ("JSON", "parse")):
        return ParseErrorKind.INVALID_RESPONSE
    if _contains_any(message, ("network", "fetch")):
        return ParseErrorKind.NETWORK
    return ParseErrorKind.UNKNOWN


class MenuParseError(Exception):
    """
    Parsing failed in a way the merchant should be told about.

    Attributes:
        kind: Error category
        error: Short title ("Rate Limit Exceeded", ...)
        details: Longer explanation
        status_code: HTTP status for the API response
    """

    def __init__(
        self,
        message: str,
        kind: Optional[ParseErrorKind] = None,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.kind = kind or classify_error(message)
        self.error, self.details = USER_MESSAGES[self.kind]
        if self.kind == ParseErrorKind.UNKNOWN:
            self.details = message or self.details
        self.status_code = status_code

    def to_dict(self, debug: bool = False) -> dict[str, Any]:
        body = {
            "error": self.error,
            "details": self.details,
            "suggestion": "For now, you can manually add menu items in the merchant dashboard.",
        }
        if debug:
            body["debug"] = {"error_kind": self.kind.value, "error_message": str(self)}
        return body


@dataclass
class ParsedMenuItem:
    name: str
    description: str = ""
    price: float = 0.0
    category: str = "Other"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "category": self.category,
        }


_FENCE = re.compile(r"```(?:json)?")
_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_menu_items(text: str) -> list[ParsedMenuItem]:
    """
    Read ``{"items": [...]}`` out of a model response.

    Code fences and chatter around the JSON object are ignored; items
    without a name are dropped.

    Raises:
        MenuParseError: no usable JSON object in the text
    """
    cleaned = _FENCE.sub("", text).strip()
    match = _OBJECT.search(cleaned)
    if match:
        cleaned = match.group(0)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MenuParseError(f"JSON parse error: {e}", ParseErrorKind.INVALID_RESPONSE)

    raw_items = data.get("items") if isinstance(data, dict) else None
    if not isinstance(raw_items, list):
        raise MenuParseError("Invalid response: missing items list", ParseErrorKind.INVALID_RESPONSE)

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict) or not str(raw.get("name") or "").strip():
            continue
        try:
            price = round(float(raw.get("price") or 0), 2)
        except (TypeError, ValueError):
            price = 0.0
        items.append(
            ParsedMenuItem(
                name=str(raw["name"]).strip(),
                description=str(raw.get("description") or "").strip(),
                price=price,
                category=str(raw.get("category") or "Other").strip() or "Other",
            )
        )
    return items


class BaseMenuParser(ABC):
    """Interface for menu text parsers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def parse(self, menu_text: str) -> list[ParsedMenuItem]:
        """
        Parse pasted menu text.

        Raises:
            MenuParseError: text too short or parsing failed
        """
        pass

    @staticmethod
    def check_text(menu_text: Optional[str]) -> str:
        text = (menu_text or "").strip()
        if len(text) < MIN_MENU_TEXT_LENGTH:
            raise MenuParseError(
                "Menu text is required",
                ParseErrorKind.UNKNOWN,
                status_code=400,
            )
        return text
