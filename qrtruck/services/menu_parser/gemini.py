"""
Gemini Menu Parser

Production parser backed by Google's Gemini models.
Used when ENV_MODE=production or ENV_MODE=staging.

Model selection:
    Candidate models are tried in order. A rate-limited model is retried
    up to three times with exponential backoff (1s, 2s, 4s) before moving
    on; a model reported as missing is skipped. Any other failure stops
    the search immediately.

Requirements:
    - GEMINI_API_KEY must be set in environment
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import google.generativeai as genai

from qrtruck.core.config import get_settings
from qrtruck.services.menu_parser.base import (
    BaseMenuParser,
    MenuParseError,
    ParseErrorKind,
    ParsedMenuItem,
    extract_menu_items,
    is_model_not_found_message,
    is_rate_limit_message,
)

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """Parse this menu text into JSON:
{menu_text}

Return only JSON with this structure:
{{"items": [{{"name": "string", "description": "string", "price": number, "category": "string"}}]}}

Extract all items, prices as numbers only, create descriptions if missing, categorize logically."""

RATE_LIMIT_RETRIES = 3
BACKOFF_BASE_SECONDS = 1.0


class GeminiMenuParser(BaseMenuParser):
    """
    Menu parser that prompts Gemini for structured JSON.

    Args:
        api_key: Gemini API key (defaults to settings)
        models: Candidate model names in order of preference
        sleep: Coroutine used for backoff waits
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        models: Optional[list[str]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        api_key = api_key or settings.gemini_api_key
        if not api_key:
            raise ValueError(
                "GEMINI_API_KEY is required for production mode. "
                "Get a key from https://aistudio.google.com/app/apikey"
            )

        genai.configure(api_key=api_key)
        self.models = models or settings.gemini_models_list
        self._sleep = sleep

        logger.info(f"GeminiMenuParser initialized (models={self.models})")

    @property
    def provider_name(self) -> str:
        return "gemini"

    async def _generate(self, model_name: str, prompt: str) -> str:
        model = genai.GenerativeModel(model_name)
        response = await model.generate_content_async(prompt)
        return response.text

    async def _retry_rate_limited(self, model_name: str, prompt: str) -> Optional[str]:
        """Retry a rate-limited model with backoff. None when all retries fail."""
        for attempt in range(RATE_LIMIT_RETRIES):
            wait = BACKOFF_BASE_SECONDS * (2 ** attempt)
            logger.info(f"Rate limited on {model_name}, retrying after {wait:.0f}s...")
            await self._sleep(wait)
            try:
                text = await self._generate(model_name, prompt)
                logger.info(f"Gemini: {model_name} succeeded after retry")
                return text
            except Exception as e:
                logger.warning(f"Gemini: retry {attempt + 1} on {model_name} failed - {e}")
        return None

    async def complete(self, prompt: str) -> str:
        """
        Run the prompt against the first model that answers.

        Raises:
            MenuParseError: every candidate failed, or a non-recoverable error
        """
        last_error: Optional[Exception] = None

        for model_name in self.models:
            try:
                logger.info(f"Gemini: trying model {model_name}")
                text = await self._generate(model_name, prompt)
                logger.info(f"Gemini: used model {model_name}")
                return text
            except Exception as e:
                last_error = e
                message = str(e)
                logger.error(f"Gemini: model {model_name} failed - {message}")

                if is_rate_limit_message(message):
                    text = await self._retry_rate_limited(model_name, prompt)
                    if text is not None:
                        return text
                    continue

                if is_model_not_found_message(message):
                    continue

                raise MenuParseError(message) from e

        if last_error is None:
            raise MenuParseError("No AI models configured", ParseErrorKind.MODEL_UNAVAILABLE)
        raise MenuParseError(str(last_error)) from last_error

    async def parse(self, menu_text: str) -> list[ParsedMenuItem]:
        text = self.check_text(menu_text)
        logger.info("Parsing menu text...")

        response_text = await self.complete(PROMPT_TEMPLATE.format(menu_text=text))
        if not response_text:
            raise MenuParseError("No response text from AI model", ParseErrorKind.INVALID_RESPONSE)

        items = extract_menu_items(response_text)
        logger.info(f"Parsed {len(items)} items")
        return items
