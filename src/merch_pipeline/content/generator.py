"""Listing copy generation through an OpenAI-compatible completion endpoint.

OpenRouter is used by default; any endpoint speaking the chat-completions
protocol works by setting ``OPENROUTER_BASE_URL``.
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

import openai

from ..errors import (
    AuthenticationError,
    InvalidInputError,
    MissingCredentialsError,
    RemoteRequestError,
    TransientTransportError,
    is_transient_status,
    parse_retry_after,
)
from ..models import ListingContent, RetryPolicy
from ..retry import retry_call
from .parsing import parse_listing

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o"

# Sections every description should carry (best-seller layout)
REQUIRED_SECTIONS = ("DETAILS", "FAST PROCESSING", "SATISFACTION GUARANTEE")

PROMPT_TEMPLATE = """Write Etsy product copy for a sweatshirt that says "{word}" in bold collegiate font.

TITLE:
{word} Sweatshirt - Cute Oversized Unisex Crewneck, a perfect gift for {word} lovers and [CUISINE] enthusiasts.

DESCRIPTION:
Open with a line of [FOOD-SPECIFIC EMOJIS], then one paragraph on why the "{word}" sweatshirt is a nod to [CUISINE] culture and a love of delicious food. Mention soft air-jet spun yarn, a classic fit and a preppy, college-inspired style.

Then add these sections, each heading prefixed with food-specific emojis:
- DETAILS: 50% cotton, 50% polyester; pre-shrunk; classic fit; 1x1 athletic rib knit collar with spandex; air-jet spun yarn with a soft feel and reduced pilling; double-needle stitched collar, shoulders, armholes, cuffs, and hem.
- FAST PROCESSING: orders go into production the same day and are processed individually.
- 100% SATISFACTION GUARANTEE: contact us with any comments or concerns.
- FEEDBACK: we are a new Etsy store, please leave feedback.

TAGS:
13 Etsy search tags, each at most 20 characters.

Respond ONLY with JSON like:
{{
  "word": "{word}",
  "title": "...",
  "description": "...",
  "tags": ["..."]
}}
"""


def build_listing_prompt(word: str) -> str:
    """Render the listing prompt for a design name."""

    return PROMPT_TEMPLATE.format(word=word)


@dataclass(frozen=True)
class ContentSettings:
    """Runtime settings required to call the completion endpoint."""

    api_key: str
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    temperature: float = 0.85
    timeout: float = 60.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ContentSettings":
        """Load settings from environment variables (populated from .env).

        Raises:
            MissingCredentialsError: If ``OPENROUTER_API_KEY`` is not set.
        """
        source = os.environ if env is None else env
        api_key = source.get("OPENROUTER_API_KEY", "").strip()
        if not api_key:
            raise MissingCredentialsError(
                "OPENROUTER_API_KEY",
                "OPENROUTER_API_KEY is not set. Create a .env or export the variable.",
            )
        return cls(
            api_key=api_key,
            model=source.get("OPENROUTER_MODEL") or DEFAULT_MODEL,
            base_url=source.get("OPENROUTER_BASE_URL") or DEFAULT_BASE_URL,
        )


class ContentGenerator:
    """Generate and validate listing copy for design names."""

    def __init__(
        self,
        settings: ContentSettings,
        policy: RetryPolicy,
        client: Optional[openai.OpenAI] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.policy = policy
        self._client = client
        self._sleep = sleep

    def _get_client(self) -> openai.OpenAI:
        if self._client is None:
            # The retry executor owns retries; the SDK must not retry on its own.
            self._client = openai.OpenAI(
                api_key=self.settings.api_key,
                base_url=self.settings.base_url,
                max_retries=0,
                timeout=self.settings.timeout,
            )
        return self._client

    def _complete(self, prompt: str) -> str:
        """Send one completion request and return the message text."""

        try:
            response = self._get_client().chat.completions.create(
                model=self.settings.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.settings.temperature,
            )
        except openai.APIConnectionError as exc:
            raise TransientTransportError(f"Completion endpoint unreachable: {exc}") from exc
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise AuthenticationError(f"Completion endpoint rejected credentials: {exc}") from exc
        except openai.APIStatusError as exc:
            if is_transient_status(exc.status_code):
                raise TransientTransportError(
                    f"Completion endpoint error (status {exc.status_code}): {exc}",
                    status_code=exc.status_code,
                    retry_after=parse_retry_after(exc.response.headers.get("retry-after")),
                ) from exc
            raise RemoteRequestError(
                f"Completion request rejected (status {exc.status_code}): {exc}",
                status_code=exc.status_code,
            ) from exc

        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        text = getattr(message, "content", None) if message else None
        if not text:
            raise TransientTransportError("Completion response contained no message content")
        return text

    def generate(self, name: str) -> ListingContent:
        """Generate listing content for ``name``.

        Args:
            name: Design name (the word printed on the sweatshirt).

        Returns:
            Well-formed ``ListingContent``.

        Raises:
            InvalidInputError: If ``name`` is empty.
            ExhaustedRetriesError: If the endpoint kept failing.
            MalformedContentError: If the response could not be parsed into
                a title, description and tags. Never retried.
        """
        if not name or not name.strip():
            raise InvalidInputError("Design name must be non-empty")

        logger.info(f"Generating listing content for {name} with {self.settings.model}")
        prompt = build_listing_prompt(name)
        text = retry_call(
            lambda: self._complete(prompt),
            self.policy,
            description=f"listing generation for {name}",
            sleep=self._sleep,
        )
        logger.debug(f"Completion response: {text[:200]}...")

        parsed = parse_listing(text)
        content = parsed.content
        missing = [s for s in REQUIRED_SECTIONS if s not in content.description.upper()]
        if missing:
            logger.warning(
                f"Listing for {name} may not follow the best-seller format "
                f"(missing: {', '.join(missing)})"
            )
        logger.info(f"Listing content generated ({parsed.strategy} parse, {len(content.tags)} tags)")
        return content


class DryRunContentGenerator:
    """Deterministic placeholder copy; makes no network calls."""

    def generate(self, name: str) -> ListingContent:
        if not name or not name.strip():
            raise InvalidInputError("Design name must be non-empty")
        logger.info(f"[dry-run] Would generate listing content for {name}")
        return ListingContent(
            title=f"[DRY RUN] {name} Sweatshirt",
            description=f"[DRY RUN] This is a placeholder description for the {name} sweatshirt.",
            tags=["dry-run", "test", "sweatshirt"],
        )


__all__ = [
    "ContentSettings",
    "ContentGenerator",
    "DryRunContentGenerator",
    "build_listing_prompt",
]
