"""Parsing of listing copy returned by the completion endpoint.

The model is asked for JSON but does not always comply, so parsing runs as a
chain: ``parse_strict`` (JSON) then ``parse_tolerant`` (labelled sections or
broken JSON) then ``MalformedContentError``.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..errors import MalformedContentError
from ..models import ListingContent

logger = logging.getLogger(__name__)

# Etsy listing limits
MAX_TAGS = 13
MAX_TAG_LENGTH = 20

STRICT = "strict"
TOLERANT = "tolerant"

_LABEL_RE = re.compile(
    r"^[ \t#*_>-]*(title|description|tags)[ \t*_]*:[ \t*_]*",
    re.IGNORECASE | re.MULTILINE,
)
_JSON_STRING_FIELD = r'"{name}"\s*:\s*"((?:[^"\\]|\\.)*)"'
_JSON_TAGS_RE = re.compile(r'"tags"\s*:\s*\[(.*?)\]', re.IGNORECASE | re.DOTALL)
_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')


@dataclass(frozen=True)
class ParsedListing:
    """Well-formed listing content tagged with the parser that produced it."""

    content: ListingContent
    strategy: str


def normalize_tags(raw_tags: Iterable[str]) -> List[str]:
    """Strip, de-duplicate (case-insensitively) and cap tags to Etsy limits."""

    tags: List[str] = []
    seen = set()
    for raw in raw_tags:
        tag = str(raw).strip().strip("\"'").lstrip("#").strip()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            logger.debug(f"Truncating tag '{tag}' to {MAX_TAG_LENGTH} chars")
            tag = tag[:MAX_TAG_LENGTH].rstrip()
        key = tag.lower()
        if key in seen:
            continue
        seen.add(key)
        tags.append(tag)

    if len(tags) > MAX_TAGS:
        logger.warning(f"Too many tags ({len(tags)}), truncating to {MAX_TAGS}")
        tags = tags[:MAX_TAGS]
    return tags


def _split_tags(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    if isinstance(value, str):
        return re.split(r"[,\n]", value)
    return []


def _build_content(
    title: Any,
    description: Any,
    tags: Any,
    price: Any = None,
) -> Optional[ListingContent]:
    if not isinstance(title, str) or not isinstance(description, str):
        return None
    content = ListingContent(
        title=title.strip(),
        description=description.strip(),
        tags=normalize_tags(_split_tags(tags)),
        price=str(price) if price not in (None, "") else None,
    )
    return content if content.is_well_formed else None


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if "```json" in text:
        start = text.find("```json") + 7
        end = text.find("```", start)
        if end != -1:
            return text[start:end].strip()
    elif "```" in text:
        start = text.find("```") + 3
        end = text.find("```", start)
        if end != -1:
            return text[start:end].strip()
    return text


def parse_strict(text: str) -> Optional[ListingContent]:
    """Parse the response as a JSON object.

    Returns:
        ``ListingContent`` when the payload is a JSON object with a non-empty
        title, description and tags; ``None`` otherwise.
    """
    try:
        data = json.loads(_strip_code_fence(text))
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None

    lowered: Dict[str, Any] = {str(k).lower(): v for k, v in data.items()}
    return _build_content(
        lowered.get("title"),
        lowered.get("description"),
        lowered.get("tags"),
        lowered.get("price"),
    )


def _parse_labelled(text: str) -> Optional[ListingContent]:
    matches = list(_LABEL_RE.finditer(text))
    fields: Dict[str, str] = {}
    for idx, match in enumerate(matches):
        label = match.group(1).lower()
        if label in fields:
            continue
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        fields[label] = text[match.end():end].strip().strip("-").strip()
    return _build_content(fields.get("title"), fields.get("description"), fields.get("tags"))


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value


def _parse_json_fragments(text: str) -> Optional[ListingContent]:
    values: Dict[str, str] = {}
    for name in ("title", "description"):
        match = re.search(_JSON_STRING_FIELD.format(name=name), text, re.IGNORECASE | re.DOTALL)
        if match:
            values[name] = _unescape(match.group(1))

    tags: List[str] = []
    tags_match = _JSON_TAGS_RE.search(text)
    if tags_match:
        tags = [_unescape(t) for t in _QUOTED_RE.findall(tags_match.group(1))]

    return _build_content(values.get("title"), values.get("description"), tags)


def parse_tolerant(text: str) -> Optional[ListingContent]:
    """Extract fields from free text.

    Understands ``Title: / Description: / Tags:`` sections and JSON that
    failed to load (trailing commas, truncated objects, stray prose).
    """
    return _parse_labelled(text) or _parse_json_fragments(text)


def parse_listing(text: str) -> ParsedListing:
    """Parse a completion response into well-formed listing content.

    Raises:
        MalformedContentError: If neither parser finds a title, description
            and at least one tag.
    """
    content = parse_strict(text)
    if content is not None:
        return ParsedListing(content=content, strategy=STRICT)

    logger.debug("Strict JSON parse failed, trying tolerant extraction")
    content = parse_tolerant(text)
    if content is not None:
        logger.info("Listing content recovered with tolerant parser")
        return ParsedListing(content=content, strategy=TOLERANT)

    logger.debug(f"Unparseable response: {text[:500]}")
    raise MalformedContentError(
        "Generated content is missing a title, description or tags"
    )


__all__ = [
    "MAX_TAGS",
    "MAX_TAG_LENGTH",
    "ParsedListing",
    "normalize_tags",
    "parse_strict",
    "parse_tolerant",
    "parse_listing",
]
