"""Listing copy generation and parsing."""

from .generator import (
    ContentGenerator,
    ContentSettings,
    DryRunContentGenerator,
    build_listing_prompt,
)
from .parsing import ParsedListing, parse_listing, parse_strict, parse_tolerant

__all__ = [
    "ContentGenerator",
    "ContentSettings",
    "DryRunContentGenerator",
    "build_listing_prompt",
    "ParsedListing",
    "parse_listing",
    "parse_strict",
    "parse_tolerant",
]
