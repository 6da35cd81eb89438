"""Printful store integration."""

from .api_client import (
    PrintfulClient,
    PrintfulRateLimitError,
    PrintfulAuthenticationError,
    is_known_limitation,
)
from .sync import (
    match_mockup_color,
    normalize_price,
    validate_sync_input,
    ProductSyncAdapter,
    DryRunProductSync,
)

__all__ = [
    "PrintfulClient",
    "PrintfulRateLimitError",
    "PrintfulAuthenticationError",
    "is_known_limitation",
    "match_mockup_color",
    "normalize_price",
    "validate_sync_input",
    "ProductSyncAdapter",
    "DryRunProductSync",
]
