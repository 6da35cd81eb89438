"""Data model for design units and the artifacts produced for them."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Any, Optional, Tuple

from .errors import InvalidInputError


def slugify(name: str) -> str:
    """Return a lower-case, hyphenated slug for file names and external ids."""

    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "design"


def normalize_price(price: Optional[str]) -> str:
    """Validate a retail price and format it with two decimals.

    A leading ``$`` is accepted, so ``"$39.99"`` and ``"39.99"`` are equal.

    Raises:
        InvalidInputError: If the price is missing, not a finite number or
            not positive.
    """
    if price is None or not str(price).strip():
        raise InvalidInputError("Price is required")
    try:
        value = float(str(price).strip().lstrip("$"))
    except ValueError as exc:
        raise InvalidInputError(f"Price must be a number, got {price!r}") from exc
    if not math.isfinite(value):
        raise InvalidInputError(f"Price must be a finite number, got {price!r}")
    if value <= 0:
        raise InvalidInputError(f"Price must be positive, got {price!r}")
    return f"{value:.2f}"


@dataclass(frozen=True)
class DesignUnit:
    """One word/graphic to be turned into a product listing."""

    name: str
    source_image_path: Path
    mockup_paths: Tuple[Path, ...] = ()

    @property
    def slug(self) -> str:
        return slugify(self.name)


@dataclass(frozen=True)
class UploadResult:
    """A hosted asset. Only built for a successful attempt."""

    url: str
    attempt: int = 1
    reconciled: bool = False

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("UploadResult requires a URL")
        if self.attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {self.attempt}")


@dataclass
class ListingContent:
    """Marketing copy generated for a design."""

    title: str
    description: str
    tags: List[str] = field(default_factory=list)
    price: Optional[str] = None

    @property
    def is_well_formed(self) -> bool:
        """True only when title, description and tags are all non-empty."""
        return bool(
            self.title and self.title.strip()
            and self.description and self.description.strip()
            and any(tag.strip() for tag in self.tags)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: Dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags),
        }
        if self.price is not None:
            data["price"] = self.price
        return data


@dataclass(frozen=True)
class ProductRecord:
    """Outcome of one successful sync call. Never updated in place."""

    id: str
    external_url: Optional[str]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "external_url": self.external_url,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class StoreCredentials:
    """API key / store id pair selecting the backend account for a run."""

    store: str
    api_key: str = field(repr=False)
    store_id: str
    label: str

    def __str__(self) -> str:
        return f"{self.label} (store {self.store_id})"


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and exponential backoff shared by all network calls."""

    max_attempts: int = 3
    initial_delay: float = 2.0
    backoff_multiplier: float = 1.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise InvalidInputError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0:
            raise InvalidInputError(f"initial_delay must be >= 0, got {self.initial_delay}")
        if self.backoff_multiplier <= 1:
            raise InvalidInputError(
                f"backoff_multiplier must be > 1, got {self.backoff_multiplier}"
            )

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (attempt 1 never waits).

        Args:
            attempt: 1-based attempt number.

        Returns:
            ``initial_delay * backoff_multiplier ** (attempt - 2)`` for
            ``attempt >= 2``, else 0.
        """
        if attempt <= 1:
            return 0.0
        return self.initial_delay * self.backoff_multiplier ** (attempt - 2)


__all__ = [
    "slugify",
    "normalize_price",
    "DesignUnit",
    "UploadResult",
    "ListingContent",
    "ProductRecord",
    "StoreCredentials",
    "RetryPolicy",
]
