"""Run configuration loader.

A ``RunConfig`` is built once at startup (YAML file plus CLI overrides) and
passed to every component. It is frozen: nothing changes it mid-run.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import yaml

from .credentials import STORE_TYPES
from .errors import InvalidInputError
from .models import RetryPolicy, normalize_price

DEFAULT_CONFIG_FILE = "merch-pipeline.yaml"

HOST_TYPES = ("cloudinary", "dropbox")
SYNC_VARIANTS = ("manual", "etsy")

# Gildan 18000 Heavy Blend Crewneck Sweatshirt
DEFAULT_PRODUCT_ID = 146
DEFAULT_SIZES = ("S", "M", "L", "XL", "2XL", "3XL")
DEFAULT_MAX_UPLOAD_BYTES = 200 * 1024 * 1024


@dataclass(frozen=True)
class Placement:
    """Design placement, as fractions of a canonical print area."""

    area_width: int = 1800
    area_height: int = 2400
    width: float = 1.0
    height: float = 0.375
    top: float = 0.2
    left: float = 0.0
    placement: str = "front"

    def __post_init__(self) -> None:
        if self.area_width <= 0 or self.area_height <= 0:
            raise InvalidInputError("Placement area dimensions must be positive")
        for name in ("width", "height"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise InvalidInputError(f"Placement {name} must be in (0, 1], got {value}")
        for name in ("top", "left"):
            value = getattr(self, name)
            if not 0 <= value < 1:
                raise InvalidInputError(f"Placement {name} must be in [0, 1), got {value}")

    def to_position(self) -> Dict[str, Any]:
        """Render Printful's ``position`` object in print-area pixels."""
        return {
            "area_width": self.area_width,
            "area_height": self.area_height,
            "width": round(self.area_width * self.width),
            "height": round(self.area_height * self.height),
            "top": round(self.area_height * self.top),
            "left": round(self.area_width * self.left),
            "limit_to_print_area": True,
        }


@dataclass(frozen=True)
class RunConfig:
    """Full configuration for one pipeline run."""

    dry_run: bool = False
    store: str = "manual"
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    host: str = "cloudinary"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    product_id: int = DEFAULT_PRODUCT_ID
    color: str = "black"
    all_colors: bool = False
    sizes: Tuple[str, ...] = DEFAULT_SIZES
    price: str = "39.99"
    placement: Placement = field(default_factory=Placement)
    sync_variant: str = "manual"
    attach_mockups: bool = True
    update_existing: bool = True
    results_dir: Path = Path("product-info")
    cloudinary_folder: str = "printful_uploads"
    dropbox_folder: str = "/printful_uploads"

    def __post_init__(self) -> None:
        if self.store not in STORE_TYPES:
            raise InvalidInputError(
                f"Unknown store '{self.store}'. Expected one of: {', '.join(STORE_TYPES)}"
            )
        if self.host not in HOST_TYPES:
            raise InvalidInputError(
                f"Unknown host '{self.host}'. Expected one of: {', '.join(HOST_TYPES)}"
            )
        if self.sync_variant not in SYNC_VARIANTS:
            raise InvalidInputError(
                f"Unknown sync_variant '{self.sync_variant}'. "
                f"Expected one of: {', '.join(SYNC_VARIANTS)}"
            )
        if self.max_upload_bytes <= 0:
            raise InvalidInputError("max_upload_bytes must be positive")
        if not self.sizes:
            raise InvalidInputError("At least one size is required")
        normalize_price(self.price)
        if not self.color or not self.color.strip():
            raise InvalidInputError("A colour is required")

    @classmethod
    def load(cls, path: Path) -> "RunConfig":
        """Load configuration YAML into a ``RunConfig`` instance.

        Unknown keys are rejected so that typos do not silently fall back to
        defaults.

        Args:
            path: Path to the YAML file.

        Raises:
            FileNotFoundError: If the config file does not exist.
            InvalidInputError: If a value is invalid or a key is unknown.
        """

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}

        if not isinstance(raw, dict):
            raise InvalidInputError(f"Config file must contain a mapping: {path}")

        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "RunConfig":
        """Build a ``RunConfig`` from a plain mapping (e.g. parsed YAML)."""

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise InvalidInputError(f"Unknown config field(s): {', '.join(unknown)}")

        values = dict(raw)
        try:
            if "retry" in values:
                values["retry"] = RetryPolicy(**values["retry"])
            if "placement" in values:
                values["placement"] = Placement(**values["placement"])
        except TypeError as exc:
            raise InvalidInputError(f"Invalid config section: {exc}") from exc

        if "sizes" in values:
            values["sizes"] = tuple(str(s) for s in values["sizes"])
        if "price" in values:
            values["price"] = str(values["price"])
        if "results_dir" in values:
            values["results_dir"] = Path(values["results_dir"])

        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "RunConfig":
        """Return a copy with non-``None`` overrides applied."""

        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def load_run_config(path: Optional[Path] = None) -> RunConfig:
    """Load ``path`` if given, else ``merch-pipeline.yaml`` if present, else defaults."""

    if path is not None:
        return RunConfig.load(path)
    default_path = Path(DEFAULT_CONFIG_FILE)
    if default_path.exists():
        return RunConfig.load(default_path)
    return RunConfig()


__all__ = [
    "HOST_TYPES",
    "SYNC_VARIANTS",
    "Placement",
    "RunConfig",
    "load_run_config",
]
