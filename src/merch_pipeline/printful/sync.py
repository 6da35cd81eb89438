"""Product sync: turn a hosted design plus listing copy into a store product."""
from __future__ import annotations

import logging
import re
import time
from typing import Callable, Dict, Any, List, Optional, Sequence
from urllib.parse import urlparse

from ..config import RunConfig
from ..errors import InvalidInputError, RemoteRequestError
from ..models import DesignUnit, ListingContent, ProductRecord, RetryPolicy, normalize_price
from ..retry import retry_call
from .api_client import PrintfulClient

logger = logging.getLogger(__name__)


def _tokens(text: str) -> List[str]:
    return [t for t in re.split(r"[^a-z0-9]+", text.lower()) if t]


def match_mockup_color(url: str, colors: Sequence[str]) -> Optional[str]:
    """Return the colour named in a mockup's file name, if any.

    ``TACO-heather-grey.png`` matches ``Heather Grey``. When several colours
    fit (``Black`` and ``Black Heather``), the longest name wins.
    """
    name = urlparse(url).path.rsplit("/", 1)[-1].rsplit(".", 1)[0]
    words = _tokens(name)
    best = None
    for color in colors:
        wanted = _tokens(color)
        if not wanted:
            continue
        span = len(wanted)
        if any(words[i:i + span] == wanted for i in range(len(words) - span + 1)):
            if best is None or span > len(_tokens(best)):
                best = color
    return best


def validate_sync_input(
    unit: DesignUnit,
    design_url: str,
    content: ListingContent,
    price: Optional[str],
) -> str:
    """Check everything a product needs before any remote call.

    Returns:
        Normalized price string.

    Raises:
        InvalidInputError: Naming the first missing or invalid field.
    """
    if not unit.name or not unit.name.strip():
        raise InvalidInputError("Product name is required")
    if not design_url:
        raise InvalidInputError(f"Design URL is required for {unit.name}")
    if not content.title or not content.title.strip():
        raise InvalidInputError(f"Listing title is required for {unit.name}")
    if not content.description or not content.description.strip():
        raise InvalidInputError(f"Listing description is required for {unit.name}")
    return normalize_price(price)


def _product_id(result: Dict[str, Any]) -> str:
    # create returns the product fields at top level; get/update may nest them
    product = result.get("sync_product", result)
    product_id = product.get("id")
    if product_id is None:
        raise RemoteRequestError(f"Store response has no product id: {result}")
    return str(product_id)


class ProductSyncAdapter:
    """Create or update one store product per design unit."""

    def __init__(
        self,
        client: PrintfulClient,
        config: RunConfig,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.config = config
        self.policy = policy or config.retry
        self._sleep = sleep
        self._variants: Optional[Dict[str, List[int]]] = None
        self._catalog_colors: List[str] = []

    def _call(self, description: str, operation: Callable[[], Any]) -> Any:
        return retry_call(operation, self.policy, description=description, sleep=self._sleep)

    def resolve_variants(self) -> Dict[str, List[int]]:
        """Catalog variant ids per colour for the configured sizes (cached).

        With ``all_colors`` every catalog colour offering at least one of the
        sizes is included, in catalog order. Otherwise only the configured
        colour is, matched case-insensitively.

        Returns:
            Mapping of catalog colour name to variant ids in size order.

        Raises:
            InvalidInputError: If no variant matches.
        """
        if self._variants is not None:
            return self._variants

        product_id = self.config.product_id
        catalog = self._call(
            f"catalog lookup for product {product_id}",
            lambda: self.client.get_catalog_variants(product_id),
        )

        by_color: Dict[str, Dict[str, int]] = {}
        for variant in catalog:
            if "id" not in variant or not variant.get("color"):
                continue
            by_color.setdefault(str(variant["color"]), {})[variant.get("size")] = variant["id"]
        self._catalog_colors = list(by_color)

        if self.config.all_colors:
            wanted = list(by_color)
        else:
            color = self.config.color.lower()
            wanted = [name for name in by_color if name.lower() == color]

        resolved: Dict[str, List[int]] = {}
        for name in wanted:
            sizes = by_color[name]
            missing = [size for size in self.config.sizes if size not in sizes]
            if missing and not self.config.all_colors:
                logger.warning(
                    f"No {name} variant in size(s) {', '.join(missing)} for product {product_id}"
                )
            ids = [sizes[size] for size in self.config.sizes if size in sizes]
            if ids:
                resolved[name] = ids

        if not resolved:
            wanted_label = "any color" if self.config.all_colors else f"color '{self.config.color}'"
            raise InvalidInputError(
                f"No catalog variants for {wanted_label} and sizes "
                f"{', '.join(self.config.sizes)} on product {product_id}"
            )

        logger.debug(
            f"Resolved {sum(len(ids) for ids in resolved.values())} variants "
            f"across {len(resolved)} color(s): {', '.join(resolved)}"
        )
        self._variants = resolved
        return resolved

    def build_payload(
        self,
        unit: DesignUnit,
        design_url: str,
        content: ListingContent,
        price: str,
        variants: Dict[str, List[int]],
        mockup_urls: Sequence[str] = (),
    ) -> Dict[str, Any]:
        """Build the create/update request body.

        A mockup whose file name names a catalog colour becomes the preview of
        that colour's variants. Mockups naming no colour serve as the preview
        for colours without their own. The Etsy block is added for the
        ``etsy`` sync variant.
        """
        placement = self.config.placement
        design_file = {
            "type": placement.placement,
            "url": design_url,
            "position": placement.to_position(),
        }

        previews = list(mockup_urls) if self.config.attach_mockups else []
        by_color: Dict[str, str] = {}
        generic: List[str] = []
        for url in previews:
            color = match_mockup_color(url, self._catalog_colors or list(variants))
            if color is None:
                generic.append(url)
            else:
                by_color.setdefault(color, url)

        sync_variants: List[Dict[str, Any]] = []
        for color, ids in variants.items():
            files: List[Dict[str, Any]] = [design_file]
            preview = by_color.get(color) or (generic[0] if generic else None)
            if preview:
                files.append({"type": "preview", "url": preview})
            sync_variants.extend(
                {"variant_id": variant_id, "retail_price": price, "files": files}
                for variant_id in ids
            )

        first_color = next(iter(variants))
        thumbnail = by_color.get(first_color) or (generic[0] if generic else design_url)

        payload: Dict[str, Any] = {
            "sync_product": {
                "external_id": unit.slug,
                "name": content.title,
                "description": content.description,
                "thumbnail": thumbnail,
            },
            "sync_variants": sync_variants,
        }

        if self.config.sync_variant == "etsy":
            payload["etsy"] = {
                "title": content.title,
                "description": content.description,
                "price": price,
                "tags": ",".join(content.tags),
                "state": "draft",
                "who_made": "i_did",
                "when_made": "made_to_order",
                "is_supply": False,
                "should_auto_renew": True,
            }

        return payload

    def _create_once(
        self, unit: DesignUnit, payload: Dict[str, Any]
    ) -> Callable[[], Dict[str, Any]]:
        """One create attempt; later attempts adopt a product an earlier one left behind.

        A create whose response was lost may still have been stored, so every
        attempt after the first looks the external id up before posting again.
        """
        posted = False

        def attempt() -> Dict[str, Any]:
            nonlocal posted
            if posted:
                found = self.client.get_sync_product(unit.slug)
                if found:
                    product_id = _product_id(found)
                    logger.info(
                        f"  Product {unit.slug} was stored by an earlier attempt ({product_id}), updating"
                    )
                    return self.client.update_sync_product(product_id, payload)
            posted = True
            return self.client.create_sync_product(payload)

        return attempt

    def sync(
        self,
        unit: DesignUnit,
        design_url: str,
        content: ListingContent,
        mockup_urls: Sequence[str] = (),
        price: Optional[str] = None,
    ) -> ProductRecord:
        """Create the product for ``unit``, or update the existing one.

        Args:
            unit: Design unit being synced.
            design_url: Public URL of the print file.
            content: Listing copy (title becomes the product name).
            mockup_urls: Hosted mockups, matched to colours by file name.
            price: Retail price; defaults to the listing's then the run's price.

        Returns:
            A new ``ProductRecord``.

        Raises:
            InvalidInputError: Missing field or bad price (never retried).
            DomainRejectionError: The store refused the product.
            ExhaustedRetriesError: Transient failures outlasted the policy.
        """
        price = validate_sync_input(
            unit, design_url, content, price or content.price or self.config.price
        )
        variants = self.resolve_variants()
        payload = self.build_payload(unit, design_url, content, price, variants, mockup_urls)
        logger.debug(f"Sync payload for {unit.name}: {payload}")

        existing = None
        if self.config.update_existing:
            existing = self._call(
                f"lookup of product {unit.slug}",
                lambda: self.client.get_sync_product(unit.slug),
            )

        if existing:
            product_id = _product_id(existing)
            logger.info(f"  Product {unit.slug} exists ({product_id}), updating")
            result = self._call(
                f"update of product {unit.slug}",
                lambda: self.client.update_sync_product(product_id, payload),
            )
        else:
            result = self._call(
                f"creation of product {unit.slug}",
                self._create_once(unit, payload),
            )

        product_id = _product_id(result)
        external_url = result.get("external_url") or self.client.get_product_url(product_id)
        record = ProductRecord(id=product_id, external_url=external_url)
        logger.info(
            f"  ✓ Synced {unit.name}: product {record.id} "
            f"({len(payload['sync_variants'])} variants, {len(variants)} color(s))"
        )
        return record


class DryRunProductSync:
    """Echo a fixed record without contacting the store."""

    def __init__(self, config: Optional[RunConfig] = None):
        self.config = config or RunConfig(dry_run=True)

    def sync(
        self,
        unit: DesignUnit,
        design_url: str,
        content: ListingContent,
        mockup_urls: Sequence[str] = (),
        price: Optional[str] = None,
    ) -> ProductRecord:
        validate_sync_input(unit, design_url, content, price or content.price or self.config.price)
        colors = "all colors" if self.config.all_colors else self.config.color
        logger.info(
            f"[dry-run] Would sync product {unit.slug} ({colors}) with {len(mockup_urls)} mockup(s)"
        )
        return ProductRecord(
            id=f"dry-run-{unit.slug}",
            external_url=f"https://example.com/dry-run/products/{unit.slug}",
        )


__all__ = [
    "match_mockup_color",
    "normalize_price",
    "validate_sync_input",
    "ProductSyncAdapter",
    "DryRunProductSync",
]
