"""Per-product JSON log files (one per successfully synced unit)."""
from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence

from ..models import DesignUnit, ListingContent, ProductRecord

logger = logging.getLogger(__name__)


class ResultLog:
    """Write ``<slug>-<epoch_ms>.json`` files into a results directory."""

    def __init__(self, results_dir: Path):
        self.results_dir = Path(results_dir)

    def _target(self, slug: str) -> Path:
        stamp = int(time.time() * 1000)
        path = self.results_dir / f"{slug}-{stamp}.json"
        while path.exists():
            stamp += 1
            path = self.results_dir / f"{slug}-{stamp}.json"
        return path

    def append(
        self,
        unit: DesignUnit,
        record: ProductRecord,
        content: ListingContent,
        design_url: str,
        *,
        mockup_urls: Sequence[str] = (),
        dry_run: bool = False,
    ) -> Path:
        """Write one log entry.

        Args:
            unit: Synced design unit.
            record: Product record returned by the sync.
            content: Listing copy used for the product.
            design_url: Hosted design URL.
            mockup_urls: Hosted mockup URLs.
            dry_run: Whether the record came from a dry run.

        Returns:
            Path to the written file.
        """
        self.results_dir.mkdir(parents=True, exist_ok=True)
        path = self._target(unit.slug)

        entry: Dict[str, Any] = {
            "word": unit.name,
            "source_image": str(unit.source_image_path),
            "design_url": design_url,
            "mockup_urls": list(mockup_urls),
            "listing": content.to_dict(),
            "product": record.to_dict(),
            "dry_run": dry_run,
        }

        with open(path, "w", encoding="utf-8") as f:
            json.dump(entry, f, indent=2, ensure_ascii=False)

        logger.info(f"  Product info saved: {path}")
        return path

    def read_all(self, word: Optional[str] = None) -> List[Dict[str, Any]]:
        """Load every entry in the results directory (oldest name first).

        Args:
            word: Only return entries for this design name.
        """
        if not self.results_dir.exists():
            return []

        entries = []
        for path in sorted(self.results_dir.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable log file {path}: {e}")
                continue
            if word is not None and data.get("word") != word:
                continue
            entries.append(data)
        return entries


__all__ = ["ResultLog"]
