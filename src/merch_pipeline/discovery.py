"""Enumerate design units from exported assets."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import InvalidInputError
from .models import DesignUnit

logger = logging.getLogger(__name__)

IMAGE_SUFFIX = ".png"


def find_mockups(mockups_dir: Path, name: str) -> tuple[Path, ...]:
    """Return the sorted per-color mockup renders for ``name`` (may be empty)."""

    unit_dir = mockups_dir / name
    if not unit_dir.is_dir():
        return ()
    return tuple(
        sorted(p for p in unit_dir.iterdir() if p.suffix.lower() == IMAGE_SUFFIX)
    )


def units_from_names(
    names: Iterable[str],
    assets_dir: Path,
    mockups_dir: Path,
) -> List[DesignUnit]:
    """Build design units for explicit design names, keeping their order.

    Args:
        names: Design names (e.g. ``["TACO", "MOLE"]``).
        assets_dir: Folder holding ``<name>.png`` design exports.
        mockups_dir: Folder holding ``<name>/*.png`` mockups.

    Raises:
        InvalidInputError: On an empty or duplicated name.
    """
    units: List[DesignUnit] = []
    seen = set()
    for raw in names:
        name = raw.strip()
        if not name:
            raise InvalidInputError("Design names must be non-empty")
        if name in seen:
            raise InvalidInputError(f"Duplicate design name: {name}")
        seen.add(name)
        units.append(
            DesignUnit(
                name=name,
                source_image_path=assets_dir / f"{name}{IMAGE_SUFFIX}",
                mockup_paths=find_mockups(mockups_dir, name),
            )
        )
    return units


def units_from_directory(
    assets_dir: Path,
    mockups_dir: Path,
    limit: Optional[int] = None,
) -> List[DesignUnit]:
    """Build one design unit per PNG in ``assets_dir``, sorted by file name.

    Raises:
        InvalidInputError: If the directory does not exist or ``limit`` < 1.
    """
    if not assets_dir.is_dir():
        raise InvalidInputError(f"Assets directory not found: {assets_dir}")
    if limit is not None and limit < 1:
        raise InvalidInputError(f"limit must be >= 1, got {limit}")

    files = sorted(p for p in assets_dir.iterdir() if p.suffix.lower() == IMAGE_SUFFIX)
    logger.info(f"Found {len(files)} PNG files in {assets_dir}")
    if limit is not None and limit < len(files):
        logger.info(f"Processing only the first {limit} files")
        files = files[:limit]

    return [
        DesignUnit(
            name=path.stem,
            source_image_path=path,
            mockup_paths=find_mockups(mockups_dir, path.stem),
        )
        for path in files
    ]


__all__ = ["find_mockups", "units_from_names", "units_from_directory"]
