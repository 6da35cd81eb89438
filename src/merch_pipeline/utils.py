"""Utility helpers for the merch-pipeline CLI."""
from __future__ import annotations

import logging
import os
from pathlib import Path

# Default folders written by the Illustrator / Photoshop export scripts
EXPORT_DIR = "export"
MOCKUPS_DIR = "export-mockups"


def setup_logging(level: int = logging.INFO) -> None:
    """Configure global logging style for CLI use.

    Args:
        level: Logging level passed to ``logging.basicConfig``.
    """

    logging.basicConfig(
        level=level,
        format="[%(levelname)s] %(message)s",
    )


def workspace_root() -> Path:
    """Return base directory for exports (env MERCH_PIPELINE_ROOT overrides)."""

    return Path(os.getenv("MERCH_PIPELINE_ROOT", "."))
