"""Asset uploader: local validation plus retried upload to a file host."""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from PIL import Image, UnidentifiedImageError

from ..errors import AssetTooLargeError, InvalidInputError
from ..models import RetryPolicy, UploadResult
from ..retry import retry_call_with_attempt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostedFile:
    """URL returned by one successful host call."""

    url: str
    reconciled: bool = False


class AssetHost(ABC):
    """A file host that turns a local file into a fetchable URL."""

    name = "host"

    @abstractmethod
    def upload(self, path: Path) -> HostedFile:
        """Perform one upload attempt.

        Implementations raise ``TransientTransportError`` for failures worth
        retrying and a ``PermanentError`` subclass otherwise. A "resource
        already exists" conflict must be reconciled into the existing URL.
        """


def validate_asset(path: Path, max_bytes: int) -> int:
    """Check a local asset before any network call.

    Args:
        path: Local file to upload.
        max_bytes: Maximum accepted size.

    Returns:
        File size in bytes.

    Raises:
        InvalidInputError: If the file is missing or is not a readable image.
        AssetTooLargeError: If the file exceeds ``max_bytes``.
    """
    if not path.exists():
        raise InvalidInputError(f"Asset file not found: {path}")
    if not path.is_file():
        raise InvalidInputError(f"Asset path is not a file: {path}")

    size = path.stat().st_size
    if size > max_bytes:
        raise AssetTooLargeError(
            f"File too large: {size / (1024 * 1024):.1f}MB "
            f"(max {max_bytes / (1024 * 1024):.0f}MB): {path.name}",
            size_bytes=size,
            max_bytes=max_bytes,
        )

    try:
        with Image.open(path) as img:
            img.verify()
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidInputError(f"Not a readable image: {path}") from exc

    return size


class AssetUploader:
    """Upload assets through an ``AssetHost`` under a retry policy."""

    def __init__(
        self,
        host: AssetHost,
        policy: RetryPolicy,
        max_bytes: int,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.host = host
        self.policy = policy
        self.max_bytes = max_bytes
        self._sleep = sleep

    def upload(self, path: Path) -> UploadResult:
        """Host ``path`` and return its public URL.

        Raises:
            InvalidInputError: Local validation failed (not retried).
            ExhaustedRetriesError: The host kept failing.
        """
        size = validate_asset(path, self.max_bytes)
        logger.info(f"Uploading {path.name} ({size / 1024:.1f} KB) to {self.host.name}")

        outcome = retry_call_with_attempt(
            lambda: self.host.upload(path),
            self.policy,
            description=f"upload of {path.name} to {self.host.name}",
            sleep=self._sleep,
        )
        hosted = outcome.value
        if hosted.reconciled:
            logger.info(f"  Reused existing asset: {hosted.url}")
        else:
            logger.info(f"  Uploaded: {hosted.url}")
        return UploadResult(url=hosted.url, attempt=outcome.attempt, reconciled=hosted.reconciled)


class DryRunUploader:
    """Deterministic placeholder URLs; touches neither the network nor the file."""

    def upload(self, path: Path) -> UploadResult:
        logger.info(f"[dry-run] Would upload {path.name}")
        return UploadResult(url=f"https://example.com/dry-run/{path.name}", attempt=1)


__all__ = ["HostedFile", "AssetHost", "AssetUploader", "DryRunUploader", "validate_asset"]
