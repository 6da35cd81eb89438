"""Asset hosting: turn local design and mockup files into public URLs."""
from __future__ import annotations

from typing import Mapping, Optional, Union

from ..config import RunConfig
from .base import AssetHost, AssetUploader, DryRunUploader, HostedFile, validate_asset
from .cloudinary_host import CloudinaryHost, CloudinarySettings
from .dropbox import DropboxHost, DropboxSettings


def build_host(config: RunConfig, env: Optional[Mapping[str, str]] = None) -> AssetHost:
    """Create the host selected by ``config.host`` with credentials from ``env``."""

    if config.host == "dropbox":
        return DropboxHost(DropboxSettings.from_env(env), folder=config.dropbox_folder)
    return CloudinaryHost(CloudinarySettings.from_env(env), folder=config.cloudinary_folder)


def build_uploader(
    config: RunConfig,
    env: Optional[Mapping[str, str]] = None,
) -> Union[AssetUploader, DryRunUploader]:
    """Create the uploader for a run (placeholder uploader in dry-run mode)."""

    if config.dry_run:
        return DryRunUploader()
    return AssetUploader(build_host(config, env), config.retry, config.max_upload_bytes)


__all__ = [
    "AssetHost",
    "AssetUploader",
    "DryRunUploader",
    "HostedFile",
    "validate_asset",
    "CloudinaryHost",
    "CloudinarySettings",
    "DropboxHost",
    "DropboxSettings",
    "build_host",
    "build_uploader",
]
