"""Cloudinary file host (official ``cloudinary`` SDK)."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Mapping, Optional

import cloudinary
import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils

from ..errors import (
    AuthenticationError,
    MissingCredentialsError,
    RemoteRequestError,
    TransientTransportError,
)
from .base import AssetHost, HostedFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloudinarySettings:
    """Cloudinary account credentials."""

    cloud_name: str
    api_key: str
    api_secret: str

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "CloudinarySettings":
        """Load settings from environment variables.

        Raises:
            MissingCredentialsError: Naming the first unset variable.
        """
        source = os.environ if env is None else env
        values = {}
        for var in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
            value = source.get(var, "").strip()
            if not value:
                raise MissingCredentialsError(var)
            values[var] = value
        return cls(
            cloud_name=values["CLOUDINARY_CLOUD_NAME"],
            api_key=values["CLOUDINARY_API_KEY"],
            api_secret=values["CLOUDINARY_API_SECRET"],
        )

    def options(self) -> Dict[str, Any]:
        """Per-call credential options (avoids mutating the SDK's global config)."""
        return {
            "cloud_name": self.cloud_name,
            "api_key": self.api_key,
            "api_secret": self.api_secret,
        }


class CloudinaryHost(AssetHost):
    """Upload images into a Cloudinary folder under a stable public id.

    Uploads never overwrite: re-running on the same file returns the asset
    that is already there.
    """

    name = "cloudinary"

    def __init__(self, settings: CloudinarySettings, folder: str = "printful_uploads"):
        self.settings = settings
        self.folder = folder.strip("/")

    def public_id(self, path: Path) -> str:
        return f"{self.folder}/{path.stem}" if self.folder else path.stem

    def _secure_url(self, result: Dict[str, Any]) -> str:
        secure_url = result.get("secure_url")
        if secure_url:
            return secure_url

        public_id = result.get("public_id")
        if not public_id:
            raise RemoteRequestError(f"Cloudinary response has no secure_url or public_id: {result}")
        logger.warning("Cloudinary response missing 'secure_url', constructing it from public_id")
        return cloudinary.utils.cloudinary_url(
            public_id,
            resource_type=result.get("resource_type", "image"),
            version=result.get("version"),
            secure=True,
            cloud_name=self.settings.cloud_name,
        )[0]

    def _fetch_existing(self, public_id: str) -> HostedFile:
        logger.info(f"  Asset {public_id} already exists on Cloudinary, fetching its URL")
        try:
            result = cloudinary.api.resource(public_id, **self.settings.options())
        except cloudinary.exceptions.NotFound as exc:
            raise RemoteRequestError(
                f"Cloudinary reported {public_id} as existing but it could not be fetched"
            ) from exc
        except cloudinary.exceptions.Error as exc:
            raise self._translate(exc) from exc
        return HostedFile(url=self._secure_url(result), reconciled=True)

    @staticmethod
    def _translate(exc: Exception) -> Exception:
        if isinstance(exc, cloudinary.exceptions.RateLimited):
            return TransientTransportError(f"Cloudinary rate limit: {exc}", status_code=420)
        if isinstance(exc, (cloudinary.exceptions.AuthorizationRequired, cloudinary.exceptions.NotAllowed)):
            return AuthenticationError(f"Cloudinary rejected credentials: {exc}")
        if isinstance(exc, (cloudinary.exceptions.BadRequest, cloudinary.exceptions.NotFound)):
            return RemoteRequestError(f"Cloudinary rejected upload: {exc}")
        # GeneralError and bare Error cover network failures and 5xx
        return TransientTransportError(f"Cloudinary upload failed: {exc}")

    def upload(self, path: Path) -> HostedFile:
        public_id = self.public_id(path)
        try:
            result = cloudinary.uploader.upload(
                str(path),
                public_id=public_id,
                overwrite=False,
                resource_type="image",
                **self.settings.options(),
            )
        except cloudinary.exceptions.AlreadyExists:
            return self._fetch_existing(public_id)
        except cloudinary.exceptions.Error as exc:
            if "already exists" in str(exc).lower():
                return self._fetch_existing(public_id)
            raise self._translate(exc) from exc
        except OSError as exc:
            raise TransientTransportError(f"Cloudinary upload failed: {exc}") from exc

        return HostedFile(url=self._secure_url(result), reconciled=bool(result.get("existing")))


__all__ = ["CloudinarySettings", "CloudinaryHost"]
