"""Dropbox file host (HTTP API v2 via requests)."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Mapping, Optional

import requests

from ..errors import (
    AuthenticationError,
    MissingCredentialsError,
    RemoteRequestError,
    TransientTransportError,
    is_transient_status,
    parse_retry_after,
)
from .base import AssetHost, HostedFile

logger = logging.getLogger(__name__)

DROPBOX_API = "https://api.dropboxapi.com"
DROPBOX_CONTENT_API = "https://content.dropboxapi.com"
DIRECT_HOST = "dl.dropboxusercontent.com"

REQUEST_TIMEOUT = 60


@dataclass(frozen=True)
class DropboxSettings:
    """Dropbox credentials.

    Either a long-lived access token or a refresh token plus app key/secret
    is required.
    """

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    app_key: Optional[str] = None
    app_secret: Optional[str] = None
    folder: Optional[str] = None

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token and self.app_key and self.app_secret)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "DropboxSettings":
        """Load settings from environment variables.

        Raises:
            MissingCredentialsError: If neither an access token nor refresh
                credentials are configured.
        """
        source = os.environ if env is None else env
        settings = cls(
            access_token=source.get("DROPBOX_ACCESS_TOKEN") or None,
            refresh_token=source.get("DROPBOX_REFRESH_TOKEN") or None,
            app_key=source.get("DROPBOX_APP_KEY") or None,
            app_secret=source.get("DROPBOX_APP_SECRET") or None,
            folder=source.get("DROPBOX_FOLDER_PATH") or None,
        )
        if not settings.access_token and not settings.can_refresh:
            raise MissingCredentialsError(
                "DROPBOX_ACCESS_TOKEN",
                "DROPBOX_ACCESS_TOKEN is not set (or set DROPBOX_REFRESH_TOKEN, "
                "DROPBOX_APP_KEY and DROPBOX_APP_SECRET).",
            )
        return settings


def to_direct_link(shared_url: str) -> str:
    """Rewrite a Dropbox shared link into a direct-download URL."""

    return (
        shared_url.replace("www.dropbox.com", DIRECT_HOST)
        .replace("?dl=0", "")
        .replace("&dl=0", "")
    )


class DropboxHost(AssetHost):
    """Upload files into a Dropbox folder and share them publicly."""

    name = "dropbox"

    def __init__(self, settings: DropboxSettings, folder: str = "/printful_uploads"):
        self.settings = settings
        self.folder = "/" + (settings.folder or folder).strip("/")
        self._access_token = settings.access_token

    # -- auth -------------------------------------------------------------

    def _refresh_access_token(self) -> None:
        """Exchange the refresh token for a new short-lived access token."""

        if not self.settings.can_refresh:
            raise AuthenticationError(
                "Dropbox access token expired and no refresh credentials are configured"
            )
        logger.info("Refreshing Dropbox access token")
        try:
            response = requests.post(
                f"{DROPBOX_API}/oauth2/token",
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self.settings.refresh_token,
                    "client_id": self.settings.app_key,
                    "client_secret": self.settings.app_secret,
                },
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise TransientTransportError(f"Dropbox token refresh failed: {exc}") from exc

        if response.status_code >= 400:
            if is_transient_status(response.status_code):
                raise TransientTransportError(
                    f"Dropbox token refresh failed (status {response.status_code})",
                    status_code=response.status_code,
                )
            raise AuthenticationError(
                f"Dropbox token refresh rejected (status {response.status_code}): {response.text}"
            )
        self._access_token = response.json()["access_token"]

    # -- requests ---------------------------------------------------------

    def _send(self, url: str, headers: Optional[Dict[str, str]], **kwargs: Any) -> requests.Response:
        merged = dict(headers or {})
        merged["Authorization"] = f"Bearer {self._access_token}"
        logger.debug(f"POST {url}")
        try:
            return requests.post(url, headers=merged, timeout=REQUEST_TIMEOUT, **kwargs)
        except requests.RequestException as exc:
            raise TransientTransportError(f"Dropbox request failed: {exc}") from exc

    def _post(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> requests.Response:
        """POST with bearer auth, refreshing the token once on expiry."""

        if not self._access_token:
            self._refresh_access_token()

        response = self._send(url, headers, **kwargs)
        if response.status_code == 401 and self.settings.can_refresh:
            self._refresh_access_token()
            response = self._send(url, headers, **kwargs)
        return response

    @staticmethod
    def _error_summary(response: requests.Response) -> str:
        try:
            return response.json().get("error_summary", response.text)
        except ValueError:
            return response.text

    def _raise_for_status(self, response: requests.Response, action: str) -> None:
        status = response.status_code
        if status < 400:
            return
        summary = self._error_summary(response)
        if is_transient_status(status):
            raise TransientTransportError(
                f"Dropbox {action} failed (status {status}): {summary}",
                status_code=status,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        if status in (401, 403):
            raise AuthenticationError(f"Dropbox {action} unauthorized: {summary}")
        raise RemoteRequestError(
            f"Dropbox {action} failed (status {status}): {summary}", status_code=status
        )

    # -- operations -------------------------------------------------------

    def _upload_file(self, path: Path) -> str:
        target = f"{self.folder}/{path.name}"
        response = self._post(
            f"{DROPBOX_CONTENT_API}/2/files/upload",
            headers={
                "Content-Type": "application/octet-stream",
                "Dropbox-API-Arg": json.dumps({"path": target, "mode": "overwrite", "mute": True}),
            },
            data=path.read_bytes(),
        )
        self._raise_for_status(response, "upload")
        return response.json().get("path_display") or target

    def _existing_link(self, dropbox_path: str, conflict: Dict[str, Any]) -> Optional[str]:
        """Find the URL of the shared link that caused a conflict."""

        metadata = (
            conflict.get("error", {})
            .get("shared_link_already_exists", {})
            .get("metadata", {})
        )
        if metadata.get("url"):
            return metadata["url"]

        response = self._post(
            f"{DROPBOX_API}/2/sharing/list_shared_links",
            json={"path": dropbox_path, "direct_only": True},
        )
        self._raise_for_status(response, "list shared links")
        links = response.json().get("links", [])
        lowered = dropbox_path.lower()
        for link in links:
            if link.get("path_lower") == lowered:
                return link.get("url")
        return links[0].get("url") if links else None

    def _share(self, dropbox_path: str) -> HostedFile:
        response = self._post(
            f"{DROPBOX_API}/2/sharing/create_shared_link_with_settings",
            json={"path": dropbox_path, "settings": {"requested_visibility": "public"}},
        )
        if response.status_code == 409 and "shared_link_already_exists" in self._error_summary(response):
            logger.info(f"  Shared link already exists for {dropbox_path}, retrieving it")
            url = self._existing_link(dropbox_path, response.json())
            if not url:
                raise RemoteRequestError(
                    f"Dropbox reported an existing shared link for {dropbox_path} but none was listed",
                    status_code=409,
                )
            return HostedFile(url=to_direct_link(url), reconciled=True)

        self._raise_for_status(response, "create shared link")
        return HostedFile(url=to_direct_link(response.json()["url"]))

    def upload(self, path: Path) -> HostedFile:
        dropbox_path = self._upload_file(path)
        logger.debug(f"Uploaded to Dropbox path {dropbox_path}")
        return self._share(dropbox_path)


__all__ = ["DropboxSettings", "DropboxHost", "to_direct_link"]
