"""Printful API client for store product management."""
from __future__ import annotations

import logging
import re
import time
from typing import Dict, Any, Optional, List

import requests

from ..errors import (
    AuthenticationError,
    DomainRejectionError,
    RemoteRequestError,
    TransientTransportError,
    is_transient_status,
    parse_retry_after,
)
from ..models import StoreCredentials

logger = logging.getLogger(__name__)

# Printful API base URL
PRINTFUL_API_BASE = "https://api.printful.com"

# Rate limit: 120 requests/minute per token
RATE_LIMIT_DELAY = 0.5  # seconds between requests

REQUEST_TIMEOUT = 60

# Rejections that are expected for some store types, not request bugs
KNOWN_LIMITATION_PATTERNS = (
    re.compile(r"manual order\s*/\s*api platform", re.IGNORECASE),
    re.compile(r"(does not|doesn't) support", re.IGNORECASE),
    re.compile(r"not supported", re.IGNORECASE),
    re.compile(r"only (applies|available) (to|for)", re.IGNORECASE),
)


class PrintfulRateLimitError(TransientTransportError):
    """Rate limit exceeded error."""
    pass


class PrintfulAuthenticationError(AuthenticationError):
    """Authentication error."""
    pass


def is_known_limitation(message: str) -> bool:
    """Return True if a rejection message describes a store-type limitation."""

    return any(p.search(message) for p in KNOWN_LIMITATION_PATTERNS)


class PrintfulClient:
    """Printful API client bound to one store.

    Each method performs a single request. Retrying is left to the caller.
    """

    def __init__(self, credentials: StoreCredentials, rate_limit_delay: float = RATE_LIMIT_DELAY):
        """Initialize Printful API client.

        Args:
            credentials: Store API token and store id.
            rate_limit_delay: Minimum seconds between requests.
        """
        self.credentials = credentials
        self.rate_limit_delay = rate_limit_delay

        self._last_request_time = 0.0

    def _wait_for_rate_limit(self) -> None:
        """Wait to respect the request rate limit."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self.rate_limit_delay:
            time.sleep(self.rate_limit_delay - elapsed)
        self._last_request_time = time.time()

    def _get_headers(self) -> Dict[str, str]:
        """Get request headers with authentication.

        Returns:
            Headers dict
        """
        return {
            "Authorization": f"Bearer {self.credentials.api_key}",
            "X-PF-Store-Id": self.credentials.store_id,
            "Content-Type": "application/json",
        }

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(data.get("result"), str):
            return data["result"]
        return response.text

    def _handle_response(self, response: requests.Response) -> Any:
        """Handle API response and errors.

        Args:
            response: requests Response object

        Returns:
            The ``result`` member of the JSON response

        Raises:
            PrintfulRateLimitError: Rate limit exceeded
            TransientTransportError: 5xx or timeout status
            PrintfulAuthenticationError: Authentication failed
            DomainRejectionError: Any other rejection
            RemoteRequestError: A success status without a ``result`` member
        """
        status = response.status_code

        # Rate limit
        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise PrintfulRateLimitError(
                f"Rate limit exceeded. Retry after {retry_after or 60} seconds.",
                status_code=status,
                retry_after=retry_after,
            )

        if is_transient_status(status):
            raise TransientTransportError(
                f"Printful server error (status {status}): {self._error_message(response)}",
                status_code=status,
            )

        # Authentication errors
        if status in (401, 403):
            raise PrintfulAuthenticationError(
                f"Authentication failed for {self.credentials.label}: {self._error_message(response)}"
            )

        # Other errors
        if status >= 400:
            message = self._error_message(response)
            raise DomainRejectionError(
                f"API request failed (status {status}): {message}",
                status_code=status,
                known_limitation=is_known_limitation(message),
            )

        # Success
        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteRequestError(
                f"Printful returned a non-JSON body (status {status})", status_code=status
            ) from exc
        if not isinstance(data, dict) or data.get("result") is None:
            raise RemoteRequestError(
                f"Printful response has no result (status {status}): {data}", status_code=status
            )
        return data["result"]

    def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> requests.Response:
        """Send one request with rate limiting.

        Raises:
            TransientTransportError: Connection failure or timeout.
        """
        # Wait for rate limit
        self._wait_for_rate_limit()

        url = f"{PRINTFUL_API_BASE}{endpoint}"
        logger.debug(f"{method} {url}")

        try:
            return requests.request(
                method=method,
                url=url,
                headers=self._get_headers(),
                json=data,
                params=params,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise TransientTransportError(f"{method} {endpoint} failed: {exc}") from exc

    def list_stores(self) -> List[Dict[str, Any]]:
        """List stores visible to the token (connectivity check)."""
        return self._handle_response(self._request("GET", "/stores")) or []

    def get_catalog_variants(self, product_id: int) -> List[Dict[str, Any]]:
        """Get catalog variants (color/size combinations) for a product.

        Args:
            product_id: Printful catalog product ID

        Returns:
            List of variant dicts with ``id``, ``color`` and ``size``
        """
        result = self._handle_response(self._request("GET", f"/products/{product_id}"))
        variants = (result or {}).get("variants", [])
        logger.debug(f"Retrieved {len(variants)} variants for catalog product {product_id}")
        return variants

    def get_sync_product(self, external_id: str) -> Optional[Dict[str, Any]]:
        """Get a store product by external id.

        Returns:
            Product data, or ``None`` if no product has that external id
        """
        response = self._request("GET", f"/store/products/@{external_id}")
        if response.status_code == 404:
            return None
        return self._handle_response(response)

    def create_sync_product(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a store product.

        Args:
            payload: ``sync_product`` / ``sync_variants`` request body

        Returns:
            Created product data including ``id``
        """
        result = self._handle_response(self._request("POST", "/store/products", data=payload))
        if not isinstance(result, dict):
            raise RemoteRequestError(f"Unexpected create response: {result!r}")
        logger.info(f"Created store product: {result.get('id')}")
        return result

    def update_sync_product(self, product_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Replace a store product's fields and variants.

        Args:
            product_id: Sync product id, or ``@<external_id>``
            payload: Same shape as for creation

        Returns:
            Updated product data
        """
        result = self._handle_response(
            self._request("PUT", f"/store/products/{product_id}", data=payload)
        )
        if not isinstance(result, dict):
            raise RemoteRequestError(f"Unexpected update response: {result!r}")
        logger.info(f"Updated store product: {product_id}")
        return result

    def get_product_url(self, product_id: str) -> str:
        """Dashboard URL for a store product."""
        return f"https://www.printful.com/dashboard/sync/update?id={product_id}"


__all__ = [
    "PrintfulClient",
    "PrintfulRateLimitError",
    "PrintfulAuthenticationError",
    "is_known_limitation",
]
