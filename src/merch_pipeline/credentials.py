"""Store credential resolution.

Printful exposes one API token per store. The "manual" store is a Manual
Order / API platform store that accepts product creation; the "etsy" store is
linked to an Etsy shop and may reject API-created products.
"""
from __future__ import annotations

import logging
import os
from typing import Dict, Mapping, Optional, Tuple

from .errors import InvalidInputError, MissingCredentialsError
from .models import StoreCredentials

logger = logging.getLogger(__name__)

# store -> (api key variable, store id variable, label)
STORE_ENV_KEYS: Dict[str, Tuple[str, str, str]] = {
    "manual": ("PRINTFUL_API_KEY", "PRINTFUL_STORE_ID", "Manual/API store"),
    "etsy": ("PRINTFUL_ETSY_API_KEY", "PRINTFUL_ETSY_STORE_ID", "Etsy-linked store"),
}

STORE_TYPES = tuple(STORE_ENV_KEYS)


def resolve_store_credentials(
    store: str,
    env: Optional[Mapping[str, str]] = None,
) -> StoreCredentials:
    """Return the credentials for ``store``.

    Args:
        store: One of ``STORE_TYPES``.
        env: Configuration mapping (defaults to ``os.environ``).

    Returns:
        Immutable ``StoreCredentials`` for the run.

    Raises:
        InvalidInputError: If ``store`` is not a known store type.
        MissingCredentialsError: If the store's API key or store id is unset.
    """
    if store not in STORE_ENV_KEYS:
        raise InvalidInputError(
            f"Unknown store type '{store}'. Expected one of: {', '.join(STORE_TYPES)}"
        )

    source = os.environ if env is None else env
    key_var, store_var, label = STORE_ENV_KEYS[store]

    for var in (key_var, store_var):
        value = source.get(var, "")
        if not value or not value.strip():
            raise MissingCredentialsError(
                var,
                f"{var} is not set; required for the {label}. Add it to your .env file.",
            )

    credentials = StoreCredentials(
        store=store,
        api_key=source[key_var].strip(),
        store_id=source[store_var].strip(),
        label=label,
    )
    logger.debug(f"Resolved credentials for {credentials}")
    return credentials


__all__ = ["STORE_ENV_KEYS", "STORE_TYPES", "resolve_store_credentials"]
