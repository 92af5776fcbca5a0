"""
Cerb API credentials and loading them from disk.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Optional

from .constants import DEFAULT_CREDS_PATH
from .exceptions import CredentialsError


@dataclass(frozen=True)
class Credentials:
    """Access key (sent in the clear) and access secret (never sent)."""

    key: str
    secret: str = field(repr=False)
    base_url: Optional[str] = None


def load_credentials(path: str = DEFAULT_CREDS_PATH) -> Credentials:
    """
    Load credentials from a JSON file.

    Expected format::

        {"access-key": "...", "access-secret": "...",
         "rest-api-base-url": "https://example.cerb.me/rest/"}

    The base URL is optional.

    Raises:
        CredentialsError: If the file is missing or invalid
    """
    path = os.path.expanduser(path)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise CredentialsError(f"Error loading credentials from {path}: {e}") from e
    except ValueError as e:
        raise CredentialsError(f"Error decoding Cerb credentials from {path}: {e}") from e

    if not isinstance(data, dict):
        raise CredentialsError(f"Credentials in {path} must be a JSON object")

    key = data.get('access-key')
    secret = data.get('access-secret')
    base_url = data.get('rest-api-base-url')

    if not isinstance(key, str) or not key:
        raise CredentialsError(f"Missing 'access-key' in {path}")
    if not isinstance(secret, str) or not secret:
        raise CredentialsError(f"Missing 'access-secret' in {path}")
    if base_url is not None and not isinstance(base_url, str):
        raise CredentialsError(f"'rest-api-base-url' in {path} must be a string")

    return Credentials(key=key, secret=secret, base_url=base_url)
