"""
Request signing for the Cerb REST API.

Cerb authenticates every request with a ``Cerb-Auth: <key>:<signature>``
header. The server rebuilds the string below from the request it receives
and compares digests, so it must match byte for byte::

    METHOD \\n DATE \\n PATH \\n QUERY \\n BODY \\n md5(secret) \\n

See https://cerb.ai/docs/api/authentication/ for details.
"""

import datetime
import hashlib
from email.utils import format_datetime
from typing import Optional, Union

from .credentials import Credentials


def digest(data: Union[str, bytes]) -> str:
    """
    Return the lowercase hex MD5 digest of ``data``.

    Strings are encoded as UTF-8. This is the checksum Cerb agrees on,
    not a MAC; both the secret and the canonical string go through it.
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.md5(data).hexdigest()


def http_date(when: Optional[datetime.datetime] = None) -> str:
    """Format ``when`` (default: now) as an RFC 1123 date in GMT."""
    if when is None:
        when = datetime.datetime.now(datetime.timezone.utc)
    elif when.tzinfo is None:
        when = when.replace(tzinfo=datetime.timezone.utc)
    else:
        when = when.astimezone(datetime.timezone.utc)
    return format_datetime(when.replace(microsecond=0), usegmt=True)


def canonical_string(method: str, date: str, path: str, query: str,
                     body: str, secret: str) -> str:
    """
    Build the string Cerb signs.

    Args:
        method: HTTP verb exactly as sent
        date: value of the Date header
        path: URL path without scheme, host or query
        query: query string exactly as placed on the wire
        body: request body exactly as sent, or "" when there is none
        secret: access secret; only its digest is embedded

    Returns:
        Newline-joined fields with a trailing newline
    """
    fields = (method, date, path, query, body, digest(secret))
    return "".join(field + "\n" for field in fields)


def sign(credentials: Credentials, method: str, date: str, path: str,
         query: str = "", body: str = "") -> str:
    """Return the Cerb-Auth header value for a request."""
    canonical = canonical_string(method, date, path, query, body, credentials.secret)
    return f"{credentials.key}:{digest(canonical)}"


def cerb_encode(s: str) -> str:
    """
    Escape a raw query or body string the way older Cerb endpoints expect.

    Only apostrophe, comma and space are replaced; everything else is left
    alone because the server decodes asymmetrically and a generic encoder
    breaks the signature. Not idempotent: encode exactly once.
    """
    s = s.replace("'", "%22")
    s = s.replace(",", "%2C")
    s = s.replace(" ", "%20")
    return s
