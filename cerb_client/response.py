"""
Response handling for the Cerb REST API.

Cerb cannot be trusted to report failures through the HTTP status. Most
endpoints answer 200 with ``{"__status":"error","message":...}`` in the
body, so every body is checked here before callers see it.
"""

import json
import logging
from typing import Any, Dict, Optional

from .constants import STATUS_FIELD, STATUS_SUCCESS, SUCCESS_MARKER
from .exceptions import MalformedResponseError, PaginationProtocolError, RemoteError

logger = logging.getLogger(__name__)


def _decode(body: bytes, method: Optional[str], endpoint: Optional[str]) -> Any:
    try:
        return json.loads(body)
    except ValueError as e:
        raise MalformedResponseError(
            f"Unable to parse response body: {e}",
            body=body, cause=e, method=method, endpoint=endpoint,
        ) from e


def interpret_body(body: bytes, method: Optional[str] = None,
                   endpoint: Optional[str] = None) -> Dict[str, Any]:
    """
    Turn a raw response body into a decoded success payload.

    Args:
        body: Raw response bytes
        method: HTTP method, for error context
        endpoint: Endpoint, for error context

    Returns:
        The decoded JSON object

    Raises:
        RemoteError: If the envelope status is not "success"
        MalformedResponseError: If the body is not a JSON object
    """
    if isinstance(body, str):
        body = body.encode('utf-8')

    data = _decode(body, method, endpoint)
    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(data).__name__}",
            body=body, method=method, endpoint=endpoint,
        )

    if SUCCESS_MARKER in body or data.get(STATUS_FIELD) == STATUS_SUCCESS:
        return data

    status = data.get(STATUS_FIELD, "")
    message = data.get('message', "")
    logger.warning("Cerb returned status %r for %s %s: %s", status, method, endpoint, message)
    raise RemoteError(status, message, method=method, endpoint=endpoint)


def coerce_total(total: Any) -> int:
    """
    Read a search ``total`` that may arrive as a number or a numeral string.

    Raises:
        PaginationProtocolError: If neither representation applies
    """
    if isinstance(total, bool):
        raise PaginationProtocolError(total)
    if isinstance(total, int):
        return total
    if isinstance(total, float) and total.is_integer():
        return int(total)
    if isinstance(total, str):
        numeral = total.strip()
        if numeral.isascii() and numeral.isdigit():
            return int(numeral)
    raise PaginationProtocolError(total)


def remaining_count(total: int, page: int, limit: int) -> int:
    """
    Records left on pages after ``page``.

    Derived from the requested page and limit; the ones echoed in the
    response are wrong.
    """
    return max(0, total - (page + 1) * limit)
