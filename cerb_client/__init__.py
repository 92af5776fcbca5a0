"""
Cerb Client Library

A Python client for the Cerb ticketing REST API that signs every request
with the Cerb-Auth scheme and turns error envelopes hidden in 200
responses into exceptions.

Example usage:
    from cerb_client import CerbClient, Credentials

    creds = Credentials("access-key", "access-secret")
    client = CerbClient("https://example.cerb.me/rest/", creds)
    tickets, remaining = client.list_open_tickets(page=0)
"""

from .client import CerbClient
from .credentials import Credentials, load_credentials
from .exceptions import (
    CerbClientError,
    ConfigurationError,
    CredentialsError,
    RequestConstructionError,
    TransportError,
    UnexpectedStatusError,
    RemoteError,
    MalformedResponseError,
    PaginationProtocolError
)
from .models import (
    Bucket,
    Comment,
    CreateMessageResponse,
    CreateTicketResponse,
    CustomerQuestion,
    Group,
    SearchResults,
    Ticket
)
from .signing import canonical_string, cerb_encode, digest, http_date, sign

__version__ = "1.0.0"
__all__ = [
    "CerbClient",
    "Credentials",
    "load_credentials",
    "CerbClientError",
    "ConfigurationError",
    "CredentialsError",
    "RequestConstructionError",
    "TransportError",
    "UnexpectedStatusError",
    "RemoteError",
    "MalformedResponseError",
    "PaginationProtocolError",
    "Bucket",
    "Comment",
    "CreateMessageResponse",
    "CreateTicketResponse",
    "CustomerQuestion",
    "Group",
    "SearchResults",
    "Ticket",
    "canonical_string",
    "cerb_encode",
    "digest",
    "http_date",
    "sign"
]
