"""
Cerb REST API client.

This module builds signed requests for the Cerb REST API, sends them
through a requests Session and decodes the responses into records.

Two ways of encoding a request exist and each endpoint picks one:

* structured: query and form parameters are sorted by key and
  form-encoded by the standard library. Used by every records/ endpoint.
* legacy: the caller hands over a query or body string already escaped
  with :func:`cerb_client.signing.cerb_encode`, which is sent as is. Used
  for raw free-text search strings and the mail parser endpoint.
"""

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
from urllib.parse import urlencode, urljoin, urlsplit

import requests

from .constants import (
    CONTEXT_APP,
    CONTEXT_TICKET,
    DEFAULT_CONFIG,
    ENDPOINT_CREATE,
    ENDPOINT_PARSER,
    ENDPOINT_RECORD,
    ENDPOINT_SEARCH,
    FORM_CONTENT_TYPE,
    HEADER_CERB_AUTH,
    HEADER_CONTENT_TYPE,
    HEADER_DATE,
    MAX_PAGE_LIMIT,
)
from .credentials import Credentials
from .exceptions import (
    ConfigurationError,
    MalformedResponseError,
    RequestConstructionError,
    TransportError,
    UnexpectedStatusError,
)
from .models import (
    Bucket,
    Comment,
    CreateMessageResponse,
    CreateTicketResponse,
    CustomerQuestion,
    Group,
    SearchResults,
    Ticket,
)
from .response import interpret_body
from .signing import cerb_encode, http_date, sign

logger = logging.getLogger(__name__)

OPEN_TICKETS_QUERY = "status:[o]"
SENDER_EXPANSION = "initial_message_sender_"


def encode_params(params: Optional[Dict[str, Any]]) -> str:
    """Form-encode ``params`` sorted by key."""
    if not params:
        return ""
    return urlencode(sorted((k, str(v)) for k, v in params.items()))


def record_fields(values: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap record field names as Cerb expects them: ``fields[name]``."""
    return {f"fields[{name}]": value for name, value in values.items()}


class CerbClient:
    """
    Client for the Cerb REST API.

    Every request is signed with the Cerb-Auth scheme. Failures reported
    in a 200 response body are raised as RemoteError.
    """

    def __init__(self, base_url: str, credentials: Credentials,
                 session: Optional[requests.Session] = None, **config):
        """
        Initialize Cerb client.

        Args:
            base_url: REST API base URL, e.g. https://example.cerb.me/rest/
            credentials: Access key and secret
            session: HTTP session to send requests with; one is created
                (and closed by :meth:`close`) when omitted
            **config: Configuration options (timeout, page_limit)
        """
        self.base_url = base_url.rstrip('/') + '/' if base_url else base_url
        self.credentials = credentials

        self.config = {**DEFAULT_CONFIG, **config}
        self._validate_config()

        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()

    @classmethod
    def from_credentials(cls, credentials: Credentials, base_url: Optional[str] = None,
                         **kwargs) -> "CerbClient":
        """Create a client using the base URL stored with the credentials."""
        return cls(base_url or credentials.base_url, credentials, **kwargs)

    def _validate_config(self):
        """Validate client configuration."""
        if not self.base_url:
            raise ConfigurationError("base_url cannot be empty")

        if not self.credentials or not self.credentials.key:
            raise ConfigurationError("access key cannot be empty")

        if not self.credentials.secret:
            raise ConfigurationError("access secret cannot be empty")

        limit = self.config['page_limit']
        if not isinstance(limit, int) or not 1 <= limit <= MAX_PAGE_LIMIT:
            raise ConfigurationError(f"page_limit must be between 1 and {MAX_PAGE_LIMIT}")

    # ------------------------------------------------------------------
    # Request building and transport
    # ------------------------------------------------------------------

    def _build_request(self, method: str, endpoint: str, query: str = "",
                       body: str = "") -> requests.PreparedRequest:
        """
        Build a signed request.

        The request is prepared first and the query is read back from the
        prepared URL, so the signature covers exactly what goes on the wire.
        The date is computed once and used for both the header and the
        signature.

        Raises:
            RequestConstructionError: If the URL cannot be built
        """
        url = urljoin(self.base_url, endpoint.lstrip('/'))
        if query:
            url = f"{url}?{query}"

        date = http_date()
        request = requests.Request(
            method,
            url,
            headers={
                HEADER_CONTENT_TYPE: FORM_CONTENT_TYPE,
                HEADER_DATE: date,
            },
            data=body.encode('utf-8') if body else None,
        )

        try:
            prepared = self.session.prepare_request(request)
            parts = urlsplit(prepared.url)
        except (requests.exceptions.RequestException, ValueError) as e:
            raise RequestConstructionError(
                f"Error creating {method} request for {url}: {e}"
            ) from e

        if not parts.scheme or not parts.netloc:
            raise RequestConstructionError(f"Error creating {method} request for {url}")

        prepared.headers[HEADER_CERB_AUTH] = sign(
            self.credentials, method, date, parts.path, parts.query, body
        )
        return prepared

    def _send(self, method: str, endpoint: str, query: str = "", body: str = "",
              decode: Optional[Callable[[Dict[str, Any]], Any]] = None) -> Any:
        """
        Send a signed request and return the decoded success payload.

        When ``decode`` is given the payload is passed through it and the
        record it builds is returned instead.

        Raises:
            RequestConstructionError: If the URL cannot be built
            TransportError: If the request fails
            UnexpectedStatusError: If the status code is not 200
            RemoteError: If the body carries a non-success status
            MalformedResponseError: If the body cannot be decoded
        """
        prepared = self._build_request(method, endpoint, query, body)

        try:
            settings = self.session.merge_environment_settings(prepared.url, {}, None, None, None)
            response = self.session.send(prepared, timeout=self.config['timeout'], **settings)
        except requests.RequestException as e:
            logger.error("%s %s failed: %s", method, endpoint, e)
            raise TransportError(
                f"Error performing {method} request on {endpoint}: {e}",
                method=method,
                endpoint=endpoint,
            ) from e

        logger.debug("%s %s -> %s", method, endpoint, response.status_code)

        if response.status_code != 200:
            raise UnexpectedStatusError(response.status_code, method=method, endpoint=endpoint)

        data = interpret_body(response.content, method=method, endpoint=endpoint)
        if decode is None:
            return data

        try:
            return decode(data)
        except MalformedResponseError as e:
            raise MalformedResponseError(
                str(e), body=response.content, cause=e.cause or e,
                method=method, endpoint=endpoint,
            ) from e

    def request(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None,
                form: Optional[Dict[str, Any]] = None, decode=None) -> Any:
        """Perform a request using structured query and form encoding."""
        return self._send(method, endpoint, encode_params(params), encode_params(form), decode)

    def request_raw(self, method: str, endpoint: str, query: str = "",
                    body: str = "", decode=None) -> Any:
        """
        Perform a request with a pre-encoded query string and body.

        Both are sent verbatim; encode them with cerb_encode first.
        """
        return self._send(method, endpoint, query, body, decode)

    def get(self, endpoint: str, params=None, decode=None) -> Any:
        """Make authenticated GET request."""
        return self.request('GET', endpoint, params=params, decode=decode)

    def post(self, endpoint: str, form=None, params=None, decode=None) -> Any:
        """Make authenticated POST request."""
        return self.request('POST', endpoint, params=params, form=form, decode=decode)

    def put(self, endpoint: str, form=None, params=None, decode=None) -> Any:
        """Make authenticated PUT request."""
        return self.request('PUT', endpoint, params=params, form=form, decode=decode)

    def delete(self, endpoint: str, params=None, decode=None) -> Any:
        """Make authenticated DELETE request."""
        return self.request('DELETE', endpoint, params=params, decode=decode)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _page_limit(self, limit: Optional[int]) -> int:
        """Return the page size to request, defaulting to the page_limit setting."""
        if limit is None:
            return self.config['page_limit']
        if not isinstance(limit, int) or not 1 <= limit <= MAX_PAGE_LIMIT:
            raise ConfigurationError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
        return limit

    def search(self, record: str, query: str, page: int = 0, limit: Optional[int] = None,
               expand: Optional[str] = None, decode=None) -> SearchResults:
        """
        Search records of a given type.

        Args:
            record: Record type, e.g. "ticket"
            query: Cerb search query, e.g. "status:[o]"
            page: Zero-based page index
            limit: Page size (defaults to the page_limit setting)
            expand: Comma separated expansions
            decode: Callable turning each result into a record

        Returns:
            SearchResults
        """
        limit = self._page_limit(limit)
        params = {
            'q': query,
            'page': page,
            'limit': limit,
        }
        if expand:
            params['expand'] = expand

        return self.get(ENDPOINT_SEARCH.format(record=record), params=params,
                        decode=lambda data: SearchResults.from_dict(data, decode))

    def iter_search(self, record: str, query: str, limit: Optional[int] = None,
                    expand: Optional[str] = None, decode=None) -> Iterator[Any]:
        """Yield every matching record, fetching pages until none remain."""
        limit = self._page_limit(limit)
        page = 0
        while True:
            results = self.search(record, query, page=page, limit=limit,
                                  expand=expand, decode=decode)
            yield from results.results

            remaining = results.remaining(page, limit)
            logger.debug("Loaded %d %s records from page %d, %d remain",
                         len(results.results), record, page, remaining)
            if remaining == 0 or not results.results:
                return
            page += 1

    def search_raw(self, record: str, query: str, decode=None) -> SearchResults:
        """
        Search with a free-text query sent through the legacy encoder.

        Use this when a query holds quoted values that the structured
        encoding would escape differently from the server.
        """
        return self.request_raw('GET', ENDPOINT_SEARCH.format(record=record),
                                query=cerb_encode(f"q={query}"),
                                decode=lambda data: SearchResults.from_dict(data, decode))

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    def find_tickets_by_email(self, email: str) -> List[Ticket]:
        """Find open tickets whose first message was sent by ``email``."""
        query = f"{OPEN_TICKETS_QUERY} messages.first:(sender:(email:{email}))"
        return self.search('ticket', query, decode=Ticket.from_dict).results

    def list_open_tickets(self, page: int = 0) -> Tuple[List[Ticket], int]:
        """
        Return one page of open tickets.

        Returns:
            Tuple of (tickets, number of tickets on subsequent pages)
        """
        limit = self.config['page_limit']
        results = self.search('ticket', OPEN_TICKETS_QUERY, page=page, limit=limit,
                              expand=SENDER_EXPANSION, decode=Ticket.from_dict)
        return results.results, results.remaining(page, limit)

    def iter_open_tickets(self) -> Iterator[Ticket]:
        """Yield every open ticket."""
        return self.iter_search('ticket', OPEN_TICKETS_QUERY, expand=SENDER_EXPANSION,
                                decode=Ticket.from_dict)

    def create_ticket(self, values: Dict[str, Any]) -> CreateTicketResponse:
        """Create a ticket from a mapping of ticket field names to values."""
        return self.post(ENDPOINT_CREATE.format(record='ticket'), form=record_fields(values),
                         decode=CreateTicketResponse.from_dict)

    def update_ticket(self, ticket_id: int, values: Dict[str, Any]) -> Ticket:
        """Update fields of an existing ticket."""
        return self.put(ENDPOINT_RECORD.format(record='ticket', id=ticket_id),
                        form=record_fields(values), decode=Ticket.from_dict)

    def parse_message(self, message: str) -> Ticket:
        """
        Hand a raw RFC 822 message to Cerb's mail parser.

        The parser endpoint only accepts the legacy body encoding.
        """
        return self.request_raw('POST', ENDPOINT_PARSER, body="message=" + cerb_encode(message),
                                decode=Ticket.from_dict)

    def create_comment(self, ticket_id: int, comment: str) -> Comment:
        """Add a comment to a ticket."""
        return self.post(ENDPOINT_CREATE.format(record='comment'), form=record_fields({
            'author__context': CONTEXT_APP,
            'author_id': 0,
            'comment': comment,
            'target__context': CONTEXT_TICKET,
            'target_id': ticket_id,
        }), decode=Comment.from_dict)

    def create_message(self, question: CustomerQuestion) -> CreateMessageResponse:
        """
        Turn a customer question into a ticket with its first message.

        Creates the ticket (the thread), then a message on it, then a
        comment holding the notes when there are any.
        """
        ticket = self.create_ticket({
            'group_id': question.group_id,
            'bucket_id': question.bucket_id,
            'subject': question.subject,
            'participants': question.from_,
        })
        logger.info("Created ticket %s (%s)", ticket.id, ticket.mask)

        headers = f"From: {question.from_}\r\nTo: {question.to}\r\nSubject: {question.subject}"
        form = record_fields({
            'ticket_id': ticket.id,
            'sender': question.from_,
            'headers': headers,
            'content': question.content,
        })
        form['expand'] = "ticket_initial_message_sender_"

        message = self.post(ENDPOINT_CREATE.format(record='message'), form=form,
                            decode=CreateMessageResponse.from_dict)

        if question.notes:
            self.create_comment(ticket.id, question.notes)

        return message

    # ------------------------------------------------------------------
    # Groups and buckets
    # ------------------------------------------------------------------

    def list_groups(self) -> List[Group]:
        return list(self.iter_search('group', "", decode=Group.from_dict))

    def list_buckets(self, group_id: Optional[int] = None) -> List[Bucket]:
        query = f"group.id:{group_id}" if group_id is not None else ""
        return list(self.iter_search('bucket', query, decode=Bucket.from_dict))

    def find_all_groups_and_buckets(self) -> List[Group]:
        """Return every group with its buckets attached."""
        groups = self.list_groups()
        by_id = {group.id: group for group in groups}
        for bucket in self.list_buckets():
            group = by_id.get(bucket.group_id)
            if group is not None:
                group.buckets.append(bucket)
        return groups

    def close(self):
        """Close HTTP session if this client created it."""
        if self._owns_session and self.session:
            self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
