"""
Record types returned by the Cerb REST API.

Every field is optional because Cerb only returns what the query asked
for, but a field that is present with the wrong JSON type is rejected with
MalformedResponseError rather than coerced.

Serialization direction:
Cerb JSON -> load() -> dataclass
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

from marshmallow import EXCLUDE, Schema, ValidationError, post_load
from marshmallow.fields import Boolean, Dict as DictField, Integer, List as ListField, Raw, String

from .exceptions import MalformedResponseError
from .response import coerce_total, remaining_count

T = TypeVar('T')


class ForgivingSchema(Schema):
    """Base schema that will silently remove any unknown fields that are included"""

    class Meta:
        unknown = EXCLUDE


class Text(String):
    """A String that also accepts the integers Cerb sends for some text fields"""

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        return super()._deserialize(value, attr, data, **kwargs)


def _load(schema: Schema, data: Any, name: str):
    try:
        return schema.load(data)
    except ValidationError as e:
        raise MalformedResponseError(f"Unexpected {name} in response: {e.messages}", cause=e) from e


@dataclass
class Ticket:
    """A ticket record (the thread that holds messages)."""

    id: Optional[int] = None
    mask: Optional[str] = None
    subject: Optional[str] = None
    status: Optional[str] = None
    bucket_id: Optional[int] = None
    group_id: Optional[int] = None
    num_messages: Optional[str] = None
    url: Optional[str] = None
    # Only set when `initial_message_sender_` is expanded
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ticket":
        return _load(TICKET_SCHEMA, data, "ticket")


class TicketSchema(ForgivingSchema):
    # Cerb sends ids both as numbers and as numeral strings
    id = Integer(allow_none=True)
    mask = Text(allow_none=True)
    subject = Text(allow_none=True)
    status = Text(allow_none=True)
    bucket_id = Integer(allow_none=True)
    group_id = Integer(allow_none=True)
    num_messages = Text(allow_none=True)
    url = Text(allow_none=True)
    email = Text(data_key='initial_message_sender_email', allow_none=True)

    @post_load
    def make_ticket(self, in_data, **_kwargs):
        return Ticket(**in_data)


@dataclass
class CreateTicketResponse:
    """Response of records/ticket/create.json."""

    id: Optional[int] = None
    created: Optional[int] = None
    importance: Optional[int] = None
    mask: Optional[str] = None
    num_messages: Optional[str] = None
    status: Optional[str] = None
    subject: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CreateTicketResponse":
        return _load(CREATE_TICKET_SCHEMA, data, "ticket")


class CreateTicketResponseSchema(ForgivingSchema):
    id = Integer(allow_none=True)
    created = Integer(allow_none=True)
    importance = Integer(allow_none=True)
    mask = Text(allow_none=True)
    num_messages = Text(allow_none=True)
    status = Text(allow_none=True)
    subject = Text(allow_none=True)
    url = Text(allow_none=True)

    @post_load
    def make_response(self, in_data, **_kwargs):
        return CreateTicketResponse(**in_data)


@dataclass
class CreateMessageResponse:
    """Response of records/message/create.json with the ticket sender expanded."""

    id: Optional[int] = None
    sender_id: Optional[int] = None

    initial_message_sender_avatar: Optional[str] = None
    initial_message_sender_email: Optional[str] = None
    initial_message_sender_id: Optional[int] = None
    initial_message_url: Optional[str] = None
    initial_message_sender_record_url: Optional[str] = None

    ticket_id: Optional[int] = None
    ticket_label: Optional[str] = None
    ticket_mask: Optional[str] = None
    ticket_status: Optional[str] = None
    ticket_subject: Optional[str] = None
    ticket_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CreateMessageResponse":
        return _load(CREATE_MESSAGE_SCHEMA, data, "message")


class CreateMessageResponseSchema(ForgivingSchema):
    id = Integer(allow_none=True)
    sender_id = Integer(allow_none=True)

    initial_message_sender_avatar = Text(data_key='ticket_initial_message_sender__image_url', allow_none=True)
    initial_message_sender_email = Text(data_key='ticket_initial_message_sender_email', allow_none=True)
    initial_message_sender_id = Integer(data_key='ticket_initial_message_sender_id', allow_none=True)
    initial_message_url = Text(data_key='ticket_initial_message_record_url', allow_none=True)
    initial_message_sender_record_url = Text(
        data_key='ticket_initial_message_sender_record_url', allow_none=True
    )

    ticket_id = Integer(data_key='ticket_initial_message_ticket_id', allow_none=True)
    ticket_label = Text(data_key='ticket__label', allow_none=True)
    ticket_mask = Text(allow_none=True)
    ticket_status = Text(allow_none=True)
    ticket_subject = Text(allow_none=True)
    ticket_url = Text(allow_none=True)

    @post_load
    def make_response(self, in_data, **_kwargs):
        return CreateMessageResponse(**in_data)


@dataclass
class Comment:
    id: Optional[int] = None
    comment: Optional[str] = None
    target_id: Optional[int] = None
    created: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Comment":
        return _load(COMMENT_SCHEMA, data, "comment")


class CommentSchema(ForgivingSchema):
    id = Integer(allow_none=True)
    comment = Text(allow_none=True)
    target_id = Integer(allow_none=True)
    created = Integer(allow_none=True)

    @post_load
    def make_comment(self, in_data, **_kwargs):
        return Comment(**in_data)


@dataclass
class Bucket:
    id: Optional[int] = None
    name: Optional[str] = None
    group_id: Optional[int] = None
    is_default: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bucket":
        return _load(BUCKET_SCHEMA, data, "bucket")


class BucketSchema(ForgivingSchema):
    id = Integer(allow_none=True)
    name = Text(allow_none=True)
    group_id = Integer(allow_none=True)
    is_default = Boolean(allow_none=True)

    @post_load
    def make_bucket(self, in_data, **_kwargs):
        return Bucket(**in_data)


@dataclass
class Group:
    id: Optional[int] = None
    name: Optional[str] = None
    buckets: List[Bucket] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Group":
        return _load(GROUP_SCHEMA, data, "group")


class GroupSchema(ForgivingSchema):
    id = Integer(allow_none=True)
    name = Text(allow_none=True)

    @post_load
    def make_group(self, in_data, **_kwargs):
        return Group(**in_data)


@dataclass
class CustomerQuestion:
    """
    A question asked by a customer that should become a Cerb ticket.

    group_id and bucket_id control where the ticket is filed; notes, when
    given, are added to the ticket as a comment.
    """

    group_id: int
    bucket_id: int
    to: str
    from_: str
    subject: str
    content: str
    notes: Optional[str] = None


class SearchResultsSchema(ForgivingSchema):
    """
    Envelope returned by records/<record>/search.json.

    ``total`` is left raw: Cerb sends it as a number or a numeral string.
    """

    status = Text(data_key='__status', allow_none=True)
    version = Text(data_key='__version', allow_none=True)
    count = Integer(allow_none=True)
    page = Integer(allow_none=True)
    limit = Integer(allow_none=True)
    total = Raw(allow_none=True)
    results = ListField(DictField(), allow_none=True)


@dataclass
class SearchResults:
    """
    Decoded search envelope.

    ``page`` and ``limit`` are echoed by the server but unreliable; use
    :meth:`remaining` with the values that were requested.
    """

    status: Optional[str]
    count: int
    page: Optional[int]
    limit: Optional[int]
    total: int
    results: List[Any]
    version: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  record: Optional[Callable[[Dict[str, Any]], T]] = None) -> "SearchResults":
        loaded = _load(SEARCH_RESULTS_SCHEMA, data, "search results")
        results = loaded.get('results') or []
        total = coerce_total(loaded.get('total'))
        count = loaded.get('count')
        return cls(
            status=loaded.get('status'),
            count=count if count is not None else len(results),
            page=loaded.get('page'),
            limit=loaded.get('limit'),
            total=total,
            results=[record(r) for r in results] if record else results,
            version=loaded.get('version'),
        )

    def remaining(self, page: int, limit: int) -> int:
        """Records left after ``page`` of size ``limit``."""
        return remaining_count(self.total, page, limit)


TICKET_SCHEMA = TicketSchema()
CREATE_TICKET_SCHEMA = CreateTicketResponseSchema()
CREATE_MESSAGE_SCHEMA = CreateMessageResponseSchema()
COMMENT_SCHEMA = CommentSchema()
BUCKET_SCHEMA = BucketSchema()
GROUP_SCHEMA = GroupSchema()
SEARCH_RESULTS_SCHEMA = SearchResultsSchema()
