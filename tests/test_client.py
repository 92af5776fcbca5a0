"""
Unit tests for the Cerb client.
"""

import json
from unittest.mock import Mock, patch
from urllib.parse import parse_qs, unquote, urlsplit

import pytest
import requests

from cerb_client import (
    CerbClient,
    ConfigurationError,
    Credentials,
    CustomerQuestion,
    MalformedResponseError,
    PaginationProtocolError,
    RemoteError,
    RequestConstructionError,
    TransportError,
    UnexpectedStatusError
)
from cerb_client.constants import HEADER_CERB_AUTH, HEADER_CONTENT_TYPE, HEADER_DATE
from cerb_client.signing import sign

BASE_URL = "https://example.cerb.me/rest/"
DATE = "Mon, 02 Jan 2006 15:04:05 GMT"


def make_response(data, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.content = json.dumps(data, separators=(',', ':')).encode('utf-8')
    return response


def search_page(total, results):
    return make_response({
        "__status": "success", "count": len(results), "page": 0, "limit": 100,
        "total": total, "results": results,
    })


def sent_request(mock_send, index=0):
    return mock_send.call_args_list[index][0][0]


def sent_query(mock_send, index=0):
    return parse_qs(urlsplit(sent_request(mock_send, index).url).query)


def sent_form(mock_send, index=0):
    return parse_qs(sent_request(mock_send, index).body.decode('utf-8'))


class TestCerbClient:
    """Test Cerb client functionality."""

    @pytest.fixture
    def creds(self):
        return Credentials("key", "secret")

    @pytest.fixture
    def client(self, creds):
        """Create test client."""
        return CerbClient(BASE_URL, creds)

    @pytest.fixture
    def fixed_date(self):
        with patch('cerb_client.client.http_date', return_value=DATE) as mock_date:
            yield mock_date

    @pytest.fixture
    def mock_send(self):
        with patch('cerb_client.client.requests.Session.send') as mock_send:
            mock_send.return_value = make_response({"__status": "success"})
            yield mock_send

    def test_init_default_config(self, creds):
        """Test client initialization with default config."""
        client = CerbClient("https://example.cerb.me/rest", creds)

        assert client.base_url == BASE_URL
        assert client.credentials is creds
        assert client.config['timeout'] is None
        assert client.config['page_limit'] == 100

    def test_init_custom_config(self, creds):
        client = CerbClient(BASE_URL, creds, timeout=10, page_limit=250)

        assert client.config['timeout'] == 10
        assert client.config['page_limit'] == 250

    def test_init_invalid_config(self, creds):
        """Test client initialization with invalid config."""
        with pytest.raises(ConfigurationError):
            CerbClient("", creds)

        with pytest.raises(ConfigurationError):
            CerbClient(BASE_URL, Credentials("", "secret"))

        with pytest.raises(ConfigurationError):
            CerbClient(BASE_URL, Credentials("key", ""))

        with pytest.raises(ConfigurationError):
            CerbClient(BASE_URL, creds, page_limit=0)

        with pytest.raises(ConfigurationError):
            CerbClient(BASE_URL, creds, page_limit=251)

    def test_from_credentials(self):
        creds = Credentials("key", "secret", base_url=BASE_URL)

        assert CerbClient.from_credentials(creds).base_url == BASE_URL
        assert CerbClient.from_credentials(creds, "https://other/rest").base_url == "https://other/rest/"

    def test_secret_not_in_repr(self):
        assert "hunter2" not in repr(Credentials("key", "hunter2"))

    def test_search_request_headers(self, client, mock_send, fixed_date):
        """Test that requests carry the Date, Cerb-Auth and Content-Type headers."""
        mock_send.return_value = search_page(0, [])

        client.search('ticket', 'status:[o]')

        prepared = sent_request(mock_send)
        assert prepared.method == 'GET'
        assert prepared.url == BASE_URL + "records/ticket/search.json?limit=100&page=0&q=status%3A%5Bo%5D"
        assert prepared.headers[HEADER_DATE] == DATE
        assert prepared.headers[HEADER_CONTENT_TYPE] == "application/x-www-form-urlencoded"
        assert prepared.headers[HEADER_CERB_AUTH] == "key:a62793df69a99c4115a676d0640230ae"
        assert prepared.body is None

    def test_form_request_signature(self, client, mock_send, fixed_date):
        client.create_ticket({'subject': 'Hello there'})

        prepared = sent_request(mock_send)
        assert prepared.method == 'POST'
        assert prepared.url == BASE_URL + "records/ticket/create.json"
        assert prepared.body == b"fields%5Bsubject%5D=Hello+there"
        assert prepared.headers[HEADER_CERB_AUTH] == "key:6b723f3006ad74c9f53953712571cbb6"

    def test_date_computed_once(self, client, mock_send):
        with patch('cerb_client.client.http_date',
                   side_effect=[DATE, "Mon, 02 Jan 2006 15:04:06 GMT"]) as mock_date:
            client.get('records/ticket/search.json', params={'q': 'status:[o]'})

        assert mock_date.call_count == 1
        prepared = sent_request(mock_send)
        assert prepared.headers[HEADER_DATE] == DATE

    def test_signature_covers_wire_query(self, client, creds, mock_send):
        mock_send.return_value = search_page(0, [])

        client.search_raw('ticket', "status:[o] messages.first:(sender:(email:'dave@example.com'))")

        prepared = sent_request(mock_send)
        parts = urlsplit(prepared.url)
        assert unquote(parts.query) == 'q=status:[o] messages.first:(sender:(email:"dave@example.com"))'
        assert prepared.headers[HEADER_CERB_AUTH] == sign(
            creds, 'GET', prepared.headers[HEADER_DATE], parts.path, parts.query, ""
        )

    def test_identical_requests_identical_signatures(self, client, mock_send, fixed_date):
        client.get('records/ticket/search.json', params={'q': 'status:[o]', 'page': 0})
        client.get('records/ticket/search.json', params={'page': 0, 'q': 'status:[o]'})

        first = sent_request(mock_send, 0)
        second = sent_request(mock_send, 1)
        assert first.url == second.url
        assert first.headers[HEADER_CERB_AUTH] == second.headers[HEADER_CERB_AUTH]

    def test_remote_error_on_200(self, client, mock_send):
        mock_send.return_value = make_response(
            {"__status": "error", "message": "Access denied! (Invalid credentials: access key)"}
        )

        with pytest.raises(RemoteError) as exc_info:
            client.search('ticket', 'status:[o]')

        assert exc_info.value.message == "Access denied! (Invalid credentials: access key)"
        assert exc_info.value.endpoint == "records/ticket/search.json"
        assert exc_info.value.method == "GET"

    def test_unexpected_status(self, client, mock_send):
        mock_send.return_value = make_response({"__status": "success"}, status_code=503)

        with pytest.raises(UnexpectedStatusError) as exc_info:
            client.get('records/ticket/search.json')

        assert exc_info.value.status_code == 503

    def test_malformed_body(self, client, mock_send):
        response = Mock(status_code=200, content=b"not json")
        mock_send.return_value = response

        with pytest.raises(MalformedResponseError) as exc_info:
            client.get('records/ticket/search.json')

        assert exc_info.value.method == 'GET'
        assert exc_info.value.endpoint == 'records/ticket/search.json'
        assert exc_info.value.body == b"not json"

    def test_malformed_record(self, client, mock_send):
        mock_send.return_value = make_response({"__status": "success", "id": "abc"})

        with pytest.raises(MalformedResponseError) as exc_info:
            client.update_ticket(7, {'status': 'c'})

        assert exc_info.value.method == 'PUT'
        assert exc_info.value.endpoint == 'records/ticket/7.json'
        assert exc_info.value.body == mock_send.return_value.content
        assert "PUT records/ticket/7.json" in str(exc_info.value)

    def test_search_without_total(self, client, mock_send):
        mock_send.return_value = make_response({"__status": "success", "results": [{"id": 1}]})

        with pytest.raises(PaginationProtocolError):
            client.search('ticket', 'status:[o]')

    @pytest.mark.parametrize("limit", [0, -1, 251, 300, "100"])
    def test_search_limit_out_of_range(self, client, mock_send, limit):
        with pytest.raises(ConfigurationError):
            client.search('ticket', 'status:[o]', limit=limit)

        with pytest.raises(ConfigurationError):
            next(client.iter_search('ticket', 'status:[o]', limit=limit))

        mock_send.assert_not_called()

    def test_search_limit_upper_bound(self, client, mock_send):
        mock_send.return_value = search_page(0, [])

        client.search('ticket', 'status:[o]', limit=250)

        assert sent_query(mock_send)['limit'] == ["250"]

    def test_transport_error(self, client, mock_send):
        cause = requests.ConnectionError("connection refused")
        mock_send.side_effect = cause

        with pytest.raises(TransportError) as exc_info:
            client.get('records/ticket/search.json')

        assert exc_info.value.__cause__ is cause
        assert exc_info.value.method == 'GET'

    def test_transport_error_does_not_leak_secret(self, mock_send):
        client = CerbClient(BASE_URL, Credentials("key", "hunter2-secret"))
        mock_send.side_effect = requests.Timeout("timed out")

        with pytest.raises(TransportError) as exc_info:
            client.get('records/ticket/search.json')

        assert "hunter2-secret" not in str(exc_info.value)

    @pytest.mark.parametrize("base_url", ["not-a-url", "http://"])
    def test_malformed_base_url(self, creds, mock_send, base_url):
        client = CerbClient(base_url, creds)

        with pytest.raises(RequestConstructionError):
            client.get('records/ticket/search.json')

        mock_send.assert_not_called()

    def test_timeout_passed_to_transport(self, creds, mock_send):
        client = CerbClient(BASE_URL, creds, timeout=5)
        client.get('records/ticket/search.json')

        assert mock_send.call_args[1]['timeout'] == 5

    def test_environment_settings_passed_to_transport(self, client, mock_send, monkeypatch):
        monkeypatch.setenv("REQUESTS_CA_BUNDLE", "/tmp/cerb-ca.pem")

        client.get('records/ticket/search.json')

        assert mock_send.call_args[1]['verify'] == "/tmp/cerb-ca.pem"

    def test_http_methods(self, client, mock_send):
        """Test all HTTP method shortcuts."""
        client.get('a.json')
        client.post('b.json', form={'x': 1})
        client.put('c.json', form={'x': 2})
        client.delete('d.json')

        assert [sent_request(mock_send, i).method for i in range(4)] == ['GET', 'POST', 'PUT', 'DELETE']
        # Content-Type is always sent, bodyless or not
        for i in range(4):
            assert sent_request(mock_send, i).headers[HEADER_CONTENT_TYPE] == "application/x-www-form-urlencoded"

    def test_find_tickets_by_email(self, client, mock_send):
        mock_send.return_value = search_page(1, [{"id": 3, "mask": "ABC-1"}])

        tickets = client.find_tickets_by_email("dave@example.com")

        assert [t.mask for t in tickets] == ["ABC-1"]
        assert sent_query(mock_send)['q'] == ["status:[o] messages.first:(sender:(email:dave@example.com))"]

    def test_list_open_tickets(self, client, mock_send):
        mock_send.return_value = search_page("350", [{"id": 1}, {"id": 2}])

        tickets, remaining = client.list_open_tickets(page=0)

        assert [t.id for t in tickets] == [1, 2]
        assert remaining == 250
        query = sent_query(mock_send)
        assert query['expand'] == ["initial_message_sender_"]
        assert query['limit'] == ["100"]
        assert query['page'] == ["0"]

    def test_list_open_tickets_last_page(self, client, mock_send):
        mock_send.return_value = search_page(350, [{"id": 301}])

        _, remaining = client.list_open_tickets(page=3)

        assert remaining == 0

    def test_iter_open_tickets_stops_when_nothing_remains(self, client, mock_send):
        mock_send.side_effect = [
            search_page(250, [{"id": i} for i in range(100)]),
            search_page(250, [{"id": i} for i in range(100, 200)]),
            search_page(250, [{"id": i} for i in range(200, 250)]),
        ]

        tickets = list(client.iter_open_tickets())

        assert len(tickets) == 250
        assert mock_send.call_count == 3
        assert [sent_query(mock_send, i)['page'] for i in range(3)] == [["0"], ["1"], ["2"]]

    def test_iter_search_stops_on_empty_page(self, client, mock_send):
        mock_send.side_effect = [
            search_page(1000, [{"id": 1}]),
            search_page(1000, []),
        ]

        assert len(list(client.iter_search('ticket', 'status:[o]'))) == 1
        assert mock_send.call_count == 2

    def test_update_ticket(self, client, mock_send):
        mock_send.return_value = make_response({"__status": "success", "id": 7, "status": "closed"})

        ticket = client.update_ticket(7, {'status': 'c'})

        prepared = sent_request(mock_send)
        assert prepared.method == 'PUT'
        assert prepared.url == BASE_URL + "records/ticket/7.json"
        assert sent_form(mock_send) == {'fields[status]': ['c']}
        assert ticket.status == "closed"

    def test_parse_message_uses_legacy_encoding(self, client, mock_send):
        mock_send.return_value = make_response({"__status": "success", "id": 4, "mask": "M-4"})

        ticket = client.parse_message("Subject: Hi, it's me")

        prepared = sent_request(mock_send)
        assert prepared.url == BASE_URL + "parser/parse.json"
        assert prepared.body == b"message=Subject:%20Hi%2C%20it%22s%20me"
        assert ticket.mask == "M-4"

    def test_create_message(self, client, mock_send):
        mock_send.side_effect = [
            make_response({"__status": "success", "id": 99, "mask": "XYZ-1"}),
            make_response({"__status": "success", "id": 5, "ticket_initial_message_ticket_id": 99}),
            make_response({"__status": "success", "id": 11, "target_id": 99}),
        ]
        question = CustomerQuestion(
            group_id=900,
            bucket_id=1049,
            to="support@example.com",
            from_="dave@example.com",
            subject="GoCerb!",
            content="Hello there! ❤️",
            notes="Some exciting notes",
        )

        message = client.create_message(question)

        assert message.id == 5
        assert message.ticket_id == 99
        assert mock_send.call_count == 3

        ticket_form = sent_form(mock_send, 0)
        assert sent_request(mock_send, 0).url.endswith("records/ticket/create.json")
        assert ticket_form['fields[group_id]'] == ['900']
        assert ticket_form['fields[bucket_id]'] == ['1049']
        assert ticket_form['fields[participants]'] == ['dave@example.com']

        message_form = sent_form(mock_send, 1)
        assert sent_request(mock_send, 1).url.endswith("records/message/create.json")
        assert message_form['fields[ticket_id]'] == ['99']
        assert message_form['fields[content]'] == ['Hello there! ❤️']
        assert message_form['fields[headers]'] == [
            "From: dave@example.com\r\nTo: support@example.com\r\nSubject: GoCerb!"
        ]
        assert message_form['expand'] == ['ticket_initial_message_sender_']

        comment_form = sent_form(mock_send, 2)
        assert sent_request(mock_send, 2).url.endswith("records/comment/create.json")
        assert comment_form['fields[target_id]'] == ['99']
        assert comment_form['fields[comment]'] == ['Some exciting notes']

    def test_create_message_without_notes(self, client, mock_send):
        mock_send.side_effect = [
            make_response({"__status": "success", "id": 99}),
            make_response({"__status": "success", "id": 5}),
        ]
        question = CustomerQuestion(900, 1049, "support@example.com", "dave@example.com", "Hi", "Body")

        client.create_message(question)

        assert mock_send.call_count == 2

    def test_find_all_groups_and_buckets(self, client, mock_send):
        mock_send.side_effect = [
            search_page(2, [{"id": 1, "name": "Billing"}, {"id": 2, "name": "Sales"}]),
            search_page(3, [
                {"id": 10, "name": "Inbox", "group_id": 1, "is_default": 1},
                {"id": 11, "name": "Refunds", "group_id": 1, "is_default": 0},
                {"id": 20, "name": "Inbox", "group_id": 2, "is_default": 1},
            ]),
        ]

        groups = client.find_all_groups_and_buckets()

        assert [g.name for g in groups] == ["Billing", "Sales"]
        assert [b.name for b in groups[0].buckets] == ["Inbox", "Refunds"]
        assert [b.id for b in groups[1].buckets] == [20]
        assert sent_request(mock_send, 0).url.startswith(BASE_URL + "records/group/search.json")
        assert sent_request(mock_send, 1).url.startswith(BASE_URL + "records/bucket/search.json")

    def test_list_buckets_for_group(self, client, mock_send):
        mock_send.return_value = search_page(0, [])

        client.list_buckets(group_id=900)

        assert sent_query(mock_send)['q'] == ["group.id:900"]

    def test_context_manager_closes_owned_session(self, creds):
        """Test client as context manager."""
        with patch('cerb_client.client.requests.Session.close') as mock_close:
            with CerbClient(BASE_URL, creds) as client:
                assert client.session is not None

        mock_close.assert_called_once()

    def test_context_manager_keeps_injected_session(self, creds):
        session = Mock()

        with CerbClient(BASE_URL, creds, session=session):
            pass

        session.close.assert_not_called()
