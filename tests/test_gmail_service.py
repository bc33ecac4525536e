from __future__ import annotations

import json
from unittest import mock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from gmailstats.ingestion.common.errors import DetailFetchError, ListingError
from gmailstats.ingestion.gmail import service as gmail_service
from gmailstats.ingestion.gmail.service import TOKEN_TYPE_TAG, GmailService


def _http_error(status: int = 429) -> HttpError:
    resp = httplib2.Response({"status": status})
    return HttpError(resp, b'{"error": {"message": "rate limited"}}')


class FakeRequest:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.num_retries = None

    def execute(self, num_retries=0):
        self.num_retries = num_retries
        if self.error is not None:
            raise self.error
        return self.response


class FakeMessages:
    def __init__(self, list_request=None, get_request=None):
        self.list_request = list_request
        self.get_request = get_request
        self.list_kwargs = None
        self.get_kwargs = None

    def list(self, **kwargs):
        self.list_kwargs = kwargs
        return self.list_request

    def get(self, **kwargs):
        self.get_kwargs = kwargs
        return self.get_request


class FakeApi:
    def __init__(self, messages: FakeMessages):
        self._messages = messages

    def users(self):
        return self

    def messages(self):
        return self._messages


def _service_with(messages: FakeMessages, **kwargs) -> GmailService:
    service = GmailService("client_id.json", **kwargs)
    service._local.service = FakeApi(messages)
    return service


def test_list_messages_builds_request_and_parses_page():
    request = FakeRequest({"messages": [{"id": "A"}, {"id": "B"}], "nextPageToken": "tok"})
    messages = FakeMessages(list_request=request)
    page = _service_with(messages, num_retries=2).list_messages("in:inbox", page_token="prev", max_results=50)

    assert page.ids == ["A", "B"]
    assert page.next_page_token == "tok"
    assert messages.list_kwargs == {"userId": "me", "q": "in:inbox", "maxResults": 50, "pageToken": "prev"}
    assert request.num_retries == 2


def test_list_messages_last_page_without_messages():
    messages = FakeMessages(list_request=FakeRequest({"resultSizeEstimate": 0}))
    page = _service_with(messages).list_messages("nothing")
    assert page.ids == []
    assert page.next_page_token is None
    assert "pageToken" not in messages.list_kwargs


def test_list_messages_wraps_http_errors():
    messages = FakeMessages(list_request=FakeRequest(error=_http_error()))
    with pytest.raises(ListingError):
        _service_with(messages).list_messages("q")


def test_list_messages_validates_page_size():
    with pytest.raises(ValueError):
        _service_with(FakeMessages()).list_messages("q", max_results=1000)


def test_get_message_requests_from_header_only():
    response = {
        "id": "A",
        "payload": {"headers": [{"name": "From", "value": "X <x@example.com>"}]},
    }
    messages = FakeMessages(get_request=FakeRequest(response))
    detail = _service_with(messages, user_id="someone@example.com").get_message("A")

    assert detail == {"id": "A", "headers": [{"name": "From", "value": "X <x@example.com>"}]}
    assert messages.get_kwargs == {
        "userId": "someone@example.com",
        "id": "A",
        "format": "metadata",
        "metadataHeaders": ["From"],
    }


def test_get_message_wraps_http_errors():
    messages = FakeMessages(get_request=FakeRequest(error=_http_error(404)))
    with pytest.raises(DetailFetchError) as excinfo:
        _service_with(messages).get_message("gone")
    assert excinfo.value.message_id == "gone"


def test_stored_token_is_reused_without_oauth_flow(kv_store, monkeypatch):
    creds = mock.Mock(valid=True)
    loader = mock.Mock(return_value=creds)
    monkeypatch.setattr(gmail_service.Credentials, "from_authorized_user_info", loader)
    flow = mock.Mock()
    monkeypatch.setattr(gmail_service.InstalledAppFlow, "from_client_secrets_file", flow)
    kv_store.put(TOKEN_TYPE_TAG, "me", json.dumps({"token": "t"}))

    service = GmailService("client_id.json", token_store=kv_store)
    assert service.credentials is creds
    loader.assert_called_once_with({"token": "t"}, gmail_service.SCOPES)
    flow.assert_not_called()


def test_new_token_is_persisted(kv_store, monkeypatch):
    creds = mock.Mock(valid=True)
    creds.to_json.return_value = '{"token": "fresh"}'
    flow = mock.Mock()
    flow.return_value.run_local_server.return_value = creds
    monkeypatch.setattr(gmail_service.InstalledAppFlow, "from_client_secrets_file", flow)

    service = GmailService("client_id.json", token_store=kv_store)
    assert service.credentials is creds
    assert kv_store.get(TOKEN_TYPE_TAG, "me") == '{"token": "fresh"}'
