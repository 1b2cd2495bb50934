"""Tests for http.py"""

import pytest
import requests

from seller_settlement import http
from seller_settlement.http import NetworkError, ParseError, get, get_json


class _FakeResponse:
    def __init__(self, status=200, body=None, text="{}"):
        self.status_code = status
        self._body = body
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"HTTP {self.status_code}", response=self)

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class _FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch):
    monkeypatch.setattr(http.time, "sleep", lambda s: None)


def test_get_sends_token_header():
    session = _FakeSession([_FakeResponse(body={"ok": True})])
    get("https://api.example/x", token="abc", session=session)
    _, kwargs = session.calls[0]
    assert kwargs["headers"]["Authorization"] == "abc"
    assert kwargs["headers"]["Accept"] == "application/json"


def test_get_retries_then_succeeds():
    session = _FakeSession([
        requests.exceptions.ConnectionError("down"),
        _FakeResponse(status=502),
        _FakeResponse(body={"ok": True}),
    ])
    resp = get("https://api.example/x", session=session, retries=3)
    assert resp.json() == {"ok": True}
    assert len(session.calls) == 3


def test_get_gives_up_after_retries():
    session = _FakeSession([requests.exceptions.Timeout("slow")] * 3)
    with pytest.raises(NetworkError):
        get("https://api.example/x", session=session, retries=3)
    assert len(session.calls) == 3


def test_get_does_not_retry_unauthorized():
    session = _FakeSession([_FakeResponse(status=401), _FakeResponse(body={})])
    with pytest.raises(NetworkError):
        get("https://api.example/x", session=session, retries=3)
    assert len(session.calls) == 1


def test_get_json_parse_error(monkeypatch):
    monkeypatch.setattr(http, "get", lambda url, **kw: _FakeResponse(body=None))
    with pytest.raises(ParseError):
        get_json("https://api.example/x")
