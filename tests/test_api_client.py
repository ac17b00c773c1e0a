from __future__ import annotations

import pytest
import requests

from app.api_client import FootballAPIClient
from app.errors import (
    UpstreamBadStatus,
    UpstreamConfigurationError,
    UpstreamMalformedResponse,
    UpstreamUnavailable,
)

from conftest import api_fixture


class FakeResponse:
    def __init__(self, payload=None, status_code: int = 200, invalid_json: bool = False) -> None:
        self._payload = payload
        self.status_code = status_code
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


@pytest.fixture
def api():
    return FootballAPIClient(
        api_key="demo-key",
        base_url="https://football.example/",
        host="football.example",
        timeout=5,
    )


def _respond_with(monkeypatch, api, response=None, error=None):
    calls = []

    def fake_get(url, headers=None, params=None, timeout=None):
        calls.append({"url": url, "headers": headers, "params": params, "timeout": timeout})
        if error is not None:
            raise error
        return response

    monkeypatch.setattr(api.session, "get", fake_get)
    return calls


def test_get_returns_payload_and_sends_auth_headers(monkeypatch, api) -> None:
    payload = {"errors": [], "results": 1, "response": [api_fixture(100)]}
    calls = _respond_with(monkeypatch, api, FakeResponse(payload))

    data = api.get("fixtures", {"id": 100, "season": None})

    assert data == payload
    assert calls[0]["url"] == "https://football.example/fixtures"
    assert calls[0]["headers"] == {
        "x-rapidapi-key": "demo-key",
        "x-rapidapi-host": "football.example",
    }
    # None-valued params are not sent
    assert calls[0]["params"] == {"id": 100}
    assert calls[0]["timeout"] == 5


@pytest.mark.parametrize(
    "error",
    [
        requests.Timeout("read timed out"),
        requests.ConnectionError("connection refused"),
    ],
)
def test_transport_failures_become_unavailable(monkeypatch, api, error) -> None:
    _respond_with(monkeypatch, api, error=error)

    with pytest.raises(UpstreamUnavailable):
        api.get("fixtures", {"id": 100})


def test_non_2xx_becomes_bad_status(monkeypatch, api) -> None:
    _respond_with(monkeypatch, api, FakeResponse({}, status_code=503))

    with pytest.raises(UpstreamBadStatus) as excinfo:
        api.get("fixtures", {"id": 100})
    assert excinfo.value.status_code == 503


def test_undecodable_body_is_malformed(monkeypatch, api) -> None:
    _respond_with(monkeypatch, api, FakeResponse(invalid_json=True))

    with pytest.raises(UpstreamMalformedResponse):
        api.get("fixtures", {"id": 100})


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "an", "object"],
        {"errors": []},
        {"errors": [], "response": "nope"},
    ],
)
def test_unexpected_shape_is_malformed(monkeypatch, api, payload) -> None:
    _respond_with(monkeypatch, api, FakeResponse(payload))

    with pytest.raises(UpstreamMalformedResponse):
        api.get("fixtures", {"id": 100})


def test_quota_error_in_body_is_flagged(monkeypatch, api) -> None:
    payload = {
        "errors": {"requests": "You have reached the request limit for the day"},
        "response": [],
    }
    _respond_with(monkeypatch, api, FakeResponse(payload))

    with pytest.raises(UpstreamMalformedResponse) as excinfo:
        api.get("fixtures", {"id": 100})
    assert excinfo.value.rate_limited is True


def test_other_api_errors_are_not_flagged_as_quota(monkeypatch, api) -> None:
    payload = {"errors": {"season": "The Season field must be 4 digits"}, "response": []}
    _respond_with(monkeypatch, api, FakeResponse(payload))

    with pytest.raises(UpstreamMalformedResponse) as excinfo:
        api.get("fixtures", {"league": 39})
    assert excinfo.value.rate_limited is False


def test_missing_api_key_refuses_to_call(monkeypatch, api) -> None:
    api.api_key = None

    def should_not_call(*args, **kwargs):  # noqa: ANN002, ANN003
        raise AssertionError("Upstream should not be called without an API key")

    monkeypatch.setattr(api.session, "get", should_not_call)

    with pytest.raises(UpstreamConfigurationError):
        api.get("fixtures", {"id": 100})
