"""Tests for app/delivery/timestamp_client.py.

All network calls are mocked via ``unittest.mock.patch`` on ``httpx``.
"""
from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from app.core.errors import PermanentCollaboratorError, TransientCollaboratorError
from app.delivery.timestamp_client import (
    HttpTimestampAuthorityClient,
    TimestampMalformed,
    TimestampRejected,
    TimestampTimeout,
    TimestampToken,
    TimestampUnavailable,
)

HASH = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
URL = "http://tsa.test/timestamp"


def _response(status_code: int = 200, json_data=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture()
def client() -> HttpTimestampAuthorityClient:
    return HttpTimestampAuthorityClient(URL, timeout_s=2.0)


@patch("app.delivery.timestamp_client.httpx.post")
def test_success_returns_token(mock_post, client):
    mock_post.return_value = _response(json_data={"token": "abc", "url": "https://tsa.test/v/abc"})

    token = client.request_timestamp(HASH)

    assert token == TimestampToken(token="abc", url="https://tsa.test/v/abc")
    mock_post.assert_called_once_with(
        URL, json={"hash": HASH, "hash_algorithm": "sha256"}, timeout=2.0
    )


@patch("app.delivery.timestamp_client.httpx.post")
def test_timeout_is_transient(mock_post, client):
    mock_post.side_effect = httpx.ReadTimeout("slow")

    with pytest.raises(TimestampTimeout) as exc_info:
        client.request_timestamp(HASH)
    assert isinstance(exc_info.value, TransientCollaboratorError)


@patch("app.delivery.timestamp_client.httpx.post")
def test_connection_error_is_unavailable(mock_post, client):
    mock_post.side_effect = httpx.ConnectError("refused")

    with pytest.raises(TimestampUnavailable):
        client.request_timestamp(HASH)


@pytest.mark.parametrize("status", [500, 503, 429])
@patch("app.delivery.timestamp_client.httpx.post")
def test_server_errors_are_unavailable(mock_post, status, client):
    mock_post.return_value = _response(status)

    with pytest.raises(TimestampUnavailable, match=str(status)):
        client.request_timestamp(HASH)


@patch("app.delivery.timestamp_client.httpx.post")
def test_client_error_is_permanent_rejection(mock_post, client):
    mock_post.return_value = _response(400, json_data={"detail": "unsupported hash algorithm"})

    with pytest.raises(TimestampRejected, match="unsupported hash algorithm") as exc_info:
        client.request_timestamp(HASH)
    assert isinstance(exc_info.value, PermanentCollaboratorError)
    assert exc_info.value.collaborator == "timestamp_authority"


@pytest.mark.parametrize(
    "body",
    [None, {"token": "abc"}, {"url": "https://tsa.test/v"}, ["abc"]],
)
@patch("app.delivery.timestamp_client.httpx.post")
def test_malformed_response(mock_post, body, client):
    mock_post.return_value = _response(200, json_data=body)

    with pytest.raises(TimestampMalformed):
        client.request_timestamp(HASH)
