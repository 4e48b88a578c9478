"""Trusted timestamp authority client.

Sends the document hash to an HTTP timestamping gateway and returns an
opaque token plus a verification URL.  The RFC 3161 exchange itself is the
gateway's concern.

Failure mapping
---------------
- timeout / connection error / 5xx / 429 → ``TimestampTimeout`` or
  ``TimestampUnavailable`` (transient)
- other 4xx                               → ``TimestampRejected`` (permanent)
- 2xx without token or url                → ``TimestampMalformed`` (transient)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from app.core.errors import PermanentCollaboratorError, TransientCollaboratorError
from app.core.fingerprint import HASH_ALGORITHM

logger = logging.getLogger(__name__)

COLLABORATOR = "timestamp_authority"


class TimestampTimeout(TransientCollaboratorError):
    def __init__(self, message: str) -> None:
        super().__init__(message, collaborator=COLLABORATOR)


class TimestampUnavailable(TransientCollaboratorError):
    def __init__(self, message: str) -> None:
        super().__init__(message, collaborator=COLLABORATOR)


class TimestampMalformed(TransientCollaboratorError):
    def __init__(self, message: str) -> None:
        super().__init__(message, collaborator=COLLABORATOR)


class TimestampRejected(PermanentCollaboratorError):
    def __init__(self, message: str) -> None:
        super().__init__(message, collaborator=COLLABORATOR)


@dataclass(frozen=True, slots=True)
class TimestampToken:
    token: str
    url: str


class TimestampAuthorityClient(Protocol):
    def request_timestamp(self, document_hash: str) -> TimestampToken:
        ...


class HttpTimestampAuthorityClient:
    """Synchronous client for an HTTP timestamping gateway."""

    def __init__(self, url: str, timeout_s: float = 10.0) -> None:
        self.url = url
        self.timeout_s = timeout_s

    def request_timestamp(self, document_hash: str) -> TimestampToken:
        try:
            response = httpx.post(
                self.url,
                json={"hash": document_hash, "hash_algorithm": HASH_ALGORITHM},
                timeout=self.timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise TimestampTimeout(f"Timestamp authority timed out after {self.timeout_s}s") from exc
        except httpx.HTTPError as exc:
            raise TimestampUnavailable(f"Timestamp authority unreachable: {exc}") from exc

        if response.status_code >= 500 or response.status_code == 429:
            raise TimestampUnavailable(f"Timestamp authority returned HTTP {response.status_code}")
        if response.status_code >= 400:
            raise TimestampRejected(
                f"Timestamp authority rejected the request (HTTP {response.status_code}): "
                f"{_error_detail(response)}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise TimestampMalformed("Timestamp authority returned a non-JSON body") from exc

        token = data.get("token") if isinstance(data, dict) else None
        url = data.get("url") if isinstance(data, dict) else None
        if not token or not url:
            raise TimestampMalformed("Timestamp authority response lacks token or url")

        logger.info("Timestamp acquired for hash %s…", document_hash[:12])
        return TimestampToken(token=str(token), url=str(url))


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or "no detail"
    if isinstance(data, dict):
        return str(data.get("detail") or data.get("error") or data)[:200]
    return str(data)[:200]
