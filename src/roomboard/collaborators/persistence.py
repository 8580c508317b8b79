#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Access to the remote meeting record server."""

import logging
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from roomboard.aliases import MeetingId, RawRecord
from roomboard.constants import DEFAULT_PERSISTENCE_TIMEOUT
from roomboard.exceptions import (
    ConflictError,
    NetworkError,
    NotFoundError,
    PersistenceTimeoutError,
    RemoteError,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class MeetingRepository(Protocol):
    """What the dashboard needs from a record server. Records travel in their
    camelCase wire format."""

    def list_meetings(self) -> list[RawRecord]: ...

    def create(self, payload: RawRecord) -> RawRecord: ...

    def update(self, meeting_id: MeetingId, payload: RawRecord) -> RawRecord: ...

    def delete(self, meeting_id: MeetingId) -> RawRecord | None: ...

    def replace_all(self, payloads: Iterable[RawRecord]) -> int: ...


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


def _conflicting_ids(response: requests.Response) -> list[MeetingId]:
    try:
        body = response.json()
    except ValueError:
        return []
    if isinstance(body, dict):
        ids = body.get("conflicts") or body.get("conflictingIds") or []
        return [str(i.get("id", i)) if isinstance(i, dict) else str(i) for i in ids]
    return []


def raise_for_status(response: requests.Response) -> None:
    """Map an HTTP error status onto the package exceptions.

    Raises
    ------
    ConflictError
        On 409.
    NotFoundError
        On 404.
    NetworkError
        On any 5xx status.
    RemoteError
        On any other 4xx status.
    """
    status = response.status_code
    if status < 400:
        return
    message = _error_message(response)
    if status == 409:
        raise ConflictError(_conflicting_ids(response), message)
    if status == 404:
        raise NotFoundError(message)
    if status >= 500:
        raise NetworkError(f"Server error {status}: {message}")
    raise RemoteError(message, status_code=status)


class HttpMeetingRepository:
    """`MeetingRepository` talking to the ``/api/meetings`` HTTP API.

    Parameters
    ----------
    base_url
        Server root, e.g. ``http://localhost:3000``.
    timeout
        Per-request timeout in seconds.
    retries
        Attempts made for requests failing with a network error or a 5xx
        status. Client errors and timeouts are never retried.
    backoff
        Multiplier of the exponential wait between attempts, in seconds.
    session
        Injected `requests.Session`, mostly for tests.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_PERSISTENCE_TIMEOUT,
        retries: int = 3,
        backoff: float = 1.0,
        max_backoff: float = 5.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session if session is not None else requests.Session()
        self._retrying = Retrying(
            wait=wait_exponential(multiplier=backoff, max=max_backoff),
            stop=stop_after_attempt(max(1, retries)),
            retry=retry_if_exception_type(NetworkError)
            & retry_if_not_exception_type(PersistenceTimeoutError),
            reraise=True,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/{path.lstrip('/')}"

    def _send(self, method: str, path: str, **kwargs) -> Any:
        url = self._url(path)
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise PersistenceTimeoutError(f"{method} {url} timed out") from e
        except requests.ConnectionError as e:
            raise NetworkError(f"Cannot reach the record server at {self.base_url}") from e
        raise_for_status(response)
        if not response.content:
            return None
        return response.json()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        logger.debug(f"{method} {path}")
        return self._retrying(self._send, method, path, **kwargs)

    def list_meetings(self) -> list[RawRecord]:
        body = self._request("GET", "meetings")
        if not isinstance(body, list):
            raise RemoteError(f"Expected a list of meetings, got {type(body).__name__}")
        return body

    def create(self, payload: RawRecord) -> RawRecord:
        return self._request("POST", "meetings", json=payload)

    def update(self, meeting_id: MeetingId, payload: RawRecord) -> RawRecord:
        body = self._request("PUT", f"meetings/{meeting_id}", json=payload)
        if isinstance(body, dict) and isinstance(body.get("meeting"), dict):
            return body["meeting"]
        return body

    def delete(self, meeting_id: MeetingId) -> RawRecord | None:
        return self._request("DELETE", f"meetings/{meeting_id}")

    def replace_all(self, payloads: Iterable[RawRecord]) -> int:
        records = list(payloads)
        body = self._request("POST", "meetings/batch", json=records)
        if isinstance(body, dict) and "count" in body:
            return int(body["count"])
        return len(records)

    def ping(self) -> bool:
        """Whether the server answers the meeting listing."""
        try:
            self._send("GET", "meetings")
        except (NetworkError, RemoteError, NotFoundError):
            return False
        return True


class InMemoryRepository:
    """A `MeetingRepository` keeping records in a dict, used offline and in tests."""

    def __init__(self, records: Iterable[RawRecord] = ()):
        self.records: dict[MeetingId, RawRecord] = {}
        self._counter = 0
        for record in records:
            self._store(dict(record))
        self.calls: list[tuple[str, MeetingId | None]] = []

    def _store(self, record: RawRecord) -> RawRecord:
        if not record.get("id"):
            self._counter += 1
            record["id"] = f"meeting_{self._counter}"
        self.records[record["id"]] = record
        return record

    def list_meetings(self) -> list[RawRecord]:
        self.calls.append(("list", None))
        return [dict(r) for r in self.records.values()]

    def create(self, payload: RawRecord) -> RawRecord:
        self.calls.append(("create", payload.get("id")))
        return dict(self._store(dict(payload)))

    def update(self, meeting_id: MeetingId, payload: RawRecord) -> RawRecord:
        self.calls.append(("update", meeting_id))
        if meeting_id not in self.records:
            raise NotFoundError(f"Meeting {meeting_id!r} not found")
        record = {**self.records[meeting_id], **payload, "id": meeting_id}
        return dict(self._store(record))

    def delete(self, meeting_id: MeetingId) -> RawRecord | None:
        self.calls.append(("delete", meeting_id))
        try:
            return self.records.pop(meeting_id)
        except KeyError:
            raise NotFoundError(f"Meeting {meeting_id!r} not found")

    def replace_all(self, payloads: Iterable[RawRecord]) -> int:
        self.calls.append(("replace_all", None))
        self.records = {}
        for payload in payloads:
            self._store(dict(payload))
        return len(self.records)
