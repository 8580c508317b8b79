#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import json

import pytest
import requests

from roomboard.collaborators.persistence import (
    HttpMeetingRepository,
    InMemoryRepository,
    MeetingRepository,
    raise_for_status,
)
from roomboard.exceptions import (
    ConflictError,
    NetworkError,
    NotFoundError,
    PersistenceTimeoutError,
    RemoteError,
)
from tests.meeting_utils import raw_meeting


def make_response(status: int, body=None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.encoding = "utf-8"
    response._content = b"" if body is None else json.dumps(body).encode("utf-8")
    return response


class StubSession:
    """Replays queued responses (or exceptions) and records the requests."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append((method, url, kwargs.get("json")))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def repository(*outcomes, retries=3) -> tuple[HttpMeetingRepository, StubSession]:
    session = StubSession(*outcomes)
    repo = HttpMeetingRepository(
        "http://records.local/", retries=retries, backoff=0, max_backoff=0, session=session
    )
    return repo, session


@pytest.mark.parametrize(
    "status, body, error",
    [
        (409, {"error": "overlap", "conflicts": [{"id": "m1"}, "m2"]}, ConflictError),
        (404, {"message": "missing"}, NotFoundError),
        (500, None, NetworkError),
        (503, {"error": "down"}, NetworkError),
        (400, {"error": "bad"}, RemoteError),
    ],
)
def test_status_mapping(status, body, error):
    with pytest.raises(error):
        raise_for_status(make_response(status, body))


def test_conflict_carries_ids():
    response = make_response(409, {"error": "overlap", "conflicts": [{"id": "m1"}, "m2"]})
    with pytest.raises(ConflictError) as excinfo:
        raise_for_status(response)
    assert excinfo.value.conflicting_ids == ["m1", "m2"]


def test_success_passes():
    raise_for_status(make_response(201, {"id": "m1"}))


def test_list_meetings():
    repo, session = repository(make_response(200, [raw_meeting("m1")]))
    assert [r["id"] for r in repo.list_meetings()] == ["m1"]
    assert session.requests == [("GET", "http://records.local/api/meetings", None)]


def test_list_meetings_rejects_other_bodies():
    repo, _ = repository(make_response(200, {"meetings": []}))
    with pytest.raises(RemoteError):
        repo.list_meetings()


def test_update_unwraps_meeting():
    record = raw_meeting("m1", end="11:00")
    repo, session = repository(make_response(200, {"success": True, "meeting": record}))
    assert repo.update("m1", record) == record
    assert session.requests[0][:2] == ("PUT", "http://records.local/api/meetings/m1")


def test_delete_without_body():
    repo, session = repository(make_response(204))
    assert repo.delete("m1") is None
    assert session.requests[0][0] == "DELETE"


def test_replace_all_counts():
    records = [raw_meeting("m1"), raw_meeting("m2", start="11:00", end="12:00")]
    repo, session = repository(make_response(200, {"count": 2}), make_response(200))
    assert repo.replace_all(records) == 2
    assert session.requests[0][1].endswith("/api/meetings/batch")
    assert repo.replace_all(records[:1]) == 1


def test_network_errors_are_retried():
    repo, session = repository(
        requests.ConnectionError("refused"),
        make_response(502),
        make_response(200, []),
    )
    assert repo.list_meetings() == []
    assert len(session.requests) == 3


def test_retries_give_up():
    repo, session = repository(
        requests.ConnectionError("refused"), requests.ConnectionError("refused"), retries=2
    )
    with pytest.raises(NetworkError):
        repo.list_meetings()
    assert len(session.requests) == 2


@pytest.mark.parametrize(
    "outcome, error",
    [
        (requests.Timeout("slow"), PersistenceTimeoutError),
        (make_response(409, {"conflicts": ["m1"]}), ConflictError),
        (make_response(422, {"error": "invalid"}), RemoteError),
    ],
)
def test_no_retry(outcome, error):
    repo, session = repository(outcome, make_response(200, []))
    with pytest.raises(error):
        repo.create(raw_meeting("m3"))
    assert len(session.requests) == 1


def test_ping():
    repo, _ = repository(make_response(200, []), requests.ConnectionError("refused"))
    assert repo.ping()
    assert not repo.ping()


def test_in_memory_repository():
    repo = InMemoryRepository([raw_meeting("m1")])
    assert isinstance(repo, MeetingRepository)
    created = repo.create({"title": "Đào tạo"})
    assert created["id"] == "meeting_1"
    assert repo.update("m1", {"title": "Renamed"})["title"] == "Renamed"
    with pytest.raises(NotFoundError):
        repo.update("nope", {})
    with pytest.raises(NotFoundError):
        repo.delete("nope")
    assert repo.replace_all([raw_meeting("m9")]) == 1
    assert list(repo.records) == ["m9"]
    assert [c[0] for c in repo.calls] == ["create", "update", "update", "delete", "replace_all"]
