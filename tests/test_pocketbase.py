# tests/test_pocketbase.py

from __future__ import annotations

from typing import Any

import pytest
import requests

from taskpulse.errors import RemoteUnavailable
from taskpulse.remote.pocketbase import PocketBaseDocumentStore, build_filter

BASE = "http://pb.local"


class _Resp:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    """Stands in for requests.Session: replays queued responses, records requests."""

    def __init__(self, *responses: _Resp | Exception) -> None:
        self.queue = list(responses)
        self.headers: dict[str, str] = {}
        self.requests: list[tuple[str, str, dict[str, Any]]] = []

    def _next(self) -> _Resp:
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def request(self, method: str, url: str, timeout: float | None = None, **kwargs: Any) -> _Resp:
        self.requests.append((method, url, kwargs))
        return self._next()

    def delete(self, url: str, timeout: float | None = None) -> _Resp:
        self.requests.append(("delete", url, {}))
        return self._next()


def _store(session: FakeSession, **kw: Any) -> PocketBaseDocumentStore:
    return PocketBaseDocumentStore(BASE + "/", session=session, **kw)  # type: ignore[arg-type]


def test_build_filter_quotes_values() -> None:
    assert build_filter(None) == ""
    assert build_filter({"user_id": "u1", "team_id": ""}) == 'user_id = "u1" && team_id = ""'
    assert build_filter({"n": 3, "flag": True}) == "n = 3 && flag = true"
    assert build_filter({"title": 'say "hi"'}) == 'title = "say \\"hi\\""'


@pytest.mark.asyncio
async def test_insert_returns_record_id() -> None:
    session = FakeSession(_Resp(200, {"id": "abc123", "title": "x"}))
    store = _store(session, token="tok")

    new_id = await store.insert("tasks", {"title": "x"})

    assert new_id == "abc123"
    assert session.headers["Authorization"] == "Bearer tok"
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("post", f"{BASE}/api/collections/tasks/records")
    assert kwargs["json"] == {"title": "x"}


@pytest.mark.asyncio
async def test_query_follows_pages_and_strips_metadata() -> None:
    page1 = {"items": [{"id": "a", "collectionId": "c", "created": "x", "title": "one"}], "totalPages": 2}
    page2 = {"items": [{"id": "b", "updated": "y", "title": "two"}], "totalPages": 2}
    session = FakeSession(_Resp(200, page1), _Resp(200, page2))
    store = _store(session)

    rows = await store.query("tasks", {"owner_id": "u1"}, "-created_at")

    assert rows == [("a", {"title": "one"}), ("b", {"title": "two"})]
    params = session.requests[0][2]["params"]
    assert params["filter"] == 'owner_id = "u1"'
    assert params["sort"] == "-created_at"


@pytest.mark.asyncio
async def test_http_errors_become_remote_unavailable() -> None:
    store = _store(FakeSession(_Resp(403, text="forbidden")))
    with pytest.raises(RemoteUnavailable) as exc:
        await store.update("tasks", "a", {"title": "x"})
    assert exc.value.operation == "patch"

    store = _store(FakeSession(requests.ConnectionError("refused")))
    with pytest.raises(RemoteUnavailable):
        await store.query("tasks")


@pytest.mark.asyncio
async def test_delete_missing_record_is_ok() -> None:
    session = FakeSession(_Resp(404, text="not found"))
    await _store(session).delete("tasks", "gone")
    assert session.requests == [("delete", f"{BASE}/api/collections/tasks/records/gone", {})]


@pytest.mark.asyncio
async def test_password_login_happens_once() -> None:
    session = FakeSession(
        _Resp(200, {"token": "jwt"}),
        _Resp(200, {"id": "r1"}),
        _Resp(200, {"id": "r2"}),
    )
    store = _store(session, identity="me@example.com", password="pw")

    await store.insert("tasks", {"title": "a"})
    await store.insert("tasks", {"title": "b"})

    urls = [u for _, u, _ in session.requests]
    assert urls[0] == f"{BASE}/api/collections/users/auth-with-password"
    assert urls.count(f"{BASE}/api/collections/users/auth-with-password") == 1
    assert session.headers["Authorization"] == "Bearer jwt"


def test_base_url_is_required() -> None:
    with pytest.raises(ValueError):
        PocketBaseDocumentStore("")
