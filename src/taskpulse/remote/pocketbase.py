# src/taskpulse/remote/pocketbase.py

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Mapping
from typing import Any

import requests

from ..core.ports import Document
from ..errors import RemoteUnavailable

logger = logging.getLogger(__name__)

# Fields PocketBase adds to every record; never part of our documents.
_RECORD_META = frozenset({"id", "collectionId", "collectionName", "created", "updated", "expand"})

_PER_PAGE = 200


def _quote(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if value is None:
        return "null"
    return json.dumps(str(value), ensure_ascii=False)


def build_filter(filters: Mapping[str, Any] | None) -> str:
    """Equality filters -> PocketBase filter expression (joined with &&)."""
    if not filters:
        return ""
    return " && ".join(f"{field} = {_quote(value)}" for field, value in filters.items())


def _strip_meta(record: Mapping[str, Any]) -> Document:
    return {k: v for k, v in record.items() if k not in _RECORD_META}


class PocketBaseDocumentStore:
    """
    RemoteDocumentStore over the PocketBase records REST API.

    HTTP calls are blocking (requests) and run on a worker thread. Every failure
    (connection error, timeout, non-2xx status, bad JSON) is raised as
    RemoteUnavailable.
    """

    def __init__(
            self,
            base_url: str,
            *,
            token: str | None = None,
            identity: str | None = None,
            password: str | None = None,
            auth_collection: str = "users",
            http_timeout: float = 10.0,
            session: requests.Session | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self._identity = identity or ""
        self._password = password or ""
        self._auth_collection = auth_collection
        self._http_timeout = float(http_timeout)
        self._auth_lock = threading.Lock()
        self._authenticated = False
        if token:
            self._set_token(token)

    def _set_token(self, token: str) -> None:
        self.session.headers.update({"Authorization": f"Bearer {token}"})
        self._authenticated = True

    def _records_url(self, collection: str, record_id: str | None = None) -> str:
        url = f"{self.base_url}/api/collections/{collection}/records"
        return f"{url}/{record_id}" if record_id else url

    # ---------- blocking helpers ----------

    def _ensure_auth(self) -> None:
        if self._authenticated or not (self._identity and self._password):
            return
        with self._auth_lock:
            if self._authenticated:
                return
            url = f"{self.base_url}/api/collections/{self._auth_collection}/auth-with-password"
            r = self._send("post", url, json={"identity": self._identity, "password": self._password})
            token = (r.json() or {}).get("token")
            if not token:
                raise RemoteUnavailable("login response did not contain a token", operation="auth")
            self._set_token(str(token))
            logger.info("PocketBase login ok base_url=%s identity=%s", self.base_url, self._identity)

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            r = self.session.request(method, url, timeout=self._http_timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteUnavailable(f"{method.upper()} {url}: {e}", operation=method) from e
        if not r.ok:
            raise RemoteUnavailable(
                f"{method.upper()} {url}: HTTP {r.status_code} {r.text[:200]}", operation=method
            )
        return r

    def _insert_sync(self, collection: str, doc: Document) -> str:
        self._ensure_auth()
        r = self._send("post", self._records_url(collection), json=doc)
        try:
            record_id = r.json()["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise RemoteUnavailable(f"insert into {collection}: bad response", operation="insert") from e
        logger.debug("PocketBase insert collection=%s id=%s", collection, record_id)
        return str(record_id)

    def _update_sync(self, collection: str, doc_id: str, patch: Document) -> None:
        self._ensure_auth()
        self._send("patch", self._records_url(collection, doc_id), json=patch)

    def _delete_sync(self, collection: str, doc_id: str) -> None:
        self._ensure_auth()
        try:
            r = self.session.delete(self._records_url(collection, doc_id), timeout=self._http_timeout)
        except requests.RequestException as e:
            raise RemoteUnavailable(f"DELETE {collection}/{doc_id}: {e}", operation="delete") from e
        if r.status_code == 404:
            logger.debug("PocketBase delete: %s/%s already gone", collection, doc_id)
            return
        if not r.ok:
            raise RemoteUnavailable(
                f"DELETE {collection}/{doc_id}: HTTP {r.status_code} {r.text[:200]}", operation="delete"
            )

    def _query_sync(
            self,
            collection: str,
            filters: Mapping[str, Any] | None,
            order_by: str | None,
    ) -> list[tuple[str, Document]]:
        self._ensure_auth()
        params: dict[str, Any] = {"perPage": _PER_PAGE, "page": 1}
        expr = build_filter(filters)
        if expr:
            params["filter"] = expr
        if order_by:
            params["sort"] = order_by

        out: list[tuple[str, Document]] = []
        while True:
            r = self._send("get", self._records_url(collection), params=params)
            try:
                data = r.json()
                items = data.get("items", [])
                total_pages = int(data.get("totalPages") or 1)
            except (ValueError, AttributeError, TypeError) as e:
                raise RemoteUnavailable(f"query {collection}: bad response", operation="query") from e
            for item in items:
                out.append((str(item["id"]), _strip_meta(item)))
            if params["page"] >= total_pages:
                break
            params["page"] += 1
        return out

    # ---------- RemoteDocumentStore ----------

    async def insert(self, collection: str, doc: Document) -> str:
        return await asyncio.to_thread(self._insert_sync, collection, doc)

    async def update(self, collection: str, doc_id: str, patch: Document) -> None:
        await asyncio.to_thread(self._update_sync, collection, doc_id, patch)

    async def delete(self, collection: str, doc_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, collection, doc_id)

    async def query(
            self,
            collection: str,
            filters: Mapping[str, Any] | None = None,
            order_by: str | None = None,
    ) -> list[tuple[str, Document]]:
        return await asyncio.to_thread(self._query_sync, collection, filters, order_by)
