"""Backend that forwards every call to a remote outline server."""

import asyncio
from typing import Any

import requests
from loguru import logger

from outline_engine.models.node import (
    CreateResult,
    Document,
    DocumentState,
    Node,
    NodeChanges,
    SearchResult,
)
from outline_engine.protocols import ApiProtocol, BackendError


class RemoteBackend:
    """BackendProtocol over an ``ApiProtocol`` transport.

    Transport calls are blocking, so each one runs in a worker thread.
    Responses to mutating commands carry the full node list under ``state``.
    """

    def __init__(self, api: ApiProtocol) -> None:
        self.api = api
        self.document_id: str | None = None
        self._version: int | None = None

    def close(self) -> None:
        sess = getattr(self.api, "sess", None)
        if sess is not None:
            sess.close()

    async def _call(self, path: str, args: dict[str, Any]) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self.api.call, path, args)
        except (RuntimeError, requests.RequestException, ValueError) as e:
            raise BackendError(str(e)) from e

    def _state(self, response: dict[str, Any]) -> DocumentState:
        if "version" in response:
            self._version = response["version"]
        return DocumentState.from_dict(response.get("state") or {})

    def _doc(self) -> dict[str, Any]:
        if self.document_id is None:
            msg = "No document loaded"
            raise BackendError(msg)
        return {"doc_id": self.document_id}

    async def list_documents(self) -> list[Document]:
        rv = await self._call("document/list", {})
        return [
            Document(id=d["id"], title=d.get("title", ""), node_count=d.get("node_count", 0))
            for d in rv.get("documents", [])
        ]

    async def load_document(self, doc_id: str | None = None) -> DocumentState:
        rv = await self._call("document/load", {"doc_id": doc_id} if doc_id else {})
        self.document_id = rv.get("doc_id", doc_id)
        return self._state(rv)

    async def create_node(
        self, parent_id: str | None, position: int, content: str
    ) -> CreateResult:
        rv = await self._call(
            "node/create",
            {**self._doc(), "parent_id": parent_id, "position": position, "content": content},
        )
        return CreateResult(id=rv["id"], state=self._state(rv))

    async def create_node_with_id(
        self,
        node_id: str,
        parent_id: str | None,
        position: int,
        content: str,
        node_type: str,
    ) -> DocumentState:
        rv = await self._call(
            "node/create_with_id",
            {
                **self._doc(),
                "id": node_id,
                "parent_id": parent_id,
                "position": position,
                "content": content,
                "node_type": node_type,
            },
        )
        return self._state(rv)

    async def update_node(self, node_id: str, changes: NodeChanges) -> DocumentState:
        rv = await self._call(
            "node/update", {**self._doc(), "id": node_id, "changes": changes.as_dict()}
        )
        return self._state(rv)

    async def move_node(
        self, node_id: str, parent_id: str | None, position: int
    ) -> DocumentState:
        rv = await self._call(
            "node/move",
            {**self._doc(), "id": node_id, "parent_id": parent_id, "position": position},
        )
        return self._state(rv)

    async def delete_node(self, node_id: str) -> DocumentState:
        rv = await self._call("node/delete", {**self._doc(), "id": node_id})
        return self._state(rv)

    async def search(
        self, query: str, doc_id: str | None = None, limit: int = 50
    ) -> list[SearchResult]:
        rv = await self._call("search", {"query": query, "doc_id": doc_id, "limit": limit})
        return [
            SearchResult(
                node=Node.from_dict(hit["node"]),
                document_id=hit.get("document_id", ""),
                document_title=hit.get("document_title", ""),
                snippet=hit.get("snippet", ""),
                score=float(hit.get("score", 0.0)),
            )
            for hit in rv.get("results", [])
        ]

    async def get_next_occurrence(self, rrule: str, date: str) -> str | None:
        rv = await self._call("recurrence/next", {"rrule": rrule, "date": date})
        return rv.get("date")

    async def reload_if_changed(self) -> DocumentState | None:
        if self.document_id is None:
            return None
        rv = await self._call("document/version", self._doc())
        version = rv.get("version")
        if version is None or version == self._version:
            return None
        logger.debug("Remote document changed (version {} -> {})", self._version, version)
        self._version = version
        return await self.load_document(self.document_id)
