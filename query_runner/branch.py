from __future__ import annotations

import json
from typing import Any

from .platform_client import PlatformSession, rows_of

DEFAULT_QUERY_LIMIT = 100

# loadTree config keys mapped onto /tree request params.
_TREE_PARAMS = (
    ("leafPath", "leaf"),
    ("basePath", "base"),
    ("containers", "containers"),
    ("depth", "depth"),
    ("properties", "properties"),
)


def _json_param(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, separators=(",", ":"))


def _bool_param(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


class Branch:
    """A resolved branch of a content repository and the reads it supports."""

    def __init__(self, session: PlatformSession, *, repository_id: str, doc: dict[str, Any]) -> None:
        self.session = session
        self.repository_id = repository_id
        self.doc = doc

    @property
    def id(self) -> str:
        return str(self.doc.get("_doc") or "")

    @property
    def title(self) -> str:
        return str(self.doc.get("title") or self.id)

    def _path(self, suffix: str) -> str:
        return f"/repositories/{self.repository_id}/branches/{self.id}/{suffix.lstrip('/')}"

    def query_nodes(
        self,
        query: dict[str, Any],
        *,
        limit: int | None = DEFAULT_QUERY_LIMIT,
        skip: int | None = None,
        sort: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        params = {
            "limit": limit or DEFAULT_QUERY_LIMIT,
            "skip": skip,
            "sort": _json_param(sort) if sort else None,
            "paths": "true",
        }
        return rows_of(self.session.post(self._path("nodes/query"), params=params, body=query))

    def search_nodes(self, search: dict[str, Any]) -> list[dict[str, Any]]:
        return rows_of(self.session.post(self._path("nodes/search"), body=search))

    def find_nodes(self, find: dict[str, Any]) -> list[dict[str, Any]]:
        return rows_of(self.session.post(self._path("nodes/find"), body=find))

    def traverse(self, node_id: str, traverse: dict[str, Any]) -> list[dict[str, Any]]:
        doc = self.session.post(self._path(f"nodes/{node_id}/traverse"), body={"traverse": traverse})
        nodes = doc.get("nodes")
        if isinstance(nodes, dict):
            return [n for n in nodes.values() if isinstance(n, dict)]
        if isinstance(nodes, list):
            return [n for n in nodes if isinstance(n, dict)]
        return rows_of(doc)

    def load_tree(self, config: dict[str, Any] | None = None) -> dict[str, Any]:
        config = config or {}
        params = {param: _bool_param(config.get(key)) for key, param in _TREE_PARAMS}
        body = {k: config[k] for k in ("query", "search") if config.get(k) is not None}
        return self.session.post(self._path("nodes/root/tree"), params=params, body=body)

    def graphql_query(
        self,
        query: str,
        *,
        operation_name: str | None = None,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"query": query}
        if operation_name:
            body["operationName"] = operation_name
        if variables:
            body["variables"] = variables
        return self.session.post(self._path("graphql"), body=body)

    def graphql_schema(self) -> str:
        return self.session.get_text(self._path("graphql/schema"))
