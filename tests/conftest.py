from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from query_runner.platform_client import PlatformRequestError

MASTER_BRANCH_DOC = {"_doc": "0a1b2c3d4e5f", "title": "Master"}


class FakeSession:
    """Stands in for PlatformSession; serves canned documents keyed by (method, path)."""

    def __init__(self, routes: dict[tuple[str, str], Any] | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[dict[str, Any]] = []

    def _serve(self, method: str, path: str, params: Any, body: Any) -> Any:
        self.calls.append({"method": method, "path": path, "params": params, "body": body})
        key = (method, path)
        if key not in self.routes:
            raise PlatformRequestError(f"{method} {path} failed: status=404 not found", status=404)
        out = self.routes[key]
        if isinstance(out, Exception):
            raise out
        return out

    def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return self._serve("GET", path, params, None)

    def post(self, path: str, *, params: dict[str, Any] | None = None, body: Any = None) -> Any:
        return self._serve("POST", path, params, body)

    def get_text(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return self._serve("GET", path, params, None)

    def paths(self) -> list[str]:
        return [c["path"] for c in self.calls]


def platform_routes(*, branch_id: str = "master", branch_doc: dict[str, Any] | None = None) -> dict[tuple[str, str], Any]:
    return {
        ("GET", "/"): {"_doc": "platform-1", "title": "Platform"},
        ("GET", "/domains/primary"): {"_doc": "domain-primary", "title": "Primary Domain"},
        ("GET", "/stacks/find/application/app-1"): {"_doc": "stack-1", "title": "Stack"},
        ("GET", "/stacks/stack-1/datastores"): {
            "rows": [
                {"key": "content", "datastoreId": "repo-1", "datastoreTypeId": "repository"},
                {"key": "principals", "datastoreId": "domain-1", "datastoreTypeId": "domain"},
            ]
        },
        ("POST", "/projects/query"): {
            "rows": [{"_doc": "project-1", "title": "Hello World", "stackId": "stack-1"}]
        },
        ("GET", f"/repositories/repo-1/branches/{branch_id}"): branch_doc or MASTER_BRANCH_DOC,
    }


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession(platform_routes())


@pytest.fixture
def gitana_file(tmp_path: Path) -> Path:
    path = tmp_path / "gitana.json"
    path.write_text(
        json.dumps(
            {
                "clientKey": "client-key",
                "clientSecret": "client-secret",
                "username": "file-user",
                "password": "file-pass",
                "baseURL": "https://api.example.invalid",
                "application": "app-1",
            }
        ),
        encoding="utf-8",
    )
    return path
