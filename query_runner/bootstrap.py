"""Connect to Cloud CMS and resolve one branch of the project's content repository.

The pipeline is strictly sequential: authenticate, read platform metadata,
find the application's stack and its datastores, find the project, then read
the branch from the ``content`` datastore. Each step raises on failure so the
caller either gets a complete :class:`BranchContext` or one typed error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .auth_inputs import CredentialRequest, PromptFn, gather_overrides, resolve_credentials
from .branch import Branch
from .cli_shared import OpError
from .gitana_config import GitanaConfig, load_gitana_config
from .platform_client import PlatformRequestError, PlatformSession, connect as platform_connect, rows_of

DEFAULT_BRANCH_ID = "master"
CONTENT_DATASTORE_KEY = "content"
PRINCIPALS_DATASTORE_KEY = "principals"


class PlatformConnectionError(OpError):
    """Raised when authentication or a metadata lookup against the platform fails."""


class DatastoreNotFoundError(OpError):
    """Raised when the stack has no content datastore to read branches from."""


class BranchNotFoundError(OpError):
    """Raised when the requested branch id does not exist in the content datastore."""


ConnectFn = Callable[[GitanaConfig], PlatformSession]


@dataclass(frozen=True)
class BranchContext:
    branch: Branch
    platform: dict[str, Any]
    stack: dict[str, Any]
    domain: dict[str, Any] | None
    primary_domain: dict[str, Any]
    project: dict[str, Any]


def _datastore_key(row: dict[str, Any]) -> str:
    return str(row.get("key") or row.get("datastoreKey") or "").strip()


def _datastore_id(row: dict[str, Any]) -> str:
    return str(row.get("datastoreId") or row.get("_doc") or "").strip()


def _lookup(step: str, fn: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    try:
        return fn()
    except PlatformRequestError as e:
        raise PlatformConnectionError(f"failed to {step}: {e}") from e


def _read_stack_datastores(session: PlatformSession, stack_id: str) -> dict[str, dict[str, Any]]:
    doc = _lookup("list stack datastores", lambda: session.get(f"/stacks/{stack_id}/datastores"))
    out: dict[str, dict[str, Any]] = {}
    for row in rows_of(doc):
        key = _datastore_key(row)
        if key:
            out[key] = row
    return out


def _read_project(session: PlatformSession, stack_id: str) -> dict[str, Any]:
    doc = _lookup(
        "query project",
        lambda: session.post("/projects/query", params={"limit": 1}, body={"stackId": stack_id}),
    )
    rows = rows_of(doc)
    return rows[0] if rows else {}


def _read_branch(session: PlatformSession, repository_id: str, branch_id: str) -> Branch:
    try:
        doc = session.get(f"/repositories/{repository_id}/branches/{branch_id}")
    except PlatformRequestError as e:
        if e.status == 404:
            raise BranchNotFoundError(
                f"branch {branch_id!r} not found in repository {repository_id!r}"
            ) from e
        raise PlatformConnectionError(f"failed to read branch {branch_id!r}: {e}") from e
    return Branch(session, repository_id=repository_id, doc=doc)


def get_branch(
    config: GitanaConfig,
    branch_id: str | None = None,
    *,
    connect: ConnectFn = platform_connect,
) -> BranchContext:
    try:
        session = connect(config)
    except PlatformRequestError as e:
        raise PlatformConnectionError(f"Failed to connect: {e}") from e

    platform = _lookup("read platform", lambda: session.get("/"))
    primary_domain = _lookup("read primary domain", lambda: session.get("/domains/primary"))

    if not config.application:
        raise DatastoreNotFoundError(
            "gitana config has no 'application'; cannot locate the project stack"
        )
    stack = _lookup(
        f"find stack for application {config.application!r}",
        lambda: session.get(f"/stacks/find/application/{config.application}"),
    )
    stack_id = str(stack.get("_doc") or "")
    datastores = _read_stack_datastores(session, stack_id)
    project = _read_project(session, stack_id)

    content = datastores.get(CONTENT_DATASTORE_KEY)
    if content is None or not _datastore_id(content):
        raise DatastoreNotFoundError(f"stack {stack_id!r} has no {CONTENT_DATASTORE_KEY!r} datastore")

    branch = _read_branch(session, _datastore_id(content), (branch_id or "").strip() or DEFAULT_BRANCH_ID)
    return BranchContext(
        branch=branch,
        platform=platform,
        stack=stack,
        domain=datastores.get(PRINCIPALS_DATASTORE_KEY),
        primary_domain=primary_domain,
        project=project,
    )


def connect_branch(
    gitana_file_path: str,
    request: CredentialRequest,
    branch_id: str | None = None,
    *,
    prompt: PromptFn,
    connect: ConnectFn = platform_connect,
) -> BranchContext:
    """Load config, apply credential overrides, then resolve the branch.

    Config and credential errors are raised before any network call is made.
    """
    base = load_gitana_config(gitana_file_path)
    overrides = gather_overrides(request, prompt=prompt)
    config = resolve_credentials(base, overrides)
    return get_branch(config, branch_id, connect=connect)
