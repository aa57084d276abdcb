from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import MASTER_BRANCH_DOC, FakeSession, platform_routes
from query_runner.auth_inputs import CredentialRequest, CredentialsFileNotFoundError
from query_runner.bootstrap import (
    DEFAULT_BRANCH_ID,
    BranchNotFoundError,
    DatastoreNotFoundError,
    PlatformConnectionError,
    connect_branch,
    get_branch,
)
from query_runner.cli_shared import OpError
from query_runner.gitana_config import ConfigNotFoundError, ConfigParseError, GitanaConfig
from query_runner.platform_client import PlatformRequestError


def _config(**overrides) -> GitanaConfig:
    fields = {
        "client_key": "client-key",
        "client_secret": "client-secret",
        "username": "file-user",
        "password": "file-pass",
        "base_url": "https://api.example.invalid",
        "application": "app-1",
    }
    fields.update(overrides)
    return GitanaConfig(**fields)


def _no_prompt(*_args, **_kwargs):
    raise AssertionError("prompt should not be called")


class _RecordingConnect:
    def __init__(self, session: FakeSession | None = None, error: Exception | None = None) -> None:
        self.session = session
        self.error = error
        self.configs: list[GitanaConfig] = []

    def __call__(self, config: GitanaConfig) -> FakeSession:
        self.configs.append(config)
        if self.error is not None:
            raise self.error
        assert self.session is not None
        return self.session


def test_get_branch_resolves_branch_and_ancillary_handles(fake_session: FakeSession) -> None:
    out = get_branch(_config(), "master", connect=lambda _cfg: fake_session)

    assert out.branch.id == MASTER_BRANCH_DOC["_doc"]
    assert out.branch.title == "Master"
    assert out.branch.repository_id == "repo-1"
    assert out.platform["_doc"] == "platform-1"
    assert out.primary_domain["_doc"] == "domain-primary"
    assert out.stack["_doc"] == "stack-1"
    assert out.project["title"] == "Hello World"
    assert out.domain is not None and out.domain["datastoreId"] == "domain-1"


def test_get_branch_runs_steps_in_order(fake_session: FakeSession) -> None:
    get_branch(_config(), "master", connect=lambda _cfg: fake_session)
    assert fake_session.paths() == [
        "/",
        "/domains/primary",
        "/stacks/find/application/app-1",
        "/stacks/stack-1/datastores",
        "/projects/query",
        "/repositories/repo-1/branches/master",
    ]
    project_call = fake_session.calls[4]
    assert project_call["body"] == {"stackId": "stack-1"}


@pytest.mark.parametrize("branch_id", [None, "", "   "])
def test_get_branch_defaults_to_master(fake_session: FakeSession, branch_id) -> None:
    out = get_branch(_config(), branch_id, connect=lambda _cfg: fake_session)
    assert DEFAULT_BRANCH_ID == "master"
    assert fake_session.paths()[-1] == "/repositories/repo-1/branches/master"
    assert out.branch.title == "Master"


def test_get_branch_reads_requested_branch_id() -> None:
    session = FakeSession(platform_routes(branch_id="feature-1", branch_doc={"_doc": "feature-1"}))
    out = get_branch(_config(), "feature-1", connect=lambda _cfg: session)
    assert out.branch.id == "feature-1"
    # no title: falls back to the branch id
    assert out.branch.title == "feature-1"


def test_get_branch_unknown_branch_raises_branch_not_found(fake_session: FakeSession) -> None:
    with pytest.raises(BranchNotFoundError, match="'does-not-exist'") as exc_info:
        get_branch(_config(), "does-not-exist", connect=lambda _cfg: fake_session)
    assert isinstance(exc_info.value.__cause__, PlatformRequestError)
    assert exc_info.value.__cause__.status == 404


def test_get_branch_wraps_connect_failure_and_makes_no_further_calls(fake_session: FakeSession) -> None:
    cause = PlatformRequestError("authentication failed: Bad credentials", status=401)
    connect = _RecordingConnect(session=fake_session, error=cause)

    with pytest.raises(PlatformConnectionError, match="Failed to connect") as exc_info:
        get_branch(_config(), "master", connect=connect)

    assert exc_info.value.__cause__ is cause
    assert fake_session.calls == []
    assert isinstance(exc_info.value, OpError)


def test_get_branch_metadata_failure_is_connection_error() -> None:
    routes = platform_routes()
    routes[("GET", "/stacks/find/application/app-1")] = PlatformRequestError("boom", status=500)
    session = FakeSession(routes)

    with pytest.raises(PlatformConnectionError, match="find stack for application 'app-1'"):
        get_branch(_config(), "master", connect=lambda _cfg: session)
    assert "/repositories/repo-1/branches/master" not in session.paths()


def test_get_branch_server_error_reading_branch_is_connection_error() -> None:
    routes = platform_routes()
    routes[("GET", "/repositories/repo-1/branches/master")] = PlatformRequestError("boom", status=503)
    session = FakeSession(routes)

    with pytest.raises(PlatformConnectionError, match="failed to read branch"):
        get_branch(_config(), "master", connect=lambda _cfg: session)


def test_get_branch_without_content_datastore() -> None:
    routes = platform_routes()
    routes[("GET", "/stacks/stack-1/datastores")] = {
        "rows": [{"key": "principals", "datastoreId": "domain-1"}]
    }
    session = FakeSession(routes)

    with pytest.raises(DatastoreNotFoundError, match="'content'"):
        get_branch(_config(), "master", connect=lambda _cfg: session)


def test_get_branch_without_application() -> None:
    session = FakeSession(platform_routes())
    with pytest.raises(DatastoreNotFoundError, match="no 'application'"):
        get_branch(_config(application=""), "master", connect=lambda _cfg: session)


def test_get_branch_missing_principals_datastore_leaves_domain_empty() -> None:
    routes = platform_routes()
    routes[("GET", "/stacks/stack-1/datastores")] = {
        "rows": [{"key": "content", "datastoreId": "repo-1"}]
    }
    out = get_branch(_config(), "master", connect=lambda _cfg: FakeSession(routes))
    assert out.domain is None


def test_connect_branch_missing_config_makes_no_network_call(tmp_path: Path) -> None:
    connect = _RecordingConnect(session=FakeSession(platform_routes()))
    with pytest.raises(ConfigNotFoundError):
        connect_branch(
            str(tmp_path / "gitana.json"),
            CredentialRequest(),
            "master",
            prompt=_no_prompt,
            connect=connect,
        )
    assert connect.configs == []


def test_connect_branch_malformed_config_makes_no_network_call(tmp_path: Path) -> None:
    path = tmp_path / "gitana.json"
    path.write_text("clientKey: nope", encoding="utf-8")
    connect = _RecordingConnect(session=FakeSession(platform_routes()))
    with pytest.raises(ConfigParseError):
        connect_branch(str(path), CredentialRequest(), "master", prompt=_no_prompt, connect=connect)
    assert connect.configs == []


def test_connect_branch_missing_credentials_file_makes_no_network_call(gitana_file: Path, tmp_path: Path) -> None:
    connect = _RecordingConnect(session=FakeSession(platform_routes()))
    request = CredentialRequest(
        use_credentials_file=True,
        credentials_file_path=str(tmp_path / "missing-credentials.json"),
    )
    with pytest.raises(CredentialsFileNotFoundError):
        connect_branch(str(gitana_file), request, "master", prompt=_no_prompt, connect=connect)
    assert connect.configs == []


def test_connect_branch_connects_with_resolved_credentials(gitana_file: Path, tmp_path: Path) -> None:
    creds = tmp_path / "credentials.json"
    creds.write_text(json.dumps({"username": "stored-user", "password": "stored-pass"}), encoding="utf-8")
    connect = _RecordingConnect(session=FakeSession(platform_routes()))

    out = connect_branch(
        str(gitana_file),
        CredentialRequest(
            use_credentials_file=True,
            credentials_file_path=str(creds),
            password="flag-pass",
        ),
        None,
        prompt=_no_prompt,
        connect=connect,
    )

    assert out.branch.title == "Master"
    assert len(connect.configs) == 1
    used = connect.configs[0]
    assert used.username == "stored-user"
    assert used.password == "flag-pass"
    assert used.client_key == "client-key"
