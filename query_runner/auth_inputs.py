from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

from .cli_shared import UsageError
from .gitana_config import GitanaConfig, read_json_file

DEFAULT_CREDENTIALS_FILE_PATH = "~/.cloudcms/credentials.json"


class CredentialsFileNotFoundError(UsageError):
    """Raised when the stored-credentials file was requested but is missing."""


@dataclass(frozen=True)
class BasicCredentials:
    username: str = ""
    password: str = ""


@dataclass(frozen=True)
class CredentialOverrides:
    """Optional credential layers, listed in ascending precedence."""

    stored: BasicCredentials | None = None
    prompted: BasicCredentials | None = None
    username: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class CredentialRequest:
    """Which override sources the caller asked for, before any are loaded."""

    use_credentials_file: bool = False
    credentials_file_path: str = DEFAULT_CREDENTIALS_FILE_PATH
    prompt: bool = False
    username: str | None = None
    password: str | None = None


PromptFn = Callable[..., str]


def _credentials_from_doc(doc: Mapping[str, Any]) -> BasicCredentials:
    return BasicCredentials(
        username=str(doc.get("username") or ""),
        password=str(doc.get("password") or ""),
    )


def load_stored_credentials(path: str | Path = DEFAULT_CREDENTIALS_FILE_PATH) -> BasicCredentials:
    doc = read_json_file(
        path or DEFAULT_CREDENTIALS_FILE_PATH,
        label="credentials file",
        missing_error=CredentialsFileNotFoundError,
    )
    return _credentials_from_doc(doc)


def prompt_credentials(prompt: PromptFn) -> BasicCredentials:
    """Read a visible username then a masked password, in that order."""
    username = prompt("name")
    password = prompt("password", hide_input=True)
    return BasicCredentials(username=str(username or ""), password=str(password or ""))


def gather_overrides(request: CredentialRequest, *, prompt: PromptFn) -> CredentialOverrides:
    stored = None
    if request.use_credentials_file:
        stored = load_stored_credentials(request.credentials_file_path)
    prompted = None
    if request.prompt:
        prompted = prompt_credentials(prompt)
    return CredentialOverrides(
        stored=stored,
        prompted=prompted,
        username=request.username,
        password=request.password,
    )


def _layers(overrides: CredentialOverrides) -> list[BasicCredentials]:
    layers: list[BasicCredentials] = []
    if overrides.stored is not None:
        layers.append(overrides.stored)
    if overrides.prompted is not None:
        layers.append(overrides.prompted)
    layers.append(BasicCredentials(username=overrides.username or "", password=""))
    layers.append(BasicCredentials(username="", password=overrides.password or ""))
    return layers


def resolve_credentials(base: GitanaConfig, overrides: CredentialOverrides) -> GitanaConfig:
    """Return ``base`` with each override layer's non-empty fields applied in order.

    Order is fixed: stored-credentials file, interactive prompt, explicit
    username, explicit password. ``base`` itself is left untouched.
    """
    username = base.username
    password = base.password
    for layer in _layers(overrides):
        if layer.username:
            username = layer.username
        if layer.password:
            password = layer.password
    return dataclasses.replace(base, username=username, password=password)
