from __future__ import annotations

import os
from typing import Any
from urllib.parse import urlparse

import requests
from oauthlib.oauth2 import LegacyApplicationClient, OAuth2Error
from requests_oauthlib import OAuth2Session

from .cli_shared import OpError
from .gitana_config import GitanaConfig

# oauthlib refuses non-https token and resource URLs unless this is set.
OAUTHLIB_INSECURE_TRANSPORT = "OAUTHLIB_INSECURE_TRANSPORT"


class PlatformRequestError(OpError):
    """Raised for transport, OAuth or non-2xx failures talking to the platform."""

    def __init__(self, message: str, *, status: int = 0) -> None:
        super().__init__(message)
        self.status = status


def _error_message(resp: requests.Response) -> str:
    text = resp.text or ""
    try:
        doc = resp.json()
    except ValueError:
        return text.strip() or resp.reason or ""
    if isinstance(doc, dict):
        return str(doc.get("message") or doc.get("error_description") or doc.get("error") or text).strip()
    return text.strip()


class PlatformSession:
    """Authenticated handle for one process run; every request reuses the token."""

    def __init__(
        self,
        *,
        base_url: str,
        oauth: OAuth2Session,
        verify_tls: bool = True,
        timeout_seconds: int = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.oauth = oauth
        self.verify_tls = verify_tls
        self.timeout_seconds = timeout_seconds

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> requests.Response:
        url = f"{self.base_url}/{path.lstrip('/')}"
        kwargs: dict[str, Any] = {
            "params": {k: v for k, v in (params or {}).items() if v is not None},
            "verify": self.verify_tls,
            "timeout": self.timeout_seconds,
        }
        if body is not None:
            kwargs["json"] = body
        try:
            resp = self.oauth.request(method, url, **kwargs)
        except (requests.RequestException, OAuth2Error) as e:
            raise PlatformRequestError(f"{method} {path} failed: {e}") from e
        if resp.status_code < 200 or resp.status_code >= 300:
            raise PlatformRequestError(
                f"{method} {path} failed: status={resp.status_code} {_error_message(resp)}".rstrip(),
                status=resp.status_code,
            )
        return resp

    def _json(self, resp: requests.Response, *, label: str) -> dict[str, Any]:
        try:
            doc = resp.json()
        except ValueError as e:
            raise PlatformRequestError(f"invalid JSON from {label}: {e}", status=resp.status_code) from e
        if not isinstance(doc, dict):
            raise PlatformRequestError(f"invalid JSON from {label}: expected object", status=resp.status_code)
        return doc

    def get(self, path: str, *, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._json(self._request("GET", path, params=params), label=f"GET {path}")

    def post(self, path: str, *, params: dict[str, Any] | None = None, body: Any = None) -> dict[str, Any]:
        return self._json(
            self._request("POST", path, params=params, body=body if body is not None else {}),
            label=f"POST {path}",
        )

    def get_text(self, path: str, *, params: dict[str, Any] | None = None) -> str:
        return self._request("GET", path, params=params).text


def rows_of(doc: dict[str, Any]) -> list[dict[str, Any]]:
    rows = doc.get("rows")
    if not isinstance(rows, list):
        return []
    return [r for r in rows if isinstance(r, dict)]


def uses_plain_http(base_url: str) -> bool:
    return urlparse(base_url).scheme.lower() == "http"


def connect(config: GitanaConfig, *, verify_tls: bool = True, timeout_seconds: int = 30) -> PlatformSession:
    """Authenticate with the OAuth2 password grant and return a ready session."""
    if uses_plain_http(config.base_url):
        os.environ.setdefault(OAUTHLIB_INSECURE_TRANSPORT, "1")
    oauth = OAuth2Session(client=LegacyApplicationClient(client_id=config.client_key))
    token_url = f"{config.base_url}/oauth/token"
    try:
        oauth.fetch_token(
            token_url=token_url,
            username=config.username,
            password=config.password,
            client_id=config.client_key,
            client_secret=config.client_secret,
            verify=verify_tls,
            timeout=timeout_seconds,
        )
    except OAuth2Error as e:
        raise PlatformRequestError(
            f"authentication failed at {token_url}: {e.description or e.error}",
            status=int(getattr(e, "status_code", 0) or 0),
        ) from e
    except requests.RequestException as e:
        raise PlatformRequestError(f"authentication request to {token_url} failed: {e}") from e
    return PlatformSession(
        base_url=config.base_url,
        oauth=oauth,
        verify_tls=verify_tls,
        timeout_seconds=timeout_seconds,
    )
