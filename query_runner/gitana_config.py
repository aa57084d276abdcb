from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .cli_shared import UsageError, _load_json_object

DEFAULT_BASE_URL = "https://api.cloudcms.com"


class ConfigNotFoundError(UsageError):
    """Raised when the gitana.json file does not exist."""


class ConfigParseError(UsageError):
    """Raised when a config or credentials file is not a JSON object."""


@dataclass(frozen=True)
class GitanaConfig:
    client_key: str = ""
    client_secret: str = ""
    username: str = ""
    password: str = ""
    base_url: str = DEFAULT_BASE_URL
    application: str = ""

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "GitanaConfig":
        base_url = str(doc.get("baseURL") or doc.get("endpoint") or DEFAULT_BASE_URL).strip()
        return cls(
            client_key=str(doc.get("clientKey") or "").strip(),
            client_secret=str(doc.get("clientSecret") or "").strip(),
            username=str(doc.get("username") or ""),
            password=str(doc.get("password") or ""),
            base_url=base_url.rstrip("/"),
            application=str(doc.get("application") or "").strip(),
        )


def read_text_file(
    path: str | Path,
    *,
    label: str,
    missing_error: type[UsageError],
    parse_error: type[UsageError] = ConfigParseError,
) -> str:
    p = Path(path).expanduser()
    if not p.is_file():
        raise missing_error(f"{label} not found at {str(p)!r}")
    try:
        return p.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise parse_error(f"invalid {label} at {str(p)!r}: not UTF-8 text ({e})") from e
    except OSError as e:
        raise missing_error(f"failed to read {label} at {str(p)!r}: {e}") from e


def read_json_file(
    path: str | Path,
    *,
    label: str,
    missing_error: type[UsageError],
    parse_error: type[UsageError] = ConfigParseError,
) -> dict[str, Any]:
    raw = read_text_file(path, label=label, missing_error=missing_error, parse_error=parse_error)
    p = Path(path).expanduser()
    return _load_json_object(raw=raw, label=f"{label} at {str(p)!r}", error_cls=parse_error)


def load_gitana_config(path: str | Path) -> GitanaConfig:
    doc = read_json_file(path, label="gitana config", missing_error=ConfigNotFoundError)
    return GitanaConfig.from_dict(doc)
