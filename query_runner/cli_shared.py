from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from typing import Any

from rich.console import Console
from rich.markup import escape


class QueryRunnerError(Exception):
    pass


class UsageError(QueryRunnerError):
    pass


class OpError(QueryRunnerError):
    pass


CLOUDCMS_GITANA_FILE = "CLOUDCMS_GITANA_FILE"
CLOUDCMS_CREDENTIALS_FILE = "CLOUDCMS_CREDENTIALS_FILE"
CLOUDCMS_USERNAME = "CLOUDCMS_USERNAME"
CLOUDCMS_PASSWORD = "CLOUDCMS_PASSWORD"
CLOUDCMS_BRANCH = "CLOUDCMS_BRANCH"
CLOUDCMS_INSECURE = "CLOUDCMS_INSECURE"
CLOUDCMS_TIMEOUT_SECONDS = "CLOUDCMS_TIMEOUT_SECONDS"

DEFAULT_GITANA_FILE_PATH = "./gitana.json"


@dataclass(frozen=True)
class GlobalOpts:
    gitana_file_path: str
    branch_id: str
    prompt: bool = False
    use_credentials_file: bool = False
    credentials_file_path: str = ""
    username: str | None = None
    password: str | None = None
    print_results: bool = False
    verbose: bool = False
    quiet: bool = False
    verify_tls: bool = True
    timeout_seconds: int = 30


_ERROR_CONSOLE = Console(stderr=True)
_LOG_CONSOLE = Console(stderr=True, log_path=False)


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {escape(msg)}")


def _log_info(g: GlobalOpts, msg: str, *, style: str = "cyan") -> None:
    if g.quiet:
        return
    _LOG_CONSOLE.log(msg, style=style)


def _log_debug(g: GlobalOpts, msg: str) -> None:
    if not g.verbose:
        return
    _LOG_CONSOLE.log(msg, style="dim")


def _truthy(raw: str | None) -> bool:
    return str(raw or "").strip().lower() in {"1", "true", "yes", "on"}


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _require_str(val: str | None, name: str, *, hint: str) -> str:
    v = (val or "").strip()
    if not v:
        raise UsageError(f"missing {name} ({hint})")
    return v


def _print_json(obj: Any, *, indent: int | None = 2) -> None:
    if indent:
        sys.stdout.write(json.dumps(obj, indent=indent) + "\n")
    else:
        sys.stdout.write(json.dumps(obj, separators=(",", ":")) + "\n")


def _load_json_object(*, raw: str, label: str, error_cls: type[QueryRunnerError] = UsageError) -> dict[str, Any]:
    try:
        val = json.loads(raw)
    except Exception as e:
        raise error_cls(f"invalid {label}: {e}") from e
    if not isinstance(val, dict):
        raise error_cls(f"invalid {label}: expected JSON object")
    return val
