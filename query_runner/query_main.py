from __future__ import annotations

import sys
import time
from typing import Any

import click
import typer
from dotenv import load_dotenv
from rich.markup import escape

from . import __version__
from .auth_inputs import DEFAULT_CREDENTIALS_FILE_PATH, CredentialRequest
from .bootstrap import DEFAULT_BRANCH_ID, BranchContext, connect_branch
from .cli_shared import (
    CLOUDCMS_BRANCH,
    CLOUDCMS_CREDENTIALS_FILE,
    CLOUDCMS_GITANA_FILE,
    CLOUDCMS_INSECURE,
    CLOUDCMS_PASSWORD,
    CLOUDCMS_TIMEOUT_SECONDS,
    CLOUDCMS_USERNAME,
    DEFAULT_GITANA_FILE_PATH,
    GlobalOpts,
    OpError,
    UsageError,
    _env_or_none,
    _log_debug,
    _log_info,
    _require_str,
    _rich_error,
    _truthy,
)
from .gitana_config import GitanaConfig, read_json_file, read_text_file
from .platform_client import PlatformSession, uses_plain_http
from .platform_client import connect as platform_connect
from .results import print_graphql_schema, print_nodes, print_object, print_tree

app = typer.Typer(
    name="cloudcms-query",
    help=(
        "Exercise various methods of searching for nodes in a Cloud CMS repository branch. "
        "gitana.json files can be referenced by path (--gitana-file-path), so a library of "
        "connection files can be kept side by side; ./gitana.json is used when none is given."
    ),
    no_args_is_help=True,
    add_completion=False,
)


def _bootstrap_env() -> None:
    # python-dotenv defaults: discover .env without overriding exported values.
    load_dotenv()


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cloudcms-query {__version__}")
        raise typer.Exit(code=0)


def _timeout_seconds() -> int:
    raw = _env_or_none(CLOUDCMS_TIMEOUT_SECONDS)
    if raw is None:
        return 30
    try:
        val = int(raw)
    except ValueError as e:
        raise UsageError(f"invalid {CLOUDCMS_TIMEOUT_SECONDS}: {raw!r}") from e
    if val <= 0:
        raise UsageError(f"invalid {CLOUDCMS_TIMEOUT_SECONDS}: must be positive")
    return val


@app.callback()
def app_callback(
    ctx: typer.Context,
    gitana_file_path: str | None = typer.Option(
        None,
        "--gitana-file-path",
        "-g",
        help=f"Path to gitana.json used when connecting (default: {DEFAULT_GITANA_FILE_PATH}; env override: {CLOUDCMS_GITANA_FILE})",
    ),
    branch: str | None = typer.Option(
        None,
        "--branch",
        "-b",
        help=f"Branch id (not branch name!) or 'master' (default: {DEFAULT_BRANCH_ID}; env override: {CLOUDCMS_BRANCH})",
    ),
    prompt: bool = typer.Option(
        False,
        "--prompt",
        "-p",
        help="Prompt for username and password. Overrides gitana.json credentials",
    ),
    use_credentials_file: bool = typer.Option(
        False,
        "--use-credentials-file",
        "-c",
        help=f"Use credentials file {DEFAULT_CREDENTIALS_FILE_PATH}. Overrides gitana.json credentials",
    ),
    credentials_file: str | None = typer.Option(
        None,
        "--credentials-file",
        help=f"Credentials file read by --use-credentials-file (env override: {CLOUDCMS_CREDENTIALS_FILE})",
    ),
    username: str | None = typer.Option(
        None,
        "--username",
        "-u",
        help=f"API server user name (env fallback: {CLOUDCMS_USERNAME})",
    ),
    password: str | None = typer.Option(
        None,
        "--password",
        "-w",
        help=f"API server password (env fallback: {CLOUDCMS_PASSWORD})",
    ),
    print_results: bool = typer.Option(False, "--print-results", help="Print query results"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", help="Reduce stderr logging"),
    insecure: bool = typer.Option(
        False,
        "--insecure",
        help=f"Skip TLS certificate verification, e.g. behind a debugging proxy (env: {CLOUDCMS_INSECURE})",
    ),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    ctx.obj = {
        "g": GlobalOpts(
            gitana_file_path=(gitana_file_path or _env_or_none(CLOUDCMS_GITANA_FILE) or DEFAULT_GITANA_FILE_PATH).strip(),
            branch_id=(branch or _env_or_none(CLOUDCMS_BRANCH) or DEFAULT_BRANCH_ID).strip(),
            prompt=prompt,
            use_credentials_file=use_credentials_file,
            credentials_file_path=(
                credentials_file or _env_or_none(CLOUDCMS_CREDENTIALS_FILE) or DEFAULT_CREDENTIALS_FILE_PATH
            ).strip(),
            username=username or _env_or_none(CLOUDCMS_USERNAME),
            password=password or _env_or_none(CLOUDCMS_PASSWORD),
            print_results=print_results,
            verbose=verbose,
            quiet=quiet,
            verify_tls=not (insecure or _truthy(_env_or_none(CLOUDCMS_INSECURE))),
            timeout_seconds=_timeout_seconds(),
        )
    }


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    if isinstance(ctx.obj, dict) and isinstance(ctx.obj.get("g"), GlobalOpts):
        return ctx.obj["g"]
    raise UsageError("global options were not initialised")


def _read_query_object(path: str | None, *, label: str = "query file") -> dict[str, Any]:
    p = _require_str(path, label, hint="pass --query-file-path")
    return read_json_file(p, label=label, missing_error=UsageError, parse_error=UsageError)


def _read_query_text(path: str | None) -> str:
    p = _require_str(path, "query file", hint="pass --query-file-path")
    return read_text_file(p, label="query file", missing_error=UsageError, parse_error=UsageError)


def _connect(g: GlobalOpts) -> BranchContext:
    request = CredentialRequest(
        use_credentials_file=g.use_credentials_file,
        credentials_file_path=g.credentials_file_path,
        prompt=g.prompt,
        username=g.username,
        password=g.password,
    )
    _log_debug(g, f"loading {escape(g.gitana_file_path)}; branch {escape(repr(g.branch_id))}")
    if not g.verify_tls:
        _log_info(g, "TLS certificate verification is disabled", style="yellow")

    def _platform_connect(config: GitanaConfig) -> PlatformSession:
        if uses_plain_http(config.base_url):
            _log_info(g, f"connecting over plain HTTP to {escape(config.base_url)}", style="yellow")
        return platform_connect(config, verify_tls=g.verify_tls, timeout_seconds=g.timeout_seconds)

    bc = connect_branch(g.gitana_file_path, request, g.branch_id, prompt=typer.prompt, connect=_platform_connect)
    project_title = escape(str(bc.project.get("title") or bc.project.get("_doc") or "?"))
    branch_title = escape(bc.branch.title)
    _log_info(
        g,
        f'connected to project: "[yellow]{project_title}[/yellow]" and branch: "[yellow]{branch_title}[/yellow]".',
        style="default",
    )
    return bc


@app.command("query", help="Query nodes with MongoDB syntax (POST .../nodes/query).")
def query(
    ctx: typer.Context,
    query_file_path: str | None = typer.Option(None, "--query-file-path", "-f", help="Path to JSON query"),
    limit: int | None = typer.Option(None, "--limit", help="Page size (default 100)"),
    skip: int | None = typer.Option(None, "--skip", help="Number of results to skip"),
    sort_file_path: str | None = typer.Option(None, "--sort-file-path", help="Path to a JSON file defining the sort"),
) -> None:
    g = _ctx_global(ctx)
    query_doc = _read_query_object(query_file_path)
    sort = _read_query_object(sort_file_path, label="sort file") if sort_file_path else None
    bc = _connect(g)
    _log_info(g, "Query")
    start = time.perf_counter()
    nodes = bc.branch.query_nodes(query_doc, limit=limit, skip=skip, sort=sort)
    print_nodes(g, "Query", nodes, time.perf_counter() - start)


@app.command("search", help="Search nodes with Elasticsearch DSL (POST .../nodes/search).")
def search(
    ctx: typer.Context,
    query_file_path: str | None = typer.Option(None, "--query-file-path", "-f", help="Path to JSON search"),
) -> None:
    g = _ctx_global(ctx)
    search_doc = _read_query_object(query_file_path)
    bc = _connect(g)
    _log_info(g, "Search")
    start = time.perf_counter()
    nodes = bc.branch.search_nodes(search_doc)
    print_nodes(g, "Search", nodes, time.perf_counter() - start)


@app.command("find", help="Find nodes with a combined query/search/traverse document (POST .../nodes/find).")
def find(
    ctx: typer.Context,
    query_file_path: str | None = typer.Option(None, "--query-file-path", "-f", help="Path to JSON find document"),
) -> None:
    g = _ctx_global(ctx)
    find_doc = _read_query_object(query_file_path)
    bc = _connect(g)
    _log_info(g, "Find")
    start = time.perf_counter()
    nodes = bc.branch.find_nodes(find_doc)
    print_nodes(g, "Find", nodes, time.perf_counter() - start)


@app.command("traverse", help="Traverse associations from a node (POST .../nodes/{nodeId}/traverse).")
def traverse(
    ctx: typer.Context,
    node_id: str | None = typer.Option(None, "--node-id", help="Node id to traverse from"),
    query_file_path: str | None = typer.Option(None, "--query-file-path", "-f", help="Path to JSON traverse config"),
) -> None:
    g = _ctx_global(ctx)
    start_node = _require_str(node_id, "node id", hint="pass --node-id")
    traverse_doc = _read_query_object(query_file_path)
    bc = _connect(g)
    _log_info(g, "Traverse")
    start = time.perf_counter()
    nodes = bc.branch.traverse(start_node, traverse_doc)
    print_nodes(g, "Traverse", nodes, time.perf_counter() - start)


@app.command("tree", help="Load a tree of nodes from the branch root (POST .../nodes/root/tree).")
def tree(
    ctx: typer.Context,
    query_file_path: str | None = typer.Option(None, "--query-file-path", "-f", help="Path to JSON tree config"),
) -> None:
    g = _ctx_global(ctx)
    tree_config = _read_query_object(query_file_path)
    bc = _connect(g)
    _log_info(g, "Tree")
    start = time.perf_counter()
    out = bc.branch.load_tree(tree_config)
    print_tree(g, "Tree", out, time.perf_counter() - start)


@app.command("graphql", help="Run a GraphQL query against the branch (POST .../graphql).")
def graphql(
    ctx: typer.Context,
    query_file_path: str | None = typer.Option(None, "--query-file-path", "-f", help="Path to GraphQL query text"),
    operation_name: str | None = typer.Option(None, "--operation-name", help="GraphQL operation name"),
) -> None:
    g = _ctx_global(ctx)
    query_text = _read_query_text(query_file_path)
    bc = _connect(g)
    _log_info(g, "graphqlQuery")
    start = time.perf_counter()
    out = bc.branch.graphql_query(query_text, operation_name=operation_name)
    print_object(g, "graphql", out, time.perf_counter() - start)


@app.command("graphql-schema", help="Fetch the branch content model as a GraphQL schema (GET .../graphql/schema).")
def graphql_schema(ctx: typer.Context) -> None:
    g = _ctx_global(ctx)
    bc = _connect(g)
    _log_info(g, "graphql-schema")
    start = time.perf_counter()
    schema = bc.branch.graphql_schema()
    print_graphql_schema(g, "graphql-schema", schema, time.perf_counter() - start)


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        _bootstrap_env()
        result = app(args=argv, prog_name="cloudcms-query", standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.exceptions.Abort:
        _rich_error("aborted")
        return 130
    except click.ClickException as e:
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _rich_error(str(e))
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
