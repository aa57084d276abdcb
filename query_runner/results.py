from __future__ import annotations

import copy
import sys
from typing import Any

from .cli_shared import GlobalOpts, _log_info, _print_json

_PREVIEW_SIZES = (32, 64, 128, 256)


def _attachment_links(node_id: str, attachment_id: str, attachment: dict[str, Any]) -> dict[str, Any]:
    out = copy.deepcopy(attachment)
    out["url"] = f"/static/node/{node_id}/{attachment_id}"
    for size in _PREVIEW_SIZES:
        out[f"preview{size}"] = (
            f"/static/node/{node_id}/preview{size}/?attachment={attachment_id}&size={size}"
        )
    return out


def enhance_node(node: dict[str, Any]) -> dict[str, Any]:
    """Flatten a node's path and attachment metadata for display.

    Adds ``_filePath`` from the first entry of ``_paths`` and an attachments
    map with download and preview links. Nodes without a ``_qname`` are
    returned as-is.
    """
    if not isinstance(node, dict) or not node.get("_qname"):
        return node
    out = dict(node)

    paths = out.pop("_paths", None)
    if isinstance(paths, dict) and paths:
        out["_filePath"] = next(iter(paths.values()))

    system = out.get("_system") if isinstance(out.get("_system"), dict) else {}
    raw_attachments = system.get("attachments") if isinstance(system.get("attachments"), dict) else {}
    node_id = str(out.get("_doc") or "")
    attachments = {
        attachment_id: _attachment_links(node_id, attachment_id, attachment)
        for attachment_id, attachment in raw_attachments.items()
        if isinstance(attachment, dict)
    }
    if "attachments" not in out:
        out["attachments"] = attachments
    elif "_attachments" not in out:
        out["_attachments"] = attachments
    return out


def _log_duration(g: GlobalOpts, label: str, duration_seconds: float | None) -> None:
    if duration_seconds is not None:
        _log_info(g, f"{label} completed in {duration_seconds:.6f} seconds")


def print_nodes(g: GlobalOpts, label: str, nodes: list[dict[str, Any]], duration_seconds: float | None = None) -> None:
    _log_duration(g, label, duration_seconds)
    _log_info(g, f"Node count {len(nodes)}")
    if g.print_results:
        _print_json([enhance_node(n) for n in nodes], indent=4)


def print_tree(g: GlobalOpts, label: str, tree: dict[str, Any], duration_seconds: float | None = None) -> None:
    _log_duration(g, label, duration_seconds)
    children = tree.get("children") if isinstance(tree, dict) else None
    _log_info(g, f"Node count {len(children) if isinstance(children, list) else '?'}")
    if g.print_results:
        _print_json(tree, indent=4)


def print_object(g: GlobalOpts, label: str, response: Any, duration_seconds: float | None = None) -> None:
    _log_duration(g, label, duration_seconds)
    if g.print_results:
        _print_json(response, indent=2)


def print_graphql_schema(g: GlobalOpts, label: str, schema: str, duration_seconds: float | None = None) -> None:
    _log_duration(g, label, duration_seconds)
    sys.stdout.write("\n" + schema.rstrip("\n") + "\n")
