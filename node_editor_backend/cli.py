#!/usr/bin/env python3
"""Node editor CLI - drives a running node editor backend over HTTP."""

import argparse
import json
import os
import sys

import httpx

from .config import get_api_base


def _json_out(data):
    print(json.dumps(data))
    sys.exit(0)


def _client() -> httpx.Client:
    return httpx.Client(base_url=get_api_base(), timeout=30.0)


def _api_request(method, endpoint, data=None, params=None, user=None):
    """Make a request to the node editor backend."""
    headers = {"X-User-Id": user} if user else {}
    if params:
        params = {k: v for k, v in params.items() if v is not None}

    try:
        with _client() as client:
            response = client.request(method, endpoint, json=data, params=params, headers=headers)
    except httpx.RequestError as e:
        _json_out({"status": "error", "error": f"Connection failed: {e}. Is the node editor backend running?"})

    if response.is_error:
        try:
            detail = response.json().get("detail", "Unknown error")
            _json_out({"status": "error", "error": f"API error: {detail}"})
        except json.JSONDecodeError:
            _json_out({"status": "error", "error": f"API error ({response.status_code}): {response.text}"})
    return response.json()


def _parse_values(value):
    """Parse a JSON object of field values, or return an empty dict."""
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        _json_out({"status": "error", "error": f"--values must be a JSON object, got: {value}"})
    if not isinstance(parsed, dict):
        _json_out({"status": "error", "error": "--values must be a JSON object"})
    return parsed


# ── Core ─────────────────────────────────────────────────────────────────────

def cmd_health(args):
    _json_out(_api_request("GET", "/health"))


def cmd_get_current(args):
    _json_out(_api_request("GET", "/editor"))


def cmd_list_graphs(args):
    _json_out(_api_request("GET", "/graphs", user=args.user))


def cmd_open(args):
    _json_out(_api_request("POST", "/editor/open", data={"graph_id": args.graph_id}, user=args.user))


def cmd_new(args):
    _json_out(_api_request("POST", "/editor/new", user=args.user))


def cmd_save(args):
    _json_out(_api_request("POST", "/editor/save", user=args.user))


def cmd_delete_graph(args):
    _json_out(_api_request("DELETE", f"/graphs/{args.graph_id}", user=args.user))


# ── Nodes ────────────────────────────────────────────────────────────────────

def cmd_add_node(args):
    _json_out(_api_request("POST", "/nodes", data={
        "type_name": args.type_name,
        "name": args.name or "",
        "x": args.x,
        "y": args.y,
        "values": _parse_values(args.values),
    }))


def cmd_delete_node(args):
    if args.node_id:
        _json_out(_api_request("DELETE", f"/nodes/{args.node_id}"))
    _json_out(_api_request("DELETE", "/nodes", params={"name": args.name}))


# ── Connections & Viewport ───────────────────────────────────────────────────

def cmd_connect(args):
    started = _api_request("POST", "/connections/start", data={"from_id": args.from_node})
    if args.to_node not in started.get("candidates", []):
        # Still finish the gesture so highlights are cleared
        _api_request("POST", "/connections/finish", data={"from_id": args.from_node})
        _json_out({"success": False, "connected": False,
                   "error": f"{args.to_node} is not a valid target for {args.from_node}"})
    _json_out(_api_request("POST", "/connections/finish", data={
        "from_id": args.from_node,
        "to_id": args.to_node,
    }))


def cmd_zoom(args):
    delta_y = -1 if args.direction == "in" else 1
    _json_out(_api_request("POST", "/viewport/zoom", data={"delta_y": delta_y}))


# ── Analysis ─────────────────────────────────────────────────────────────────

def cmd_validate(args):
    _json_out(_api_request("GET", "/editor/validate"))


# ── Main ─────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Node editor CLI")
    parser.add_argument("--user", default=os.environ.get("NODE_EDITOR_USER", "local"),
                        help="User id sent as X-User-Id")
    sub = parser.add_subparsers(dest="command", required=True)

    # Core
    sub.add_parser("health")
    sub.add_parser("get-current")
    sub.add_parser("list-graphs")

    p = sub.add_parser("open")
    p.add_argument("--graph-id", required=True)

    sub.add_parser("new")
    sub.add_parser("save")

    p = sub.add_parser("delete-graph")
    p.add_argument("--graph-id", required=True)

    # Nodes
    p = sub.add_parser("add-node")
    p.add_argument("--type-name", required=True)
    p.add_argument("--name", default=None)
    p.add_argument("--x", type=float, default=0)
    p.add_argument("--y", type=float, default=0)
    p.add_argument("--values", default=None, help="JSON object keyed by field id or name")

    p = sub.add_parser("delete-node")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--node-id")
    group.add_argument("--name")

    # Connections & viewport
    p = sub.add_parser("connect")
    p.add_argument("--from-node", required=True)
    p.add_argument("--to-node", required=True)

    p = sub.add_parser("zoom")
    p.add_argument("direction", choices=["in", "out"])

    # Analysis
    sub.add_parser("validate")

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    cmd_map = {
        "health": cmd_health,
        "get-current": cmd_get_current,
        "list-graphs": cmd_list_graphs,
        "open": cmd_open,
        "new": cmd_new,
        "save": cmd_save,
        "delete-graph": cmd_delete_graph,
        "add-node": cmd_add_node,
        "delete-node": cmd_delete_node,
        "connect": cmd_connect,
        "zoom": cmd_zoom,
        "validate": cmd_validate,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
