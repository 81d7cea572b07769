from __future__ import annotations

import json
import os
import sys
from typing import Any, Dict

import httpx

MCP_URL = os.getenv("MCP_URL", "http://127.0.0.1:8080/mcp")


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: MCP_BEARER_TOKEN=mcp_... python scripts/call_tool.py <tool_name> ['<json-args>']")
        raise SystemExit(1)

    tool_name = sys.argv[1]
    raw_args = sys.argv[2] if len(sys.argv) > 2 else "{}"
    try:
        arguments: Dict[str, Any] = json.loads(raw_args)
    except ValueError as exc:
        print("Failed to parse JSON arguments")
        print(repr(exc))
        raise SystemExit(1)

    token = os.getenv("MCP_BEARER_TOKEN", "")
    response = httpx.post(
        MCP_URL,
        json={"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": tool_name, "arguments": arguments}},
        headers={"Authorization": f"Bearer {token}"},
        timeout=60.0,
    )
    print(f"HTTP {response.status_code} (rate limit remaining: {response.headers.get('x-ratelimit-remaining', '-')})")
    body = response.json()
    if "error" in body:
        print("Tool call failed:")
        print(json.dumps(body["error"], indent=2))
        raise SystemExit(1)
    result = body["result"]
    print("Tool call result (isError=%s):" % result.get("isError"))
    for item in result.get("content", []):
        print(item.get("text"))


if __name__ == "__main__":
    main()
