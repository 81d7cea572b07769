from __future__ import annotations

import os

import httpx

MCP_URL = os.getenv("MCP_URL", "http://127.0.0.1:8080/mcp")


def main() -> None:
    token = os.getenv("MCP_BEARER_TOKEN", "")
    response = httpx.post(
        MCP_URL,
        json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
        headers={"Authorization": f"Bearer {token}"},
        timeout=10.0,
    )
    response.raise_for_status()
    tools = response.json()["result"]["tools"]
    print("Available tools:")
    for tool in tools:
        print(f"- {tool['name']}: {tool['description']}")


if __name__ == "__main__":
    main()
