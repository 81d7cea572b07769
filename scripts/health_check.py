from __future__ import annotations

import os

import httpx

BASE_URL = os.getenv("MCP_BASE_URL", "http://127.0.0.1:8080")


def main() -> None:
    print(f"Checking Pipedrive MCP server at {BASE_URL}...")
    health = httpx.get(f"{BASE_URL}/health", timeout=5.0)
    print(f"/health -> {health.status_code} {health.json()}")

    token = os.getenv("MCP_BEARER_TOKEN", "").strip()
    if not token:
        print("MCP_BEARER_TOKEN not set, skipping authenticated checks")
        return

    headers = {"Authorization": f"Bearer {token}"}
    init = httpx.post(
        f"{BASE_URL}/mcp",
        json={"jsonrpc": "2.0", "id": "health-check", "method": "initialize",
              "params": {"protocolVersion": "2025-06-18"}},
        headers=headers,
        timeout=10.0,
    )
    print(f"initialize -> {init.status_code} {init.json().get('result', init.json().get('error'))}")

    try:
        call = httpx.post(
            f"{BASE_URL}/mcp",
            json={"jsonrpc": "2.0", "id": "health-check", "method": "tools/call",
                  "params": {"name": "get_current_user", "arguments": {}}},
            headers=headers,
            timeout=30.0,
        )
        result = call.json().get("result", {})
        print("get_current_user OK" if not result.get("isError") else "get_current_user FAILED")
        for item in result.get("content", []):
            print(item.get("text"))
    except httpx.HTTPError as exc:
        print("get_current_user FAILED")
        print(repr(exc))


if __name__ == "__main__":
    main()
