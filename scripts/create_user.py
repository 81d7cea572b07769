from __future__ import annotations

import json
import os
import sys

import httpx

BASE_URL = os.getenv("MCP_BASE_URL", "http://127.0.0.1:8080")


def main() -> None:
    if len(sys.argv) != 4:
        print("Usage: MCP_ADMIN_TOKEN=... python scripts/create_user.py <name> <email> <pipedrive_api_token>")
        raise SystemExit(1)

    name, email, api_token = sys.argv[1:4]
    admin_token = os.getenv("MCP_ADMIN_TOKEN", "")
    response = httpx.post(
        f"{BASE_URL}/admin/users",
        json={"name": name, "email": email, "api_token": api_token},
        headers={"Authorization": f"Bearer {admin_token}"},
        timeout=10.0,
    )
    print(f"HTTP {response.status_code}")
    print(json.dumps(response.json(), indent=2))
    if response.status_code != 200:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
