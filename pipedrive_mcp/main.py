"""
Main entry point for the authenticated HTTP gateway.
"""
from __future__ import annotations

import sys

import uvicorn

from .config import load_settings
from .http_app import create_app


def main() -> None:
    """Start the gateway under uvicorn."""
    try:
        settings = load_settings()
        app = create_app(settings)

        print(f"Starting Pipedrive MCP server on http://{settings.host}:{settings.port}")
        print(f"MCP endpoint: http://{settings.host}:{settings.port}/mcp")
        print(f"Admin endpoint: http://{settings.host}:{settings.port}/admin/users")
        print(f"Healthcheck: http://{settings.host}:{settings.port}/health")

        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
            server_header=False,  # Security: Don't expose server version
        )
    except KeyboardInterrupt:
        print("\nServer shutdown requested...")
        sys.exit(0)
    except Exception as e:
        print(f"Failed to start Pipedrive MCP server: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
