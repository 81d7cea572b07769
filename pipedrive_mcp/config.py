from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .env_utils import env_int, env_str

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "server.yaml"
DEFAULT_PIPEDRIVE_BASE_URL = "https://api.pipedrive.com/v1"


def load_config(path: Path, *, required: bool = True) -> Dict[str, Any]:
    if not path.exists():
        if required:
            raise FileNotFoundError(f"Gateway config not found at {path}")
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError("Config root must be a mapping")
    return data


@dataclass
class UpstreamSettings:
    base_url: str = DEFAULT_PIPEDRIVE_BASE_URL
    connect_timeout: float = 5.0
    read_timeout: float = 30.0
    write_timeout: float = 10.0
    pool_timeout: float = 5.0
    max_connections: int = 100
    max_keepalive_connections: int = 20


@dataclass
class RateLimitSettings:
    max_requests: int = 100
    window_seconds: float = 60.0
    sweep_interval_seconds: float = 300.0


@dataclass
class GatewaySettings:
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"
    admin_token: Optional[str] = None
    audit_log_path: Optional[str] = None
    max_response_tokens: int = 150_000
    upstream: UpstreamSettings = field(default_factory=UpstreamSettings)
    rate_limits: RateLimitSettings = field(default_factory=RateLimitSettings)
    # Preloaded principals: dicts with bearer_token, api_token, and optional id/name/email
    users: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "GatewaySettings":
        """
        Build settings from a parsed YAML mapping, then overlay environment
        variables. Env always wins over the file.
        """
        env = os.environ if environ is None else environ
        server_cfg = config.get("server", {}) or {}
        upstream_cfg = config.get("upstream", {}) or {}
        rate_cfg = config.get("rate_limits", {}) or {}
        security_cfg = config.get("security", {}) or {}

        upstream = UpstreamSettings(
            base_url=str(env_str("PIPEDRIVE_BASE_URL", env) or upstream_cfg.get("base_url", DEFAULT_PIPEDRIVE_BASE_URL)).rstrip("/"),
            connect_timeout=float(upstream_cfg.get("connect_timeout", 5.0)),
            read_timeout=float(upstream_cfg.get("read_timeout", 30.0)),
            write_timeout=float(upstream_cfg.get("write_timeout", 10.0)),
            pool_timeout=float(upstream_cfg.get("pool_timeout", 5.0)),
            max_connections=int(upstream_cfg.get("max_connections", 100)),
            max_keepalive_connections=int(upstream_cfg.get("max_keepalive_connections", 20)),
        )

        max_requests = env_int("RATE_LIMIT_MAX_REQUESTS", env)
        window_seconds = env_int("RATE_LIMIT_WINDOW_SECONDS", env)
        rate_limits = RateLimitSettings(
            max_requests=max_requests if max_requests is not None else int(rate_cfg.get("max_requests", 100)),
            window_seconds=float(window_seconds if window_seconds is not None else rate_cfg.get("window_seconds", 60)),
            sweep_interval_seconds=float(rate_cfg.get("sweep_interval_seconds", 300)),
        )

        port = env_int("MCP_SERVER_PORT", env)
        users = config.get("users", []) or []
        if not isinstance(users, list):
            raise ValueError("Config 'users' must be a list")

        return cls(
            host=env_str("MCP_SERVER_HOST", env) or str(server_cfg.get("host", "127.0.0.1")),
            port=port if port is not None else int(server_cfg.get("port", 8080)),
            log_level=(env_str("LOG_LEVEL", env) or str(server_cfg.get("log_level", "INFO"))).upper(),
            admin_token=env_str("MCP_ADMIN_TOKEN", env) or security_cfg.get("admin_token") or None,
            audit_log_path=env_str("MCP_AUDIT_LOG", env) or security_cfg.get("audit_log_path") or None,
            max_response_tokens=int(server_cfg.get("max_response_tokens", 150_000)),
            upstream=upstream,
            rate_limits=rate_limits,
            users=[dict(u) for u in users],
        )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> GatewaySettings:
    """
    Load settings from MCP_SERVER_CONFIG (must exist when set) or the bundled
    default path (optional), overlaid with environment variables.
    """
    env = os.environ if environ is None else environ
    explicit = env_str("MCP_SERVER_CONFIG", env)
    if explicit:
        config = load_config(Path(explicit), required=True)
    else:
        config = load_config(DEFAULT_CONFIG_PATH, required=False)
    return GatewaySettings.from_config(config, env)
