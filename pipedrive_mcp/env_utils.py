"""
Environment helpers: production detection and typed env lookups.
"""
from __future__ import annotations

import os
from typing import Mapping, Optional

_PRODUCTION_VARS = ("ENVIRONMENT", "APP_ENV", "NODE_ENV")


def is_production_env(environ: Optional[Mapping[str, str]] = None) -> bool:
    """
    True if any of ENVIRONMENT / APP_ENV / NODE_ENV equals "production"
    (case-insensitive, whitespace stripped).
    """
    env = os.environ if environ is None else environ
    return any(env.get(name, "").strip().lower() == "production" for name in _PRODUCTION_VARS)


def env_str(name: str, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Return a stripped env value, or None when unset or blank."""
    env = os.environ if environ is None else environ
    value = env.get(name, "").strip()
    return value or None


def env_int(name: str, environ: Optional[Mapping[str, str]] = None) -> Optional[int]:
    value = env_str(name, environ)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {value!r}")
