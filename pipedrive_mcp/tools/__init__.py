"""
Pipedrive tool catalog.

Each family module exposes a `register_*_tools(registry)` function; the
registry is the name -> ToolSpec dispatch table the dispatcher and the stdio
server share.
"""
from __future__ import annotations

from .activities import register_activity_tools
from .base import NoArgs, ToolArgs, ToolRegistry, ToolSpec, build_input_schema
from .deals import register_deal_tools
from .notes import register_note_tools
from .optimized import register_optimized_tools
from .organizations import register_organization_tools
from .persons import register_person_tools
from .pipelines import register_pipeline_tools
from .quarterly import register_quarterly_tools
from .search import register_search_tools
from .users import register_user_tools

__all__ = [
    "NoArgs",
    "ToolArgs",
    "ToolRegistry",
    "ToolSpec",
    "build_input_schema",
    "build_registry",
]


def build_registry() -> ToolRegistry:
    registry = ToolRegistry()
    register_deal_tools(registry)
    register_person_tools(registry)
    register_organization_tools(registry)
    register_pipeline_tools(registry)
    register_activity_tools(registry)
    register_note_tools(registry)
    register_search_tools(registry)
    register_user_tools(registry)
    register_optimized_tools(registry)
    register_quarterly_tools(registry)
    return registry
