"""
Static prompt catalog.

Caller arguments are spliced into the prompt text verbatim (no escaping):
whatever the caller sends ends up in the message the client model reads.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from mcp.types import GetPromptResult, Prompt, PromptArgument, PromptMessage, TextContent

from .errors import PromptNotFoundError


@dataclass(frozen=True)
class PromptSpec:
    name: str
    description: str
    render: Callable[[Mapping[str, Any]], str]
    arguments: List[PromptArgument] = field(default_factory=list)

    def to_prompt(self) -> Prompt:
        return Prompt(name=self.name, description=self.description, arguments=list(self.arguments))


def _arg(args: Mapping[str, Any], name: str) -> str:
    value = args.get(name)
    return "" if value is None else str(value)


PROMPTS: Dict[str, PromptSpec] = {
    spec.name: spec
    for spec in (
        PromptSpec(
            name="list_all_deals",
            description="List all deals with their details",
            render=lambda args: "List all deals with their current status, value, and associated contacts",
        ),
        PromptSpec(
            name="search_person",
            description="Search for a person by name",
            arguments=[PromptArgument(name="name", description="Name of the person to search for", required=True)],
            render=lambda args: (
                f'Search for a person named "{_arg(args, "name")}" '
                "and show their contact information and associated deals"
            ),
        ),
        PromptSpec(
            name="get_organization_deals",
            description="Get all deals for a specific organization",
            arguments=[PromptArgument(name="org_id", description="Organization ID", required=True)],
            render=lambda args: (
                f"Get all deals associated with organization ID {_arg(args, 'org_id')} "
                "including their status and value"
            ),
        ),
        PromptSpec(
            name="pipeline_overview",
            description="Get overview of all pipelines and their stages",
            render=lambda args: "Provide an overview of all pipelines and their stages, including deal counts per stage",
        ),
    )
}


def list_prompts() -> List[Prompt]:
    return [spec.to_prompt() for spec in PROMPTS.values()]


def get_prompt(name: Optional[str], arguments: Optional[Mapping[str, Any]] = None) -> GetPromptResult:
    spec = PROMPTS.get(name) if isinstance(name, str) else None
    if spec is None:
        raise PromptNotFoundError(f"Unknown prompt: {name}")
    text = spec.render(arguments or {})
    return GetPromptResult(
        description=spec.description,
        messages=[PromptMessage(role="user", content=TextContent(type="text", text=text))],
    )
