from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import Field

from ..pipedrive_client import PipedriveClient
from .base import ToolArgs, ToolRegistry


class GetActivitiesArgs(ToolArgs):
    start: Optional[int] = Field(None, description="Pagination start (default: 0)")
    limit: Optional[int] = Field(None, description="Number of items to return (default: 100, max: 500)")
    user_id: Optional[int] = Field(None, description="Filter by user ID")
    filter_id: Optional[int] = Field(None, description="Predefined filter ID")
    type: Optional[str] = Field(None, description="Filter by activity type")
    done: Optional[Literal[0, 1]] = Field(None, description="Filter by completion status (0: not done, 1: done)")


class ActivityIdArgs(ToolArgs):
    id: int = Field(..., description="Activity ID")


def register_activity_tools(registry: ToolRegistry) -> None:
    @registry.tool(
        name="get_activities",
        description="Get a list of activities from Pipedrive",
        args=GetActivitiesArgs,
    )
    async def get_activities(client: PipedriveClient, args: GetActivitiesArgs) -> Dict[str, Any]:
        return (await client.get_activities(**args.params())).to_dict()

    @registry.tool(name="get_activity", description="Get a specific activity by ID", args=ActivityIdArgs)
    async def get_activity(client: PipedriveClient, args: ActivityIdArgs) -> Dict[str, Any]:
        return (await client.get_activity(args.id)).to_dict()
