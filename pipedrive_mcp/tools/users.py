from __future__ import annotations

from typing import Any, Dict

from pydantic import Field

from ..pipedrive_client import PipedriveClient
from .base import NoArgs, ToolArgs, ToolRegistry


class GetUsersArgs(ToolArgs):
    start: int = Field(0, description="Pagination start (default: 0)")
    limit: int = Field(100, description="Number of items to return (default: 100, max: 500)")


class UserIdArgs(ToolArgs):
    id: int = Field(..., description="The ID of the user to retrieve")


def register_user_tools(registry: ToolRegistry) -> None:
    @registry.tool(name="get_users", description="Get all users (salespersons) from Pipedrive", args=GetUsersArgs)
    async def get_users(client: PipedriveClient, args: GetUsersArgs) -> Dict[str, Any]:
        return (await client.get_users(start=args.start, limit=args.limit)).to_dict()

    @registry.tool(name="get_user", description="Get details of a specific user by ID", args=UserIdArgs)
    async def get_user(client: PipedriveClient, args: UserIdArgs) -> Dict[str, Any]:
        return (await client.get_user(args.id)).to_dict()

    @registry.tool(name="get_current_user", description="Get details of the current authenticated user")
    async def get_current_user(client: PipedriveClient, args: NoArgs) -> Dict[str, Any]:
        return (await client.get_current_user()).to_dict()
