from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field

from ..pipedrive_client import PipedriveClient
from .base import ToolArgs, ToolRegistry


class GetOrganizationsArgs(ToolArgs):
    start: Optional[int] = Field(None, description="Pagination start (default: 0)")
    limit: Optional[int] = Field(None, description="Number of items to return (default: 100, max: 500)")
    user_id: Optional[int] = Field(None, description="Filter by user ID")
    filter_id: Optional[int] = Field(None, description="Predefined filter ID")
    first_char: Optional[str] = Field(None, description="Filter by first letter of name")


class OrganizationIdArgs(ToolArgs):
    id: int = Field(..., description="Organization ID")


class SearchOrganizationsArgs(ToolArgs):
    term: str = Field(..., description="Search term")
    fields: Optional[str] = Field(None, description="Comma-separated fields to search in")
    exact_match: Optional[bool] = Field(None, description="Use exact match")
    start: Optional[int] = Field(None, description="Pagination start")
    limit: Optional[int] = Field(None, description="Number of items to return")


def register_organization_tools(registry: ToolRegistry) -> None:
    @registry.tool(
        name="get_organizations",
        description="Get a list of organizations from Pipedrive",
        args=GetOrganizationsArgs,
    )
    async def get_organizations(client: PipedriveClient, args: GetOrganizationsArgs) -> Dict[str, Any]:
        return (await client.get_organizations(**args.params())).to_dict()

    @registry.tool(name="get_organization", description="Get a specific organization by ID", args=OrganizationIdArgs)
    async def get_organization(client: PipedriveClient, args: OrganizationIdArgs) -> Dict[str, Any]:
        return (await client.get_organization(args.id)).to_dict()

    @registry.tool(name="search_organizations", description="Search for organizations", args=SearchOrganizationsArgs)
    async def search_organizations(client: PipedriveClient, args: SearchOrganizationsArgs) -> Dict[str, Any]:
        return (await client.search_organizations(args.term, **args.params("term"))).to_dict()
