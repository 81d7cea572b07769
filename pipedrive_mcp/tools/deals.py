from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import Field

from ..date_context import current_date_context
from ..pipedrive_client import PipedriveClient
from .base import ToolArgs, ToolRegistry

DealStatus = Literal["all_not_deleted", "open", "won", "lost", "deleted"]


class GetDealsArgs(ToolArgs):
    start: Optional[int] = Field(None, description="Pagination start (default: 0)")
    limit: Optional[int] = Field(None, description="Number of items to return (default: 100, max: 500)")
    status: Optional[DealStatus] = Field(None, description="Filter by deal status")
    filter_id: Optional[int] = Field(None, description="Predefined filter ID")
    user_id: Optional[int] = Field(None, description="Filter by user ID")
    person_id: Optional[int] = Field(None, description="Filter by person ID")
    org_id: Optional[int] = Field(None, description="Filter by organization ID")


class DealIdArgs(ToolArgs):
    id: int = Field(..., description="Deal ID")


class SearchDealsArgs(ToolArgs):
    term: str = Field(..., description="Search term")
    fields: Optional[str] = Field(None, description="Comma-separated fields to search in")
    exact_match: Optional[bool] = Field(None, description="Use exact match")
    person_id: Optional[int] = Field(None, description="Filter by person ID")
    org_id: Optional[int] = Field(None, description="Filter by organization ID")
    start: Optional[int] = Field(None, description="Pagination start")
    limit: Optional[int] = Field(None, description="Number of items to return")


def register_deal_tools(registry: ToolRegistry) -> None:
    @registry.tool(name="get_deals", description="Get a list of deals from Pipedrive", args=GetDealsArgs)
    async def get_deals(client: PipedriveClient, args: GetDealsArgs) -> Dict[str, Any]:
        result = await client.get_deals(**args.params())
        return result.with_additional("date_context", current_date_context()).to_dict()

    @registry.tool(name="get_deal", description="Get a specific deal by ID", args=DealIdArgs)
    async def get_deal(client: PipedriveClient, args: DealIdArgs) -> Dict[str, Any]:
        return (await client.get_deal(args.id)).to_dict()

    @registry.tool(name="search_deals", description="Search for deals", args=SearchDealsArgs)
    async def search_deals(client: PipedriveClient, args: SearchDealsArgs) -> Dict[str, Any]:
        return (await client.search_deals(args.term, **args.params("term"))).to_dict()
