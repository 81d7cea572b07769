from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field

from ..pipedrive_client import PipedriveClient
from .base import ToolArgs, ToolRegistry


class SearchItemsArgs(ToolArgs):
    term: str = Field(..., description="Search term")
    item_types: Optional[str] = Field(
        None,
        description="Comma-separated item types to search (deal, person, organization, product, lead, file)",
    )
    fields: Optional[str] = Field(None, description="Comma-separated fields to search in")
    search_for_related_items: Optional[bool] = Field(None, description="Include related items in search")
    exact_match: Optional[bool] = Field(None, description="Use exact match")
    include_fields: Optional[str] = Field(None, description="Comma-separated fields to include in results")
    start: Optional[int] = Field(None, description="Pagination start")
    limit: Optional[int] = Field(None, description="Number of items to return")


def register_search_tools(registry: ToolRegistry) -> None:
    @registry.tool(
        name="search_items",
        description="Search across multiple item types in Pipedrive",
        args=SearchItemsArgs,
    )
    async def search_items(client: PipedriveClient, args: SearchItemsArgs) -> Dict[str, Any]:
        return (await client.search_items(args.term, **args.params("term"))).to_dict()
