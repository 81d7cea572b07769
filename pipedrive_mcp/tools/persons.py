from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field

from ..pipedrive_client import PipedriveClient
from .base import ToolArgs, ToolRegistry


class GetPersonsArgs(ToolArgs):
    start: Optional[int] = Field(None, description="Pagination start (default: 0)")
    limit: Optional[int] = Field(None, description="Number of items to return (default: 100, max: 500)")
    user_id: Optional[int] = Field(None, description="Filter by user ID")
    filter_id: Optional[int] = Field(None, description="Predefined filter ID")
    first_char: Optional[str] = Field(None, description="Filter by first letter of name")


class PersonIdArgs(ToolArgs):
    id: int = Field(..., description="Person ID")


class SearchPersonsArgs(ToolArgs):
    term: str = Field(..., description="Search term")
    fields: Optional[str] = Field(None, description="Comma-separated fields to search in")
    exact_match: Optional[bool] = Field(None, description="Use exact match")
    org_id: Optional[int] = Field(None, description="Filter by organization ID")
    start: Optional[int] = Field(None, description="Pagination start")
    limit: Optional[int] = Field(None, description="Number of items to return")


def register_person_tools(registry: ToolRegistry) -> None:
    @registry.tool(name="get_persons", description="Get a list of persons from Pipedrive", args=GetPersonsArgs)
    async def get_persons(client: PipedriveClient, args: GetPersonsArgs) -> Dict[str, Any]:
        return (await client.get_persons(**args.params())).to_dict()

    @registry.tool(name="get_person", description="Get a specific person by ID", args=PersonIdArgs)
    async def get_person(client: PipedriveClient, args: PersonIdArgs) -> Dict[str, Any]:
        return (await client.get_person(args.id)).to_dict()

    @registry.tool(name="search_persons", description="Search for persons", args=SearchPersonsArgs)
    async def search_persons(client: PipedriveClient, args: SearchPersonsArgs) -> Dict[str, Any]:
        return (await client.search_persons(args.term, **args.params("term"))).to_dict()
