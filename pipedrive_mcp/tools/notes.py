from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import Field

from ..pipedrive_client import PipedriveClient
from .base import ToolArgs, ToolRegistry

Flag = Literal[0, 1]


class GetNotesArgs(ToolArgs):
    start: Optional[int] = Field(None, description="Pagination start (default: 0)")
    limit: Optional[int] = Field(None, description="Number of items to return (default: 100, max: 500)")
    user_id: Optional[int] = Field(None, description="Filter by user ID")
    deal_id: Optional[int] = Field(None, description="Filter by deal ID")
    person_id: Optional[int] = Field(None, description="Filter by person ID")
    org_id: Optional[int] = Field(None, description="Filter by organization ID")
    pinned_to_deal_flag: Optional[Flag] = Field(None, description="Filter by pinned to deal flag")
    pinned_to_person_flag: Optional[Flag] = Field(None, description="Filter by pinned to person flag")
    pinned_to_organization_flag: Optional[Flag] = Field(None, description="Filter by pinned to organization flag")


class NoteIdArgs(ToolArgs):
    id: int = Field(..., description="Note ID")


def register_note_tools(registry: ToolRegistry) -> None:
    @registry.tool(name="get_notes", description="Get a list of notes from Pipedrive", args=GetNotesArgs)
    async def get_notes(client: PipedriveClient, args: GetNotesArgs) -> Dict[str, Any]:
        return (await client.get_notes(**args.params())).to_dict()

    @registry.tool(name="get_note", description="Get a specific note by ID", args=NoteIdArgs)
    async def get_note(client: PipedriveClient, args: NoteIdArgs) -> Dict[str, Any]:
        return (await client.get_note(args.id)).to_dict()
