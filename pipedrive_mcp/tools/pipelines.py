from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field

from ..pipedrive_client import PipedriveClient
from .base import NoArgs, ToolArgs, ToolRegistry


class PipelineIdArgs(ToolArgs):
    id: int = Field(..., description="Pipeline ID")


class GetStagesArgs(ToolArgs):
    pipeline_id: Optional[int] = Field(None, description="Filter stages by pipeline ID")


class StageIdArgs(ToolArgs):
    id: int = Field(..., description="Stage ID")


def register_pipeline_tools(registry: ToolRegistry) -> None:
    @registry.tool(name="get_pipelines", description="Get all pipelines")
    async def get_pipelines(client: PipedriveClient, args: NoArgs) -> Dict[str, Any]:
        return (await client.get_pipelines()).to_dict()

    @registry.tool(name="get_pipeline", description="Get a specific pipeline by ID", args=PipelineIdArgs)
    async def get_pipeline(client: PipedriveClient, args: PipelineIdArgs) -> Dict[str, Any]:
        return (await client.get_pipeline(args.id)).to_dict()

    @registry.tool(name="get_stages", description="Get pipeline stages", args=GetStagesArgs)
    async def get_stages(client: PipedriveClient, args: GetStagesArgs) -> Dict[str, Any]:
        return (await client.get_stages(args.pipeline_id)).to_dict()

    @registry.tool(name="get_stage", description="Get a specific stage by ID", args=StageIdArgs)
    async def get_stage(client: PipedriveClient, args: StageIdArgs) -> Dict[str, Any]:
        return (await client.get_stage(args.id)).to_dict()
