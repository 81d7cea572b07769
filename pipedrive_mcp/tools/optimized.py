"""
Token-optimized variants of the listing tools.

These fetch the same upstream resources but return field projections and a
capped item count, so a language-model client can page through large
accounts without blowing its context.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import Field

from ..models import Activity, Deal, Envelope, Entity
from ..pipedrive_client import PipedriveClient
from ..token_optimizer import optimize_response, summarize_activity, summarize_deal
from .base import ToolArgs, ToolRegistry
from .deals import DealStatus

SUMMARY_MAX_ITEMS = 20
SUMMARY_LIMIT_CAP = 50
SEARCH_MAX_ITEMS = 10
SEARCH_LIMIT_CAP = 20
OVERVIEW_RECENT_ITEMS = 5


class SummaryListArgs(ToolArgs):
    start: int = Field(0, description="Pagination start (default: 0)")
    limit: int = Field(20, description="Number of items to return (default: 20, max: 50 for summary)")
    user_id: Optional[int] = Field(None, description="Filter by user ID")

    def capped(self) -> Dict[str, Any]:
        params = self.params()
        params["limit"] = max(1, min(self.limit, SUMMARY_LIMIT_CAP))
        return params


class DealsSummaryArgs(SummaryListArgs):
    status: Optional[DealStatus] = Field(None, description="Filter by deal status")


class ActivitiesSummaryArgs(SummaryListArgs):
    done: Optional[bool] = Field(None, description="Filter by completion status")


class OverviewArgs(ToolArgs):
    include_recent_deals: bool = Field(True, description="Include 5 most recent deals (default: true)")
    include_recent_activities: bool = Field(True, description="Include 5 most recent activities (default: true)")
    user_id: Optional[int] = Field(None, description="Filter by specific user (optional)")


class SearchSummarizedArgs(ToolArgs):
    term: str = Field(..., description="Search term")
    item_types: Optional[str] = Field(
        None,
        description="Comma-separated list of item types to search (deal,person,organization,product)",
    )
    limit: int = Field(10, description="Number of results to return (default: 10, max: 20 for summary)")


def _recent(
    envelope: Envelope,
    summarizer: Callable[[Any], Dict[str, Any]],
    entity_type: Type[Entity],
) -> List[Dict[str, Any]]:
    items = envelope.data if isinstance(envelope.data, list) else []
    return [summarizer(entity_type.from_api(item)) for item in items[:OVERVIEW_RECENT_ITEMS] if isinstance(item, dict)]


def register_optimized_tools(registry: ToolRegistry) -> None:
    @registry.tool(
        name="get_deals_summary",
        description="Get a summarized list of deals (optimized for token usage) - shows essential fields only",
        args=DealsSummaryArgs,
    )
    async def get_deals_summary(client: PipedriveClient, args: DealsSummaryArgs) -> Dict[str, Any]:
        result = await client.get_deals(**args.capped())
        return optimize_response(result, "deals", max_items=SUMMARY_MAX_ITEMS)

    @registry.tool(
        name="get_persons_summary",
        description="Get a summarized list of persons (optimized for token usage) - shows essential fields only",
        args=SummaryListArgs,
    )
    async def get_persons_summary(client: PipedriveClient, args: SummaryListArgs) -> Dict[str, Any]:
        result = await client.get_persons(**args.capped())
        return optimize_response(result, "persons", max_items=SUMMARY_MAX_ITEMS)

    @registry.tool(
        name="get_organizations_summary",
        description="Get a summarized list of organizations (optimized for token usage) - shows essential fields only",
        args=SummaryListArgs,
    )
    async def get_organizations_summary(client: PipedriveClient, args: SummaryListArgs) -> Dict[str, Any]:
        result = await client.get_organizations(**args.capped())
        return optimize_response(result, "organizations", max_items=SUMMARY_MAX_ITEMS)

    @registry.tool(
        name="get_activities_summary",
        description="Get a summarized list of activities (optimized for token usage) - shows essential fields only",
        args=ActivitiesSummaryArgs,
    )
    async def get_activities_summary(client: PipedriveClient, args: ActivitiesSummaryArgs) -> Dict[str, Any]:
        result = await client.get_activities(**args.capped())
        return optimize_response(result, "activities", max_items=SUMMARY_MAX_ITEMS)

    @registry.tool(
        name="get_overview",
        description="Get a high-level overview with key metrics and recent items (very token-efficient)",
        args=OverviewArgs,
    )
    async def get_overview(client: PipedriveClient, args: OverviewArgs) -> Dict[str, Any]:
        pipelines = await client.get_pipelines()
        if not pipelines.success:
            return pipelines.to_dict()
        pipeline_items = pipelines.data if isinstance(pipelines.data, list) else []
        overview: Dict[str, Any] = {
            "pipelines_count": len(pipeline_items),
            "pipelines": [
                {"id": p.get("id"), "name": p.get("name")} for p in pipeline_items if isinstance(p, dict)
            ],
        }

        if args.include_recent_deals:
            deals = await client.get_deals(
                user_id=args.user_id,
                limit=OVERVIEW_RECENT_ITEMS,
                sort="add_time DESC",
            )
            if not deals.success:
                return deals.to_dict()
            overview["recent_deals"] = _recent(deals, summarize_deal, Deal)
            pagination = deals.pagination
            overview["more_deals_available"] = bool(pagination and pagination.more_items_in_collection)

        if args.include_recent_activities:
            activities = await client.get_activities(
                user_id=args.user_id,
                limit=OVERVIEW_RECENT_ITEMS,
            )
            if not activities.success:
                return activities.to_dict()
            overview["recent_activities"] = _recent(activities, summarize_activity, Activity)

        return {
            "success": True,
            "data": overview,
            "meta": {
                "optimization_applied": True,
                "optimization_reason": "Removed heavy fields to reduce token usage",
            },
        }

    @registry.tool(
        name="search_summarized",
        description="Search across all Pipedrive items with summarized results (token-optimized)",
        args=SearchSummarizedArgs,
    )
    async def search_summarized(client: PipedriveClient, args: SearchSummarizedArgs) -> Dict[str, Any]:
        result = await client.search_items(
            args.term,
            item_types=args.item_types,
            limit=max(1, min(args.limit, SEARCH_LIMIT_CAP)),
        )
        # itemSearch nests hits under data.items
        if result.success and isinstance(result.data, dict):
            result = Envelope(
                success=True,
                data=result.data.get("items") or [],
                additional_data=result.additional_data,
            )
        return optimize_response(result, "search", max_items=SEARCH_MAX_ITEMS)
