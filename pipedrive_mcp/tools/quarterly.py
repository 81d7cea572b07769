"""
Quarter-aware deal tools.

A language model has no reliable notion of "today", so every reply carries
the current date context alongside the numbers.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import Field

from ..date_context import current_date_context, quarter_date_range, quarter_of
from ..models import Deal, Envelope
from ..pipedrive_client import PipedriveClient
from ..token_optimizer import summarize_deal
from .base import ToolArgs, ToolRegistry

# Upper bound of deals pulled per quarter computation (one Pipedrive page)
QUARTER_FETCH_LIMIT = 500


class CurrentQuarterDealsArgs(ToolArgs):
    status: Literal["all_not_deleted", "open", "won", "lost"] = Field(
        "all_not_deleted", description="Filter by deal status (default: all_not_deleted)"
    )
    user_id: Optional[int] = Field(None, description="Filter by specific user/salesperson")
    limit: int = Field(50, description="Max number of deals to return (default: 50)")


class QuarterSummaryArgs(ToolArgs):
    quarter: Literal["Q1", "Q2", "Q3", "Q4", "current"] = Field(
        "current", description="Which quarter to analyze (default: current)"
    )
    year: Optional[int] = Field(None, description="Year for the quarter (default: current year)")
    user_id: Optional[int] = Field(None, description="Filter by specific user (optional)")


class QuarterlyProgressArgs(ToolArgs):
    user_id: Optional[int] = Field(None, description="Filter by specific user (optional)")
    include_forecast: bool = Field(True, description="Include deal probability-based forecasting (default: true)")


def _deal_date(deal: Deal) -> Optional[str]:
    raw = deal.expected_close_date or deal.add_time
    return str(raw)[:10] if raw else None


def deals_in_range(deals: Iterable[Deal], start_date: str, end_date: str) -> List[Deal]:
    """Deals whose expected close date (else add time) falls in [start_date, end_date]."""
    selected = []
    for deal in deals:
        day = _deal_date(deal)
        if day is not None and start_date <= day <= end_date:
            selected.append(deal)
    return selected


def _value(deal: Deal) -> float:
    try:
        return float(deal.value or 0)
    except (TypeError, ValueError):
        return 0.0


def summarize_quarter(deals: List[Deal], stage_probabilities: Optional[Dict[int, float]] = None) -> Dict[str, Any]:
    """Counts by status, total value, won value and probability-weighted open value."""
    stage_probabilities = stage_probabilities or {}
    by_status: Dict[str, int] = {}
    total_value = 0.0
    won_value = 0.0
    weighted_open_value = 0.0
    for deal in deals:
        status = deal.status or "unknown"
        by_status[status] = by_status.get(status, 0) + 1
        value = _value(deal)
        total_value += value
        if status == "won":
            won_value += value
        elif status == "open":
            probability = deal.probability
            if probability is None and deal.stage_id is not None:
                probability = stage_probabilities.get(deal.stage_id)
            weighted_open_value += value * float(probability or 0) / 100.0
    return {
        "deal_count": len(deals),
        "by_status": by_status,
        "total_value": round(total_value, 2),
        "won_value": round(won_value, 2),
        "weighted_open_value": round(weighted_open_value, 2),
    }


async def _stage_probabilities(client: PipedriveClient) -> Dict[int, float]:
    stages = await client.get_stages()
    if not stages.success or not isinstance(stages.data, list):
        return {}
    out: Dict[int, float] = {}
    for stage in stages.data:
        if isinstance(stage, dict) and stage.get("id") is not None and stage.get("deal_probability") is not None:
            out[int(stage["id"])] = float(stage["deal_probability"])
    return out


async def _fetch_quarter_deals(
    client: PipedriveClient,
    start_date: str,
    end_date: str,
    user_id: Optional[int],
    status: str = "all_not_deleted",
) -> Tuple[Envelope, List[Deal]]:
    result = await client.get_deals(status=status, user_id=user_id, limit=QUARTER_FETCH_LIMIT)
    if not result.success:
        return result, []
    raw = result.data if isinstance(result.data, list) else []
    deals = [Deal.from_api(item) for item in raw if isinstance(item, dict)]
    return result, deals_in_range(deals, start_date, end_date)


def _more_available(result: Envelope) -> bool:
    pagination = result.pagination
    return bool(pagination and pagination.more_items_in_collection)


def _with_context(payload: Dict[str, Any], today: date) -> Dict[str, Any]:
    payload.setdefault("additional_data", {})["date_context"] = current_date_context(today)
    return payload


def register_quarterly_tools(registry: ToolRegistry) -> None:
    @registry.tool(
        name="get_current_quarter_deals",
        description=(
            "Get deals for the current quarter with date context "
            "(automatically uses correct quarter based on today's date)"
        ),
        args=CurrentQuarterDealsArgs,
    )
    async def get_current_quarter_deals(client: PipedriveClient, args: CurrentQuarterDealsArgs) -> Dict[str, Any]:
        today = date.today()
        bounds = quarter_date_range(quarter_of(today), today.year)
        result, deals = await _fetch_quarter_deals(
            client, bounds["start_date"], bounds["end_date"], args.user_id, args.status
        )
        if not result.success:
            return _with_context(result.to_dict(), today)
        shown = deals[: max(1, args.limit)]
        return _with_context({
            "success": True,
            "data": [summarize_deal(deal) for deal in shown],
            "meta": {
                "total_count": len(deals),
                "showing_first": len(shown),
                "truncated": len(deals) > len(shown),
                "quarter_range": bounds,
                "more_deals_upstream": _more_available(result),
            },
        }, today)

    async def _quarter_summary(
        client: PipedriveClient,
        quarter: str,
        year: Optional[int],
        user_id: Optional[int],
        today: date,
    ) -> Dict[str, Any]:
        label = quarter_of(today) if quarter == "current" else quarter
        year = year or today.year
        bounds = quarter_date_range(label, year)
        result, deals = await _fetch_quarter_deals(client, bounds["start_date"], bounds["end_date"], user_id)
        if not result.success:
            return result.to_dict()
        probabilities = await _stage_probabilities(client)
        summary = summarize_quarter(deals, probabilities)
        summary.update({
            "quarter": f"{label} {year}",
            "start_date": bounds["start_date"],
            "end_date": bounds["end_date"],
            "more_deals_upstream": _more_available(result),
        })
        return {"success": True, "data": summary}

    @registry.tool(
        name="get_quarter_summary",
        description="Get comprehensive quarterly summary with key metrics and current quarter context",
        args=QuarterSummaryArgs,
    )
    async def get_quarter_summary(client: PipedriveClient, args: QuarterSummaryArgs) -> Dict[str, Any]:
        today = date.today()
        payload = await _quarter_summary(client, args.quarter, args.year, args.user_id, today)
        return _with_context(payload, today)

    @registry.tool(
        name="get_quarterly_progress",
        description="Get progress tracking for current quarter with forecasting data and date awareness",
        args=QuarterlyProgressArgs,
    )
    async def get_quarterly_progress(client: PipedriveClient, args: QuarterlyProgressArgs) -> Dict[str, Any]:
        today = date.today()
        payload = await _quarter_summary(client, "current", None, args.user_id, today)
        if payload.get("success"):
            data = payload["data"]
            start = date.fromisoformat(data["start_date"])
            end = date.fromisoformat(data["end_date"])
            total_days = (end - start).days + 1
            elapsed = (today - start).days + 1
            data["days_elapsed"] = elapsed
            data["days_remaining"] = total_days - elapsed
            data["percent_elapsed"] = round(100.0 * elapsed / total_days, 1)
            if args.include_forecast:
                data["forecast_value"] = round(data["won_value"] + data["weighted_open_value"], 2)
        return _with_context(payload, today)
