from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

QUARTERS = ("Q1", "Q2", "Q3", "Q4")
_QUARTER_BOUNDS = {
    "Q1": ("01-01", "03-31"),
    "Q2": ("04-01", "06-30"),
    "Q3": ("07-01", "09-30"),
    "Q4": ("10-01", "12-31"),
}


def quarter_of(day: date) -> str:
    return QUARTERS[(day.month - 1) // 3]


def quarter_date_range(quarter: str, year: Optional[int] = None) -> Dict[str, str]:
    quarter = quarter.upper()
    if quarter not in _QUARTER_BOUNDS:
        raise ValueError(f"Unknown quarter {quarter!r}; expected one of {', '.join(QUARTERS)}")
    year = year or date.today().year
    start, end = _QUARTER_BOUNDS[quarter]
    return {"start_date": f"{year}-{start}", "end_date": f"{year}-{end}"}


def current_date_context(today: Optional[date] = None) -> Dict[str, Any]:
    """Date facts an LLM cannot know on its own: today, the current quarter, quarter ranges."""
    today = today or date.today()
    quarter = quarter_of(today)
    ranges = {q.lower(): quarter_date_range(q, today.year) for q in QUARTERS}
    quarter_info = {k: {"start": v["start_date"], "end": v["end_date"]} for k, v in ranges.items()}
    return {
        "current_date": today.isoformat(),
        "current_quarter": f"{quarter} {today.year}",
        "current_year": today.year,
        "quarter_info": quarter_info,
        "current_quarter_dates": quarter_info[quarter.lower()],
    }
