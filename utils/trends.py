"""Per-day derived metrics and day-over-day deltas."""
from typing import Any, Dict, List, Optional

from utils.format_utils import calculate_derived_metrics

BASE_METRICS = ["spend", "impressions", "clicks", "conversions"]
DERIVED_METRICS = ["ctr", "cpc", "cpm", "conversion_rate", "cost_per_conversion"]


def calculate_change(current: float, previous: float) -> Dict[str, Optional[float]]:
    """Absolute and percent change. Percent is None when the prior value is 0."""
    change = round((current or 0) - (previous or 0), 2)
    if not previous:
        return {"change": change, "change_percent": None}
    return {"change": change, "change_percent": round(change / previous * 100, 2)}


def sort_daily(daily_data: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(daily_data or [], key=lambda d: d.get("date", ""))


def calculate_daily_trends(daily_data: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Wrap each day with derived metrics and the change against the prior day.

    Args:
        daily_data: ``{date, spend, impressions, clicks, conversions}`` points
            in any order.

    Returns:
        Trend entries in ascending date order. The first entry carries
        ``{"change": 0, "change_percent": 0}`` for every metric.
    """
    entries = []
    previous = None
    for day in sort_daily(daily_data):
        spend = float(day.get("spend") or 0)
        impressions = int(day.get("impressions") or 0)
        clicks = int(day.get("clicks") or 0)
        conversions = float(day.get("conversions") or 0)
        derived = calculate_derived_metrics(spend, impressions, clicks, conversions)

        current = {
            "spend": spend,
            "impressions": impressions,
            "clicks": clicks,
            "conversions": conversions,
            **derived,
        }

        trends = {}
        for metric in BASE_METRICS + DERIVED_METRICS:
            if previous is None:
                trends[metric] = {"change": 0, "change_percent": 0}
            else:
                trends[metric] = calculate_change(current[metric], previous[metric])

        entries.append({
            "date": day.get("date"),
            "spend": spend,
            "impressions": impressions,
            "clicks": clicks,
            "conversions": conversions,
            "derived_metrics": derived,
            "trends": trends,
        })
        previous = current
    return entries


def calculate_period_summary(daily_data: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals, per-day averages and day count over the range."""
    days = len(daily_data or [])
    totals = {metric: 0 for metric in BASE_METRICS}
    for day in daily_data or []:
        for metric in BASE_METRICS:
            totals[metric] += day.get(metric) or 0

    if days == 0:
        averages = {metric: 0 for metric in BASE_METRICS}
    else:
        averages = {
            "spend": round(totals["spend"] / days, 2),
            "impressions": round(totals["impressions"] / days),
            "clicks": round(totals["clicks"] / days),
            "conversions": round(totals["conversions"] / days, 2),
        }

    return {
        "totals": totals,
        "averages": averages,
        "derived_metrics": calculate_derived_metrics(
            totals["spend"], totals["impressions"], totals["clicks"], totals["conversions"]
        ),
        "days": days,
    }


def find_best_worst_days(daily_data: List[Dict[str, Any]], metric: str = "conversions") -> Dict[str, Any]:
    if not daily_data:
        return {"best": None, "worst": None}
    ranked = sorted(daily_data, key=lambda d: (d.get(metric) or 0, d.get("date", "")))
    return {"best": ranked[-1], "worst": ranked[0]}
