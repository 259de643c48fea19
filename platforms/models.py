"""Canonical performance records shared by every platform adapter.

All spend values are KRW once a record leaves its adapter. Derived metrics
are always computed from the record's own totals, never copied from vendor
output.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from utils.format_utils import calculate_derived_metrics


@dataclass
class DailyPoint:
    date: str
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: float = 0.0

    def add(self, spend: float = 0.0, impressions: int = 0, clicks: int = 0, conversions: float = 0.0):
        self.spend += spend or 0
        self.impressions += int(impressions or 0)
        self.clicks += int(clicks or 0)
        self.conversions += conversions or 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "spend": self.spend,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "conversions": self.conversions,
        }


@dataclass
class PerformanceRecord:
    platform: str = ""
    campaign_id: str = ""
    campaign_name: str = ""
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: float = 0.0
    daily_data: List[DailyPoint] = field(default_factory=list)
    account_id: Optional[str] = None
    account_name: Optional[str] = None

    @property
    def derived(self) -> Dict[str, float]:
        return calculate_derived_metrics(self.spend, self.impressions, self.clicks, self.conversions)

    @property
    def ctr(self) -> float:
        return self.derived["ctr"]

    @property
    def cpc(self) -> float:
        return self.derived["cpc"]

    @property
    def cpm(self) -> float:
        return self.derived["cpm"]

    @property
    def conversion_rate(self) -> float:
        return self.derived["conversion_rate"]

    @property
    def cost_per_conversion(self) -> float:
        return self.derived["cost_per_conversion"]

    def add_day(self, day: str, spend: float = 0.0, impressions: int = 0, clicks: int = 0,
                conversions: float = 0.0) -> None:
        """Merge one day's values into ``daily_data`` (same date is summed)."""
        for point in self.daily_data:
            if point.date == day:
                point.add(spend, impressions, clicks, conversions)
                return
        point = DailyPoint(date=day)
        point.add(spend, impressions, clicks, conversions)
        self.daily_data.append(point)

    def finalize(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> "PerformanceRecord":
        """Sort and clip daily data to the window, then rebuild totals from it."""
        points = sorted(self.daily_data, key=lambda p: p.date)
        if start_date:
            points = [p for p in points if p.date >= start_date]
        if end_date:
            points = [p for p in points if p.date <= end_date]
        self.daily_data = points
        if points:
            self.spend = round(sum(p.spend for p in points), 2)
            self.impressions = sum(p.impressions for p in points)
            self.clicks = sum(p.clicks for p in points)
            self.conversions = round(sum(p.conversions for p in points), 2)
        return self

    def metrics_dict(self) -> Dict[str, Any]:
        return {
            "spend": self.spend,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "conversions": self.conversions,
            **self.derived,
        }


@dataclass
class Campaign(PerformanceRecord):
    status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "campaign_id": self.campaign_id,
            "campaign_name": self.campaign_name,
            "status": self.status,
            **self.metrics_dict(),
            "daily_data": [p.to_dict() for p in self.daily_data],
        }


@dataclass
class Ad(PerformanceRecord):
    ad_id: str = ""
    ad_name: str = ""
    adset_id: Optional[str] = None
    adset_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "ad_id": self.ad_id,
            "ad_name": self.ad_name,
            "campaign_id": self.campaign_id,
            "campaign_name": self.campaign_name,
            **self.metrics_dict(),
            "daily_data": [p.to_dict() for p in self.daily_data],
        }


RateLookup = Callable[[str], float]


def convert_daily_to_krw(record: PerformanceRecord, currency: Optional[str], rate_for_date: RateLookup) -> None:
    """Convert each day's spend to whole KRW using that day's rate."""
    if (currency or "KRW").upper() != "USD":
        return
    for point in record.daily_data:
        point.spend = float(round(point.spend * rate_for_date(point.date)))


def summary_row(record: PerformanceRecord, **labels: Any) -> Dict[str, Any]:
    """Flat totals of a finalized record for the per-level performance tools."""
    return {
        **labels,
        "account_id": record.account_id,
        "account_name": record.account_name,
        **record.metrics_dict(),
        "active_days": len(record.daily_data),
    }


def sort_by_spend(records: Iterable[PerformanceRecord]) -> List[PerformanceRecord]:
    return sorted(records, key=lambda r: r.spend, reverse=True)


def to_number(value: Any, default: float = 0.0) -> float:
    """Vendor numeric strings (possibly with thousands separators) to float."""
    if value is None or value == "":
        return default
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return default


def to_int(value: Any) -> int:
    return int(round(to_number(value)))
