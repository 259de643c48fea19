"""Unified campaign search: parse, fan out to platforms, filter, merge, render."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from errors import AdsError, CommandInvalid, PlatformTimeout
from platforms.models import Ad, Campaign, sort_by_spend
from unified.command_parser import PLATFORM_DISPLAY_NAMES, SearchCommand, parse_command
from utils.format_utils import calculate_derived_metrics

logger = logging.getLogger(__name__)

DEFAULT_PLATFORM_TIMEOUT = 90


def matches_keywords(name: str, keyword: Optional[str]) -> bool:
    """Empty keyword matches all; comma-separated tokens must all be substrings."""
    if not keyword or not keyword.strip():
        return True
    target = (name or "").lower()
    tokens = [t.strip().lower() for t in keyword.split(",") if t.strip()]
    if not tokens:
        return True
    return all(token in target for token in tokens)


@dataclass
class PlatformResult:
    platform: str
    campaigns: List[Campaign] = field(default_factory=list)
    ads: List[Ad] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def display_name(self) -> str:
        return PLATFORM_DISPLAY_NAMES.get(self.platform, self.platform)

    def ads_for(self, campaign_id: str) -> List[Ad]:
        return [a for a in self.ads if a.campaign_id == campaign_id]

    def totals(self) -> Dict[str, Any]:
        return _totals(self.campaigns)


def _totals(campaigns: List[Campaign]) -> Dict[str, Any]:
    spend = sum(c.spend for c in campaigns)
    impressions = sum(c.impressions for c in campaigns)
    clicks = sum(c.clicks for c in campaigns)
    conversions = sum(c.conversions for c in campaigns)
    return {
        "spend": spend,
        "impressions": impressions,
        "clicks": clicks,
        "conversions": conversions,
        **calculate_derived_metrics(spend, impressions, clicks, conversions),
    }


@dataclass
class SearchResult:
    command: SearchCommand
    results: List[PlatformResult] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def successful(self) -> List[PlatformResult]:
        return [r for r in self.results if not r.error]

    @property
    def dates(self) -> List[str]:
        days = set()
        for result in self.results:
            for campaign in result.campaigns:
                days.update(p.date for p in campaign.daily_data)
            for ad in result.ads:
                days.update(p.date for p in ad.daily_data)
        return sorted(days)

    def summary(self) -> Dict[str, Any]:
        campaigns = [c for r in self.results for c in r.campaigns]
        totals = _totals(campaigns)
        return {
            "total_platforms": len(self.results),
            "total_campaigns": len(campaigns),
            "total_ads": sum(len(r.ads) for r in self.results),
            "total_spend": totals["spend"],
            "total_impressions": totals["impressions"],
            "total_clicks": totals["clicks"],
            "total_conversions": totals["conversions"],
            "overall_ctr": totals["ctr"],
            "overall_cpc": totals["cpc"],
            "overall_cpm": totals["cpm"],
            "overall_conversion_rate": totals["conversion_rate"],
            "overall_cost_per_conversion": totals["cost_per_conversion"],
            "errors": {r.platform: r.error for r in self.results if r.error},
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command.to_dict(),
            "platforms": [{
                "platform": r.platform,
                "error": r.error,
                "campaigns": [c.to_dict() for c in r.campaigns],
                "ads": [a.to_dict() for a in r.ads],
            } for r in self.results],
            "summary": self.summary(),
        }


class UnifiedSearchService:
    """Runs one search command across every configured platform."""

    def __init__(self, registry=None, timeout: Optional[float] = None):
        if registry is None:
            from platforms import registry as default_registry
            registry = default_registry
        if timeout is None:
            from config import settings
            timeout = settings.platform_timeout_seconds or DEFAULT_PLATFORM_TIMEOUT
        self.registry = registry
        self.timeout = timeout

    def _fan_out(self, calls: Dict[str, Callable[[], Any]], deadline: float) -> Dict[str, Tuple[Any, Optional[str]]]:
        """Run one call per platform in parallel; each gets ``(value, error)``.

        ``deadline`` is a ``time.monotonic()`` value shared by every stage of
        one search. Calls still running when it passes are recorded as a
        PlatformTimeout and abandoned.
        """
        if not calls:
            return {}
        executor = ThreadPoolExecutor(max_workers=len(calls))
        futures = {executor.submit(fn): platform for platform, fn in calls.items()}
        done, not_done = wait(futures, timeout=max(deadline - time.monotonic(), 0))

        outcomes: Dict[str, Tuple[Any, Optional[str]]] = {}
        for future in done:
            platform = futures[future]
            try:
                outcomes[platform] = (future.result(), None)
            except AdsError as e:
                logger.warning(f"{platform} failed: {e}")
                outcomes[platform] = (None, str(e))
            except Exception as e:
                logger.exception(f"{platform} raised an unexpected error")
                outcomes[platform] = (None, str(e) or e.__class__.__name__)
        for future in not_done:
            platform = futures[future]
            future.cancel()
            timeout = PlatformTimeout(platform)
            logger.warning(f"{platform} did not answer within {self.timeout}s")
            outcomes[platform] = (None, str(timeout))

        executor.shutdown(wait=False)
        return outcomes

    def search(self, command: SearchCommand) -> SearchResult:
        if not command.is_valid:
            raise CommandInvalid(command.errors)

        start, end = command.start_date, command.end_date
        deadline = time.monotonic() + self.timeout
        adapters = self.registry.adapters_for(command.platforms)
        logger.info(
            f"Unified search keyword={command.keyword!r} {start}~{end} platforms={list(adapters)}"
        )

        # Campaign discovery
        discovered = self._fan_out({
            platform: (lambda a=adapter: a.list_campaigns_with_date_filter(start, end))
            for platform, adapter in adapters.items()
        }, deadline)

        results: List[PlatformResult] = []
        for platform in adapters:
            campaigns, error = discovered[platform]
            if error:
                results.append(PlatformResult(platform=platform, error=error))
                continue
            matched = [c for c in campaigns or [] if matches_keywords(c.campaign_name, command.keyword)]
            if not matched:
                logger.info(f"{platform}: no campaigns match {command.keyword!r}")
                continue
            results.append(PlatformResult(platform=platform, campaigns=matched))

        # Ad-level breakdown
        if command.display_unit == "ad":
            pending = {r.platform: r for r in results if not r.error and r.campaigns}
            breakdown = self._fan_out({
                platform: (lambda a=adapters[platform], ids=[c.campaign_id for c in r.campaigns]:
                           a.ad_level_performance(ids, start, end))
                for platform, r in pending.items()
            }, deadline)
            for platform, result in pending.items():
                ads, error = breakdown[platform]
                if error:
                    result.error = error
                    continue
                result.ads = normalize_ads(ads or [], result.campaigns, start, end)

        for result in results:
            result.campaigns = sort_by_spend(c.finalize(start, end) for c in result.campaigns)

        return SearchResult(command=command, results=results)

    def run(self, command_text: str, output_format: str = "text", today: Optional[date] = None) -> str:
        """Parse, search and render. Invalid commands return the error text."""
        command = parse_command(command_text, today=today)
        if not command.is_valid:
            return format_error("\n".join(f"- {e}" for e in command.errors))

        result = self.search(command)
        if output_format == "html":
            from unified.report_html import render_html
            return render_html(result)
        from unified.report_text import render_text
        return render_text(result)


def normalize_ads(ads: List[Ad], campaigns: List[Campaign], start_date: str, end_date: str) -> List[Ad]:
    """Keep ads of the requested campaigns only, clip daily data, sort by spend."""
    requested = {c.campaign_id: c for c in campaigns}
    kept = []
    for ad in ads:
        if ad.campaign_id not in requested:
            continue
        if not ad.campaign_name:
            ad.campaign_name = requested[ad.campaign_id].campaign_name
        kept.append(ad.finalize(start_date, end_date))
    return sort_by_spend(kept)


def format_error(message: str) -> str:
    return f"**통합 검색 오류**\n\n{message}\n\n도움말을 보려면 `search_help` 도구를 사용하세요."
