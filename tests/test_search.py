"""
Unified search tests
"""
import time
from datetime import date

import pytest

from errors import AuthFailed, CommandInvalid, PlatformTimeout
from platforms import PlatformRegistry
from platforms.models import Ad, Campaign
from unified.command_parser import parse_command
from unified.search import UnifiedSearchService, matches_keywords

TODAY = date(2025, 7, 22)


def _campaign(platform, cid, name, spend_by_day):
    campaign = Campaign(platform=platform, campaign_id=cid, campaign_name=name, status="ACTIVE")
    for day, spend in spend_by_day.items():
        campaign.add_day(day, spend=spend, impressions=1000, clicks=20, conversions=2)
    return campaign


def _ad(platform, ad_id, cid, spend_by_day):
    ad = Ad(platform=platform, ad_id=ad_id, ad_name=f"ad {ad_id}", campaign_id=cid)
    for day, spend in spend_by_day.items():
        ad.add_day(day, spend=spend, impressions=500, clicks=10, conversions=1)
    return ad


class FakeAdapter:
    def __init__(self, platform, campaigns=None, ads=None, error=None, delay=0.0, ad_delay=0.0):
        self.platform = platform
        self.campaigns = campaigns or []
        self.ads = ads or []
        self.error = error
        self.delay = delay
        self.ad_delay = ad_delay
        self.ad_requests = []

    def list_campaigns_with_date_filter(self, start_date, end_date):
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.campaigns)

    def ad_level_performance(self, campaign_ids, start_date, end_date):
        self.ad_requests.append(list(campaign_ids))
        if self.ad_delay:
            time.sleep(self.ad_delay)
        return list(self.ads)


class FakeRegistry:
    """Only the platforms given here count as configured."""

    def __init__(self, adapters):
        self.adapters = adapters

    def adapters_for(self, platforms):
        return {p: self.adapters[p] for p in platforms if p in self.adapters}


def _google():
    campaigns = [
        _campaign("google", "g1", "고병우 임플란트", {"2025-07-20": 10000, "2025-07-21": 20000}),
        _campaign("google", "g2", "고병우 교정", {"2025-07-20": 50000, "2025-07-21": 10000}),
        _campaign("google", "g3", "다른 병원", {"2025-07-20": 99999}),
    ]
    ads = [
        _ad("google", "a1", "g1", {"2025-07-20": 4000}),
        _ad("google", "a2", "g1", {"2025-07-20": 6000, "2025-07-21": 20000}),
        _ad("google", "a3", "g3", {"2025-07-20": 99999}),
    ]
    return FakeAdapter("google", campaigns, ads)


def _search(adapters, text, timeout=5):
    service = UnifiedSearchService(registry=FakeRegistry(adapters), timeout=timeout)
    return service.search(parse_command(text, today=TODAY))


class TestKeywordMatching:
    def test_empty_matches_all(self):
        assert matches_keywords("anything", "")
        assert matches_keywords("anything", None)

    def test_case_insensitive_substring(self):
        assert matches_keywords("Summer SALE 2025", "sale")

    def test_all_tokens_required(self):
        assert matches_keywords("치과 임플란트 이벤트", "치과,이벤트")
        assert not matches_keywords("치과 교정", "치과,이벤트")


class TestSearch:
    """Fan-out, filtering and merging"""

    def test_only_configured_platforms_are_queried(self):
        result = _search({"google": _google()}, "키워드:고병우 날짜:20250720-20250721 매체:구글,페이스북")
        assert [r.platform for r in result.results] == ["google"]
        assert not result.summary()["errors"]

    def test_keyword_filter_and_spend_order(self):
        result = _search({"google": _google()}, "키워드:고병우 날짜:20250720-20250721 매체:구글")
        campaigns = result.results[0].campaigns
        assert [c.campaign_id for c in campaigns] == ["g2", "g1"]
        assert campaigns[0].spend == 60000

    def test_ads_limited_to_requested_campaigns(self):
        adapter = _google()
        result = _search({"google": adapter}, "키워드:고병우 날짜:20250720-20250721 매체:구글")
        assert sorted(adapter.ad_requests[0]) == ["g1", "g2"]
        ads = result.results[0].ads
        assert {a.ad_id for a in ads} == {"a1", "a2"}
        assert [a.ad_id for a in ads] == ["a2", "a1"]
        assert ads[0].campaign_name == "고병우 임플란트"

    def test_campaign_unit_skips_ad_breakdown(self):
        adapter = _google()
        result = _search({"google": adapter}, "키워드:고병우 날짜:20250720-20250721 매체:구글 단위:캠페인")
        assert adapter.ad_requests == []
        assert result.results[0].ads == []

    def test_platform_without_matches_is_omitted(self):
        result = _search({"google": _google()}, "키워드:없는키워드 날짜:20250720-20250721 매체:구글")
        assert result.results == []
        assert result.summary()["total_campaigns"] == 0

    def test_failing_platform_is_isolated(self):
        adapters = {
            "google": _google(),
            "facebook": FakeAdapter("facebook", error=AuthFailed("Invalid OAuth access token", "facebook")),
        }
        result = _search(adapters, "키워드:고병우 날짜:20250720-20250721 매체:페이스북,구글")
        assert [r.platform for r in result.results] == ["facebook", "google"]
        facebook = result.results[0]
        assert facebook.error == "Invalid OAuth access token"
        assert facebook.campaigns == []
        assert result.results[1].campaigns
        assert result.summary()["errors"] == {"facebook": "Invalid OAuth access token"}

    def test_unexpected_exception_is_isolated(self):
        adapters = {"tiktok": FakeAdapter("tiktok", error=RuntimeError("boom")), "google": _google()}
        result = _search(adapters, "키워드:고병우 날짜:20250720-20250721 매체:전체")
        errors = result.summary()["errors"]
        assert errors == {"tiktok": "boom"}

    def test_slow_platform_times_out(self):
        adapters = {"google": _google(), "carrot": FakeAdapter("carrot", delay=1.0)}
        result = _search(adapters, "키워드:고병우 날짜:20250720-20250721 매체:구글,당근", timeout=0.2)
        assert result.summary()["errors"] == {"carrot": str(PlatformTimeout("carrot"))}
        assert result.summary()["errors"]["carrot"] == "timeout"
        assert result.results[0].campaigns

    def test_budget_shared_by_discovery_and_ads(self):
        carrot = FakeAdapter(
            "carrot",
            campaigns=[_campaign("carrot", "c1", "고병우 당근", {"2025-07-20": 1000})],
            ads=[_ad("carrot", "ca1", "c1", {"2025-07-20": 1000})],
            delay=0.3,
            ad_delay=0.35,
        )
        adapters = {"google": _google(), "carrot": carrot}
        # Each stage fits in 0.5s on its own; together they do not
        result = _search(adapters, "키워드:고병우 날짜:20250720-20250721 매체:구글,당근", timeout=0.5)
        assert result.summary()["errors"] == {"carrot": "timeout"}
        google = next(r for r in result.results if r.platform == "google")
        assert google.ads

    def test_totals_and_overall_metrics(self):
        result = _search({"google": _google()}, "키워드:고병우 날짜:20250720-20250721 매체:구글")
        summary = result.summary()
        assert summary["total_spend"] == 90000
        assert summary["total_impressions"] == 4000
        assert summary["total_clicks"] == 80
        assert summary["overall_ctr"] == 2.0
        assert summary["overall_cpc"] == 1125.0
        assert result.dates == ["2025-07-20", "2025-07-21"]

    def test_invalid_command_raises(self):
        service = UnifiedSearchService(registry=FakeRegistry({}), timeout=1)
        with pytest.raises(CommandInvalid) as exc:
            service.search(parse_command("날짜:어제", today=TODAY))
        assert "키워드가 지정되지 않았습니다" in exc.value.errors

    def test_run_formats_errors(self):
        service = UnifiedSearchService(registry=FakeRegistry({}), timeout=1)
        text = service.run("키워드:x 날짜:20250101-20250601", today=TODAY)
        assert text.startswith("**통합 검색 오류**")
        assert "조회 기간이 90일을 초과할 수 없습니다" in text

    def test_run_renders_text(self):
        service = UnifiedSearchService(registry=FakeRegistry({"google": _google()}), timeout=5)
        text = service.run("키워드:고병우 날짜:20250720-20250721 매체:구글", today=TODAY)
        assert "고병우 교정" in text
        assert "다른 병원" not in text


class TestRegistry:
    def test_unconfigured_platforms_are_skipped(self, fixed_rates):
        from config import Settings

        registry = PlatformRegistry(config=Settings(), rate_service=fixed_rates)
        adapter = FakeAdapter("google")
        registry.register("google", adapter)
        assert registry.adapters_for(["facebook", "google", "tiktok", "carrot"]) == {"google": adapter}
