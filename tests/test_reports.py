"""
Text and HTML report rendering tests
"""
import re
from datetime import date, datetime

import pytest

from platforms.models import Ad, Campaign
from unified.command_parser import parse_command
from unified.report_html import render_html
from unified.report_text import render_text
from unified.search import PlatformResult, SearchResult

TODAY = date(2025, 7, 22)
GENERATED = datetime(2025, 7, 22, 9, 30, 0)


def _record(cls, **kwargs):
    days = kwargs.pop("days")
    record = cls(**kwargs)
    for day, spend, impressions, clicks, conversions in days:
        record.add_day(day, spend=spend, impressions=impressions, clicks=clicks, conversions=conversions)
    return record.finalize()


def _result(command_text):
    command = parse_command(command_text, today=TODAY)
    days = [
        ("2025-07-20", 20000.0, 2000, 40, 2),
        ("2025-07-21", 30000.0, 3000, 50, 3),
    ]
    campaign = _record(Campaign, platform="google", campaign_id="c1", campaign_name="치과 <여름> 이벤트", days=days)
    ads = [
        _record(Ad, platform="google", ad_id="a1", ad_name="배너 A", campaign_id="c1", days=days[:1]),
        _record(Ad, platform="google", ad_id="a2", ad_name="배너 B", campaign_id="c1", days=days[1:]),
    ]
    results = [
        PlatformResult(platform="google", campaigns=[campaign], ads=ads),
        PlatformResult(platform="facebook", error="Invalid OAuth access token"),
    ]
    return SearchResult(command=command, results=results, generated_at=GENERATED)


INTERNAL = "키워드:치과 날짜:20250720-20250721 매체:구글,페이스북"
CLIENT = INTERNAL + " 리포트:광고주"


class TestHtmlReport:
    """Self-contained HTML output"""

    def test_internal_shows_all_columns(self):
        page = render_html(_result(INTERNAL))
        for label in ("광고비", "CPC", "CPM", "전환단가", "₩50,000"):
            assert label in page

    def test_client_hides_costs(self):
        page = render_html(_result(CLIENT))
        for hidden in ("₩", "CPC", "CPM", "전환단가"):
            assert hidden not in page
        assert "cost" not in page.lower()
        assert "노출수" in page
        assert "5,000" in page

    def test_type_b_hides_unit_costs_only(self):
        page = render_html(_result(INTERNAL + " 타입:B"))
        assert "광고비" in page
        assert "CPC" not in page
        assert "전환단가" not in page

    def test_filter_hooks_present(self):
        page = render_html(_result(INTERNAL))
        assert 'data-platform="google"' in page
        assert 'data-date="2025-07-20"' in page
        assert 'data-date="2025-07-21"' in page
        assert 'data-campaign-name="치과 &lt;여름&gt; 이벤트"' in page
        for element_id in ("dateFilter", "campaignSearch", "campaignFilter", "platformFilter", "resetFilters"):
            assert f'id="{element_id}"' in page

    def test_names_are_escaped(self):
        page = render_html(_result(INTERNAL))
        assert "<여름>" not in page

    def test_platform_error_line(self):
        page = render_html(_result(INTERNAL))
        assert "error: Invalid OAuth access token" in page

    def test_custom_title(self):
        page = render_html(_result(INTERNAL + " 제목:7월 <성과>"))
        assert "<title>7월 &lt;성과&gt;</title>" in page

    def test_only_generation_time_varies(self):
        result = _result(INTERNAL)
        first = render_html(result, generated_at=datetime(2025, 7, 22, 9, 0, 0))
        second = render_html(result, generated_at=datetime(2025, 7, 22, 18, 45, 10))
        strip = lambda page: re.sub(r"생성 시각: [0-9: -]+", "", page)
        assert first != second
        assert strip(first) == strip(second)

    def test_empty_result(self):
        command = parse_command(INTERNAL, today=TODAY)
        page = render_html(SearchResult(command=command, results=[], generated_at=GENERATED))
        assert "검색 조건에 맞는 캠페인이 없습니다" in page


class TestTextReport:
    """Markdown-ish text output"""

    def test_platform_header_and_tree(self):
        text = render_text(_result(INTERNAL))
        assert "## Google Ads (1개 캠페인, 2개 광고)" in text
        assert "**캠페인**: 치과 <여름> 이벤트" in text
        assert "├── **광고**: 배너 A" in text
        assert "└── **광고**: 배너 B" in text

    def test_error_platform(self):
        text = render_text(_result(INTERNAL))
        assert "## Facebook\nerror: Invalid OAuth access token" in text
        assert "- ⚠️ facebook - Error: Invalid OAuth access token" in text

    def test_daily_trend_for_campaign_unit(self):
        text = render_text(_result(INTERNAL + " 단위:캠페인"))
        assert "📅 일별 추이" in text
        assert "▲ +₩10,000 (+50.00%)" in text
        assert "📊 기간 요약 (2일)" in text
        assert "**광고**" not in text

    def test_best_and_worst_conversion_days(self):
        text = render_text(_result(INTERNAL + " 단위:캠페인"))
        line = next(l for l in text.splitlines() if "🏆" in l)
        assert "최고 전환일 2025-07-21" in line
        assert "최저 전환일 2025-07-20" in line
        assert text.index("📊 기간 요약") < text.index("🏆")

    def test_summary_totals(self):
        text = render_text(_result(INTERNAL))
        assert "- 총 광고비: ₩50,000" in text
        assert "- 총 클릭수: 90" in text
        assert "- 전체 CTR: 1.80%" in text

    @pytest.mark.parametrize("command", [CLIENT])
    def test_client_text_hides_costs(self, command):
        text = render_text(_result(command))
        assert "₩" not in text
        assert "CPC" not in text
