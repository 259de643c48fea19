"""
Performance record tests
"""
from platforms.models import Ad, Campaign, convert_daily_to_krw, sort_by_spend, to_int, to_number


def _campaign(cid, name, days):
    campaign = Campaign(platform="facebook", campaign_id=cid, campaign_name=name)
    for day, spend in days:
        campaign.add_day(day, spend=spend, impressions=1000, clicks=10, conversions=1)
    return campaign


class TestFinalize:
    def test_totals_are_daily_sums(self):
        campaign = _campaign("1", "a", [("2025-07-21", 200.0), ("2025-07-20", 100.0)])
        campaign.finalize()
        assert [p.date for p in campaign.daily_data] == ["2025-07-20", "2025-07-21"]
        assert campaign.spend == 300.0
        assert campaign.impressions == 2000
        assert campaign.clicks == 20
        assert campaign.conversions == 2

    def test_clips_to_window(self):
        campaign = _campaign("1", "a", [("2025-07-19", 50.0), ("2025-07-20", 100.0), ("2025-07-22", 10.0)])
        campaign.finalize("2025-07-20", "2025-07-21")
        assert [p.date for p in campaign.daily_data] == ["2025-07-20"]
        assert campaign.spend == 100.0

    def test_same_day_merges(self):
        campaign = _campaign("1", "a", [("2025-07-20", 100.0), ("2025-07-20", 25.0)])
        assert len(campaign.daily_data) == 1
        assert campaign.daily_data[0].spend == 125.0

    def test_derived_from_totals(self):
        campaign = _campaign("1", "a", [("2025-07-20", 1000.0), ("2025-07-21", 3000.0)]).finalize()
        assert campaign.ctr == 1.0
        assert campaign.cpc == 200.0
        assert campaign.cost_per_conversion == 2000.0


class TestCurrency:
    def test_per_day_conversion_orders_by_krw(self, fixed_rates):
        first = _campaign("1", "first", [("2025-07-20", 100.0), ("2025-07-21", 0.0)])
        second = _campaign("2", "second", [("2025-07-20", 50.0), ("2025-07-21", 200.0)])
        for campaign in (first, second):
            convert_daily_to_krw(campaign, "USD", fixed_rates.rate_for_date)
            campaign.finalize()
        assert first.spend == 130000
        assert second.spend == 345000
        assert [c.campaign_id for c in sort_by_spend([first, second])] == ["2", "1"]

    def test_krw_is_untouched(self, fixed_rates):
        campaign = _campaign("1", "a", [("2025-07-20", 5000.0)])
        convert_daily_to_krw(campaign, "KRW", fixed_rates.rate_for_date)
        assert campaign.daily_data[0].spend == 5000.0
        assert fixed_rates.calls == []

    def test_rounds_to_whole_won(self, fixed_rates):
        ad = Ad(platform="tiktok", ad_id="9", campaign_id="1")
        ad.add_day("2025-07-21", spend=1.2345)
        convert_daily_to_krw(ad, "usd", fixed_rates.rate_for_date)
        assert ad.daily_data[0].spend == 1728.0


def test_number_parsing():
    assert to_number("1,234.5") == 1234.5
    assert to_number("") == 0.0
    assert to_number("n/a") == 0.0
    assert to_int("2,000") == 2000
