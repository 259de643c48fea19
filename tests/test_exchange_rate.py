"""
Exchange rate service tests
"""
import json
from datetime import date, datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from errors import RateFetchFailed
from utils.exchange_rate import DEFAULT_USD_RATE, ExchangeRateService


def _response(body, ok=True, status_code=200):
    resp = MagicMock()
    resp.ok = ok
    resp.status_code = status_code
    resp.reason = "OK" if ok else "Server Error"
    resp.json.return_value = body
    return resp


def _usd(ttb):
    return [
        {"result": 1, "cur_unit": "JPY(100)", "ttb": "930.1"},
        {"result": 1, "cur_unit": "USD", "ttb": ttb},
    ]


@pytest.fixture
def service(tmp_path):
    return ExchangeRateService(
        api_key="test-key",
        cache_file=str(tmp_path / "rate-cache.json"),
        publish_hour=11,
        now=lambda: datetime(2025, 7, 22, 12, 0),
    )


def _write_cache(service, day, rate):
    with open(service.cache_file, "w", encoding="utf-8") as f:
        json.dump({"date": day, "usdRate": rate, "lastUpdated": "2025-07-22T11:05:00", "source": "koreaexim_api"}, f)


class TestFetchRate:
    """Provider response handling"""

    @patch("utils.exchange_rate.requests.get")
    def test_parses_usd_buying_rate(self, mock_get, service):
        mock_get.return_value = _response(_usd("1,380.5"))
        assert service.fetch_rate(date(2025, 7, 21)) == 1380.5
        params = mock_get.call_args.kwargs["params"]
        assert params["searchdate"] == "20250721"
        assert params["data"] == "AP01"
        assert mock_get.call_args.kwargs["timeout"] == 10

    @patch("utils.exchange_rate.requests.get")
    def test_empty_list_means_no_rate(self, mock_get, service):
        mock_get.return_value = _response([])
        assert service.fetch_rate(date(2025, 7, 20)) is None

    @patch("utils.exchange_rate.requests.get")
    def test_result_code_error(self, mock_get, service):
        mock_get.return_value = _response({"result": 3})
        with pytest.raises(RateFetchFailed, match="인증코드 오류"):
            service.fetch_rate(date(2025, 7, 21))

    @patch("utils.exchange_rate.requests.get")
    def test_invalid_rate_value(self, mock_get, service):
        mock_get.return_value = _response(_usd("0"))
        with pytest.raises(RateFetchFailed):
            service.fetch_rate(date(2025, 7, 21))

    def test_missing_api_key(self, tmp_path):
        svc = ExchangeRateService(api_key=None, cache_file=str(tmp_path / "c.json"))
        with pytest.raises(RateFetchFailed):
            svc.fetch_rate(date(2025, 7, 21))


class TestRateNow:
    """Fallback chain for the current rate"""

    @patch("utils.exchange_rate.requests.get")
    def test_current_cache_skips_request(self, mock_get, service):
        _write_cache(service, "2025-07-22", 1390.0)
        assert service.rate_now() == 1390.0
        mock_get.assert_not_called()
        assert service.info()["source"] == "cache"

    @patch("utils.exchange_rate.requests.get")
    def test_yesterday_cache_is_current_before_publish_hour(self, mock_get, tmp_path):
        svc = ExchangeRateService(
            api_key="k", cache_file=str(tmp_path / "c.json"),
            now=lambda: datetime(2025, 7, 22, 9, 0),
        )
        _write_cache(svc, "2025-07-21", 1385.0)
        assert svc.rate_now() == 1385.0
        mock_get.assert_not_called()

    @patch("utils.exchange_rate.requests.get")
    def test_fetch_persists_cache(self, mock_get, service):
        mock_get.return_value = _response(_usd("1,401.2"))
        assert service.rate_now() == 1401.2
        with open(service.cache_file, encoding="utf-8") as f:
            record = json.load(f)
        assert record["date"] == "2025-07-22"
        assert record["usdRate"] == 1401.2
        assert record["source"] == "koreaexim_api"

    @patch("utils.exchange_rate.requests.get")
    def test_falls_back_to_yesterday(self, mock_get, service):
        mock_get.side_effect = [_response([]), _response(_usd("1,377.0"))]
        assert service.rate_now() == 1377.0
        assert service.info()["date"] == "2025-07-21"

    @patch("utils.exchange_rate.requests.get")
    def test_stale_cache_when_provider_fails(self, mock_get, service):
        _write_cache(service, "2025-07-15", 1350.0)
        mock_get.side_effect = requests.ConnectionError("down")
        assert service.rate_now() == 1350.0
        assert service.info()["source"] == "stale_cache"

    @patch("utils.exchange_rate.requests.get")
    def test_default_when_everything_fails(self, mock_get, service):
        mock_get.side_effect = requests.ConnectionError("down")
        assert service.rate_now() == DEFAULT_USD_RATE
        assert service.info()["source"] == "default"


class TestRateForDate:
    """Per-date lookups"""

    @patch("utils.exchange_rate.requests.get")
    def test_walks_back_over_non_business_days(self, mock_get, service):
        mock_get.side_effect = [_response([]), _response([]), _response(_usd("1,372.4"))]
        assert service.rate_for_date("2025-07-20") == 1372.4
        assert mock_get.call_count == 3
        # Memoized per date
        assert service.rate_for_date("2025-07-20") == 1372.4
        assert mock_get.call_count == 3

    @patch("utils.exchange_rate.requests.get")
    def test_never_raises(self, mock_get, service):
        mock_get.side_effect = requests.ConnectionError("down")
        assert service.rate_for_date("2025-07-20") == DEFAULT_USD_RATE

    @patch("utils.exchange_rate.requests.get")
    def test_invalid_date_uses_current_rate(self, mock_get, service):
        _write_cache(service, "2025-07-22", 1390.0)
        assert service.rate_for_date("not-a-date") == 1390.0

    @patch("utils.exchange_rate.requests.get")
    def test_batch_and_convert(self, mock_get, service):
        mock_get.side_effect = [_response(_usd("1,300")), _response(_usd("1,400"))]
        rates = service.batch_rates(["2025-07-20", "20250721", "2025-07-20"])
        assert rates == {"2025-07-20": 1300.0, "2025-07-21": 1400.0}
        assert service.convert_usd_to_krw(150, "2025-07-21") == 210000


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestProviderOutage:
    """A failing provider is asked a bounded number of times"""

    @patch("utils.exchange_rate.requests.get")
    def test_fallback_reused_across_records(self, mock_get, service):
        mock_get.side_effect = requests.ConnectionError("down")
        days = [f"2025-07-{d:02d}" for d in range(11, 21)]

        # Five records sharing the same ten days
        for _ in range(5):
            for day in days:
                assert service.rate_for_date(day) == DEFAULT_USD_RATE

        # One historical attempt per date plus today and yesterday once
        assert mock_get.call_count <= 12
        assert service.info()["source"] == "default"

    @patch("utils.exchange_rate.requests.get")
    def test_current_rate_not_refetched_within_window(self, mock_get, service):
        mock_get.side_effect = requests.ConnectionError("down")
        for _ in range(10):
            assert service.rate_now() == DEFAULT_USD_RATE
        assert mock_get.call_count == 2

    @patch("utils.exchange_rate.requests.get")
    def test_fallback_retried_after_window(self, mock_get, tmp_path):
        clock = Clock(datetime(2025, 7, 22, 12, 0))
        svc = ExchangeRateService(api_key="k", cache_file=str(tmp_path / "c.json"), now=clock)
        mock_get.side_effect = requests.ConnectionError("down")
        assert svc.rate_for_date("2025-07-18") == DEFAULT_USD_RATE
        calls = mock_get.call_count

        clock.now = datetime(2025, 7, 22, 12, 6)
        mock_get.side_effect = None
        mock_get.return_value = _response(_usd("1,366.0"))
        assert svc.rate_for_date("2025-07-18") == 1366.0
        assert mock_get.call_count == calls + 1
