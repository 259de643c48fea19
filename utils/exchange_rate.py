"""USD to KRW rates from the Korea Eximbank open API, cached per date.

The provider publishes the day's rate around late morning and returns an
empty list for weekends and holidays, so lookups for those dates fall back
to the last published business day.
"""
import json
import logging
import os
import threading
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

import requests

from errors import RateFetchFailed

logger = logging.getLogger(__name__)

KOREAEXIM_URL = "https://oapi.koreaexim.go.kr/site/program/financial/exchangeJSON"
DEFAULT_USD_RATE = 1300.0
REQUEST_TIMEOUT = 10
MAX_LOOKBACK_DAYS = 7
# How long a resolved current rate, or a per-date fallback, is reused
RESOLVED_RATE_TTL_SECONDS = 300

RESULT_MESSAGES = {
    2: "DATA 코드 오류",
    3: "인증코드 오류",
    4: "일일 제한 횟수 마감",
}

DateLike = Union[str, date, datetime]


def _to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) == 8 and text.isdigit():
        return datetime.strptime(text, "%Y%m%d").date()
    return datetime.strptime(text[:10], "%Y-%m-%d").date()


class ExchangeRateService:
    """Date-indexed USD/KRW rate lookup with a persisted last-known rate."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        cache_file: str = "exchange-rate-cache.json",
        publish_hour: int = 11,
        default_rate: float = DEFAULT_USD_RATE,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.api_key = api_key
        self.cache_file = cache_file
        self.publish_hour = publish_hour
        self.default_rate = default_rate
        self._now = now or datetime.now
        self._rates: Dict[str, float] = {}
        # (rate, expires_at) entries; never hold a provider-published rate
        self._fallbacks: Dict[str, Tuple[float, datetime]] = {}
        self._current: Optional[Tuple[float, datetime]] = None
        self._lock = threading.Lock()
        self._info: Optional[Dict[str, Any]] = None

    # ------------------------------------------------------------------
    # Remote provider
    # ------------------------------------------------------------------
    def fetch_rate(self, day: date) -> Optional[float]:
        """Fetch the published USD rate for ``day``.

        Returns None when the provider has nothing for that date (non-business
        day or not yet published). Raises RateFetchFailed on any other failure.
        """
        if not self.api_key:
            raise RateFetchFailed("KOREAEXIM_API_KEY is not set")

        params = {
            "authkey": self.api_key,
            "searchdate": day.strftime("%Y%m%d"),
            "data": "AP01",
        }
        headers = {"User-Agent": "ads-mcp-server/1.0"}
        try:
            resp = requests.get(KOREAEXIM_URL, params=params, headers=headers, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise RateFetchFailed(f"Exchange rate request failed: {e}") from e

        if not resp.ok:
            raise RateFetchFailed(f"Exchange rate API error: {resp.status_code} {resp.reason}")

        try:
            body = resp.json()
        except ValueError as e:
            raise RateFetchFailed("Exchange rate API returned invalid JSON") from e

        if not isinstance(body, list):
            code = body.get("result") if isinstance(body, dict) else None
            if code == 1:
                return None
            message = RESULT_MESSAGES.get(code, f"알 수 없는 오류 (result={code})")
            raise RateFetchFailed(f"Exchange rate API error: {message}")

        if not body:
            return None

        for item in body:
            if item.get("cur_unit") == "USD" and item.get("result") == 1:
                try:
                    rate = float(str(item.get("ttb", "")).replace(",", ""))
                except ValueError as e:
                    raise RateFetchFailed(f"Invalid USD rate value: {item.get('ttb')}") from e
                if rate <= 0:
                    raise RateFetchFailed(f"Invalid USD rate value: {rate}")
                return rate

        raise RateFetchFailed("USD rate missing from exchange rate response")

    # ------------------------------------------------------------------
    # Persisted record
    # ------------------------------------------------------------------
    def load_cache(self) -> Optional[Dict[str, Any]]:
        if not self.cache_file or not os.path.exists(self.cache_file):
            return None
        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                record = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read exchange rate cache {self.cache_file}: {e}")
            return None
        if not isinstance(record, dict) or not record.get("usdRate") or not record.get("date"):
            return None
        return record

    def save_cache(self, day: date, rate: float) -> None:
        record = {
            "date": day.isoformat(),
            "usdRate": rate,
            "lastUpdated": self._now().isoformat(),
            "source": "koreaexim_api",
        }
        try:
            directory = os.path.dirname(os.path.abspath(self.cache_file))
            os.makedirs(directory, exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as f:
                json.dump(record, f, ensure_ascii=False, indent=2)
        except OSError as e:
            logger.warning(f"Could not write exchange rate cache {self.cache_file}: {e}")

    def is_cache_current(self, record: Optional[Dict[str, Any]]) -> bool:
        """Today's record after the publish hour, or yesterday's record before it."""
        if not record:
            return False
        try:
            cached_day = _to_date(record["date"])
        except (KeyError, ValueError):
            return False
        now = self._now()
        today = now.date()
        if now.hour >= self.publish_hour:
            return cached_day == today
        return cached_day == today - timedelta(days=1)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def _set_info(self, rate: float, day: Optional[date], source: str, last_updated: Optional[str] = None):
        with self._lock:
            self._info = {
                "rate": rate,
                "date": day.isoformat() if day else None,
                "source": source,
                "last_updated": last_updated or self._now().isoformat(),
            }

    def _try_fetch(self, day: date) -> Optional[float]:
        try:
            return self.fetch_rate(day)
        except RateFetchFailed as e:
            logger.warning(f"Exchange rate fetch for {day.isoformat()} failed: {e}")
            return None

    def _expiry(self) -> datetime:
        return self._now() + timedelta(seconds=RESOLVED_RATE_TTL_SECONDS)

    def rate_now(self) -> float:
        """Current USD rate: cache, then today, then yesterday, then stale cache, then default.

        The resolved value is reused for ``RESOLVED_RATE_TTL_SECONDS`` so a
        provider outage costs two requests per window, not two per lookup.
        """
        with self._lock:
            current = self._current
        if current and self._now() < current[1]:
            return current[0]

        rate = self._resolve_now()
        with self._lock:
            self._current = (rate, self._expiry())
        return rate

    def _resolve_now(self) -> float:
        record = self.load_cache()
        if self.is_cache_current(record):
            rate = float(record["usdRate"])
            self._set_info(rate, _to_date(record["date"]), "cache", record.get("lastUpdated"))
            return rate

        today = self._now().date()
        for day in (today, today - timedelta(days=1)):
            rate = self._try_fetch(day)
            if rate:
                logger.info(f"Fetched USD rate {rate} for {day.isoformat()}")
                self.save_cache(day, rate)
                with self._lock:
                    self._rates[day.isoformat()] = rate
                self._set_info(rate, day, "koreaexim_api")
                return rate
            logger.info(f"No USD rate available for {day.isoformat()}, trying next fallback")

        if record:
            rate = float(record["usdRate"])
            logger.warning(f"Using stale cached USD rate {rate} from {record['date']}")
            self._set_info(rate, _to_date(record["date"]), "stale_cache", record.get("lastUpdated"))
            return rate

        logger.warning(f"Using default USD rate {self.default_rate}")
        self._set_info(self.default_rate, None, "default")
        return self.default_rate

    def rate_for_date(self, value: DateLike) -> float:
        """USD rate for a given date. Never raises."""
        try:
            day = _to_date(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid date for exchange rate lookup: {value!r}")
            return self._safe_rate_now()

        key = day.isoformat()
        with self._lock:
            cached = self._rates.get(key)
            fallback = self._fallbacks.get(key)
        if cached:
            return cached
        if fallback and self._now() < fallback[1]:
            return fallback[0]

        if day >= self._now().date() or not self.api_key:
            return self._safe_rate_now()

        for offset in range(MAX_LOOKBACK_DAYS + 1):
            lookup = day - timedelta(days=offset)
            try:
                rate = self.fetch_rate(lookup)
            except RateFetchFailed as e:
                logger.warning(f"Exchange rate fetch for {lookup.isoformat()} failed: {e}")
                break
            except Exception as e:
                logger.error(f"Unexpected exchange rate error for {lookup.isoformat()}: {e}")
                break
            if rate:
                with self._lock:
                    self._rates[key] = rate
                    self._rates.setdefault(lookup.isoformat(), rate)
                return rate

        logger.info(f"No historical USD rate for {key}, falling back to current rate")
        rate = self._safe_rate_now()
        with self._lock:
            self._fallbacks[key] = (rate, self._expiry())
        return rate

    def _safe_rate_now(self) -> float:
        try:
            return self.rate_now()
        except Exception as e:
            logger.error(f"Exchange rate fallback failed: {e}")
            self._set_info(self.default_rate, None, "default")
            return self.default_rate

    def batch_rates(self, dates: Iterable[DateLike]) -> Dict[str, float]:
        rates = {}
        for value in dates:
            try:
                key = _to_date(value).isoformat()
            except (TypeError, ValueError):
                key = str(value)
            if key not in rates:
                rates[key] = self.rate_for_date(value)
        return rates

    def convert_usd_to_krw(self, amount: float, value: Optional[DateLike] = None) -> int:
        rate = self.rate_for_date(value) if value else self._safe_rate_now()
        return int(round((amount or 0) * rate))

    def info(self) -> Dict[str, Any]:
        if self._info is None:
            self._safe_rate_now()
        with self._lock:
            return dict(self._info)


_service: Optional[ExchangeRateService] = None
_service_lock = threading.Lock()


def get_exchange_rate_service() -> ExchangeRateService:
    global _service
    with _service_lock:
        if _service is None:
            from config import settings
            _service = ExchangeRateService(
                api_key=settings.koreaexim_api_key,
                cache_file=settings.exchange_rate_cache_file,
                publish_hour=settings.exchange_rate_publish_hour,
            )
        return _service
