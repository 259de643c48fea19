"""Process-wide settings read from the environment.

``load_dotenv()`` runs on import so every module that pulls settings from
here sees the values of a local ``.env`` file.
"""
import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


@dataclass
class Settings:
    """Credentials per platform plus server-level options."""

    # Social network (Meta Graph API)
    meta_access_token: Optional[str] = None
    meta_ad_account_id: Optional[str] = None

    # Search engine (Google Ads REST)
    google_ads_client_id: Optional[str] = None
    google_ads_client_secret: Optional[str] = None
    google_ads_refresh_token: Optional[str] = None
    google_ads_developer_token: Optional[str] = None
    google_ads_customer_id: Optional[str] = None
    google_ads_login_customer_id: Optional[str] = None

    # Short-video network (TikTok Business API)
    tiktok_access_token: Optional[str] = None
    tiktok_advertiser_id: Optional[str] = None

    # Marketplace feed (Google Sheets)
    google_sheets_service_account_key: Optional[str] = None
    carrot_spreadsheet_id: Optional[str] = None
    carrot_sheet_name: str = "성과데이터"
    carrot_sheet_range: str = "A:M"

    # Exchange rates
    koreaexim_api_key: Optional[str] = None
    exchange_rate_cache_file: str = "exchange-rate-cache.json"
    exchange_rate_publish_hour: int = 11

    # Server
    external_url: Optional[str] = None
    port: int = 8000
    html_report_dir: Optional[str] = None
    platform_timeout_seconds: int = 90
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            meta_access_token=_env("META_ACCESS_TOKEN"),
            meta_ad_account_id=_env("META_AD_ACCOUNT_ID"),
            google_ads_client_id=_env("GOOGLE_ADS_CLIENT_ID"),
            google_ads_client_secret=_env("GOOGLE_ADS_CLIENT_SECRET"),
            google_ads_refresh_token=_env("GOOGLE_ADS_REFRESH_TOKEN"),
            google_ads_developer_token=_env("GOOGLE_ADS_DEVELOPER_TOKEN"),
            google_ads_customer_id=_env("GOOGLE_ADS_CUSTOMER_ID"),
            google_ads_login_customer_id=_env("GOOGLE_ADS_LOGIN_CUSTOMER_ID"),
            tiktok_access_token=_env("TIKTOK_ACCESS_TOKEN"),
            tiktok_advertiser_id=_env("TIKTOK_ADVERTISER_ID"),
            google_sheets_service_account_key=_env("GOOGLE_SHEETS_SERVICE_ACCOUNT_KEY"),
            carrot_spreadsheet_id=_env("CARROT_SPREADSHEET_ID"),
            carrot_sheet_name=_env("CARROT_SHEET_NAME", "성과데이터"),
            carrot_sheet_range=_env("CARROT_SHEET_RANGE", "A:M"),
            koreaexim_api_key=_env("KOREAEXIM_API_KEY"),
            exchange_rate_cache_file=_env("EXCHANGE_RATE_CACHE_FILE", "exchange-rate-cache.json"),
            exchange_rate_publish_hour=_env_int("EXCHANGE_RATE_PUBLISH_HOUR", 11),
            external_url=_env("EXTERNAL_URL") or _env("RENDER_EXTERNAL_URL"),
            port=_env_int("PORT", 8000),
            html_report_dir=_env("HTML_REPORT_DIR"),
            platform_timeout_seconds=_env_int("PLATFORM_TIMEOUT_SECONDS", 90),
            log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
        )

    @property
    def facebook_configured(self) -> bool:
        return bool(self.meta_access_token)

    @property
    def google_configured(self) -> bool:
        return all([
            self.google_ads_client_id,
            self.google_ads_client_secret,
            self.google_ads_refresh_token,
            self.google_ads_developer_token,
            self.google_ads_customer_id,
        ])

    @property
    def tiktok_configured(self) -> bool:
        return bool(self.tiktok_access_token and self.tiktok_advertiser_id)

    @property
    def carrot_configured(self) -> bool:
        return bool(self.google_sheets_service_account_key and self.carrot_spreadsheet_id)

    def configured_platforms(self) -> List[str]:
        flags = {
            "facebook": self.facebook_configured,
            "google": self.google_configured,
            "tiktok": self.tiktok_configured,
            "carrot": self.carrot_configured,
        }
        return [name for name, enabled in flags.items() if enabled]

    @property
    def report_dir(self) -> str:
        if self.html_report_dir:
            return self.html_report_dir
        # Hosted deployments only allow writes under /tmp
        if self.external_url:
            return "/tmp/mcp-html-reports"
        return os.path.join(os.getcwd(), "temp")


settings = Settings.from_env()
