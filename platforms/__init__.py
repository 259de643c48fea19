"""Platform adapters and the registry that builds the configured ones."""
import logging
import threading
from typing import Dict, List, Optional, Protocol

from config import Settings, settings as default_settings
from errors import CredentialMissing
from platforms.models import Ad, Campaign

logger = logging.getLogger(__name__)


class PlatformAdapter(Protocol):
    platform: str

    def list_campaigns_with_date_filter(self, start_date: str, end_date: str) -> List[Campaign]:
        ...

    def ad_level_performance(self, campaign_ids: List[str], start_date: str, end_date: str) -> List[Ad]:
        ...


def build_adapter(platform: str, config: Settings, rate_service=None) -> PlatformAdapter:
    """Instantiate one adapter. Raises CredentialMissing when it is not configured."""
    if rate_service is None:
        from utils.exchange_rate import get_exchange_rate_service
        rate_service = get_exchange_rate_service()

    if platform == "facebook":
        if not config.facebook_configured:
            raise CredentialMissing("META_ACCESS_TOKEN is not set", platform)
        from platforms.facebook import FacebookAdsClient
        return FacebookAdsClient(config.meta_access_token, config.meta_ad_account_id, rate_service)

    if platform == "google":
        if not config.google_configured:
            raise CredentialMissing("Google Ads credentials are not set", platform)
        from oauth.google_auth import GoogleAdsAuth
        from platforms.google_ads import GoogleAdsClient
        auth = GoogleAdsAuth(
            config.google_ads_client_id,
            config.google_ads_client_secret,
            config.google_ads_refresh_token,
            config.google_ads_developer_token,
            config.google_ads_login_customer_id,
        )
        return GoogleAdsClient(auth, config.google_ads_customer_id, config.google_ads_login_customer_id, rate_service)

    if platform == "tiktok":
        if not config.tiktok_configured:
            raise CredentialMissing("TIKTOK_ACCESS_TOKEN / TIKTOK_ADVERTISER_ID are not set", platform)
        from platforms.tiktok import TikTokAdsClient
        return TikTokAdsClient(config.tiktok_access_token, config.tiktok_advertiser_id, rate_service)

    if platform == "carrot":
        if not config.carrot_configured:
            raise CredentialMissing("Carrot spreadsheet credentials are not set", platform)
        from platforms.carrot import CarrotAdsClient
        return CarrotAdsClient(
            config.google_sheets_service_account_key,
            config.carrot_spreadsheet_id,
            config.carrot_sheet_name,
            config.carrot_sheet_range,
        )

    raise ValueError(f"Unknown platform: {platform}")


class PlatformRegistry:
    """Lazily built adapters, one per configured platform, kept for the process lifetime."""

    def __init__(self, config: Optional[Settings] = None, rate_service=None):
        self.config = config or default_settings
        self.rate_service = rate_service
        self._adapters: Dict[str, PlatformAdapter] = {}
        self._lock = threading.Lock()

    def available(self) -> List[str]:
        return self.config.configured_platforms()

    def get(self, platform: str) -> PlatformAdapter:
        with self._lock:
            if platform not in self._adapters:
                self._adapters[platform] = build_adapter(platform, self.config, self.rate_service)
                logger.info(f"Initialized {platform} adapter")
            return self._adapters[platform]

    def register(self, platform: str, adapter: PlatformAdapter) -> None:
        with self._lock:
            self._adapters[platform] = adapter

    def adapters_for(self, platforms: List[str]) -> Dict[str, PlatformAdapter]:
        """Adapters for the requested platforms; unconfigured ones are skipped."""
        adapters = {}
        for platform in platforms:
            try:
                adapters[platform] = self.get(platform)
            except CredentialMissing as e:
                logger.info(f"Skipping {platform}: {e}")
        return adapters


registry = PlatformRegistry()
