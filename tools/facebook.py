"""Facebook (Meta) ads tools.

Every tool is also registered under its unprefixed legacy name
(``toggle_campaign_status`` for ``facebook_toggle_campaign_status``).
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastmcp import Context
from mcp_instance import mcp
from config import settings
from platforms import registry
from platforms.facebook import FacebookAdsClient

logger = logging.getLogger(__name__)

LEGACY_PREFIX = "facebook_"


def _client() -> FacebookAdsClient:
    if not settings.facebook_configured:
        raise ValueError("Facebook access token (META_ACCESS_TOKEN) is not set in environment variables.")
    return registry.get("facebook")


async def _call(ctx: Context, label: str, fn, *args):
    if ctx:
        await ctx.info(f"{label}...")
    try:
        result = await asyncio.to_thread(fn, *args)
        if ctx:
            await ctx.info(f"{label} done.")
        return result
    except Exception as e:
        logger.error(f"{label} failed: {e}")
        if ctx:
            await ctx.error(f"{label} failed: {e}")
        raise


async def facebook_get_campaign_list_with_date_filter(
    start_date: str,
    end_date: str,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Campaigns with spend between start_date and end_date (YYYY-MM-DD), spend in KRW."""
    client = _client()
    campaigns = await _call(ctx, "Fetching Facebook campaigns", client.list_campaigns_with_date_filter,
                            start_date, end_date)
    return {"campaigns": [c.to_dict() for c in campaigns], "total_campaigns": len(campaigns)}


async def facebook_get_ad_level_performance(
    campaign_ids: List[str],
    start_date: str,
    end_date: str,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-ad daily performance for the given campaign IDs, spend in KRW."""
    client = _client()
    ads = await _call(ctx, "Fetching Facebook ad performance", client.ad_level_performance,
                      campaign_ids, start_date, end_date)
    return {"ads": [a.to_dict() for a in ads], "total_ads": len(ads)}


async def facebook_get_campaign_performance(
    start_date: str,
    end_date: str,
    campaign_ids: Optional[List[str]] = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-campaign totals and CTR/CPC/CPM for the window, spend in KRW. campaign_ids narrows the result."""
    campaigns = await _call(ctx, "Fetching Facebook campaign performance", _client().get_campaign_performance,
                            start_date, end_date, campaign_ids)
    return {"campaigns": campaigns, "total_campaigns": len(campaigns)}


async def facebook_get_adset_performance(
    start_date: str,
    end_date: str,
    adset_ids: Optional[List[str]] = None,
    campaign_id: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-ad-set totals, by ad set IDs or within one campaign."""
    adsets = await _call(ctx, "Fetching Facebook ad set performance", _client().get_adset_performance,
                         start_date, end_date, adset_ids, campaign_id)
    return {"adsets": adsets, "total_adsets": len(adsets)}


async def facebook_get_ad_performance(
    start_date: str,
    end_date: str,
    ad_ids: Optional[List[str]] = None,
    campaign_id: str = "",
    adset_id: str = "",
    include_images: bool = False,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-ad totals by ad IDs, ad set or campaign. include_images adds each ad's image URLs."""
    client = _client()
    ads = await _call(ctx, "Fetching Facebook ad performance", client.get_ad_performance,
                      start_date, end_date, ad_ids, campaign_id, adset_id)
    if include_images and ads:
        images = await _call(ctx, f"Fetching images for {len(ads)} ads", client.get_ad_images,
                             [a["ad_id"] for a in ads])
        by_ad = {i["ad_id"]: i.get("images", []) for i in images}
        for ad in ads:
            ad["images"] = by_ad.get(str(ad["ad_id"]), [])
    return {"ads": ads, "total_ads": len(ads)}


async def facebook_get_campaign_list(status_filter: str = "ALL", ctx: Context = None) -> Dict[str, Any]:
    """List campaigns. status_filter: ACTIVE, PAUSED or ALL."""
    campaigns = await _call(ctx, "Listing Facebook campaigns", _client().get_campaign_list, status_filter)
    return {"campaigns": campaigns, "total_campaigns": len(campaigns)}


async def facebook_toggle_campaign_status(campaign_id: str, status: str, ctx: Context = None) -> Dict[str, Any]:
    """Set a campaign to ACTIVE or PAUSED."""
    return await _call(ctx, f"Updating Facebook campaign {campaign_id}", _client().toggle_campaign_status,
                       campaign_id, status)


async def facebook_bulk_toggle_campaigns(campaign_ids: List[str], status: str, ctx: Context = None) -> Dict[str, Any]:
    """Set several campaigns to ACTIVE or PAUSED."""
    return await _call(ctx, f"Updating {len(campaign_ids)} Facebook campaigns", _client().bulk_toggle_campaigns,
                       campaign_ids, status)


async def facebook_get_adset_list(
    campaign_id: str = "",
    status_filter: str = "ALL",
    ctx: Context = None,
) -> Dict[str, Any]:
    """List ad sets, optionally within one campaign."""
    adsets = await _call(ctx, "Listing Facebook ad sets", _client().get_adset_list, campaign_id, status_filter)
    return {"adsets": adsets, "total_adsets": len(adsets)}


async def facebook_toggle_adset_status(adset_id: str, status: str, ctx: Context = None) -> Dict[str, Any]:
    return await _call(ctx, f"Updating Facebook ad set {adset_id}", _client().toggle_adset_status, adset_id, status)


async def facebook_bulk_toggle_adsets(adset_ids: List[str], status: str, ctx: Context = None) -> Dict[str, Any]:
    return await _call(ctx, f"Updating {len(adset_ids)} Facebook ad sets", _client().bulk_toggle_adsets,
                       adset_ids, status)


async def facebook_get_ad_list(
    campaign_id: str = "",
    adset_id: str = "",
    status_filter: str = "ALL",
    ctx: Context = None,
) -> Dict[str, Any]:
    """List ads, optionally within one campaign or ad set."""
    ads = await _call(ctx, "Listing Facebook ads", _client().get_ad_list, campaign_id, adset_id, status_filter)
    return {"ads": ads, "total_ads": len(ads)}


async def facebook_toggle_ad_status(ad_id: str, status: str, ctx: Context = None) -> Dict[str, Any]:
    return await _call(ctx, f"Updating Facebook ad {ad_id}", _client().toggle_ad_status, ad_id, status)


async def facebook_bulk_toggle_ads(ad_ids: List[str], status: str, ctx: Context = None) -> Dict[str, Any]:
    return await _call(ctx, f"Updating {len(ad_ids)} Facebook ads", _client().bulk_toggle_ads, ad_ids, status)


async def facebook_get_ad_creative_details(ad_id: str, ctx: Context = None) -> Dict[str, Any]:
    """Creative (copy, image, story spec) behind an ad."""
    return await _call(ctx, f"Fetching creative for ad {ad_id}", _client().get_ad_creative_details, ad_id)


async def facebook_get_ad_images(ad_ids: List[str], ctx: Context = None) -> Dict[str, Any]:
    """Image URLs used by each ad's creative."""
    images = await _call(ctx, f"Fetching images for {len(ad_ids)} ads", _client().get_ad_images, ad_ids)
    return {"ads": images}


async def facebook_get_exchange_info(ctx: Context = None) -> Dict[str, Any]:
    """USD/KRW rate currently used for spend conversion and where it came from."""
    return await _call(ctx, "Fetching exchange rate info", _client().exchange_info)


async def facebook_test_connection(ctx: Context = None) -> Dict[str, Any]:
    """Check the access token by listing active ad accounts."""
    return await _call(ctx, "Testing Facebook connection", _client().test_connection)


FACEBOOK_TOOLS = [
    facebook_get_campaign_list_with_date_filter,
    facebook_get_ad_level_performance,
    facebook_get_campaign_performance,
    facebook_get_adset_performance,
    facebook_get_ad_performance,
    facebook_get_campaign_list,
    facebook_toggle_campaign_status,
    facebook_bulk_toggle_campaigns,
    facebook_get_adset_list,
    facebook_toggle_adset_status,
    facebook_bulk_toggle_adsets,
    facebook_get_ad_list,
    facebook_toggle_ad_status,
    facebook_bulk_toggle_ads,
    facebook_get_ad_creative_details,
    facebook_get_ad_images,
    facebook_get_exchange_info,
    facebook_test_connection,
]

for _tool in FACEBOOK_TOOLS:
    mcp.tool(_tool)
    mcp.tool(_tool, name=_tool.__name__[len(LEGACY_PREFIX):])
