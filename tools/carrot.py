"""당근마켓 ads tools (spreadsheet-backed)."""
import asyncio
import logging
from typing import Any, Dict, List

from fastmcp import Context
from mcp_instance import mcp
from config import settings
from platforms import registry
from platforms.carrot import CarrotAdsClient

logger = logging.getLogger(__name__)


def _client() -> CarrotAdsClient:
    if not settings.carrot_configured:
        raise ValueError(
            "GOOGLE_SHEETS_SERVICE_ACCOUNT_KEY and CARROT_SPREADSHEET_ID must be set in environment variables."
        )
    return registry.get("carrot")


@mcp.tool
async def carrot_get_campaign_list_with_date_filter(
    start_date: str,
    end_date: str,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Campaigns with spend between start_date and end_date (YYYY-MM-DD) from the performance sheet."""
    client = _client()
    if ctx:
        await ctx.info(f"Reading 당근마켓 campaigns for {start_date} ~ {end_date}...")
    try:
        campaigns = await asyncio.to_thread(client.list_campaigns_with_date_filter, start_date, end_date)
        return {"campaigns": [c.to_dict() for c in campaigns], "total_campaigns": len(campaigns)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error reading 당근마켓 campaigns: {e}")
        raise


@mcp.tool
async def carrot_get_ad_level_performance(
    campaign_ids: List[str],
    start_date: str,
    end_date: str,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-ad daily performance for the given campaign IDs."""
    client = _client()
    try:
        ads = await asyncio.to_thread(client.ad_level_performance, campaign_ids, start_date, end_date)
        return {"ads": [a.to_dict() for a in ads], "total_ads": len(ads)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error reading 당근마켓 ad performance: {e}")
        raise


@mcp.tool
async def carrot_test_connection(ctx: Context = None) -> Dict[str, Any]:
    """Read the performance sheet to verify spreadsheet access."""
    client = _client()
    try:
        return await asyncio.to_thread(client.test_connection)
    except Exception as e:
        if ctx:
            await ctx.error(f"당근마켓 connection test failed: {e}")
        raise
