import logging
import sys

# Load environment variables FIRST
from config import settings

from starlette.requests import Request
from starlette.responses import FileResponse, JSONResponse, PlainTextResponse

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger('ads_mcp_server')

from mcp_instance import mcp  # noqa: E402

# Tool modules register themselves on import
import tools.unified  # noqa: E402,F401
import tools.facebook  # noqa: E402,F401
import tools.google  # noqa: E402,F401
import tools.tiktok  # noqa: E402,F401
import tools.carrot  # noqa: E402,F401

from unified.html_files import get_report_store  # noqa: E402

logger.info("Starting Multi-Platform Ads MCP Server...")
logger.info(f"Configured platforms: {', '.join(settings.configured_platforms()) or 'none'}")


@mcp.custom_route("/download/{filename}", methods=["GET"])
async def download_report(request: Request):
    """Serve a generated HTML report while its link is still valid."""
    filename = request.path_params["filename"]
    path = get_report_store().resolve(filename)
    if not path:
        return PlainTextResponse("파일을 찾을 수 없거나 링크가 만료되었습니다.", status_code=404)
    return FileResponse(path, media_type="text/html; charset=utf-8", filename=filename)


@mcp.custom_route("/health", methods=["GET"])
async def health(request: Request):
    return JSONResponse({"status": "ok", "platforms": settings.configured_platforms()})


def main():
    store = get_report_store()
    store.ensure_directory()
    removed = store.cleanup()
    if removed:
        logger.info(f"Removed {removed} expired report(s) at startup")

    # Hosted deployments (external URL set) and --http use the HTTP transport
    if "--http" in sys.argv or settings.external_url:
        logger.info(f"Starting with HTTP transport on http://0.0.0.0:{settings.port}/mcp")
        mcp.run(transport="streamable-http", host="0.0.0.0", port=settings.port, path="/mcp")
    else:
        # Default to STDIO for Claude Desktop compatibility
        logger.info("Starting with STDIO transport for Claude Desktop")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
