from fastmcp import FastMCP

mcp = FastMCP("Multi-Platform Ads Tools")
