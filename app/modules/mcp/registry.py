import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable
from app.core.config import settings
from app.modules.mcp.client import MCPClient, MCPClientConfig, RemoteTool
from app.modules.mcp.monitoring import HealthSample, MCPError, MCPErrorCode, MCPMonitor, check_health, mcp_monitor, with_retry

logger = logging.getLogger(__name__)

class MCPToolRegistry:
    """
    Process-wide view of the remote tools, cached for a TTL.
    Concurrent misses may each refresh; the last one wins.
    """
    def __init__(
        self,
        config: MCPClientConfig | None = None,
        client_factory: Callable[[MCPClientConfig], MCPClient] = MCPClient,
        monitor: MCPMonitor | None = None,
        clock: Callable[[], float] = time.monotonic,
        ttl: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        health_check: Callable[..., Awaitable[HealthSample]] = check_health,
    ):
        self.config = config or MCPClientConfig.from_settings()
        self._client_factory = client_factory
        self._client: MCPClient | None = None
        self.monitor = monitor or mcp_monitor
        self._clock = clock
        self._health_check = health_check
        self.ttl = settings.MCP_TOOL_CACHE_TTL_SECONDS if ttl is None else ttl
        self.max_retries = settings.MCP_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.MCP_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self._tools: dict[str, RemoteTool] | None = None
        self._fetched_at: float = 0.0
        self.last_fetch: datetime | None = None

    @property
    def client(self) -> MCPClient:
        if self._client is None:
            self._client = self._client_factory(self.config)
        return self._client

    async def get_tools(self) -> dict[str, RemoteTool]:
        if self._tools is not None and self._clock() - self._fetched_at < self.ttl:
            return self._tools
        return await self.refresh()

    async def _fetch(self) -> dict[str, RemoteTool]:
        tools = await self.client.list_tools()
        if not tools:
            raise MCPError("No tools available from MCP server", MCPErrorCode.TOOL_FETCH_FAILED)
        return {t.name: t for t in tools}

    async def refresh(self) -> dict[str, RemoteTool]:
        """Fetch with retries. On exhaustion the failure is recorded and an empty map returned; the cache is left as is."""
        try:
            tools = await with_retry(self._fetch, self.max_retries, self.retry_delay, self.monitor)
        except Exception as e:
            logger.error(f"Failed to fetch MCP tools: {e}")
            self.monitor.record_failure(str(e) or "Unknown error fetching tools")
            return {}
        self._tools = tools
        self._fetched_at = self._clock()
        self.last_fetch = datetime.now(timezone.utc)
        logger.info(f"Cached {len(tools)} MCP tool(s)")
        return tools

    def clear_cache(self) -> None:
        self._tools = None
        self._fetched_at = 0.0

    async def status(self) -> dict:
        """Run a health check, then report health over the recent samples alongside the cached tools."""
        server = self.config.servers[0]
        sample = await self._health_check(server.url, settings.MCP_HEALTH_TIMEOUT_SECONDS, monitor=self.monitor)
        tools = await self.get_tools()
        return {
            "connected": sample.connected,
            "tool_count": len(tools),
            "tool_names": sorted(tools),
            "last_fetch": self.last_fetch.isoformat() if self.last_fetch else None,
            "health": self.monitor.connectivity_label(),
        }

_registry: MCPToolRegistry | None = None

def get_tool_registry() -> MCPToolRegistry:
    global _registry
    if _registry is None:
        _registry = MCPToolRegistry()
    return _registry
