import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar
import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_HISTORY_SIZE = 100
HEALTH_WINDOW = 10
DASHBOARD_WINDOW = 20

class MCPErrorCode(str, Enum):
    CONNECTION_FAILED = "CONNECTION_FAILED"
    TOOL_FETCH_FAILED = "TOOL_FETCH_FAILED"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    TIMEOUT = "TIMEOUT"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"

class MCPError(Exception):
    def __init__(self, message: str, code: MCPErrorCode, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

@dataclass
class HealthSample:
    connected: bool
    tool_count: int = 0
    last_fetch: float | None = None  # epoch seconds
    error: str | None = None
    response_time_ms: float | None = None

@dataclass
class MCPMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time_ms: float = 0.0
    last_error: str | None = None
    last_error_time: float | None = None

class MCPMonitor:
    """In-process counters and a bounded health history for the remote tool server."""
    def __init__(self, max_history: int = MAX_HISTORY_SIZE):
        self.metrics = MCPMetrics()
        self.history: deque[HealthSample] = deque(maxlen=max_history)

    def record_success(self, response_time_ms: float) -> None:
        m = self.metrics
        m.total_requests += 1
        m.successful_requests += 1
        m.average_response_time_ms = (m.average_response_time_ms * (m.total_requests - 1) + response_time_ms) / m.total_requests

    def record_failure(self, error: str) -> None:
        m = self.metrics
        m.total_requests += 1
        m.failed_requests += 1
        m.last_error = error
        m.last_error_time = time.time()

    def record_health(self, sample: HealthSample) -> None:
        self.history.append(sample)

    def recent_health(self, limit: int = HEALTH_WINDOW) -> list[HealthSample]:
        return list(self.history)[-limit:] if limit > 0 else []

    def success_rate(self) -> float:
        """Percentage of successful requests; 100 before any request."""
        if self.metrics.total_requests == 0:
            return 100.0
        return self.metrics.successful_requests / self.metrics.total_requests * 100

    def is_healthy(self, threshold: float = 0.8) -> bool:
        recent = self.recent_health(HEALTH_WINDOW)
        if not recent:
            return True
        return sum(1 for h in recent if h.connected) / len(recent) >= threshold

    def connectivity_label(self) -> str:
        """healthy, degraded or unhealthy from the connected fraction of the recent health samples."""
        recent = self.recent_health(HEALTH_WINDOW)
        if self.is_healthy():
            return "healthy"
        if any(h.connected for h in recent):
            return "degraded"
        return "unhealthy"

    def health_label(self) -> str:
        rate = self.success_rate()
        if rate >= 80:
            return "healthy"
        if rate > 0:
            return "degraded"
        return "unhealthy"

    def dashboard(self) -> dict:
        recent = self.recent_health(DASHBOARD_WINDOW)
        return {
            "metrics": asdict(self.metrics),
            "recent_health": [asdict(h) for h in recent],
            "connectivity": self.connectivity_label(),
            "success_rate": self.success_rate(),
            "is_healthy": self.is_healthy(),
            "health": self.health_label(),
            "uptime": uptime(recent),
        }

    def reset(self) -> None:
        self.metrics = MCPMetrics()
        self.history.clear()

def uptime(samples: list[HealthSample]) -> float:
    if not samples:
        return 100.0
    return sum(1 for h in samples if h.connected) / len(samples) * 100

mcp_monitor = MCPMonitor()

async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    delay: float = 1.0,
    monitor: MCPMonitor | None = None,
) -> T:
    """Run `operation`, retrying with exponential backoff; re-raises the last error."""
    monitor = monitor or mcp_monitor
    attempts = max(1, max_retries)
    attempt = 0
    while True:
        started = time.perf_counter()
        try:
            result = await operation()
        except Exception as e:
            monitor.record_failure(str(e) or type(e).__name__)
            if attempt >= attempts - 1:
                raise
            wait = delay * (2 ** attempt)
            logger.warning(f"MCP operation failed (attempt {attempt + 1}/{attempts}), retrying in {wait:.2f}s: {e}")
            await asyncio.sleep(wait)
            attempt += 1
        else:
            monitor.record_success((time.perf_counter() - started) * 1000)
            return result

async def check_health(
    url: str,
    timeout: float = 5.0,
    client: httpx.AsyncClient | None = None,
    monitor: MCPMonitor | None = None,
) -> HealthSample:
    """HEAD the server URL and record the sample. Connection problems come back as a disconnected sample."""
    monitor = monitor or mcp_monitor
    started = time.perf_counter()
    try:
        if client is not None:
            response = await client.head(url, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as c:
                response = await c.head(url)
        sample = HealthSample(
            connected=response.is_success,
            last_fetch=time.time(),
            response_time_ms=(time.perf_counter() - started) * 1000,
        )
    except httpx.HTTPError as e:
        logger.warning(f"MCP health check failed for {url}: {e}")
        sample = HealthSample(connected=False, last_fetch=time.time(), error=str(e) or type(e).__name__)
    monitor.record_health(sample)
    return sample
