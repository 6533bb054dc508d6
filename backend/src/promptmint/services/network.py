"""Network reachability checks."""

from typing import Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class HttpNetworkMonitor:
    """Treats the API health endpoint answering a HEAD request as being online."""

    def __init__(
        self,
        health_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.health_url = health_url
        self.timeout = timeout
        self.transport = transport

    async def is_online(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.head(self.health_url)
        except httpx.HTTPError as e:
            logger.warning("network.offline", url=self.health_url, error=str(e))
            return False
        return response.is_success


class StaticNetworkMonitor:
    """Fixed answer; used when no health endpoint is configured."""

    def __init__(self, online: bool = True):
        self.online = online

    async def is_online(self) -> bool:
        return self.online
