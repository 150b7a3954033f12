"""
Upstream schedule client

Fetches one channel's raw XMLTV schedule from the upstream provider. Each call
is bounded by its own timeout; nothing is retried within an invocation.
"""
import asyncio
import logging

import httpx

from epg_aggregator.exceptions import MalformedPayload, UpstreamStatusError, UpstreamTimeout


logger = logging.getLogger(__name__)

ROOT_MARKER = "<tv"


class ScheduleClient:
    """Async HTTP client for the per-channel schedule endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 4.0,
        user_agent: str = "Mozilla/5.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.user_agent = user_agent
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            )
        return self._client

    async def fetch_schedule(self, upstream_id: str) -> str:
        """
        Fetch the raw schedule payload for one upstream channel

        Args:
            upstream_id: Upstream channel identifier

        Returns:
            Raw XMLTV payload

        Raises:
            UpstreamTimeout: If the fetch exceeds its timeout (the request is cancelled)
            UpstreamStatusError: On non-success status or transport failure
            MalformedPayload: If the payload lacks the listings root marker
        """
        try:
            response = await asyncio.wait_for(
                self.client.get(self.base_url, params={"channel_id": upstream_id}),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTimeout(upstream_id, f"timed out after {self.timeout:.1f}s") from e
        except httpx.HTTPError as e:
            raise UpstreamStatusError(upstream_id, f"transport error: {type(e).__name__}") from e

        if not response.is_success:
            raise UpstreamStatusError(
                upstream_id,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        payload = response.text
        if ROOT_MARKER not in payload:
            raise MalformedPayload(upstream_id, "payload has no <tv> root element")

        logger.debug("[%s] Fetched %.1f KB", upstream_id, len(payload) / 1024)
        return payload

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
