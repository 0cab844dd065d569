import logging

import httpx

from retail_sync.models import DrainResult

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 5.0


class ConnectivityMonitor:
    """Tracks whether the hosted database is reachable.

    The monitor only reports state and offline->online transitions; deciding
    when to drain is left to check_and_drain() or the caller. A recovery seen
    by any probe stays latched until check_and_drain() acts on it, so a probe
    made on behalf of a submit cannot swallow it.
    """

    def __init__(self, probe_url: str | None = None, timeout: float = HTTP_TIMEOUT, online: bool = True,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.probe_url = probe_url
        self.timeout = timeout
        self.transport = transport
        self._online = online
        self._drain_needed = False

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def drain_needed(self) -> bool:
        """True after a recovery that check_and_drain() has not handled yet."""
        return self._drain_needed

    def set_online(self, online: bool) -> bool:
        """Records the new state. Returns True on an offline->online transition."""
        came_back = online and not self._online
        if online != self._online:
            logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        if came_back:
            self._drain_needed = True
        self._online = online
        return came_back

    async def probe(self) -> bool:
        """Checks the probe URL and updates the state. Returns the transition flag."""
        if not self.probe_url:
            logger.debug("No probe URL configured, keeping current connectivity state.")
            return False
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.probe_url)
            online = response.status_code < 500
        except httpx.RequestError as e:
            logger.warning(f"Connectivity probe failed: {e!r}")
            online = False
        return self.set_online(online)

    async def check_and_drain(self, coordinator) -> DrainResult | None:
        """Probes and, if the link came back since the last check with work queued, drains the queue."""
        await self.probe()
        if not (self._online and self._drain_needed):
            return None
        # Cleared before draining: entries that still fail wait for the next recovery or "sync now"
        self._drain_needed = False
        if await coordinator.pending_count() == 0:
            return None
        logger.info("Connection restored, syncing pending submissions.")
        return await coordinator.drain()


def format_sync_summary(result: DrainResult | None) -> str:
    """Banner text for a finished drain."""
    if result is None:
        return ""
    if result.failed > 0:
        return f"{result.synced} 筆同步成功，{result.failed} 筆失敗"
    if result.synced > 0:
        return f"已同步 {result.synced} 筆"
    return ""
