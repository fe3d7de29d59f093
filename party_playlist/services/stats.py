"""Per-tenant request statistics with redundant-update suppression."""
import logging
from dataclasses import asdict, dataclass
from typing import Iterable

from party_playlist.models.request import RequestStatus
from party_playlist.services.publisher import STATS_UPDATE, Publisher, publish_safely
from party_playlist.services.request_store import RequestRecord, RequestStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestStats:
    total_requests: int = 0
    pending_requests: int = 0
    approved_requests: int = 0
    rejected_requests: int = 0
    played_requests: int = 0
    unique_requesters: int = 0
    spotify_connected: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


def compute_stats(requests: Iterable[RequestRecord], spotify_connected: bool = False) -> RequestStats:
    requests = list(requests)
    counts = {status: 0 for status in RequestStatus}
    for r in requests:
        counts[RequestStatus(r.status)] += 1
    return RequestStats(
        total_requests=len(requests),
        pending_requests=counts[RequestStatus.pending],
        approved_requests=counts[RequestStatus.approved],
        rejected_requests=counts[RequestStatus.rejected],
        played_requests=counts[RequestStatus.played],
        unique_requesters=len({r.requester_nickname or "Anonymous" for r in requests}),
        spotify_connected=spotify_connected,
    )


class StatsAggregator:
    """Recomputes stats per tenant and publishes only when they changed.

    The last published snapshot per tenant is owned by this object.
    """

    def __init__(self, store: RequestStore, publisher: Publisher):
        self._store = store
        self._publisher = publisher
        self._last: dict[str, RequestStats] = {}

    def last_snapshot(self, tenant_id: str):
        return self._last.get(tenant_id)

    def forget(self, tenant_id: str) -> None:
        self._last.pop(tenant_id, None)

    async def refresh(self, tenant_id: str, spotify_connected: bool = False) -> bool:
        """Recompute one tenant's stats. Returns True if a stats event was emitted."""
        stats = compute_stats(await self._store.get_all_requests(tenant_id), spotify_connected)
        if self._last.get(tenant_id) == stats:
            logger.debug("[%s] Stats unchanged; skipping fan-out", tenant_id)
            return False

        self._last[tenant_id] = stats
        sent = await publish_safely(self._publisher, tenant_id, STATS_UPDATE, {**stats.as_dict(), "userId": tenant_id})
        if sent:
            logger.info("[%s] Stats update sent: %s", tenant_id, stats)
        return sent
