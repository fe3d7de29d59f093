"""Match what Spotify is playing (or has queued) back to guest requests.

Track identity is the Spotify URI. Fulfillment is FIFO: when the same track was
requested several times, the earliest request is credited first.
"""
import logging
from typing import Any, Optional

from party_playlist.models.request import RequestStatus
from party_playlist.services.request_store import RequestRecord, RequestStore

logger = logging.getLogger(__name__)

APPROVED_PAGE_SIZE = 500


class RequestReconciler:

    def __init__(self, store: RequestStore):
        self._store = store

    async def approved_requests(self, tenant_id: str) -> list[RequestRecord]:
        """Every approved request for the tenant, fetched page by page."""
        approved: list[RequestRecord] = []
        offset = 0
        while True:
            page = await self._store.get_requests_by_status(
                RequestStatus.approved, APPROVED_PAGE_SIZE, offset, tenant_id
            )
            approved.extend(page)
            if len(page) < APPROVED_PAGE_SIZE:
                return approved
            offset += APPROVED_PAGE_SIZE

    async def find_fulfillable_request(self, tenant_id: str, track_uri: str) -> Optional[RequestRecord]:
        """Mark the oldest approved request for ``track_uri`` as played.

        Returns the updated request, or ``None`` when nothing matched.
        """
        if not track_uri:
            return None
        matches = [r for r in await self.approved_requests(tenant_id) if r.track_uri == track_uri]
        if not matches:
            return None

        oldest = min(matches, key=lambda r: r.created_at)
        played = await self._store.update_request_status(oldest.request_id, RequestStatus.played, "played_at")
        logger.info(
            "[%s] Auto-fulfilled request %s (%s) requested by %s",
            tenant_id, played.request_id, played.track_name, played.requester_nickname or "Anonymous",
        )
        return played

    async def enrich_queue_with_requesters(
        self,
        tenant_id: str,
        queue_items: list[dict[str, Any]],
        approved: Optional[list[RequestRecord]] = None,
    ) -> list[dict[str, Any]]:
        """Attach ``requester_nickname`` to each queue item. Nothing is consumed."""
        if approved is None:
            approved = await self.approved_requests(tenant_id)

        by_uri: dict[str, RequestRecord] = {}
        for request in sorted(approved, key=lambda r: r.created_at):
            by_uri.setdefault(request.track_uri, request)

        enriched = []
        for item in queue_items:
            match = by_uri.get(item.get("uri"))
            enriched.append({**item, "requester_nickname": match.requester_nickname if match else None})
        return enriched
