"""Tests for request statistics and redundant-update suppression."""
import pytest

from party_playlist.models.request import RequestStatus
from party_playlist.services.publisher import STATS_UPDATE, tenant_channel
from party_playlist.services.stats import StatsAggregator, compute_stats
from tests.conftest import InMemoryRequestStore, RecordingPublisher, make_record


class TestComputeStats:

    def test_counts_by_status(self):
        stats = compute_stats([
            make_record("1", status=RequestStatus.pending, nickname="Al"),
            make_record("2", status=RequestStatus.approved, nickname="Al"),
            make_record("3", status=RequestStatus.rejected, nickname="Bo"),
            make_record("4", status=RequestStatus.played),
        ], spotify_connected=True)
        assert stats.total_requests == 4
        assert stats.pending_requests == 1
        assert stats.approved_requests == 1
        assert stats.rejected_requests == 1
        assert stats.played_requests == 1
        assert stats.spotify_connected is True

    def test_missing_nicknames_count_as_one_anonymous_requester(self):
        stats = compute_stats([make_record("1"), make_record("2"), make_record("3", nickname="Al")])
        assert stats.unique_requesters == 2

    def test_empty(self):
        assert compute_stats([]).total_requests == 0


class TestStatsAggregator:

    @pytest.mark.asyncio
    async def test_identical_runs_emit_once(self):
        store = InMemoryRequestStore([make_record("1", nickname="Al")])
        publisher = RecordingPublisher()
        aggregator = StatsAggregator(store, publisher)

        assert await aggregator.refresh("tenant-1") is True
        assert await aggregator.refresh("tenant-1") is False

        sent = publisher.of_type(STATS_UPDATE)
        assert len(sent) == 1
        channel, _, payload = sent[0]
        assert channel == tenant_channel("tenant-1")
        assert payload["total_requests"] == 1
        assert payload["userId"] == "tenant-1"

    @pytest.mark.asyncio
    async def test_change_emits_again(self):
        store = InMemoryRequestStore([make_record("1")])
        publisher = RecordingPublisher()
        aggregator = StatsAggregator(store, publisher)

        await aggregator.refresh("tenant-1")
        store.add(make_record("2", status=RequestStatus.pending))
        await aggregator.refresh("tenant-1")

        assert len(publisher.of_type(STATS_UPDATE)) == 2
        assert aggregator.last_snapshot("tenant-1").total_requests == 2

    @pytest.mark.asyncio
    async def test_tenants_are_tracked_separately(self):
        store = InMemoryRequestStore([make_record("1"), make_record("2", tenant_id="tenant-2")])
        publisher = RecordingPublisher()
        aggregator = StatsAggregator(store, publisher)

        await aggregator.refresh("tenant-1")
        await aggregator.refresh("tenant-2")
        assert len(publisher.of_type(STATS_UPDATE)) == 2

    @pytest.mark.asyncio
    async def test_forget_resends(self):
        store = InMemoryRequestStore([make_record("1")])
        publisher = RecordingPublisher()
        aggregator = StatsAggregator(store, publisher)

        await aggregator.refresh("tenant-1")
        aggregator.forget("tenant-1")
        await aggregator.refresh("tenant-1")
        assert len(publisher.of_type(STATS_UPDATE)) == 2

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self):
        aggregator = StatsAggregator(InMemoryRequestStore([make_record("1")]), RecordingPublisher(fail=True))
        assert await aggregator.refresh("tenant-1") is False
