"""
Integration tests for MFLService against a fake MFL upstream.

Tests verify that cached reads:
1. Go through the rate limiter only on cache miss
2. Never cache malformed envelopes
3. Surface upstream failures as typed errors
"""

import asyncio

import httpx
import pytest

from app.exceptions import MalformedResponseError, UpstreamFetchError
from app.services.mfl import CacheCategory
from conftest import mfl_envelope


ROSTERS = {"franchise": [{"id": "0001", "player": [{"id": "13593", "status": "ROSTER"}]}]}


@pytest.mark.asyncio
async def test_cache_hit_avoids_upstream_call(mfl_service, fake_mfl, monkeypatch):
    fake_mfl.route("rosters", httpx.Response(200, json=mfl_envelope("rosters", ROSTERS)))

    first = await mfl_service.fetch("export", CacheCategory.ROSTERS, "L1", {"TYPE": "rosters", "L": "L1"})

    enqueued = []
    original_enqueue = mfl_service.rate_limiter.enqueue

    async def spy(work):
        enqueued.append(work)
        return await original_enqueue(work)

    monkeypatch.setattr(mfl_service.rate_limiter, "enqueue", spy)

    second = await mfl_service.fetch("export", CacheCategory.ROSTERS, "L1", {"TYPE": "rosters", "L": "L1"})

    assert first == ROSTERS
    assert second == first
    assert enqueued == []
    assert len(fake_mfl.calls("rosters")) == 1


@pytest.mark.asyncio
async def test_cached_null_payload_is_a_hit(mfl_service, fake_mfl):
    fake_mfl.route("transactions", httpx.Response(200, json=mfl_envelope("transactions", None)))

    first = await mfl_service.get_transactions("L1")
    second = await mfl_service.get_transactions("L1")

    assert first is None
    assert second is None
    assert len(fake_mfl.calls("transactions")) == 1
    stats = mfl_service.get_cache_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1


@pytest.mark.asyncio
async def test_malformed_envelope_is_not_cached(mfl_service, fake_mfl):
    fake_mfl.route("league", httpx.Response(200, json={"version": "1.0", "encoding": "utf-8"}))

    with pytest.raises(MalformedResponseError):
        await mfl_service.get_league("L1")

    assert not mfl_service.cache.has(CacheCategory.LEAGUE_INFO, "L1")
    assert mfl_service.cache.stats()["entries"] == 0


@pytest.mark.asyncio
async def test_non_json_body_is_malformed(mfl_service, fake_mfl):
    fake_mfl.route("league", httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(MalformedResponseError):
        await mfl_service.get_league("L1")


@pytest.mark.asyncio
async def test_upstream_error_carries_status(mfl_service, fake_mfl):
    fake_mfl.route("leagueStandings", httpx.Response(503, text="busy"))

    with pytest.raises(UpstreamFetchError) as exc_info:
        await mfl_service.get_standings("L1")

    assert exc_info.value.upstream_status == 503
    assert exc_info.value.status_code == 502
    assert not mfl_service.cache.has(CacheCategory.STANDINGS, "L1")


@pytest.mark.asyncio
async def test_network_failure_has_no_status(mfl_service, fake_mfl):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    fake_mfl.route("leagueStandings", refuse)

    with pytest.raises(UpstreamFetchError) as exc_info:
        await mfl_service.get_standings("L1")
    assert exc_info.value.upstream_status is None


@pytest.mark.asyncio
async def test_timeout_does_not_block_queue(mfl_service, fake_mfl):
    def time_out(request):
        raise httpx.ReadTimeout("timed out", request=request)

    fake_mfl.route("leagueStandings", time_out)
    fake_mfl.route("rosters", httpx.Response(200, json=mfl_envelope("rosters", ROSTERS)))

    results = await asyncio.gather(
        mfl_service.get_standings("L1"),
        mfl_service.get_rosters("L1"),
        return_exceptions=True,
    )

    assert isinstance(results[0], UpstreamFetchError)
    assert results[1] == ROSTERS


@pytest.mark.asyncio
async def test_concurrent_misses_are_not_coalesced(mfl_service, fake_mfl):
    fake_mfl.route("rosters", httpx.Response(200, json=mfl_envelope("rosters", ROSTERS)))

    await asyncio.gather(mfl_service.get_rosters("L1"), mfl_service.get_rosters("L1"))

    assert len(fake_mfl.calls("rosters")) == 2


class TestWrappers:
    """Category wrappers build the right query and cache key."""

    @pytest.mark.asyncio
    async def test_rosters_for_franchise(self, mfl_service, fake_mfl):
        fake_mfl.route("rosters", httpx.Response(200, json=mfl_envelope("rosters", ROSTERS)))

        await mfl_service.get_rosters("L1", franchise_id="0001")

        params = fake_mfl.calls("rosters")[0].url.params
        assert params["L"] == "L1"
        assert params["FRANCHISE"] == "0001"
        assert params["JSON"] == "1"
        assert mfl_service.cache.has(CacheCategory.ROSTERS, "L1-0001")

    @pytest.mark.asyncio
    async def test_player_scores(self, mfl_service, fake_mfl):
        fake_mfl.route("playerScores", httpx.Response(200, json=mfl_envelope("playerScores", {"week": "3"})))

        await mfl_service.get_player_scores("L1", "3")

        assert fake_mfl.calls("playerScores")[0].url.params["W"] == "3"
        assert mfl_service.cache.has(CacheCategory.LIVE_SCORES, "L1-3")

    @pytest.mark.asyncio
    async def test_players_directory(self, mfl_service, fake_mfl):
        fake_mfl.route("players", httpx.Response(200, json=mfl_envelope("players", {"player": []})))

        await mfl_service.get_players(position="QB", details=True)

        params = fake_mfl.calls("players")[0].url.params
        assert params["POSITION"] == "QB"
        assert params["DETAILS"] == "1"
        assert mfl_service.cache.has(CacheCategory.PLAYERS, "all-QB-details")

    @pytest.mark.asyncio
    async def test_transactions(self, mfl_service, fake_mfl):
        fake_mfl.route("transactions", httpx.Response(200, json=mfl_envelope("transactions", {"transaction": []})))

        await mfl_service.get_transactions("L1", trans_type="TRADE", days="14")

        params = fake_mfl.calls("transactions")[0].url.params
        assert params["TRANS_TYPE"] == "TRADE"
        assert params["DAYS"] == "14"
        assert mfl_service.cache.has(CacheCategory.TRANSACTIONS, "L1-TRADE-14")

    @pytest.mark.asyncio
    async def test_schedule_shares_league_info_category(self, mfl_service, fake_mfl):
        fake_mfl.route("league", httpx.Response(200, json=mfl_envelope("league", {"id": "L1"})))
        fake_mfl.route("leagueSchedule", httpx.Response(200, json=mfl_envelope("schedule", {"weeklySchedule": []})))

        league = await mfl_service.get_league("L1")
        schedule = await mfl_service.get_schedule("L1")

        assert league == {"id": "L1"}
        assert schedule == {"weeklySchedule": []}
        assert mfl_service.cache.has(CacheCategory.LEAGUE_INFO, "L1")
        assert mfl_service.cache.has(CacheCategory.LEAGUE_INFO, "schedule-L1")


@pytest.mark.asyncio
async def test_invalidate_league_cache(mfl_service, fake_mfl):
    fake_mfl.route("league", httpx.Response(200, json=mfl_envelope("league", {"id": "L1"})))
    fake_mfl.route("rosters", httpx.Response(200, json=mfl_envelope("rosters", ROSTERS)))
    fake_mfl.route("leagueStandings", httpx.Response(200, json=mfl_envelope("leagueStandings", {"franchise": []})))
    fake_mfl.route("transactions", httpx.Response(200, json=mfl_envelope("transactions", {"transaction": []})))

    await mfl_service.get_league("L1")
    await mfl_service.get_rosters("L1")
    await mfl_service.get_standings("L1")
    await mfl_service.get_transactions("L1")

    assert mfl_service.invalidate_league_cache("L1") == 3
    assert mfl_service.cache.has(CacheCategory.TRANSACTIONS, "L1-all-7")

    await mfl_service.get_rosters("L1")
    assert len(fake_mfl.calls("rosters")) == 2


@pytest.mark.asyncio
async def test_invalidate_league_cache_drops_franchise_rosters(mfl_service, fake_mfl):
    fake_mfl.route("rosters", httpx.Response(200, json=mfl_envelope("rosters", ROSTERS)))

    await mfl_service.get_rosters("L1", franchise_id="0001")
    await mfl_service.get_rosters("L1", franchise_id="0002")
    await mfl_service.get_rosters("L10", franchise_id="0001")

    assert mfl_service.invalidate_league_cache("L1") == 2
    assert not mfl_service.cache.has(CacheCategory.ROSTERS, "L1-0001")
    assert not mfl_service.cache.has(CacheCategory.ROSTERS, "L1-0002")
    assert mfl_service.cache.has(CacheCategory.ROSTERS, "L10-0001")


@pytest.mark.asyncio
async def test_cache_stats_include_queue_depth(mfl_service):
    stats = mfl_service.get_cache_stats()

    assert stats["queued_requests"] == 0
    assert stats["entries"] == 0
