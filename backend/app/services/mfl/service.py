"""
MFL API Service
Cache-first access to MFL league data using modular components.
"""
from typing import Any, Dict, Optional
import logging

from .client import MFLHTTPClient, RateLimiter
from .cache import CacheCategory, InMemoryCache
from .processors import MFLDataProcessor

logger = logging.getLogger(__name__)

EXPORT_ENDPOINT = "export"

_MISSING = object()


class MFLService:
    """
    Read side of the MFL integration.

    Orchestrates cached reads using modular components:
    - InMemoryCache: per-category TTL caching of unwrapped payloads
    - RateLimiter: serializes upstream calls on cache miss
    - MFLHTTPClient: HTTP requests
    - MFLDataProcessor: envelope unwrapping

    Concurrent misses for the same key are not coalesced; each one issues
    its own upstream call and the last write wins.
    """

    def __init__(
        self,
        client: MFLHTTPClient,
        cache: InMemoryCache,
        rate_limiter: RateLimiter,
        processor: Optional[MFLDataProcessor] = None,
    ) -> None:
        """
        Initialize MFL service.

        Args:
            client: HTTP client for MFL
            cache: Shared response cache
            rate_limiter: Shared outbound request queue
            processor: Optional response processor
        """
        self.client = client
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.processor = processor or MFLDataProcessor()

    async def fetch(
        self,
        endpoint: str,
        category: CacheCategory,
        key: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Fetch a resource, serving it from cache when fresh.

        Args:
            endpoint: MFL endpoint relative to the base URL
            category: Cache category, which also decides the TTL
            key: Cache identifier within the category
            params: Query parameters for the upstream call

        Returns:
            Unwrapped payload

        Raises:
            UpstreamFetchError: If the upstream call fails
            MalformedResponseError: If the response envelope is invalid
        """
        cached = self.cache.get(category, key, default=_MISSING)
        if cached is not _MISSING:
            return cached

        response = await self.rate_limiter.enqueue(
            lambda: self.client.get_json(endpoint, params)
        )

        data = self.processor.extract_payload(response)
        self.cache.set(category, key, data)
        return data

    async def get_league(self, league_id: str) -> Dict:
        """
        Get league information (settings, franchises, starters).

        Args:
            league_id: MFL league ID
        """
        return await self.fetch(
            EXPORT_ENDPOINT,
            CacheCategory.LEAGUE_INFO,
            league_id,
            {"TYPE": "league", "L": league_id},
        )

    async def get_rosters(self, league_id: str, franchise_id: Optional[str] = None) -> Dict:
        """
        Get rosters for a league, optionally a single franchise.

        Args:
            league_id: MFL league ID
            franchise_id: Optional franchise ID to restrict the roster to
        """
        params = {"TYPE": "rosters", "L": league_id}
        cache_key = league_id
        if franchise_id:
            params["FRANCHISE"] = franchise_id
            cache_key = f"{league_id}-{franchise_id}"

        return await self.fetch(EXPORT_ENDPOINT, CacheCategory.ROSTERS, cache_key, params)

    async def get_player_scores(self, league_id: str, week: str) -> Dict:
        """
        Get player scores for a week.

        Args:
            league_id: MFL league ID
            week: Week number
        """
        return await self.fetch(
            EXPORT_ENDPOINT,
            CacheCategory.LIVE_SCORES,
            f"{league_id}-{week}",
            {"TYPE": "playerScores", "L": league_id, "W": week},
        )

    async def get_players(self, position: Optional[str] = None, details: bool = False) -> Dict:
        """
        Get the player directory.

        Args:
            position: Optional position filter (e.g., "QB")
            details: Include extended player details
        """
        params: Dict[str, Any] = {"TYPE": "players"}
        if position:
            params["POSITION"] = position
        if details:
            params["DETAILS"] = 1

        cache_key = f"all-{position or 'all'}-{'details' if details else 'all'}"
        return await self.fetch(EXPORT_ENDPOINT, CacheCategory.PLAYERS, cache_key, params)

    async def get_standings(self, league_id: str) -> Dict:
        """Get league standings."""
        return await self.fetch(
            EXPORT_ENDPOINT,
            CacheCategory.STANDINGS,
            league_id,
            {"TYPE": "leagueStandings", "L": league_id},
        )

    async def get_transactions(
        self,
        league_id: str,
        trans_type: Optional[str] = None,
        days: str = "7",
    ) -> Dict:
        """
        Get recent league transactions.

        Args:
            league_id: MFL league ID
            trans_type: Optional filter (WAIVER, TRADE, BBID_WAIVER, IR)
            days: How many days back to look (default: 7)
        """
        params = {"TYPE": "transactions", "L": league_id, "DAYS": days}
        if trans_type:
            params["TRANS_TYPE"] = trans_type

        return await self.fetch(
            EXPORT_ENDPOINT,
            CacheCategory.TRANSACTIONS,
            f"{league_id}-{trans_type or 'all'}-{days}",
            params,
        )

    async def get_schedule(self, league_id: str) -> Dict:
        """
        Get the league schedule.

        Cached with league info since the schedule changes just as rarely.
        """
        return await self.fetch(
            EXPORT_ENDPOINT,
            CacheCategory.LEAGUE_INFO,
            self._schedule_key(league_id),
            {"TYPE": "leagueSchedule", "L": league_id},
        )

    @staticmethod
    def _schedule_key(league_id: str) -> str:
        return f"schedule-{league_id}"

    def invalidate_league_cache(self, league_id: str) -> int:
        """
        Drop cached league info, rosters, standings and schedule for a league.

        Franchise-scoped rosters (keyed "<league>-<franchise>") go too.

        Called after write actions that may have changed them upstream.

        Returns:
            Number of entries removed
        """
        removed = (
            self.cache.delete(CacheCategory.LEAGUE_INFO, league_id)
            + self.cache.delete(CacheCategory.LEAGUE_INFO, self._schedule_key(league_id))
            + self.cache.delete(CacheCategory.ROSTERS, league_id)
            + self.cache.delete_by_prefix(CacheCategory.ROSTERS, f"{league_id}-")
            + self.cache.delete(CacheCategory.STANDINGS, league_id)
        )
        logger.info(f"Cache invalidated for league {league_id} ({removed} entries)")
        return removed

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics along with the outbound queue depth."""
        stats = self.cache.stats()
        stats["queued_requests"] = self.rate_limiter.pending
        return stats

    async def close(self) -> None:
        """Stop the request queue and close the HTTP client."""
        await self.rate_limiter.close()
        await self.client.close()
