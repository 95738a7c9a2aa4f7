"""
Two-Layer Redis Caching Service for Match Scores

Sits in front of the MatchScoreStore as a read-through layer:
- Pair cache (1hr TTL): one MatchResult per (candidate, job)
- Ranked cache (5min TTL): ranked lists per candidate or job

Cache Key Patterns:
    - match:{candidate_id}:{job_id} - Single pair
    - ranked_gen:{side}:{id} - Write generation of a candidate or job
    - ranked:{side}:{id}:{generation}:{limit} - Ranked list for one generation

Invalidation is deterministic: every pair write bumps the ranked generation
of both sides of the pair. Readers take the generation before querying the
store and fill under it, so a fill that raced a write lands under a
generation nobody reads any more and simply expires. Read-through pair
fills use SET NX so they never overwrite a fresher entry from a write.

Usage:
    cache = await get_cache()

    generation = await cache.ranked_generation("candidate", candidate_id)
    results = await cache.get_ranked("candidate", candidate_id, 20, generation)
    if results is None:
        results = await store.list_for_candidate(candidate_id, 20)
        await cache.set_ranked("candidate", candidate_id, 20, generation, results)
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

from app.config import get_settings
from app.middleware.metrics import record_cache_hit, record_cache_miss
from app.services.aggregator import MatchResult

logger = logging.getLogger(__name__)

# Generation counters must outlive every ranked entry written under them
GENERATION_TTL = 86400


class CacheLayer(Enum):
    """Cache layers with TTL values in seconds."""

    MATCH = ("match", 3600)     # 1 hour
    RANKED = ("ranked", 300)    # 5 minutes

    def __init__(self, layer_name: str, ttl: int):
        self.layer_name = layer_name
        self._ttl = ttl

    @property
    def ttl(self) -> int:
        return self._ttl


def match_key(candidate_id: int, job_id: int) -> str:
    return f"match:{candidate_id}:{job_id}"


def generation_key(side: str, entity_id: int) -> str:
    return f"ranked_gen:{side}:{entity_id}"


def ranked_key(side: str, entity_id: int, generation: int, limit: Optional[int]) -> str:
    return f"ranked:{side}:{entity_id}:{generation}:{limit if limit is not None else 'all'}"


class MatchCache:
    """
    Redis cache for match scores and ranked lists.

    Provides graceful degradation when Redis is unavailable,
    returning None instead of raising exceptions.

    Attributes:
        redis: Async Redis client
        stats: Dict tracking hits/misses per layer
    """

    def __init__(self, redis_url: str):
        """
        Initialize cache with Redis URL.

        Args:
            redis_url: Redis connection URL (e.g., redis://localhost:6379)
        """
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = None
        self.stats: Dict[str, Dict[str, int]] = {
            "hits": {"match": 0, "ranked": 0},
            "misses": {"match": 0, "ranked": 0},
        }

    async def _ensure_connected(self) -> Optional[redis.Redis]:
        """Ensure Redis connection is established."""
        if self.redis is None:
            try:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
            except Exception as e:
                logger.warning(f"Failed to connect to Redis: {e}")
                return None
        return self.redis

    def _hit(self, layer: CacheLayer) -> None:
        self.stats["hits"][layer.layer_name] += 1
        record_cache_hit(layer.layer_name)

    def _miss(self, layer: CacheLayer) -> None:
        self.stats["misses"][layer.layer_name] += 1
        record_cache_miss(layer.layer_name)

    # ==================== Pair Cache ====================

    async def get_match(self, candidate_id: int, job_id: int) -> Optional[MatchResult]:
        """
        Get cached score for a candidate-job pair.

        Returns:
            MatchResult or None on miss/error
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return None

            cached = await client.get(match_key(candidate_id, job_id))

            if cached:
                self._hit(CacheLayer.MATCH)
                return MatchResult.from_dict(json.loads(cached))

            self._miss(CacheLayer.MATCH)
            return None

        except Exception as e:
            logger.warning(f"Redis get error (match cache): {e}")
            self._miss(CacheLayer.MATCH)
            return None

    async def set_match(self, result: MatchResult) -> bool:
        """
        Record a freshly persisted score.

        Overwrites the pair entry and invalidates the ranked lists of both
        the candidate and the job, even if the pair write fails.

        Returns:
            True if the pair entry was written, False otherwise
        """
        written = await self._write_match(result, only_if_absent=False)
        await self.invalidate_ranked("candidate", result.candidate_id)
        await self.invalidate_ranked("job", result.job_id)
        return written

    async def fill_match(self, result: MatchResult) -> bool:
        """
        Populate the pair entry from the store on a read miss.

        Uses SET NX so a concurrent write's entry is never replaced by the
        older row this reader loaded.

        Returns:
            True if the entry was written, False if present or on error
        """
        return await self._write_match(result, only_if_absent=True)

    async def _write_match(self, result: MatchResult, only_if_absent: bool) -> bool:
        try:
            client = await self._ensure_connected()
            if not client:
                return False

            key = match_key(result.candidate_id, result.job_id)
            payload = json.dumps(result.to_dict())

            if only_if_absent:
                return bool(await client.set(key, payload, ex=CacheLayer.MATCH.ttl, nx=True))

            await client.setex(key, CacheLayer.MATCH.ttl, payload)
            return True

        except Exception as e:
            logger.warning(f"Redis set error (match cache): {e}")
            return False

    # ==================== Ranked Cache ====================

    async def ranked_generation(self, side: str, entity_id: int) -> Optional[int]:
        """
        Current write generation for a candidate or job.

        Read it before querying the store and pass it to get_ranked and
        set_ranked.

        Returns:
            Generation (0 if never written) or None when Redis is unavailable
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return None

            value = await client.get(generation_key(side, entity_id))
            return int(value) if value is not None else 0

        except Exception as e:
            logger.warning(f"Redis get error (ranked generation): {e}")
            return None

    async def get_ranked(
        self,
        side: str,
        entity_id: int,
        limit: Optional[int],
        generation: int,
    ) -> Optional[List[MatchResult]]:
        """
        Get a cached ranked list.

        Args:
            side: "candidate" (jobs for a candidate) or "job"
            entity_id: Candidate or job id
            limit: List limit the entry was stored under
            generation: Generation from ranked_generation()

        Returns:
            Ranked results or None on miss/error
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return None

            cached = await client.get(ranked_key(side, entity_id, generation, limit))

            if cached is not None:
                self._hit(CacheLayer.RANKED)
                return [MatchResult.from_dict(item) for item in json.loads(cached)]

            self._miss(CacheLayer.RANKED)
            return None

        except Exception as e:
            logger.warning(f"Redis get error (ranked cache): {e}")
            self._miss(CacheLayer.RANKED)
            return None

    async def set_ranked(
        self,
        side: str,
        entity_id: int,
        limit: Optional[int],
        generation: int,
        results: List[MatchResult],
    ) -> bool:
        try:
            client = await self._ensure_connected()
            if not client:
                return False

            await client.setex(
                ranked_key(side, entity_id, generation, limit),
                CacheLayer.RANKED.ttl,
                json.dumps([r.to_dict() for r in results]),
            )
            return True

        except Exception as e:
            logger.warning(f"Redis set error (ranked cache): {e}")
            return False

    # ==================== Cache Invalidation ====================

    async def invalidate_ranked(self, side: str, entity_id: int) -> Optional[int]:
        """
        Invalidate every cached ranked list (any limit) for one candidate or job.

        Bumps the generation; entries under older generations are no longer
        read and expire on their TTL.

        Returns:
            New generation, or None on error
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return None

            key = generation_key(side, entity_id)
            generation = await client.incr(key)
            await client.expire(key, GENERATION_TTL)
            return generation

        except Exception as e:
            logger.warning(f"Redis invalidation error: {e}")
            return None

    # ==================== Health & Stats ====================

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is responsive
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return False

            await client.ping()
            return True

        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        """
        Get cache statistics including hit rates.

        Returns:
            Dict with stats per cache layer
        """
        stats = {}

        for layer in CacheLayer:
            hits = self.stats["hits"][layer.layer_name]
            misses = self.stats["misses"][layer.layer_name]
            total = hits + misses

            stats[layer.layer_name] = {
                "hits": hits,
                "misses": misses,
                "total": total,
                "hit_rate": hits / total if total > 0 else 0.0,
            }

        return stats

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.close()
            self.redis = None


# ==================== Factory Function ====================

_cache_instance: Optional[MatchCache] = None


async def get_cache(redis_url: Optional[str] = None) -> MatchCache:
    """
    Get or create cache singleton.

    Args:
        redis_url: Optional Redis URL (uses settings if not provided)

    Returns:
        MatchCache instance
    """
    global _cache_instance

    if _cache_instance is None:
        url = redis_url or get_settings().redis_url
        _cache_instance = MatchCache(redis_url=url)

    return _cache_instance
