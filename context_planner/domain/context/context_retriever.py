from typing import Callable, List, Optional
import time

import structlog

from context_planner.domain.models.plan_state import (
    MemoryFact,
    MemoryPolicy,
    RecallResult,
    SynthesisCache,
)
from context_planner.infrastructure.config import MemoryServiceConfig
from context_planner.infrastructure.memory_service.client import MemoryServiceClient
from context_planner.infrastructure.observability.logging import MetricsCollector, planner_logger
from context_planner.infrastructure.scheduling.background_tasks import BackgroundTasks
from .memory.cache_memory_store import SessionCacheStore

logger = structlog.get_logger(__name__)

MEMORY_BLOCK_HEADER = "## Long-Term Memories"


def sort_facts(facts: List[MemoryFact]) -> List[MemoryFact]:
    """Order facts by importance, then relevance, both descending"""
    return sorted(facts, key=lambda f: (-(f.importance or 0), -(f.score or 0)))


def format_memory_block(
    facts: List[MemoryFact],
    max_chars: int,
    synthesis: Optional[str] = None,
) -> str:
    """Render facts (and an optional narrative) as a markdown block.

    Truncation is a hard cut at ``max_chars`` applied to the finished block.
    """
    if not facts and not synthesis:
        return ""

    lines = [MEMORY_BLOCK_HEADER, ""]

    if synthesis:
        lines.append(f"**Summary (from previous context):** {synthesis}")
        lines.append("")

    if facts:
        lines.append("**Individual facts:**")
        for fact in facts:
            topic = f"[{fact.topic}]" if fact.topic else "[general]"
            importance = f" (importance: {fact.importance:g})" if fact.importance is not None else ""
            lines.append(f"- {topic} {fact.fact}{importance}")

    block = "\n".join(lines)
    return block[:max_chars]


class MemoryRetriever:
    """Time-boxed recall of long-term memory for one turn"""

    def __init__(
        self,
        client: MemoryServiceClient,
        cache_store: SessionCacheStore,
        background: BackgroundTasks,
        config: MemoryServiceConfig,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.cache_store = cache_store
        self.background = background
        self.config = config
        self.metrics = metrics or MetricsCollector()
        self.clock = clock

    def _skip_reason(self, policy: MemoryPolicy, query: str, background_run: bool) -> Optional[str]:
        if policy.skip:
            return "policy_skip"
        if not self.config.enabled or not self.config.auto_recall:
            return "disabled"
        if background_run and self.config.skip_background_runs:
            return "background_run"
        if len(query) < self.config.min_query_length:
            return "query_too_short"
        return None

    async def recall(
        self,
        policy: MemoryPolicy,
        message: str,
        session_id: str,
        user_id: Optional[str] = None,
        background_run: bool = False,
    ) -> RecallResult:
        """Retrieve memory context for a turn; never raises"""

        try:
            return await self._recall(policy, message, session_id, user_id, background_run)
        except Exception as e:
            logger.error("Recall failed, continuing without memory context", session_id=session_id, error=str(e))
            return RecallResult.empty()

    async def _recall(
        self,
        policy: MemoryPolicy,
        message: str,
        session_id: str,
        user_id: Optional[str],
        background_run: bool,
    ) -> RecallResult:
        query = (message or "").strip()

        reason = self._skip_reason(policy, query, background_run)
        if reason:
            planner_logger.log_skip(session_id, "recall", reason)
            return RecallResult.empty()

        started = time.perf_counter()
        search = await self.client.hybrid_search(
            query,
            user_id=user_id,
            limit=policy.max_facts,
            timeout_ms=self.config.recall_timeout_ms,
        )
        duration_ms = (time.perf_counter() - started) * 1000
        self.metrics.record_latency("hybrid_search", duration_ms)

        facts = sort_facts(search.results) if search else []
        if search is None:
            self.metrics.increment_counter("recall.failures")

        # Read the cache before this turn's synthesis can overwrite it
        entry = await self.cache_store.get(session_id)
        synthesis = None
        if entry and entry.synthesis and entry.synthesis.is_fresh(self.clock(), self.config.synthesis_cache_ttl_s):
            synthesis = entry.synthesis.response

        block = format_memory_block(
            facts,
            max_chars=policy.max_tokens * self.config.chars_per_token,
            synthesis=synthesis,
        )

        if len(query) >= self.config.synthesis_min_query_length:
            self.background.spawn(
                self._refresh_synthesis(query, user_id, session_id),
                name=f"synthesis:{session_id}",
                session_id=session_id,
            )

        await self._persist_recall_metadata(session_id, len(facts))

        planner_logger.log_recall(
            session_id=session_id,
            fact_count=len(facts),
            duration_ms=round(duration_ms, 2),
            used_synthesis=synthesis is not None,
            success=search is not None,
        )

        return RecallResult(
            context_block=block or None,
            fact_count=len(facts),
            facts=facts,
            synthesis=synthesis,
        )

    async def _refresh_synthesis(self, query: str, user_id: Optional[str], session_id: str) -> None:
        """Background deep synthesis; on success replaces the cached narrative"""

        result = await self.client.recall(query, user_id=user_id, timeout_s=self.config.synthesis_timeout_s)
        if result is None or not result.response:
            planner_logger.log_background_event("synthesis", "no_result", session_id=session_id)
            return

        try:
            await self.cache_store.update(
                session_id,
                synthesis=SynthesisCache(query=query, response=result.response, cached_at=self.clock()),
            )
        except Exception as e:
            logger.warning("Failed to cache synthesis", session_id=session_id, error=str(e))
            return

        planner_logger.log_background_event(
            "synthesis",
            "cached",
            session_id=session_id,
            details={"memories_used": result.memories_used},
        )

    async def _persist_recall_metadata(self, session_id: str, fact_count: int) -> None:
        try:
            await self.cache_store.update(session_id, recalled_at=self.clock(), facts_injected=fact_count)
        except Exception as e:
            logger.warning("Failed to persist recall metadata", session_id=session_id, error=str(e))
