from typing import Callable, Dict, List, Any, Optional, Sequence
import asyncio
import time

import structlog

from context_planner.domain.models.plan_state import ContextPlan, TurnContext
from context_planner.domain.planning.plan_synthesizer import classify_message
from context_planner.domain.tool.tool_registry import ToolRegistry, apply_tool_allowlist
from context_planner.infrastructure.config import Settings
from context_planner.infrastructure.memory_service.client import MemoryServiceClient
from context_planner.infrastructure.observability.logging import MetricsCollector, planner_logger
from context_planner.infrastructure.scheduling.background_tasks import BackgroundTasks
from .context_retriever import MemoryRetriever
from .memory.cache_memory_store import SessionCacheStore
from .memory.ingestion_trigger import IngestionTrigger
from .memory.transcript import TranscriptSource

logger = structlog.get_logger(__name__)


class ContextManager:
    """Assembles per-turn context: plan first, then time-boxed memory recall"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[MemoryServiceClient] = None,
        cache_store: Optional[SessionCacheStore] = None,
        background: Optional[BackgroundTasks] = None,
        tool_registry: Optional[ToolRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or Settings()
        self.client = client or MemoryServiceClient(self.settings.memory_service)
        self.cache_store = cache_store or SessionCacheStore()
        self.background = background or BackgroundTasks()
        self.tool_registry = tool_registry or ToolRegistry()
        self.metrics = metrics or MetricsCollector()
        self.clock = clock

        self.retriever = MemoryRetriever(
            client=self.client,
            cache_store=self.cache_store,
            background=self.background,
            config=self.settings.memory_service,
            metrics=self.metrics,
            clock=clock,
        )
        self.ingestion = IngestionTrigger(
            client=self.client,
            cache_store=self.cache_store,
            background=self.background,
            config=self.settings.memory_service,
            clock=clock,
        )

    def plan_turn(self, message: str) -> ContextPlan:
        """Classify the message; synchronous and side-effect free"""

        return classify_message(message, self.settings.planner)

    async def build_context(
        self,
        message: str,
        session_id: str,
        user_id: Optional[str] = None,
        background_run: bool = False,
    ) -> TurnContext:
        """Build the plan and recall memory for one turn"""

        structlog.contextvars.bind_contextvars(session_id=session_id)
        try:
            plan = self.plan_turn(message)

            planner_logger.log_plan(
                session_id=session_id,
                categories=plan.categories,
                tool_count=len(plan.tool_allowlist) if plan.tool_allowlist is not None else None,
                think_level=plan.think_level.value,
                memory=plan.memory.model_dump(),
            )
            self.metrics.increment_counter("turns.planned")

            recall = await self.retriever.recall(
                plan.memory,
                message,
                session_id,
                user_id=user_id,
                background_run=background_run,
            )

            return TurnContext(session_id=session_id, plan=plan, recall=recall)
        finally:
            structlog.contextvars.unbind_contextvars("session_id")

    def filter_tools(self, authorized: Sequence[str], plan: ContextPlan) -> List[str]:
        """Apply the plan's allowlist after all authorization filtering"""

        return apply_tool_allowlist(authorized, plan.tool_allowlist)

    def describe_tools(self, authorized: Sequence[str], plan: ContextPlan) -> List[Dict[str, Any]]:
        """Registered descriptors for the tools this turn may use"""

        return self.tool_registry.tools_for_turn(authorized, plan.tool_allowlist)

    async def complete_turn(
        self,
        transcript: Optional[TranscriptSource],
        session_id: str,
        user_id: Optional[str] = None,
        channel: Optional[str] = None,
        background_run: bool = False,
    ) -> bool:
        """Hand the finished turn to the memory service without waiting on it"""

        try:
            return await self.ingestion.trigger(
                transcript,
                session_id,
                user_id=user_id,
                channel=channel,
                background_run=background_run,
            )
        except Exception as e:
            logger.error("Ingestion trigger failed", session_id=session_id, error=str(e))
            return False

    async def get_context_summary(self, session_id: str) -> Dict[str, Any]:
        """Get a summary of the cached memory state for a session"""

        entry = await self.cache_store.get(session_id)

        if entry:
            return {
                "session_id": session_id,
                "has_synthesis": entry.synthesis is not None,
                "synthesis_cached_at": entry.synthesis.cached_at if entry.synthesis else None,
                "recalled_at": entry.recalled_at,
                "facts_injected": entry.facts_injected,
                "ingested_at": entry.ingested_at,
            }

        return {
            "session_id": session_id,
            "status": "no_context"
        }

    async def clear_session_context(self, session_id: str):
        """Clear all cached state for a session"""

        logger.info("Clearing session context", session_id=session_id)
        await self.cache_store.delete(session_id)

    async def prune_sessions(self) -> Dict[str, int]:
        """Drop expired narratives and evict idle sessions from the cache"""

        config = self.settings.memory_service
        now = self.clock()

        stale = await self.cache_store.clear_stale_synthesis(config.synthesis_cache_ttl_s, now=now)
        evicted = await self.cache_store.evict_idle(config.session_idle_ttl_s, now=now)

        if stale or evicted:
            logger.info("Pruned session cache", stale_synthesis=stale, evicted_sessions=evicted)
            self.metrics.increment_counter("sessions.evicted", evicted)

        return {"stale_synthesis": stale, "evicted_sessions": evicted}

    async def run_cache_maintenance(self):
        """Prune the session cache every ``cache_prune_interval_s`` until cancelled"""

        interval = self.settings.memory_service.cache_prune_interval_s
        while True:
            await asyncio.sleep(interval)
            try:
                await self.prune_sessions()
            except Exception as e:
                logger.error("Session cache pruning failed", error=str(e))

    async def get_stats(self) -> Dict[str, Any]:
        """Cache, metric and background task counters for health reporting"""

        return {
            "cache": await self.cache_store.get_stats(),
            "metrics": self.metrics.get_metrics_summary(),
            "background_tasks": self.background.pending,
        }

    async def shutdown(self, timeout: Optional[float] = 5.0):
        """Let background work finish, then release the HTTP client"""

        await self.background.drain(timeout=timeout)
        await self.client.aclose()
