from typing import Callable, Optional
from pathlib import Path
import asyncio
import time

import structlog

from context_planner.infrastructure.config import MemoryServiceConfig
from context_planner.infrastructure.memory_service.client import MemoryServiceClient
from context_planner.infrastructure.observability.logging import planner_logger
from context_planner.infrastructure.scheduling.background_tasks import BackgroundTasks
from .cache_memory_store import SessionCacheStore
from .transcript import TranscriptSource, normalize_transcript

logger = structlog.get_logger(__name__)


class IngestionTrigger:
    """Submits a finished turn's transcript to the memory service.

    The request runs as a detached task; the caller gets control back as soon
    as it is scheduled. Debounce and backoff belong to the service, so there is
    no retry here.
    """

    def __init__(
        self,
        client: MemoryServiceClient,
        cache_store: SessionCacheStore,
        background: BackgroundTasks,
        config: MemoryServiceConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.cache_store = cache_store
        self.background = background
        self.config = config
        self.clock = clock

    async def trigger(
        self,
        transcript: Optional[TranscriptSource],
        session_id: str,
        user_id: Optional[str] = None,
        channel: Optional[str] = None,
        background_run: bool = False,
    ) -> bool:
        """Schedule ingestion; returns True when a request was dispatched"""

        if not self.config.enabled or not self.config.auto_ingest:
            planner_logger.log_skip(session_id, "ingest", "disabled")
            return False

        if background_run and self.config.skip_background_runs:
            planner_logger.log_skip(session_id, "ingest", "background_run")
            return False

        try:
            if isinstance(transcript, (str, Path)):
                messages = await asyncio.to_thread(normalize_transcript, transcript)
            else:
                messages = normalize_transcript(transcript)
        except Exception as e:
            logger.warning("Unreadable transcript, skipping ingestion", session_id=session_id, error=str(e))
            return False

        if not messages:
            planner_logger.log_skip(session_id, "ingest", "empty_transcript")
            return False

        task = self.background.spawn(
            self._ingest(messages, session_id, channel, user_id),
            name=f"ingest:{session_id}",
            session_id=session_id,
        )
        if task is None:
            return False

        try:
            await self.cache_store.update(session_id, ingested_at=self.clock())
        except Exception as e:
            logger.warning("Failed to persist ingest metadata", session_id=session_id, error=str(e))

        planner_logger.log_background_event(
            "ingest",
            "dispatched",
            session_id=session_id,
            details={"messages": len(messages), "channel": channel},
        )
        return True

    async def _ingest(self, messages, session_id: str, channel: Optional[str], user_id: Optional[str]) -> None:
        acknowledged = await self.client.ingest(
            messages,
            session_id=session_id,
            channel=channel,
            user_id=user_id,
            debounce=True,
            timeout_s=self.config.ingest_timeout_s,
        )
        if not acknowledged:
            planner_logger.log_background_event("ingest", "failed", session_id=session_id)
