"""
HTTP client for the external memory service.

Three calls with very different latency budgets share one ``httpx.AsyncClient``:

- ``hybrid_search`` sits on the turn's critical path and gets a hard timeout in
  the low hundreds of milliseconds. The timeout is enforced with
  ``asyncio.wait_for`` so the in-flight request is cancelled, not just
  abandoned.
- ``recall`` produces a narrative synthesis; it only runs in the background and
  gets a generous timeout.
- ``ingest`` submits a transcript and is fire-and-forget.

None of the methods raise on transport problems. Failures are logged and
reported as ``None`` (or ``False``) so callers can degrade to "no context".
"""

from typing import Any, Dict, List, Optional
import asyncio

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from context_planner.domain.models.plan_state import MemoryFact
from context_planner.infrastructure.config import MemoryServiceConfig

logger = structlog.get_logger(__name__)


class HybridSearchResult(BaseModel):
    results: List[MemoryFact] = Field(default_factory=list)
    count: int = 0


class SynthesisResult(BaseModel):
    response: str = ""
    memories_searched: int = 0
    memories_used: int = 0


class MemoryServiceClient:
    """Async client for hybrid search, recall synthesis and ingestion"""

    def __init__(
        self,
        config: MemoryServiceConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._client = http_client or httpx.AsyncClient(base_url=config.base_url)
        self._owns_client = http_client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def hybrid_search(
        self,
        query: str,
        user_id: Optional[str] = None,
        limit: Optional[int] = None,
        timeout_ms: Optional[int] = None,
    ) -> Optional[HybridSearchResult]:
        """Ranked facts for ``query``; None on timeout or any failure"""

        timeout_s = (timeout_ms or self.config.recall_timeout_ms) / 1000
        payload = {"query": query, "user_id": user_id, "limit": limit}

        body = await self._post("/hybrid-search", payload, timeout_s)
        if body is None:
            return None

        if not isinstance(body, dict) or not isinstance(body.get("results", []), list):
            logger.warning("Malformed hybrid search response", body_type=type(body).__name__)
            return None

        facts = []
        for raw in body.get("results", []):
            try:
                facts.append(MemoryFact.model_validate(raw))
            except ValidationError as e:
                logger.debug("Dropping malformed fact", error=str(e))

        return HybridSearchResult(results=facts, count=len(facts))

    async def recall(
        self,
        query: str,
        user_id: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> Optional[SynthesisResult]:
        """Narrative synthesis of memories relevant to ``query``"""

        payload = {"query": query, "user_id": user_id}

        body = await self._post("/recall", payload, timeout_s or self.config.synthesis_timeout_s)
        if body is None:
            return None

        try:
            return SynthesisResult.model_validate(body)
        except ValidationError as e:
            logger.warning("Malformed recall response", error=str(e))
            return None

    async def ingest(
        self,
        messages: List[Dict[str, Any]],
        session_id: Optional[str] = None,
        channel: Optional[str] = None,
        user_id: Optional[str] = None,
        debounce: bool = True,
        timeout_s: Optional[float] = None,
    ) -> bool:
        """Submit a transcript; True when the service acknowledged it"""

        payload = {
            "messages": messages,
            "session_id": session_id,
            "channel": channel,
            "user_id": user_id,
            "debounce": debounce,
        }

        body = await self._post("/ingest", payload, timeout_s or self.config.ingest_timeout_s, expect_json=False)
        return body is not None

    async def health(self, timeout_s: float = 2.0) -> bool:
        """Check whether the service answers its health endpoint"""

        try:
            response = await asyncio.wait_for(self._client.get("/health", timeout=timeout_s), timeout=timeout_s)
            return response.is_success
        except (asyncio.TimeoutError, httpx.HTTPError) as e:
            logger.debug("Memory service health check failed", error=str(e))
            return False

    async def _post(
        self,
        path: str,
        payload: Dict[str, Any],
        timeout_s: float,
        expect_json: bool = True,
    ) -> Optional[Any]:
        try:
            response = await asyncio.wait_for(
                self._client.post(path, json=payload, timeout=timeout_s),
                timeout=timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Memory service request timed out", path=path, timeout_s=timeout_s)
            return None
        except httpx.HTTPError as e:
            logger.warning("Memory service unreachable", path=path, error=str(e))
            return None

        if not response.is_success:
            logger.warning("Memory service bad status", path=path, status_code=response.status_code)
            return None

        if not expect_json:
            return {}

        try:
            return response.json()
        except ValueError as e:
            logger.warning("Memory service returned invalid JSON", path=path, error=str(e))
            return None
