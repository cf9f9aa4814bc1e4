from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class ThinkLevel(str, Enum):
    """Reasoning effort requested from the generation step"""
    OFF = "off"
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    XHIGH = "xhigh"

    @property
    def ordinal(self) -> int:
        return _THINK_LEVEL_ORDER[self]

    @classmethod
    def highest(cls, levels: List["ThinkLevel"], floor: "ThinkLevel") -> "ThinkLevel":
        """Return the level with the highest ordinal, never below ``floor``"""
        result = floor
        for level in levels:
            if level.ordinal > result.ordinal:
                result = level
        return result


_THINK_LEVEL_ORDER: Dict[ThinkLevel, int] = {
    ThinkLevel.OFF: 0,
    ThinkLevel.MINIMAL: 1,
    ThinkLevel.LOW: 2,
    ThinkLevel.MEDIUM: 3,
    ThinkLevel.HIGH: 4,
    ThinkLevel.XHIGH: 5,
}


class MemoryPolicy(BaseModel):
    """How much long-term memory a turn may pull in"""
    model_config = ConfigDict(frozen=True)

    max_facts: int = Field(default=15, ge=0, description="Maximum facts requested from hybrid search")
    max_tokens: int = Field(default=500, ge=0, description="Approximate token budget of the context block")
    skip: bool = Field(default=False, description="Skip recall entirely for this turn")


class ContextPlan(BaseModel):
    """Per-turn classification output consumed by retrieval and generation"""
    model_config = ConfigDict(frozen=True)

    categories: List[str] = Field(default_factory=list, description="Matched category names, rule-table order")
    tool_allowlist: Optional[List[str]] = Field(None, description="Permitted tools; None means unrestricted")
    memory: MemoryPolicy = Field(default_factory=MemoryPolicy)
    think_level: ThinkLevel = Field(default=ThinkLevel.LOW)
    hint: Optional[str] = Field(None, description="Short prompt annotation summarising the plan")
    scores: Dict[str, int] = Field(default_factory=dict, description="Diagnostic per-category scores")

    @property
    def unrestricted(self) -> bool:
        return self.tool_allowlist is None


class MemoryFact(BaseModel):
    """A fact owned by the external memory service"""
    id: Any = Field(description="Service-side fact identifier")
    user_id: Optional[str] = None
    topic: Optional[str] = None
    fact: str = Field(description="Fact content")
    importance: Optional[float] = None
    created_at: Optional[float] = None
    score: Optional[float] = Field(None, description="Relevance score from hybrid search")
    source: Optional[str] = Field(None, description="Provenance tag")


class SynthesisCache(BaseModel):
    """Narrative produced by the background deep-synthesis call"""
    model_config = ConfigDict(frozen=True)

    query: str
    response: str
    cached_at: float = Field(description="Epoch seconds when the narrative was stored")

    def is_fresh(self, now: float, ttl_s: float) -> bool:
        return bool(self.response) and (now - self.cached_at) < ttl_s


class SessionCacheEntry(BaseModel):
    """Cross-turn memory bookkeeping for one session"""
    model_config = ConfigDict(frozen=True)

    session_id: str
    synthesis: Optional[SynthesisCache] = None
    recalled_at: Optional[float] = None
    facts_injected: int = 0
    ingested_at: Optional[float] = None

    @property
    def last_active_at(self) -> Optional[float]:
        stamps = [t for t in (self.recalled_at, self.ingested_at) if t is not None]
        if self.synthesis is not None:
            stamps.append(self.synthesis.cached_at)
        return max(stamps) if stamps else None


class RecallResult(BaseModel):
    """Outcome of the time-boxed recall for one turn"""
    context_block: Optional[str] = Field(None, description="Rendered memory block, None when nothing to inject")
    fact_count: int = 0
    facts: List[MemoryFact] = Field(default_factory=list)
    synthesis: Optional[str] = Field(None, description="Cached narrative used in the block, if any")

    @classmethod
    def empty(cls) -> "RecallResult":
        return cls()


class TurnContext(BaseModel):
    """Everything the generation step needs from this pipeline"""
    session_id: str
    plan: ContextPlan
    recall: RecallResult = Field(default_factory=RecallResult)

    def get_summary(self) -> Dict[str, Any]:
        """Get a loggable summary of the turn context"""
        return {
            "session_id": self.session_id,
            "categories": self.plan.categories,
            "tools": len(self.plan.tool_allowlist) if self.plan.tool_allowlist is not None else "all",
            "think_level": self.plan.think_level.value,
            "facts": self.recall.fact_count,
            "has_memory_context": self.recall.context_block is not None,
        }
