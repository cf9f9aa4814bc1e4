"""Built-in category rule table.

Each category is a plain record: keyword patterns, structural signal
functions, a threshold and the policy payload applied when it matches. The
table is read-only and shared by every session.
"""

from dataclasses import dataclass
from typing import Callable, Pattern, Tuple
import re
import unicodedata

from context_planner.domain.models.plan_state import MemoryPolicy, ThinkLevel

Signal = Callable[[str], int]

COMPLEX_CATEGORY = "complex"
COMPLEX_SHORT_MESSAGE_DISCOUNT = 3


@dataclass(frozen=True)
class CategoryRule:
    name: str
    patterns: Tuple[Pattern[str], ...]
    signals: Tuple[Signal, ...]
    threshold: int
    match_weight: int
    tools: Tuple[str, ...]
    memory: MemoryPolicy
    think_level: ThinkLevel
    unrestricted: bool = False


def _ci(*sources: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(source, re.IGNORECASE) for source in sources)


# Zero-width joiner, variation selectors and keycap combiner glue emoji sequences together.
_EMOJI_JOINERS = {"\u200d", "\ufe0e", "\ufe0f", "\u20e3"}
# Digits, "#" and "*" carry the Emoji property as keycap bases.
_EMOJI_KEYCAP_BASES = set("0123456789#*")


def _is_emoji_only(msg: str) -> bool:
    seen = False
    for ch in msg:
        if ch.isspace() or ch in _EMOJI_JOINERS:
            continue
        category = unicodedata.category(ch)
        # Skin tone modifiers are Sk, pictographs are So
        if ch in _EMOJI_KEYCAP_BASES or category == "So" or (category == "Sk" and 0x1F3FB <= ord(ch) <= 0x1F3FF):
            seen = True
            continue
        return False
    return seen


# casual

def _short_message(msg: str) -> int:
    return 3 if len(msg) < 20 else 0


def _emoji_only(msg: str) -> int:
    return 5 if _is_emoji_only(msg) else 0


def _single_word(msg: str) -> int:
    word = msg.strip()
    return 2 if re.fullmatch(r"\S+", word) and len(word) < 15 else 0


# research

_URL = re.compile(r"https?://\S+")


def _has_url(msg: str) -> int:
    return 3 if _URL.search(msg) else 0


def _has_question(msg: str) -> int:
    return 2 if "?" in msg else 0


# coding

_FILE_PATH = re.compile(r"(?:^|[\s(\"'])(?:\.{0,2}/)?[\w-]+(?:/[\w.-]+)*\.\w{1,5}\b")
_INLINE_CODE = re.compile(r"`[^`]+`")


def _has_file_path(msg: str) -> int:
    return 3 if _FILE_PATH.search(msg) else 0


def _has_code_fence(msg: str) -> int:
    return 4 if "```" in msg else 0


def _has_inline_code(msg: str) -> int:
    return 2 if _INLINE_CODE.search(msg) else 0


# crypto

_DOLLAR_AMOUNT = re.compile(r"\$\d")
_HEX_ADDRESS = re.compile(r"0x[0-9a-fA-F]{10,}")
_BASE58_ADDRESS = re.compile(r"\b[1-9A-HJ-NP-Za-km-z]{32,44}\b")


def _has_dollar_amount(msg: str) -> int:
    return 2 if _DOLLAR_AMOUNT.search(msg) else 0


def _has_hex_address(msg: str) -> int:
    return 3 if _HEX_ADDRESS.search(msg) else 0


def _has_base58_address(msg: str) -> int:
    return 2 if _BASE58_ADDRESS.search(msg) else 0


# complex

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_NUMBERED_ITEM = re.compile(r"\b\d+[.)]\s")


def _long_message(msg: str) -> int:
    if len(msg) > 300:
        return 3
    if len(msg) > 200:
        return 1
    return 0


def _many_sentences(msg: str) -> int:
    sentences = [s for s in _SENTENCE_SPLIT.split(msg) if len(s.strip()) > 5]
    return 2 if len(sentences) >= 3 else 0


def _numbered_list(msg: str) -> int:
    return 2 if _NUMBERED_ITEM.search(msg) else 0


def _many_questions(msg: str) -> int:
    count = msg.count("?")
    if count >= 3:
        return 3
    if count >= 2:
        return 1
    return 0


CATEGORIES: Tuple[CategoryRule, ...] = (
    CategoryRule(
        name="casual",
        patterns=_ci(
            r"^(hey|hi|hello|yo|sup|hola|howdy|hiya|heya|what'?s up)\b",
            r"^(thanks|thank you|thx|ty|cheers|np|no problem|sure|ok|okay|cool|nice|great|awesome|lol|haha|heh)\b",
            r"^(good\s+(morning|afternoon|evening|night))\b",
            r"^(how are you|how's it going|what's good)\b",
            r"^(gm|gn|gg|brb|ttyl|bye|cya|later|peace)\b",
        ),
        signals=(_short_message, _emoji_only, _single_word),
        threshold=3,
        match_weight=3,
        tools=("message",),
        memory=MemoryPolicy(max_facts=0, max_tokens=0, skip=True),
        think_level=ThinkLevel.OFF,
    ),
    CategoryRule(
        name="research",
        patterns=_ci(
            r"\b(search|find|look\s*up|google|research)\b",
            r"\b(what\s+is|who\s+is|where\s+is|when\s+did|how\s+does|how\s+do|how\s+to|why\s+does|why\s+is)\b",
            r"\b(explain|compare|versus|vs\.?|difference\s+between|define|summarize)\b",
            r"\b(latest|recent|current|news|update)\b",
        ),
        signals=(_has_url, _has_question),
        threshold=3,
        match_weight=2,
        tools=("exec", "web_fetch", "web_search", "message", "read"),
        memory=MemoryPolicy(max_facts=10, max_tokens=400, skip=False),
        think_level=ThinkLevel.LOW,
    ),
    CategoryRule(
        name="coding",
        patterns=_ci(
            r"\b(code|coding|program|script|function|class|method|variable|const|let|var)\b",
            r"\b(fix|debug|bug|error|exception|stack\s*trace|traceback|crash|broken)\b",
            r"\b(commit|push|pull|merge|branch|git|deploy|build|compile|lint|test)\b",
            r"\b(refactor|optimize|implement|feature|pr|pull\s*request|review)\b",
            r"\b(import|export|require|module|package|npm|pnpm|yarn|pip)\b",
        ),
        signals=(_has_file_path, _has_code_fence, _has_inline_code),
        threshold=3,
        match_weight=2,
        tools=("exec", "read", "write", "edit", "apply_patch", "process", "message"),
        memory=MemoryPolicy(max_facts=5, max_tokens=200, skip=False),
        think_level=ThinkLevel.MEDIUM,
    ),
    CategoryRule(
        name="crypto",
        patterns=_ci(
            r"\b(sol|eth|btc|usdc|usdt|bnb|avax|matic|ada|dot|doge|shib|bonk|jup|ray)\b",
        ) + (re.compile(r"\$[A-Z]{2,10}\b"),) + _ci(
            r"\b(swap|trade|buy|sell|stake|unstake|bridge|transfer|send|deposit|withdraw)\b",
            r"\b(wallet|balance|portfolio|token|coin|crypto|defi|nft|mint)\b",
            r"\b(solana|ethereum|bitcoin|polygon|avalanche|arbitrum|optimism|base)\b",
            r"\b(jupiter|raydium|orca|uniswap|aave|compound|lido)\b",
            r"\b(dex|cex|amm|liquidity|pool|yield|apy|apr|tvl)\b",
        ),
        signals=(_has_dollar_amount, _has_hex_address, _has_base58_address),
        threshold=3,
        match_weight=2,
        tools=("exec", "message", "web_fetch", "web_search"),
        memory=MemoryPolicy(max_facts=8, max_tokens=300, skip=False),
        think_level=ThinkLevel.MEDIUM,
    ),
    CategoryRule(
        name="media",
        patterns=_ci(
            r"\b(image|picture|photo|draw|paint|sketch|illustration|art|render)\b",
            r"\b(generate|create|make)\s+(an?\s+)?(image|picture|photo|art)",
            r"\b(speak|say|read\s+aloud|tts|text[\s-]to[\s-]speech|voice|narrate)\b",
            r"\b(transcribe|stt|speech[\s-]to[\s-]text|listen|audio|recording)\b",
            r"\b(describe\s+(this|the)\s+(image|picture|photo|screenshot))",
        ),
        signals=(),
        threshold=3,
        match_weight=3,
        tools=("exec", "message"),
        memory=MemoryPolicy(max_facts=3, max_tokens=150, skip=False),
        think_level=ThinkLevel.OFF,
    ),
    CategoryRule(
        name="monitoring",
        patterns=_ci(
            r"\b(status|health|healthcheck|uptime|ping)\b",
            r"\b(gpu|vram|cpu|ram|memory|disk|temperature|temp|fan|power|watt)\b",
            r"\b(service|services|server|process|daemon|systemd|systemctl)\b",
            r"\b(monitor|dashboard|metrics|usage|load|utilization)\b",
            r"\b(nvidia[-\s]?smi|htop|top|df|free)\b",
        ),
        signals=(),
        threshold=3,
        match_weight=2,
        tools=("exec", "message"),
        memory=MemoryPolicy(max_facts=3, max_tokens=150, skip=False),
        think_level=ThinkLevel.OFF,
    ),
    CategoryRule(
        name="memory",
        patterns=_ci(
            r"\b(remember|recall|you\s+said|you\s+told\s+me|you\s+mentioned)\b",
            r"\b(last\s+time|earlier|yesterday|before|previously|we\s+discussed|we\s+talked)\b",
            r"\b(do\s+you\s+know|did\s+you|have\s+you)\s.*(remember|forget)",
            r"\b(what\s+did\s+(i|we|you)\s+(say|discuss|talk|decide))",
            r"\b(history|conversation|chat\s+log|past)\b",
        ),
        signals=(),
        threshold=3,
        match_weight=3,
        tools=("memory_search", "memory_get", "message"),
        memory=MemoryPolicy(max_facts=25, max_tokens=1000, skip=False),
        think_level=ThinkLevel.LOW,
    ),
    CategoryRule(
        name=COMPLEX_CATEGORY,
        patterns=_ci(
            r"\b(step\s+by\s+step|first.*then|plan|analyze|analysis|investigate|comprehensive)\b",
            r"\b(and\s+then|after\s+that|next|finally|also)\b",
            r"\b(multiple|several|various|different|compare\s+and)\b",
        ),
        signals=(_long_message, _many_sentences, _numbered_list, _many_questions),
        threshold=4,
        match_weight=2,
        tools=(),
        memory=MemoryPolicy(max_facts=15, max_tokens=500, skip=False),
        think_level=ThinkLevel.HIGH,
        unrestricted=True,
    ),
)
