"""Session transcript reading for ingestion.

Sessions are stored as JSONL, one record per line. Only ``message`` records
with a string role and non-empty text content are kept; everything else
(tool calls, metadata records, corrupt lines) is skipped.
"""

from typing import Any, Dict, List, Optional, Union
from pathlib import Path
import json

import structlog

logger = structlog.get_logger(__name__)

TranscriptSource = Union[str, Path, List[Dict[str, Any]]]


def _extract_text(raw_content: Any) -> Optional[str]:
    if isinstance(raw_content, str):
        return raw_content

    if isinstance(raw_content, list):
        parts = [
            block.get("text") or ""
            for block in raw_content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "\n".join(parts)

    return None


def simplify_message(record: Any) -> Optional[Dict[str, str]]:
    """Reduce one session record to ``{role, content[, name]}`` or None"""

    if not isinstance(record, dict) or record.get("type") != "message":
        return None

    msg = record.get("message")
    if not isinstance(msg, dict):
        return None

    role = msg.get("role")
    if not isinstance(role, str):
        return None

    content = _extract_text(msg.get("content"))
    if not content:
        return None

    entry = {"role": role, "content": content}
    name = msg.get("name")
    if isinstance(name, str) and name:
        entry["name"] = name

    return entry


def read_transcript(path: Union[str, Path]) -> List[Dict[str, str]]:
    """Read a JSONL session file; an unreadable file yields an empty transcript"""

    try:
        raw = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Could not read session file", path=str(path), error=str(e))
        return []

    messages = []
    for line in raw.split("\n"):
        line = line.strip()
        if not line:
            continue

        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue

        entry = simplify_message(record)
        if entry is not None:
            messages.append(entry)

    return messages


def normalize_transcript(source: Optional[TranscriptSource]) -> List[Dict[str, str]]:
    """Accept a session file path or in-memory messages and return clean messages.

    In-memory messages may be plain ``{role, content}`` dicts or full session
    records; anything malformed is dropped.
    """
    if source is None:
        return []

    if isinstance(source, (str, Path)):
        return read_transcript(source)

    messages = []
    for item in source:
        if not isinstance(item, dict):
            continue
        record = item if item.get("type") == "message" else {"type": "message", "message": item}
        entry = simplify_message(record)
        if entry is not None:
            messages.append(entry)

    return messages
