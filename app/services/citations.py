import json
import logging
from typing import Any, Dict, Mapping, Optional

from app.schemas.chat import (
    AiContent,
    ChatMessageBody,
    ChatMessageOut,
    Citation,
    MessageSegment,
)

logger = logging.getLogger(__name__)

# Message keys carried through untouched from the workflow's chat memory rows
PASSTHROUGH_KEYS = ("additional_kwargs", "response_metadata", "tool_calls", "invalid_tool_calls")


def build_source_map(sources) -> Dict[str, Mapping[str, Any]]:
    """Index Source rows (or dicts) by id."""
    source_map = {}
    for source in sources:
        if isinstance(source, Mapping):
            source_id = source.get("id")
            info = dict(id=source_id, title=source.get("title"), type=source.get("type"))
        else:
            source_id = source.id
            info = dict(id=source.id, title=source.title, type=source.type)
        if source_id:
            source_map[str(source_id)] = info
    return source_map


def placeholder_title(source_id: str) -> str:
    return f"Source Reference {str(source_id)[:8]}..."


def reconcile_output(output: list, source_map: Mapping[str, Mapping[str, Any]]) -> AiContent:
    """
    Turn the workflow's `output` list into display segments and citations.

    Every output item becomes one segment. Items that carry citations share one
    citation id (numbered from 1 in order of appearance) and produce one
    Citation per reference. References to sources missing from `source_map`
    get a placeholder title instead of failing.
    """
    segments = []
    citations = []
    citation_id = 1

    for item in output:
        if not isinstance(item, Mapping):
            continue
        refs = [r for r in (item.get("citations") or []) if isinstance(r, Mapping)]
        segments.append(MessageSegment(
            text=str(item.get("text") or ""),
            citation_id=citation_id if refs else None,
        ))
        if not refs:
            continue

        for ref in refs:
            source_id = str(ref.get("chunk_source_id") or "")
            info = source_map.get(source_id)
            lines_from = _as_int(ref.get("chunk_lines_from"))
            lines_to = _as_int(ref.get("chunk_lines_to"))
            if info is None:
                logger.debug(f"Citation references unknown source {source_id!r}")
            citations.append(Citation(
                citation_id=citation_id,
                source_id=source_id,
                source_title=(info or {}).get("title") or placeholder_title(source_id),
                source_type=(info or {}).get("type") or "pdf",
                chunk_lines_from=lines_from,
                chunk_lines_to=lines_to,
                chunk_index=_as_int(ref.get("chunk_index")),
                excerpt=f"Lines {lines_from}-{lines_to}" if lines_from is not None and lines_to is not None else None,
            ))
        citation_id += 1

    return AiContent(segments=segments, citations=citations)


def decode_message(raw: Any, source_map: Mapping[str, Mapping[str, Any]]) -> ChatMessageBody:
    """Decode the `message` column of a chat-history row for display."""
    if isinstance(raw, str):
        return ChatMessageBody(type="human", content=raw)

    if not isinstance(raw, Mapping) or "type" not in raw or "content" not in raw:
        return ChatMessageBody(type="human", content="Unable to parse message")

    extras = {key: raw.get(key) for key in PASSTHROUGH_KEYS if raw.get(key) is not None}
    msg_type = "human" if raw.get("type") == "human" else "ai"
    content = raw.get("content")

    if msg_type == "ai" and isinstance(content, str):
        try:
            parsed = json.loads(content)
        except ValueError:
            parsed = None
        if isinstance(parsed, Mapping) and isinstance(parsed.get("output"), list):
            return ChatMessageBody(type="ai", content=reconcile_output(parsed["output"], source_map), **extras)
        return ChatMessageBody(type="ai", content=content or "Empty message", **extras)

    if isinstance(content, Mapping):
        # Already-structured content written by a newer workflow
        try:
            return ChatMessageBody(type=msg_type, content=AiContent(**content), **extras)
        except (TypeError, ValueError):
            content = json.dumps(content)
    elif content is not None and not isinstance(content, str):
        content = json.dumps(content)

    return ChatMessageBody(type=msg_type, content=content or "Empty message", **extras)


def decode_chat_row(row, source_map: Mapping[str, Mapping[str, Any]]) -> ChatMessageOut:
    """Decode a ChatHistory row (or a realtime payload dict) into a display message."""
    if isinstance(row, Mapping):
        row_id, session_id, raw = row.get("id"), row.get("session_id"), row.get("message")
    else:
        row_id, session_id, raw = row.id, row.session_id, row.message
    return ChatMessageOut(id=row_id, session_id=str(session_id), message=decode_message(raw, source_map))


def _as_int(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
