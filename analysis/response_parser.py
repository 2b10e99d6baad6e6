"""
Folio - Response Parsing
Pulls structured data out of model replies that may wrap their JSON in prose
or code fences. A reply that cannot be parsed degrades to a default value;
it never raises.
"""

import json
from typing import Any, Callable, Dict, List, Optional, TypeVar

from core.logger import log_warning

T = TypeVar("T")

# Fields tried, in order, when a takeaway arrives as an object
_TAKEAWAY_TEXT_FIELDS = ("title", "content", "description", "text", "name", "value", "point", "takeaway")


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} substring of text.

    Braces inside JSON strings are ignored. If no balanced object exists,
    the span from the first "{" to the last "}" is returned so a decoder
    can still try it; None when the text has no braces at all.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        end = _match_brace(text, start)
        if end is not None:
            return text[start:end + 1]
        start = text.find("{", start + 1)

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        return text[first:last + 1]
    return None


def _match_brace(text: str, start: int) -> Optional[int]:
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def parse_json_response(text: str, default: Dict[str, Any]) -> Dict[str, Any]:
    """
    Decode the first JSON object in a model reply.

    Args:
        text: Raw model reply
        default: Returned (as-is) when nothing decodes to a JSON object

    Returns:
        The decoded object or default
    """
    candidate = extract_json_object(text)
    if candidate is not None:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data

    preview = (text or "").strip().replace("\n", " ")[:120]
    log_warning(f"Could not parse JSON from model reply, using default: {preview!r}")
    return default


def normalize_takeaways(value: Any) -> List[str]:
    """
    Coerce a takeaways field into a list of distinct non-empty strings.

    Objects become "title: content" when both exist, otherwise their first
    textual field, otherwise their scalar values joined.
    """
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []

    takeaways = []
    for item in value:
        text = ""
        if isinstance(item, str):
            text = item.strip()
        elif isinstance(item, (int, float)) and not isinstance(item, bool):
            text = str(item)
        elif isinstance(item, dict):
            text = _takeaway_from_object(item)
        if text and text not in takeaways:
            takeaways.append(text)
    return takeaways


def _takeaway_from_object(item: Dict[str, Any]) -> str:
    title, content = item.get("title"), item.get("content")
    if isinstance(title, str) and isinstance(content, str) and title.strip() and content.strip():
        return f"{title.strip()}: {content.strip()}"

    for key in _TAKEAWAY_TEXT_FIELDS:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    parts = [
        str(v).strip() for v in item.values()
        if isinstance(v, (str, int, float)) and not isinstance(v, bool) and str(v).strip()
    ]
    return " ".join(parts)


def coerce_entities(items: Any, factory: Callable[[Dict[str, Any]], T]) -> List[T]:
    """Build entities from a decoded list, dropping entries the factory rejects."""
    if not isinstance(items, list):
        return []

    entities = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            entities.append(factory(item))
        except (ValueError, TypeError):
            skipped += 1

    if skipped:
        log_warning(f"Dropped {skipped} malformed entr{'y' if skipped == 1 else 'ies'} from model reply")
    return entities
