import json
import re
from typing import Any, Callable, Dict, List, Optional, Union

from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)

JsonValue = Union[Dict[str, Any], List[Any]]

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def parse_json_safely(text: str) -> Optional[JsonValue]:
    """Parse JSON from oracle output, tolerating incidental wrapping.

    Strategies are tried from strictest to loosest and the first one that
    yields a dict or list wins:

    1. The whole (stripped) text is JSON.
    2. The payload sits inside a markdown code fence.
    3. The span from the first opening brace/bracket to the last matching
       closing one (prose before or after the payload).
    4. Several concatenated JSON values, merged into one.
    5. The first position where a JSON value decodes cleanly, ignoring
       trailing garbage.

    Args:
        text: Raw response text

    Returns:
        Parsed JSON object/array or None if every strategy fails
    """
    if not text or not text.strip():
        return None

    cleaned_text = text.strip()

    strategies: List[Callable[[str], Optional[JsonValue]]] = [
        _parse_strict,
        _parse_fenced,
        _parse_outer_span,
        _parse_concatenated_json,
        _parse_first_value,
    ]

    for strategy in strategies:
        try:
            result = strategy(cleaned_text)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(result, (dict, list)):
            if strategy is not _parse_strict:
                LOGGER.debug(f"Parsed JSON using {strategy.__name__}")
            return result

    LOGGER.error(
        "Failed to parse JSON from response",
        extra={"preview": cleaned_text[:200]},
    )
    return None


def _parse_strict(text: str) -> Optional[JsonValue]:
    return json.loads(text)


def _parse_fenced(text: str) -> Optional[JsonValue]:
    match = _FENCE_RE.search(text)
    if not match:
        return None
    return json.loads(match.group(1).strip())


def _parse_outer_span(text: str) -> Optional[JsonValue]:
    for open_char, close_char in (("{", "}"), ("[", "]")):
        start = text.find(open_char)
        end = text.rfind(close_char)
        if start != -1 and end > start:
            try:
                return json.loads(text[start:end + 1])
            except json.JSONDecodeError:
                continue
    return None


def _parse_first_value(text: str) -> Optional[JsonValue]:
    decoder = json.JSONDecoder()
    for idx, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            obj, _ = decoder.raw_decode(text, idx)
            return obj
        except json.JSONDecodeError:
            continue
    return None


def _parse_concatenated_json(text: str) -> Optional[JsonValue]:
    """Parse concatenated JSON values and merge them.

    Handles responses such as ``{...}\\n{...}`` or ``[...]\\n[...]``.

    Args:
        text: Text containing potentially concatenated JSON

    Returns:
        Merged result or None if nothing decodes
    """
    decoder = json.JSONDecoder()
    results = []
    idx = 0

    while idx < len(text):
        while idx < len(text) and text[idx] in " \t\n\r":
            idx += 1
        if idx >= len(text):
            break

        try:
            obj, end_idx = decoder.raw_decode(text, idx)
            results.append(obj)
            idx = end_idx
        except json.JSONDecodeError:
            next_brace = text.find("{", idx + 1)
            next_bracket = text.find("[", idx + 1)

            if next_brace == -1 and next_bracket == -1:
                break
            elif next_brace == -1:
                idx = next_bracket
            elif next_bracket == -1:
                idx = next_brace
            else:
                idx = min(next_brace, next_bracket)

    if len(results) < 2:
        return None
    return _merge_json_objects(results)


def _merge_json_objects(objects: List[Any]) -> Optional[JsonValue]:
    """Merge a list of parsed JSON values into a single result.

    Args:
        objects: List of parsed JSON objects/arrays

    Returns:
        Merged result
    """
    if not objects:
        return None

    if len(objects) == 1:
        return objects[0]

    if all(isinstance(obj, dict) for obj in objects):
        merged: Dict[str, Any] = {}
        for obj in objects:
            for key, value in obj.items():
                existing = merged.get(key)
                if isinstance(existing, list) and isinstance(value, list):
                    merged[key] = existing + value
                elif isinstance(existing, dict) and isinstance(value, dict):
                    merged[key] = {**existing, **value}
                else:
                    if key in merged:
                        LOGGER.debug(f"Key conflict during merge: {key}, using later value")
                    merged[key] = value
        return merged

    if all(isinstance(obj, list) for obj in objects):
        flattened: List[Any] = []
        for obj in objects:
            flattened.extend(obj)
        return flattened

    return objects
