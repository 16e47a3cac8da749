"""Best-effort repair of JSON replies from the generation service.

``repair_json`` never raises and never loops: each recovery step runs at most
once per call, and a value that is already a parsed tree is returned as-is,
which makes the function idempotent.
"""

import json
import re
from typing import Any, Dict, List, Optional, Union

from cvtailor.utils.logging import get_logger
from cvtailor.utils.partial_extractor import extract_partial_fields

LOGGER = get_logger(__name__)

JsonTree = Union[Dict[str, Any], List[Any]]

_CLOSERS = {"{": "}", "[": "]"}
_OPENERS = {"}": "{", "]": "["}

# Trailing `"key":` with no value yet
_TRAILING_KEY = re.compile(r',?\s*"(?:[^"\\]|\\.)*"\s*:\s*$')
# Trailing literal cut mid-word (`tr`, `fals`, `nu`)
_TRAILING_PARTIAL_LITERAL = re.compile(r":\s*(?:t(?:r(?:u)?)?|f(?:a(?:l(?:s)?)?)?|n(?:u(?:l)?)?)$")
_TRAILING_COMMA = re.compile(r",\s*$")


def strip_code_fences(text: str) -> str:
    """Remove leading/trailing markdown fences (```json ... ```)."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        first_newline = cleaned.find("\n")
        cleaned = cleaned[first_newline + 1:] if first_newline != -1 else cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def repair_json(
    value: Union[str, JsonTree, None],
    enable_partial_fallback: bool = True,
) -> Optional[JsonTree]:
    """Parse a possibly damaged JSON reply.

    Steps, in order, each only if the previous ones did not yield a tree:
    strip fences, parse directly, cut to the first ``{``/``[``, close an
    unterminated string, drop a dangling comma or incomplete key, append the
    missing closers innermost-first, parse again, and finally hand the text
    to the regex partial extractor (if enabled).

    Args:
        value: Raw reply text, or an already-parsed tree
        enable_partial_fallback: Whether the regex last resort may run

    Returns:
        Parsed dict/list, or None if nothing usable was found
    """
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    cleaned = strip_code_fences(value)

    try:
        parsed = json.loads(cleaned)
        if isinstance(parsed, (dict, list)):
            return parsed
        LOGGER.debug(f"Reply parsed to a bare {type(parsed).__name__}, looking for a container")
    except json.JSONDecodeError as e:
        LOGGER.debug(f"Initial JSON parse failed: {e}, attempting repairs")
        if "Extra data" in str(e):
            merged = _parse_concatenated_json(cleaned)
            if merged is not None:
                LOGGER.info("Parsed concatenated JSON values into a single result")
                return merged

    start = _first_container_index(cleaned)
    if start is not None:
        fragment = cleaned[start:]
        top_level = "object" if fragment[0] == "{" else "array"
        balanced = _balance(fragment)
        try:
            parsed = json.loads(balanced)
            LOGGER.info(
                f"Repaired truncated JSON {top_level}",
                extra={"original_length": len(cleaned), "repaired_length": len(balanced)},
            )
            return parsed
        except json.JSONDecodeError as e:
            LOGGER.debug(f"Balanced JSON still unparseable: {e}")

    if not enable_partial_fallback:
        LOGGER.warning("JSON repair failed and partial fallback is disabled")
        return None

    partial = extract_partial_fields(cleaned)
    if partial is None:
        LOGGER.warning("JSON repair failed and no recognizable fields were found")
    else:
        LOGGER.info(f"Recovered partial fields from unparseable reply: {sorted(partial)}")
    return partial


def _first_container_index(text: str) -> Optional[int]:
    positions = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    return min(positions) if positions else None


def _drop_trailing_comma(out: List[str]) -> None:
    """Remove a comma that directly precedes a closer (`[1, 2,]`)."""
    idx = len(out) - 1
    while idx >= 0 and out[idx].isspace():
        idx -= 1
    if idx >= 0 and out[idx] == ",":
        del out[idx]


def _balance(fragment: str) -> str:
    """Close whatever a truncated JSON fragment left open.

    Scans once, tracking string state with backslash escapes and a stack of
    opened containers. Stops after the first complete top-level value.
    """
    out: List[str] = []
    stack: List[str] = []
    in_string = False
    escaped = False
    last_sig = ""
    string_start = -1
    string_end = -1
    key_position = False

    for ch in fragment:
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                string_end = len(out)
                last_sig = '"'
            continue

        if ch == '"':
            in_string = True
            string_start = len(out)
            key_position = bool(stack) and stack[-1] == "{" and last_sig in ("{", ",")
            out.append(ch)
            continue

        if ch in _OPENERS:
            if not stack or stack[-1] != _OPENERS[ch]:
                # Stray closer, drop it
                continue
            _drop_trailing_comma(out)
            stack.pop()
            out.append(ch)
            last_sig = ch
            if not stack:
                break
            continue

        if ch in _CLOSERS:
            stack.append(ch)
        out.append(ch)
        if not ch.isspace():
            last_sig = ch

    if not stack:
        return "".join(out)

    if in_string:
        if escaped:
            out.pop()
        out.append('"')
        string_end = len(out)

    text = "".join(out).rstrip()

    # A string that is the last token in key position is a key without a value
    if key_position and string_start >= 0 and string_end >= len(text) and not "".join(out[string_end:]).strip():
        text = text[:string_start].rstrip()

    text = _TRAILING_PARTIAL_LITERAL.sub(": null", text)
    text = _TRAILING_KEY.sub("", text)
    text = _TRAILING_COMMA.sub("", text)

    return text + "".join(_CLOSERS[opener] for opener in reversed(stack))


def _parse_concatenated_json(text: str) -> Optional[JsonTree]:
    """Decode back-to-back JSON values (`{...}\\n{...}`) and merge them."""
    decoder = json.JSONDecoder()
    values: List[Any] = []
    idx = 0
    length = len(text)

    while idx < length:
        while idx < length and text[idx].isspace():
            idx += 1
        if idx >= length:
            break
        try:
            obj, idx = decoder.raw_decode(text, idx)
            if isinstance(obj, (dict, list)):
                values.append(obj)
        except json.JSONDecodeError:
            next_positions = [p for p in (text.find("{", idx + 1), text.find("[", idx + 1)) if p != -1]
            if not next_positions:
                break
            idx = min(next_positions)

    if not values:
        return None
    return _merge_json_values(values)


def _merge_json_values(values: List[Any]) -> JsonTree:
    if len(values) == 1:
        return values[0]

    if all(isinstance(v, dict) for v in values):
        merged: Dict[str, Any] = {}
        for obj in values:
            for key, item in obj.items():
                existing = merged.get(key)
                if isinstance(existing, list) and isinstance(item, list):
                    merged[key] = existing + item
                elif isinstance(existing, dict) and isinstance(item, dict):
                    merged[key] = {**existing, **item}
                else:
                    merged[key] = item
        return merged

    if all(isinstance(v, list) for v in values):
        flattened: List[Any] = []
        for arr in values:
            flattened.extend(arr)
        return flattened

    return values
