"""Last-resort regex extraction of high-value fields from broken JSON.

Heuristic and tied to English key names, so it lives apart from the
structural repair steps and can be switched off with
``ENABLE_PARTIAL_FALLBACK=false``.
"""

import re
from typing import Any, Dict, List, Optional

from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)

_STRING_VALUE = r'"((?:[^"\\]|\\.)*)"'


def _unescape(value: str) -> str:
    return value.replace('\\"', '"').replace("\\n", "\n").replace("\\t", "\t").replace("\\\\", "\\").strip()


def extract_field_from_broken_json(text: str, field_name: str) -> Optional[str]:
    """Return the first non-empty string value for ``field_name``.

    Args:
        text: The text containing broken JSON
        field_name: The key to look for

    Returns:
        Unescaped value or None
    """
    pattern = re.compile(rf'"{re.escape(field_name)}"\s*:\s*{_STRING_VALUE}', re.DOTALL)
    for match in pattern.finditer(text):
        value = _unescape(match.group(1))
        if value:
            return value
    return None


def extract_all_fields_from_broken_json(text: str, field_name: str) -> List[str]:
    """Return every non-empty string value for ``field_name``, in order."""
    pattern = re.compile(rf'"{re.escape(field_name)}"\s*:\s*{_STRING_VALUE}', re.DOTALL)
    values = [_unescape(m.group(1)) for m in pattern.finditer(text)]
    return [v for v in values if v]


def extract_string_array_from_broken_json(text: str, field_name: str) -> List[str]:
    """Return the string items of ``"field": [...]``, tolerating a missing ``]``."""
    match = re.search(rf'"{re.escape(field_name)}"\s*:\s*\[(.*?)(?:\]|$)', text, re.DOTALL)
    if not match:
        return []
    items = [_unescape(v) for v in re.findall(_STRING_VALUE, match.group(1))]
    return [item for item in items if item]


def extract_partial_fields(text: str) -> Optional[Dict[str, Any]]:
    """Assemble whatever high-value fields can be found.

    Looks for name, email, phone, job titles and skills only. Job titles
    become minimal ``experience`` entries.

    Returns:
        Flat dict of recovered fields, or None if nothing matched
    """
    if not text:
        return None

    result: Dict[str, Any] = {}

    name = extract_field_from_broken_json(text, "full_name") or extract_field_from_broken_json(text, "name")
    if name:
        result["full_name"] = name

    for field_name in ("email", "phone"):
        value = extract_field_from_broken_json(text, field_name)
        if value:
            result[field_name] = value

    titles = extract_all_fields_from_broken_json(text, "job_title")
    if titles:
        result["experience"] = [{"job_title": title} for title in titles]

    skills = extract_string_array_from_broken_json(text, "skills")
    if skills:
        result["skills"] = skills

    if not result:
        return None

    LOGGER.debug(f"Partial extractor matched fields: {sorted(result)}")
    return result
