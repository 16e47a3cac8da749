"""Never-lose-data merge of a draft into an accepted record.

Rules:
- identity scalars only fill fields that are empty in the accepted record
- list items are joined on id, then on natural keys, and merged field by field under the
  same rule, except ``description`` which is replaced by a strictly longer
  draft text; unmatched draft items are appended
- string lists (skills, achievements, technologies) are case-insensitive
  unions that keep every accepted entry
- a section whose item count would shrink is rolled back and reported

The engine never raises; on an unexpected error the accepted record comes
back unchanged with a warning.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from cvtailor.core.exceptions import MergeRegression
from cvtailor.schemas.cv import (
    GENERIC_SECTIONS,
    GUARDED_SECTIONS,
    ID_PREFIXES,
    CanonicalRecord,
    DraftRecord,
    utc_now,
)
from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)

MatchKey = Optional[Tuple[str, ...]]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _fold(value: Any) -> str:
    return value.strip().casefold() if isinstance(value, str) else ""


def union_strings(accepted: List[str], incoming: List[str]) -> List[str]:
    """Case-insensitive union; accepted entries keep their order and spelling."""
    result = list(accepted)
    seen = {_fold(item) for item in accepted}
    for item in incoming:
        folded = _fold(item)
        if folded and folded not in seen:
            seen.add(folded)
            result.append(item.strip())
    return result


def _experience_key(item: Dict[str, Any]) -> MatchKey:
    company, title = _fold(item.get("company")), _fold(item.get("job_title"))
    if company or title:
        return ("natural", company, title)
    return ("id", item.get("id") or "")


def _field_key(field_name: str) -> Callable[[Dict[str, Any]], MatchKey]:
    def key(item: Dict[str, Any]) -> MatchKey:
        value = _fold(item.get(field_name))
        if value:
            return ("natural", value)
        return ("id", item.get("id") or "")
    return key


def _id_key(item: Dict[str, Any]) -> MatchKey:
    return ("id", item.get("id") or "")


def keys_conflict(accepted_key: MatchKey, incoming_key: MatchKey) -> bool:
    """True when two natural keys describe clearly different items.

    Keys conflict when no component agrees and at least one component is
    set on both sides with different values. Ids alone cannot tell a kept
    id from a positional one generated for a fresh extraction.
    """
    if not accepted_key or not incoming_key or accepted_key[0] != "natural" or incoming_key[0] != "natural":
        return False
    pairs = list(zip(accepted_key[1:], incoming_key[1:]))
    if any(a and a == b for a, b in pairs):
        return False
    return any(a and b and a != b for a, b in pairs)


# Section -> natural-key function
MATCHERS: Dict[str, Callable[[Dict[str, Any]], MatchKey]] = {
    "experience": _experience_key,
    "education": _field_key("institution"),
    "projects": _field_key("name"),
    "certifications": _field_key("name"),
    "languages": _field_key("language"),
    **{name: _id_key for name in GENERIC_SECTIONS},
}


@dataclass
class MergeResult:
    """Outcome of one merge; ``record`` is always usable."""
    record: CanonicalRecord
    warnings: List[str] = field(default_factory=list)
    regressions: List[MergeRegression] = field(default_factory=list)
    appended: Dict[str, int] = field(default_factory=dict)


class SafeMergeEngine:
    """Merges DraftRecords into CanonicalRecords without losing data."""

    def merge(self, accepted: CanonicalRecord, draft: DraftRecord) -> MergeResult:
        """Merge ``draft`` into ``accepted``.

        Returns:
            MergeResult with a new record (version + 1) or, if anything went
            wrong, an unchanged copy of ``accepted`` plus a warning
        """
        try:
            return self._merge(accepted, draft)
        except Exception as e:
            LOGGER.error(
                f"Merge failed, keeping accepted record: {e}",
                exc_info=True,
                extra={"record_id": accepted.id, "version": accepted.version},
            )
            return MergeResult(
                record=accepted.model_copy(deep=True),
                warnings=[f"Merge failed, accepted record kept unchanged: {e}"],
            )

    def _merge(self, accepted: CanonicalRecord, draft: DraftRecord) -> MergeResult:
        base = accepted.model_dump()
        incoming = draft.model_dump()
        merged = copy.deepcopy(base)
        result_appended: Dict[str, int] = {}

        merged["identity"] = self._merge_fields(base["identity"], incoming["identity"])
        merged["skills"] = union_strings(base["skills"], incoming["skills"])

        for section, key_fn in MATCHERS.items():
            items, appended = self._merge_section(section, base[section], incoming[section], key_fn)
            merged[section] = items
            if appended:
                result_appended[section] = appended

        # Accepted metadata wins on key conflicts
        merged["metadata"] = {**incoming["metadata"], **base["metadata"]}
        if _is_empty(base["raw_source_text"]):
            merged["raw_source_text"] = incoming["raw_source_text"]

        regressions = self._guard_regressions(base, merged)

        merged["version"] = accepted.version + 1
        merged["updated_at"] = utc_now()
        record = CanonicalRecord.model_validate(merged)

        LOGGER.info(
            f"Merged draft into record {accepted.id} (v{accepted.version} -> v{record.version})",
            extra={"appended": result_appended, "regressions": len(regressions)},
        )
        return MergeResult(
            record=record,
            warnings=[str(regression) for regression in regressions],
            regressions=regressions,
            appended=result_appended,
        )

    def _merge_fields(self, accepted: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
        """Field-by-field merge of two items (or identity blocks)."""
        merged = dict(accepted)
        for name, value in incoming.items():
            if name == "id":
                continue
            current = accepted.get(name)
            if name == "description":
                if isinstance(value, str) and len(value.strip()) > len((current or "").strip()):
                    merged[name] = value
            elif isinstance(current, list) or isinstance(value, list):
                merged[name] = union_strings(current or [], value or [])
            elif name == "is_current":
                # Only an open-ended accepted entry may become current
                if not current and value and _is_empty(accepted.get("end_date")):
                    merged[name] = True
            elif _is_empty(current) and not _is_empty(value):
                merged[name] = value
        return merged

    def _merge_section(
        self,
        section: str,
        accepted_items: List[Dict[str, Any]],
        incoming_items: List[Dict[str, Any]],
        key_fn: Callable[[Dict[str, Any]], MatchKey],
    ) -> Tuple[List[Dict[str, Any]], int]:
        merged = [dict(item) for item in accepted_items]
        index_by_key: Dict[MatchKey, int] = {}
        for position, item in enumerate(merged):
            index_by_key.setdefault(key_fn(item), position)
        index_by_id: Dict[str, int] = {item["id"]: position for position, item in enumerate(merged)}
        used_ids: Set[str] = set(index_by_id)
        appended = 0

        for item in incoming_items:
            position = self._match(item, merged, index_by_id, index_by_key, key_fn)
            if position is not None and not self._titles_conflict(section, merged[position], item):
                merged[position] = self._merge_fields(merged[position], item)
                continue

            new_item = dict(item)
            if new_item.get("id") in used_ids:
                new_item["id"] = self._next_id(section, len(merged) + 1, used_ids)
            used_ids.add(new_item["id"])
            merged.append(new_item)
            index_by_key.setdefault(key_fn(new_item), len(merged) - 1)
            appended += 1

        return merged, appended

    @staticmethod
    def _match(
        item: Dict[str, Any],
        merged: List[Dict[str, Any]],
        index_by_id: Dict[str, int],
        index_by_key: Dict[MatchKey, int],
        key_fn: Callable[[Dict[str, Any]], MatchKey],
    ) -> Optional[int]:
        """Position of the accepted item ``item`` joins: id first, then natural key."""
        incoming_key = key_fn(item)
        position = index_by_id.get(item.get("id") or "")
        if position is not None and not keys_conflict(key_fn(merged[position]), incoming_key):
            return position
        return index_by_key.get(incoming_key)

    @staticmethod
    def _titles_conflict(section: str, accepted_item: Dict[str, Any], incoming_item: Dict[str, Any]) -> bool:
        """Generic sections join on id; two different titles under one id are two items."""
        if section not in GENERIC_SECTIONS:
            return False
        accepted_title, incoming_title = _fold(accepted_item.get("title")), _fold(incoming_item.get("title"))
        return bool(accepted_title and incoming_title and accepted_title != incoming_title)

    @staticmethod
    def _next_id(section: str, number: int, used_ids: Set[str]) -> str:
        prefix = ID_PREFIXES[section]
        candidate = f"{prefix}-{number}"
        while candidate in used_ids:
            number += 1
            candidate = f"{prefix}-{number}"
        return candidate

    def _guard_regressions(self, base: Dict[str, Any], merged: Dict[str, Any]) -> List[MergeRegression]:
        """Roll back any section that ended up shorter than the accepted one."""
        regressions: List[MergeRegression] = []
        for section in GUARDED_SECTIONS:
            before, after = len(base[section]), len(merged[section])
            if after < before:
                regression = MergeRegression(section, before, after)
                LOGGER.warning(str(regression))
                merged[section] = copy.deepcopy(base[section])
                regressions.append(regression)
        return regressions


def merge_records(accepted: CanonicalRecord, draft: DraftRecord) -> CanonicalRecord:
    """Merge and return only the resulting record."""
    return SafeMergeEngine().merge(accepted, draft).record
