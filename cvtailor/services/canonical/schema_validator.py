"""Normalize untyped extraction trees into DraftRecords.

The policy is coerce, don't reject: missing sections become empty lists,
missing scalars become None, every list item gets a stable id. Only an
unusable top-level container is refused, and that refusal is returned as a
SchemaValidationError value rather than raised.
"""

import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from cvtailor.schemas.cv import (
    GENERIC_SECTIONS,
    ID_PREFIXES,
    Certification,
    DraftRecord,
    Education,
    GenericSectionItem,
    Identity,
    LanguageSkill,
    Project,
    SchemaValidationError,
    WorkExperience,
)
from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Section name -> accepted spellings, first match wins
SECTION_ALIASES: Dict[str, Tuple[str, ...]] = {
    "identity": ("identity", "personal_info", "personal_details", "personal_information", "contact_info", "basics"),
    "experience": ("experience", "work_experience", "work_history", "employment", "employment_history", "positions"),
    "education": ("education", "academic_background", "studies"),
    "skills": ("skills", "technical_skills", "competencies", "skill_set"),
    "projects": ("projects", "personal_projects"),
    "certifications": ("certifications", "certificates", "licenses"),
    "languages": ("languages", "language_skills", "spoken_languages"),
    "publications": ("publications", "papers"),
    "awards": ("awards", "honors", "honours"),
    "teaching": ("teaching", "teaching_experience"),
    "clinical": ("clinical", "clinical_experience", "rotations"),
    "volunteering": ("volunteering", "volunteer", "volunteer_experience"),
    "other": ("other", "other_sections", "additional"),
    "metadata": ("metadata", "unclassified", "extra"),
}

IDENTITY_ALIASES: Dict[str, Tuple[str, ...]] = {
    "full_name": ("full_name", "name", "candidate_name"),
    "email": ("email", "email_address", "mail"),
    "phone": ("phone", "phone_number", "mobile", "telephone"),
    "location": ("location", "address", "city", "place_of_birth"),
    "linkedin_url": ("linkedin_url", "linkedin", "linkedin_profile"),
    "website_url": ("website_url", "website", "portfolio", "homepage"),
    "summary": ("summary", "objective", "profile", "about", "professional_summary", "research_summary"),
}

EXPERIENCE_ALIASES: Dict[str, Tuple[str, ...]] = {
    "job_title": ("job_title", "title", "position", "role"),
    "company": ("company", "employer", "organization", "organisation", "company_name"),
    "location": ("location", "city"),
    "start_date": ("start_date", "start", "from", "date_from"),
    "end_date": ("end_date", "end", "to", "date_to"),
    "description": ("description", "responsibilities", "details", "summary"),
}

EDUCATION_ALIASES: Dict[str, Tuple[str, ...]] = {
    "degree": ("degree", "qualification", "diploma"),
    "field_of_study": ("field_of_study", "field", "major", "discipline", "specialization", "specialisation"),
    "institution": ("institution", "school", "university", "college"),
    "location": ("location", "city"),
    "start_date": ("start_date", "start", "from"),
    "end_date": ("end_date", "end", "to", "graduation_date"),
    "gpa": ("gpa", "grade", "grades"),
    "description": ("description", "details", "thesis"),
}

PROJECT_ALIASES: Dict[str, Tuple[str, ...]] = {
    "name": ("name", "title", "project_name"),
    "description": ("description", "details", "summary"),
    "url": ("url", "link", "repository"),
    "start_date": ("start_date", "start"),
    "end_date": ("end_date", "end"),
}

CERTIFICATION_ALIASES: Dict[str, Tuple[str, ...]] = {
    "name": ("name", "title", "certification"),
    "issuer": ("issuer", "issued_by", "authority", "organization"),
    "date_obtained": ("date_obtained", "date", "issue_date", "issued"),
    "expiry_date": ("expiry_date", "expires", "expiration_date"),
    "credential_id": ("credential_id", "license_number"),
    "credential_url": ("credential_url", "url", "link"),
}

LANGUAGE_ALIASES: Dict[str, Tuple[str, ...]] = {
    "language": ("language", "name"),
    "proficiency": ("proficiency", "level", "fluency"),
}

GENERIC_ALIASES: Dict[str, Tuple[str, ...]] = {
    "title": ("title", "name", "heading"),
    "content": ("content", "description", "details", "text", "summary"),
}

# Keys the record carries outside its content; never copied into metadata
_BOOKKEEPING_KEYS = {"id", "ownerid", "version", "createdat", "updatedat", "rawsourcetext"}

# end_date values meaning "still ongoing", compared casefolded
PRESENT_MARKERS = {
    "present", "current", "currently", "now", "ongoing", "today", "to date", "till date", "until now",
    "actuel", "aujourd'hui", "presente", "actualidad", "actual", "heute", "aktuell", "oggi", "atual",
    "الآن", "حتى الآن", "حاليا", "حالياً", "اکنون", "تاکنون", "تا کنون", "حال",
    "настоящее время", "по настоящее время", "сейчас",
}

# Range separators; a bare hyphen only counts with spaces so ISO dates survive
_RANGE_SPLIT = re.compile(r"\s+(?:-|to|until|till)\s+|\s*[\u2013\u2014\u2192]\s*", re.IGNORECASE)
_SKILL_SPLIT = re.compile(r"[,;\n•|]")
_LINE_SPLIT = re.compile(r"[\n•]")
_NAME_KEYS = ("name", "skill", "title")
_LANGUAGE_WITH_LEVEL = re.compile(r"^\s*([^(\-:–]+?)\s*(?:\(([^)]*)\)|[-:–]\s*(.+))\s*$")


def slug(key: str) -> str:
    """Case- and punctuation-insensitive form of a key."""
    return re.sub(r"[^a-z0-9]", "", str(key).lower())


def find_key(data: Any, aliases: Iterable[str], depth: int = 0) -> Any:
    """Look a value up by any alias spelling.

    Matches at the current level first; containers (``depth`` > 0) are then
    searched recursively, one level of nesting per unit of depth.
    """
    if not isinstance(data, dict):
        return None
    by_slug = {slug(k): k for k in data}
    for alias in aliases:
        key = by_slug.get(slug(alias))
        if key is not None and data[key] is not None:
            return data[key]
    if depth <= 0:
        return None
    for value in data.values():
        if isinstance(value, dict):
            found = find_key(value, aliases, depth - 1)
            if found is not None:
                return found
    return None


def as_text(value: Any) -> Optional[str]:
    """Coerce a value to a non-empty string or None. Lists are joined with newlines."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or stripped.lower() in ("null", "none", "n/a"):
            return None
        return stripped
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        parts = [as_text(v) for v in value]
        joined = "\n".join(p for p in parts if p)
        return joined or None
    if isinstance(value, dict):
        parts = [as_text(v) for v in value.values()]
        joined = ", ".join(p for p in parts if p)
        return joined or None
    return str(value)


def as_list(value: Any) -> List[Any]:
    """Coerce a value to a list: a single object becomes a one-item list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        items = find_key(value, ("items", "entries"))
        if isinstance(items, list):
            return items
        return [value]
    return [value]


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        return lowered in ("true", "yes", "y", "1") or is_present_marker(lowered)
    if isinstance(value, (int, float)):
        return value != 0
    return False


def _flatten(value: Any, splitter: "re.Pattern[str]") -> List[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return splitter.split(value)
    if isinstance(value, dict):
        if find_key(value, _NAME_KEYS) is not None:
            return [value]
        # Category map: {"languages": [...], "tools": [...]}
        items = find_key(value, ("items", "entries"))
        groups: List[Any] = [items] if isinstance(items, list) else list(value.values())
    elif isinstance(value, list):
        groups = value
    else:
        return [value]

    flat: List[Any] = []
    for group in groups:
        if isinstance(group, (list, dict)):
            flat.extend(_flatten(group, splitter))
        else:
            flat.append(group)
    return flat


def as_string_list(value: Any, split_commas: bool = True) -> List[str]:
    """Flatten a list-ish value into unique non-empty strings, order preserved.

    A plain string is split on commas, semicolons and bullets when
    ``split_commas`` is set (skills, technologies), otherwise on line breaks
    only (achievements).
    """
    splitter = _SKILL_SPLIT if split_commas else _LINE_SPLIT
    result: List[str] = []
    seen: Set[str] = set()
    for item in _flatten(value, splitter):
        if isinstance(item, dict):
            text = as_text(find_key(item, _NAME_KEYS)) or as_text(item)
        else:
            text = as_text(item)
        if text:
            text = text.lstrip("-*• ").strip() or None
        if text and text.casefold() not in seen:
            seen.add(text.casefold())
            result.append(text)
    return result


def is_present_marker(value: Optional[str]) -> bool:
    if not value:
        return False
    return value.strip().strip(".").casefold() in PRESENT_MARKERS


def split_date_range(value: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split "2020–Present" style ranges into (start, end); otherwise (value, None)."""
    if not value:
        return None, None
    parts = _RANGE_SPLIT.split(value, maxsplit=1)
    if len(parts) == 2 and parts[0].strip() and parts[1].strip():
        return parts[0].strip(), parts[1].strip()
    return value, None


class CanonicalSchemaValidator:
    """Turns an arbitrary parsed tree into a DraftRecord."""

    def normalize(
        self,
        tree: Any,
        raw_source_text: str = "",
    ) -> Union[DraftRecord, SchemaValidationError]:
        """Normalize a parsed tree.

        Args:
            tree: Output of the repair engine or of stage assembly
            raw_source_text: Source document kept on the record

        Returns:
            DraftRecord, or SchemaValidationError if the top-level container
            is not an object (or a one-object array)
        """
        data = self._top_level(tree)
        if isinstance(data, SchemaValidationError):
            LOGGER.warning(f"Schema validation rejected tree: {data.message}")
            return data

        identity_raw = find_key(data, SECTION_ALIASES["identity"], depth=1)
        if not isinstance(identity_raw, dict):
            identity_raw = data

        sections: Dict[str, Any] = {
            "identity": self._identity(identity_raw, data),
            "experience": self._items(data, "experience", self._experience),
            "education": self._items(data, "education", self._education),
            "projects": self._items(data, "projects", self._project),
            "certifications": self._items(data, "certifications", self._certification),
            "languages": self._items(data, "languages", self._language),
            "skills": as_string_list(find_key(data, SECTION_ALIASES["skills"], depth=1)),
        }
        for name in GENERIC_SECTIONS:
            sections[name] = self._items(data, name, self._generic)

        sections["metadata"] = self._metadata(data)

        try:
            return DraftRecord(raw_source_text=raw_source_text or "", **sections)
        except ValidationError as e:
            LOGGER.error(f"Normalized record failed model validation: {e}", exc_info=True)
            return SchemaValidationError(message=f"Normalized record is invalid: {e.error_count()} errors")

    def _top_level(self, tree: Any) -> Union[Dict[str, Any], SchemaValidationError]:
        if isinstance(tree, list):
            objects = [item for item in tree if isinstance(item, dict)]
            if len(tree) == 1 and len(objects) == 1:
                tree = objects[0]
            else:
                return SchemaValidationError(
                    message="Top-level array does not hold exactly one record object",
                    received_type="array",
                )
        if not isinstance(tree, dict):
            return SchemaValidationError(
                message="Top-level value is not an object",
                received_type=type(tree).__name__ if tree is not None else "null",
            )

        # Unwrap {"cv": {...}} style envelopes
        known = {slug(alias) for aliases in SECTION_ALIASES.values() for alias in aliases}
        known.update(slug(alias) for aliases in IDENTITY_ALIASES.values() for alias in aliases)
        if len(tree) == 1:
            only_key, only_value = next(iter(tree.items()))
            if isinstance(only_value, dict) and slug(only_key) not in known:
                return only_value
        return tree

    def _identity(self, identity_raw: Dict[str, Any], data: Dict[str, Any]) -> Identity:
        values: Dict[str, Optional[str]] = {}
        for field_name, aliases in IDENTITY_ALIASES.items():
            value = find_key(identity_raw, aliases)
            if value is None and identity_raw is not data:
                value = find_key(data, aliases)
            values[field_name] = as_text(value)
        return Identity(**values)

    def _items(
        self,
        data: Dict[str, Any],
        section: str,
        build: Callable[[Any], Optional[Dict[str, Any]]],
    ) -> List[Dict[str, Any]]:
        """Normalize one list section and assign ids."""
        raw = find_key(data, SECTION_ALIASES[section], depth=1)
        prefix = ID_PREFIXES[section]
        items: List[Dict[str, Any]] = []
        used_ids: Set[str] = set()

        for index, raw_item in enumerate(as_list(raw)):
            fields = build(raw_item)
            if not fields or not any(v for v in fields.values()):
                continue
            item_id = as_text(raw_item.get("id")) if isinstance(raw_item, dict) else None
            if not item_id or item_id in used_ids:
                item_id = self._generate_id(prefix, index + 1, used_ids)
            used_ids.add(item_id)
            items.append({"id": item_id, **fields})
        return items

    @staticmethod
    def _generate_id(prefix: str, number: int, used_ids: Set[str]) -> str:
        candidate = f"{prefix}-{number}"
        while candidate in used_ids:
            number += 1
            candidate = f"{prefix}-{number}"
        return candidate

    @staticmethod
    def _scalar_fields(raw: Dict[str, Any], aliases: Dict[str, Tuple[str, ...]]) -> Dict[str, Optional[str]]:
        return {name: as_text(find_key(raw, spellings)) for name, spellings in aliases.items()}

    def _experience(self, raw: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(raw, dict):
            text = as_text(raw)
            return {"description": text} if text else None

        fields: Dict[str, Any] = self._scalar_fields(raw, EXPERIENCE_ALIASES)
        fields["achievements"] = as_string_list(
            find_key(raw, ("achievements", "accomplishments", "highlights")),
            split_commas=False,
        )
        dates = self._dates(raw, fields)
        ongoing = dates.pop("_current")
        fields.update(dates)
        if not any(fields.values()):
            return None
        fields["is_current"] = ongoing or as_bool(find_key(raw, ("is_current", "current")))
        return WorkExperience(id="_", **fields).model_dump(exclude={"id"})

    def _dates(self, raw: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
        """Split combined ranges and map "present" end dates to is_current."""
        start, end = fields.get("start_date"), fields.get("end_date")
        combined = as_text(find_key(raw, ("dates", "period", "duration", "date_range")))

        if not start and combined:
            start, end_from_range = split_date_range(combined)
            end = end or end_from_range
        elif start and not end:
            start, end = split_date_range(start)

        current = False
        if is_present_marker(end):
            end, current = None, True
        return {"start_date": start, "end_date": end, "_current": current}

    def _education(self, raw: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(raw, dict):
            text = as_text(raw)
            return {"degree": text} if text else None
        fields: Dict[str, Any] = self._scalar_fields(raw, EDUCATION_ALIASES)
        dates = self._dates(raw, fields)
        dates.pop("_current")
        fields.update(dates)
        return Education(id="_", **fields).model_dump(exclude={"id"})

    def _project(self, raw: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(raw, dict):
            text = as_text(raw)
            return {"name": text} if text else None
        fields: Dict[str, Any] = self._scalar_fields(raw, PROJECT_ALIASES)
        fields["technologies"] = as_string_list(find_key(raw, ("technologies", "tech_stack", "tools", "stack")))
        return Project(id="_", **fields).model_dump(exclude={"id"})

    def _certification(self, raw: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(raw, dict):
            text = as_text(raw)
            return {"name": text} if text else None
        fields = self._scalar_fields(raw, CERTIFICATION_ALIASES)
        return Certification(id="_", **fields).model_dump(exclude={"id"})

    def _language(self, raw: Any) -> Optional[Dict[str, Any]]:
        if isinstance(raw, dict):
            fields = self._scalar_fields(raw, LANGUAGE_ALIASES)
            return LanguageSkill(id="_", **fields).model_dump(exclude={"id"})
        text = as_text(raw)
        if not text:
            return None
        # "French (fluent)", "German - B2"
        match = _LANGUAGE_WITH_LEVEL.match(text)
        if match:
            return {"language": match.group(1).strip(), "proficiency": (match.group(2) or match.group(3) or "").strip() or None}
        return {"language": text, "proficiency": None}

    def _generic(self, raw: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(raw, dict):
            text = as_text(raw)
            if not text:
                return None
            if len(text) <= 120 and "\n" not in text:
                return {"title": text, "content": None}
            return {"title": None, "content": text}
        fields = self._scalar_fields(raw, GENERIC_ALIASES)
        return GenericSectionItem(id="_", **fields).model_dump(exclude={"id"})

    def _metadata(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Explicit metadata plus any top-level key no section claimed."""
        explicit = find_key(data, SECTION_ALIASES["metadata"])
        metadata: Dict[str, Any] = dict(explicit) if isinstance(explicit, dict) else {}

        claimed = {slug(alias) for aliases in SECTION_ALIASES.values() for alias in aliases}
        claimed.update(slug(alias) for aliases in IDENTITY_ALIASES.values() for alias in aliases)
        claimed.update(_BOOKKEEPING_KEYS)
        for key, value in data.items():
            if slug(key) in claimed or value in (None, "", [], {}):
                continue
            metadata.setdefault(key, value)
        return metadata


def normalize_record(tree: Any, raw_source_text: str = "") -> Union[DraftRecord, SchemaValidationError]:
    """Module-level shortcut for ``CanonicalSchemaValidator().normalize``."""
    return CanonicalSchemaValidator().normalize(tree, raw_source_text)
