"""Completeness scoring and language-drift detection for extraction drafts."""

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from cvtailor.core.config import ExtractionSettings
from cvtailor.core.exceptions import ValidationWarning
from cvtailor.schemas.assessment import ValidationReport
from cvtailor.schemas.cv import CVContent
from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)

SCRIPT_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    "Arabic/Persian": re.compile(r"[\u0600-\u06FF\u0750-\u077F\uFB50-\uFDFF\uFE70-\uFEFF]"),
    "Cyrillic": re.compile(r"[\u0400-\u04FF\u0500-\u052F]"),
}

# Scripts that should not appear in free text for a given document language
UNEXPECTED_SCRIPTS: Dict[str, Tuple[str, ...]] = {
    "en": ("Arabic/Persian", "Cyrillic"),
    "de": ("Arabic/Persian", "Cyrillic"),
    "fr": ("Arabic/Persian", "Cyrillic"),
    "es": ("Arabic/Persian", "Cyrillic"),
    "it": ("Arabic/Persian", "Cyrillic"),
    "pt": ("Arabic/Persian", "Cyrillic"),
    "tr": ("Arabic/Persian", "Cyrillic"),
    "fa": ("Cyrillic",),
    "ar": ("Cyrillic",),
    "ru": ("Arabic/Persian",),
}

WORK_KEYWORDS = re.compile(
    r"experience|work|position|role|job|employ|manager|director|engineer|developer|professor|lecturer",
    re.IGNORECASE,
)
EDUCATION_KEYWORDS = re.compile(
    r"education|university|degree|bachelor|master|phd|diploma|school|college",
    re.IGNORECASE,
)

_PATH_INDEX = re.compile(r"\[\d+\]$")


def _walk_strings(value: Any, path: str) -> Iterable[Tuple[str, str]]:
    if isinstance(value, str):
        yield path, value
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from _walk_strings(item, f"{path}[{index}]")
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from _walk_strings(item, f"{path}.{key}" if path else key)


def _leaf_field(path: str) -> str:
    """Field name a path ends in (`skills[3]` -> `skills`)."""
    last = path.rsplit(".", 1)[-1]
    while _PATH_INDEX.search(last):
        last = _PATH_INDEX.sub("", last)
    return last


def check_language(
    data: Any,
    expected_language: str,
    allowed_fields: Sequence[str] = (),
    min_length: int = 10,
) -> List[str]:
    """List strings written in a script unexpected for ``expected_language``.

    Strings shorter than ``min_length`` and fields in ``allowed_fields``
    (names, places) are ignored. Unknown languages are not checked.
    """
    scripts = UNEXPECTED_SCRIPTS.get((expected_language or "").lower(), ())
    if not scripts:
        return []

    allowed = {name.lower() for name in allowed_fields}
    violations: List[str] = []
    for path, text in _walk_strings(data, ""):
        if len(text) <= min_length or _leaf_field(path).lower() in allowed:
            continue
        for script in scripts:
            if SCRIPT_PATTERNS[script].search(text):
                snippet = text[:30] + ("..." if len(text) > 30 else "")
                violations.append(f'{script} text in {path}: "{snippet}"')
                break
    return violations


class ValidationReportBuilder:
    """Scores a draft out of 100.

    Points: personal info 20, work experience 30, education 20, skills 20,
    language consistency 10. A draft is complete at 70 points with at least
    one experience entry.
    """

    def __init__(self, settings: Optional[ExtractionSettings] = None):
        self.settings = settings or ExtractionSettings()

    def build(self, draft: CVContent, source_text: str = "", language: str = "en") -> ValidationReport:
        warnings: List[ValidationWarning] = []
        score = 0
        identity = draft.identity

        if identity.full_name:
            score += 5
        else:
            warnings.append(ValidationWarning("Missing full_name"))
        if identity.email:
            score += 5
        else:
            warnings.append(ValidationWarning("Missing email"))
        if identity.phone:
            score += 5
        if identity.summary and len(identity.summary) > 20:
            score += 5
        else:
            warnings.append(ValidationWarning("Missing or short summary"))

        work_count = len(draft.experience)
        if work_count:
            score += 20
            average = sum(len(entry.description or "") for entry in draft.experience) / work_count
            if average > 50:
                score += 10
            else:
                warnings.append(ValidationWarning("Work experiences have short descriptions"))
        elif WORK_KEYWORDS.search(source_text or ""):
            warnings.append(ValidationWarning("CV mentions work experience but none extracted"))

        if draft.education:
            score += 20
        elif EDUCATION_KEYWORDS.search(source_text or ""):
            warnings.append(ValidationWarning("CV mentions education but none extracted"))

        if draft.skills:
            score += 20
        else:
            warnings.append(ValidationWarning("No skills extracted"))

        violations = check_language(
            draft.model_dump(exclude={"metadata", "raw_source_text"}, mode="json"),
            language,
            allowed_fields=self.settings.language_allowed_fields,
            min_length=self.settings.language_min_violation_length,
        )
        if violations:
            warnings.append(ValidationWarning("Language mismatch detected"))
        else:
            score += 10

        report = ValidationReport(
            is_complete=score >= 70 and work_count > 0,
            completeness=score,
            warnings=[str(warning) for warning in warnings],
            language_violations=violations,
        )
        LOGGER.info(
            f"Validation: completeness={report.completeness} complete={report.is_complete}",
            extra={"warnings": len(report.warnings), "language_violations": len(violations)},
        )
        return report
