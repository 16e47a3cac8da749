"""Rule-based, forgiving audit of a record.

A field is only reported missing when the fact it holds cannot be read from
another populated field: a summary that states "M.Sc. in Physics" covers a
missing field of study, a website covers a missing LinkedIn URL, and so on.
Education itself is never inferred.
"""

import re
from typing import Dict, List, Optional, Tuple

from cvtailor.schemas.assessment import AuditRecord, FieldAuditItem
from cvtailor.schemas.cv import CVContent, Education
from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Field path -> weight in the overall score
FIELD_WEIGHTS: Dict[str, int] = {
    "identity.full_name": 3,
    "identity.email": 3,
    "identity.phone": 2,
    "identity.location": 1,
    "identity.summary": 2,
    "identity.linkedin_url": 1,
    "experience": 4,
    "education": 3,
    "education.field_of_study": 1,
    "skills": 3,
    "projects": 1,
    "certifications": 1,
    "languages": 1,
}

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# "M.Sc. in Physics", "Bachelor of Arts in History", "PhD ... in Chemistry"
DEGREE_STATEMENT = re.compile(
    r"\b(?:b\.?\s?sc|m\.?\s?sc|b\.?\s?a|m\.?\s?a|b\.?\s?eng|m\.?\s?eng|ph\.?\s?d|mba|md|"
    r"bachelor(?:'s)?|master(?:'s)?|doctorate|doctoral|degree|diploma)\b\.?"
    r"[^.\n]{0,60}?\b(?:in|of)\s+(?!the\b|a\b)"
    r"([A-Za-z][\w&\-]+(?:\s+(?!(?:from|at|with|and|in|on|for|under)\b)[A-Za-z][\w&\-]*)*)",
    re.IGNORECASE,
)
PROJECT_MENTION = re.compile(r"\bprojects?\b", re.IGNORECASE)

_SCALAR_MESSAGES: Dict[str, Tuple[str, str]] = {
    "identity.full_name": ("Full name is missing", "Add your full name as it should appear on the CV"),
    "identity.email": ("Email address is missing", "Add a professional email address"),
    "identity.phone": ("Phone number is missing", "Add a phone number with country code"),
    "identity.location": ("Location is missing", "Add your city and country"),
    "identity.summary": ("Professional summary is missing", "Write a short professional summary"),
    "identity.linkedin_url": ("LinkedIn profile is missing", "Add your LinkedIn profile URL"),
}


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def infer_field_of_study(entry: Education, summary: Optional[str]) -> Optional[str]:
    """Field of study stated in the degree string or in the summary."""
    for text in (entry.degree, summary):
        if not text:
            continue
        match = DEGREE_STATEMENT.search(text)
        if match:
            return match.group(1).strip()
    return None


class Auditor:
    """Scores a record field by field and lists issues."""

    def audit(self, record: CVContent) -> AuditRecord:
        items = [
            self._scalar(record, "identity.full_name"),
            self._email(record),
            self._scalar(record, "identity.phone"),
            self._location(record),
            self._summary(record),
            self._linkedin(record),
            self._experience(record),
            self._education(record),
        ]
        field_of_study = self._field_of_study(record)
        if field_of_study is not None:
            items.append(field_of_study)
        items.extend([
            self._skills(record),
            self._projects(record),
            self._list_presence(record, "certifications", "No certifications listed", "Add relevant certifications or licenses"),
            self._list_presence(record, "languages", "No languages listed", "List the languages you speak and your level"),
        ])

        audit = AuditRecord(
            record_id=getattr(record, "id", None),
            record_version=getattr(record, "version", None),
            overall_score=self._overall(items),
            items=items,
        )
        LOGGER.info(
            f"Audit finished: overall_score={audit.overall_score}",
            extra={"record_id": audit.record_id, "issues": len(audit.items_with_issues())},
        )
        return audit

    @staticmethod
    def _overall(items: List[FieldAuditItem]) -> int:
        total_weight = sum(FIELD_WEIGHTS.get(item.field_path, 1) for item in items)
        if not total_weight:
            return 0
        weighted = sum(FIELD_WEIGHTS.get(item.field_path, 1) * item.completeness_score for item in items)
        return round(weighted / total_weight)

    @staticmethod
    def _missing(path: str, issue: str, recommendation: str) -> FieldAuditItem:
        return FieldAuditItem(field_path=path, exists=False, issues=[issue], recommendations=[recommendation])

    @staticmethod
    def _inferred(path: str, completeness: int, note: str) -> FieldAuditItem:
        return FieldAuditItem(
            field_path=path,
            exists=True,
            inferred=True,
            completeness_score=completeness,
            quality_score=completeness,
            recommendations=[note],
        )

    def _scalar(self, record: CVContent, path: str) -> FieldAuditItem:
        value = getattr(record.identity, path.split(".", 1)[1])
        if _present(value):
            return FieldAuditItem(field_path=path, exists=True, completeness_score=100, quality_score=100)
        issue, recommendation = _SCALAR_MESSAGES[path]
        return self._missing(path, issue, recommendation)

    def _email(self, record: CVContent) -> FieldAuditItem:
        item = self._scalar(record, "identity.email")
        if item.exists and not EMAIL_PATTERN.match(record.identity.email.strip()):
            item.quality_score = 40
            item.issues.append("Email address looks invalid")
            item.recommendations.append("Check the email address for typos")
        return item

    def _location(self, record: CVContent) -> FieldAuditItem:
        if _present(record.identity.location):
            return self._scalar(record, "identity.location")
        if any(_present(entry.location) for entry in record.experience):
            return self._inferred("identity.location", 70, "Location taken from experience entries")
        return self._scalar(record, "identity.location")

    def _summary(self, record: CVContent) -> FieldAuditItem:
        item = self._scalar(record, "identity.summary")
        if not item.exists:
            return item
        length = len(record.identity.summary.strip())
        if length < 50:
            item.completeness_score = 60
            item.quality_score = 40
            item.issues.append("Professional summary is very short")
            item.recommendations.append("Expand the summary to two or three sentences")
        elif length < 200:
            item.quality_score = 75
        return item

    def _linkedin(self, record: CVContent) -> FieldAuditItem:
        if _present(record.identity.linkedin_url):
            return self._scalar(record, "identity.linkedin_url")
        if _present(record.identity.website_url):
            return self._inferred("identity.linkedin_url", 70, "Online profile available through the website link")
        return self._scalar(record, "identity.linkedin_url")

    def _experience(self, record: CVContent) -> FieldAuditItem:
        path = "experience"
        entries = record.experience
        if not entries:
            return self._missing(path, "No work experience entries", "Add your work experience with job titles, companies and dates")

        core_fields = ("job_title", "company", "start_date", "description")
        filled = [sum(_present(getattr(entry, name)) for name in core_fields) for entry in entries]
        completeness = round(100 * sum(filled) / (len(core_fields) * len(entries)))

        quality_scores = []
        for entry in entries:
            length = len((entry.description or "").strip())
            score = 100 if length >= 100 else 70 if length >= 30 else 40 if length else 20
            if entry.achievements:
                score = min(100, score + 10)
            quality_scores.append(score)

        item = FieldAuditItem(
            field_path=path,
            exists=True,
            completeness_score=completeness,
            quality_score=round(sum(quality_scores) / len(quality_scores)),
        )
        unnamed = sum(1 for entry in entries if not _present(entry.job_title) or not _present(entry.company))
        if unnamed:
            item.issues.append(f"{unnamed} experience entries lack a job title or company")
            item.recommendations.append("Add the job title and company for every position")
        if item.quality_score < 50:
            item.recommendations.append("Describe responsibilities and measurable achievements")
        return item

    def _education(self, record: CVContent) -> FieldAuditItem:
        path = "education"
        entries = record.education
        if not entries:
            return self._missing(path, "No education entries", "Add your educational background")
        core_fields = ("degree", "institution", "end_date")
        filled = sum(_present(getattr(entry, name)) for entry in entries for name in core_fields)
        completeness = round(100 * filled / (len(core_fields) * len(entries)))
        item = FieldAuditItem(field_path=path, exists=True, completeness_score=completeness, quality_score=completeness)
        no_institution = sum(1 for entry in entries if not _present(entry.institution))
        if no_institution:
            item.issues.append(f"{no_institution} education entries lack an institution")
            item.recommendations.append("Add the institution for every degree")
        return item

    def _field_of_study(self, record: CVContent) -> Optional[FieldAuditItem]:
        """Only audited when there is education to describe."""
        path = "education.field_of_study"
        entries = record.education
        if not entries:
            return None

        explicit = sum(1 for entry in entries if _present(entry.field_of_study))
        inferred = sum(
            1 for entry in entries
            if not _present(entry.field_of_study) and infer_field_of_study(entry, record.identity.summary)
        )
        if explicit == len(entries):
            return FieldAuditItem(field_path=path, exists=True, completeness_score=100, quality_score=100)
        if explicit + inferred == len(entries):
            return self._inferred(path, 80, "Field of study stated in the degree or summary")

        missing = len(entries) - explicit - inferred
        return FieldAuditItem(
            field_path=path,
            exists=explicit + inferred > 0,
            completeness_score=round(100 * (explicit + inferred) / len(entries)),
            inferred=inferred > 0,
            issues=[f"Field of study missing for {missing} education entries"],
            recommendations=["Add the subject of each degree"],
        )

    def _skills(self, record: CVContent) -> FieldAuditItem:
        path = "skills"
        count = len(record.skills)
        if not count:
            return self._missing(path, "No skills listed", "List your technical and soft skills")
        completeness = 100 if count >= 5 else 60 + 10 * (count - 1)
        item = FieldAuditItem(field_path=path, exists=True, completeness_score=completeness, quality_score=completeness)
        if count < 5:
            item.recommendations.append("List more skills relevant to your target role")
        return item

    def _projects(self, record: CVContent) -> FieldAuditItem:
        path = "projects"
        if record.projects:
            return FieldAuditItem(field_path=path, exists=True, completeness_score=100, quality_score=100)
        for entry in record.experience:
            texts = [entry.description or ""] + list(entry.achievements)
            if any(PROJECT_MENTION.search(text) for text in texts):
                return self._inferred(path, 60, "Projects described within experience entries")
        return self._missing(path, "No projects listed", "Add two or three notable projects")

    def _list_presence(self, record: CVContent, path: str, issue: str, recommendation: str) -> FieldAuditItem:
        if getattr(record, path):
            return FieldAuditItem(field_path=path, exists=True, completeness_score=100, quality_score=100)
        return self._missing(path, issue, recommendation)
