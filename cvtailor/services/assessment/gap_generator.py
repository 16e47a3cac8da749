"""Turns audit issues into user-facing, skippable gap guidance."""

from typing import Dict, Optional, Sequence, Tuple

from cvtailor.schemas.assessment import AuditRecord, FieldAuditItem, GapGuidance, GapGuidanceItem
from cvtailor.services.assessment.domain_profiles import DomainProfile, resolve_profiles
from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Field path -> (guidance, example)
GUIDANCE_TEMPLATES: Dict[str, Tuple[str, str]] = {
    "identity.full_name": ("Add your full name as it should appear on the CV.", "Jane Doe"),
    "identity.email": ("Add a professional email address.", "jane.doe@example.com"),
    "identity.phone": ("Add your phone number with country code.", "+49 170 1234567"),
    "identity.location": ("Add the city and country you are based in.", "Berlin, Germany"),
    "identity.summary": (
        "Write a professional summary highlighting your experience, key skills, and career goals.",
        "Experienced software engineer with 5+ years in web development...",
    ),
    "identity.linkedin_url": ("Add your LinkedIn profile URL.", "https://linkedin.com/in/yourprofile"),
    "experience": (
        "Add your work experience with job titles, companies, and dates.",
        "Software Engineer at Tech Company (2020-Present)",
    ),
    "education": ("Add your educational background.", "B.Sc. Computer Science, University Name (2016-2020)"),
    "education.field_of_study": ("Add the subject you studied for each degree.", "Computer Science"),
    "skills": ("List your technical and soft skills.", "JavaScript, Python, Project Management, Communication"),
    "projects": ("Add 2-3 notable projects.", "E-commerce Platform - React, Node.js, PostgreSQL"),
    "certifications": ("Add any relevant certifications.", "AWS Solutions Architect (2023)"),
    "languages": ("List the languages you speak and your level.", "English (fluent), German (B2)"),
}


def _first_override(profiles: Sequence[DomainProfile], attribute: str, path: str) -> Optional[str]:
    for profile in profiles:
        value = getattr(profile, attribute).get(path)
        if value:
            return value
    return None


class GapGenerator:
    """Builds one guidance item per audit item with issues.

    Items come back ordered by ascending completeness, so the emptiest
    fields are asked about first. Fields the primary domain marks as
    critical go before all others.
    """

    def generate(self, audit: AuditRecord, domains: Optional[Sequence[str]] = None) -> GapGuidance:
        profiles = resolve_profiles(domains)
        items = [self._item(audit_item, profiles) for audit_item in audit.items_with_issues()]
        critical = profiles[0].critical_fields
        items.sort(key=lambda item: (item.field not in critical, item.completeness_score))

        LOGGER.info(
            f"Generated {len(items)} gap guidance items",
            extra={"record_id": audit.record_id, "domain": profiles[0].id},
        )
        return GapGuidance(record_id=audit.record_id, domain=profiles[0].id, items=items)

    def _item(self, audit_item: FieldAuditItem, profiles: Sequence[DomainProfile]) -> GapGuidanceItem:
        path = audit_item.field_path
        field_name = path.rsplit(".", 1)[-1]
        guidance, example = GUIDANCE_TEMPLATES.get(
            path,
            (f"Please provide information for: {field_name.replace('_', ' ')}.", None),
        )
        guidance = _first_override(profiles, "guidance", path) or guidance
        example = _first_override(profiles, "examples", path) or example

        mandatory = any(path in profile.mandatory_fields for profile in profiles)
        issue = audit_item.issues[0] if audit_item.issues else None

        return GapGuidanceItem(
            id=f"gap-{path}",
            field=path,
            guidance_text=f"{issue}. {guidance}" if issue else guidance,
            example=example,
            skip_allowed=not mandatory,
            completeness_score=audit_item.completeness_score,
        )
