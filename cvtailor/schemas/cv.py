"""Pydantic schemas for draft and canonical CV records.

A DraftRecord is what one extraction or refinement round produces; a
CanonicalRecord is the accepted, versioned single source of truth. Both share
the same content shape so the merge engine can join them item by item on
stable ids and natural keys.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class Identity(BaseModel):
    """Personal details and free-text summary."""

    model_config = ConfigDict(extra="ignore")

    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    linkedin_url: Optional[str] = None
    website_url: Optional[str] = None
    summary: Optional[str] = None


class WorkExperience(BaseModel):
    """One employment entry."""

    model_config = ConfigDict(extra="ignore")

    id: str
    job_title: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_current: bool = False
    description: Optional[str] = None
    achievements: List[str] = Field(default_factory=list)


class Education(BaseModel):
    """One education entry."""

    model_config = ConfigDict(extra="ignore")

    id: str
    degree: Optional[str] = None
    field_of_study: Optional[str] = None
    institution: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    gpa: Optional[str] = None
    description: Optional[str] = None


class Project(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    technologies: List[str] = Field(default_factory=list)
    url: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class Certification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    issuer: Optional[str] = None
    date_obtained: Optional[str] = None
    expiry_date: Optional[str] = None
    credential_id: Optional[str] = None
    credential_url: Optional[str] = None


class LanguageSkill(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    language: Optional[str] = None
    proficiency: Optional[str] = None


class GenericSectionItem(BaseModel):
    """Labeled free-form item (publication, award, teaching duty, ...)."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: Optional[str] = None
    content: Optional[str] = None


# Labeled sections sharing the GenericSectionItem shape
GENERIC_SECTIONS = ("publications", "awards", "teaching", "clinical", "volunteering", "other")

# Every list-of-items section and its generated-id prefix
ID_PREFIXES: Dict[str, str] = {
    "experience": "work",
    "education": "edu",
    "projects": "proj",
    "certifications": "cert",
    "languages": "lang",
    "publications": "pub",
    "awards": "award",
    "teaching": "teach",
    "clinical": "clin",
    "volunteering": "vol",
    "other": "other",
}

# Sections whose item count must never shrink on refinement
GUARDED_SECTIONS = ("experience", "education", "skills", "languages", "projects", "certifications") + GENERIC_SECTIONS


class CVContent(BaseModel):
    """Content shape shared by draft and canonical records."""

    model_config = ConfigDict(extra="ignore")

    identity: Identity = Field(default_factory=Identity)
    experience: List[WorkExperience] = Field(default_factory=list)
    education: List[Education] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    projects: List[Project] = Field(default_factory=list)
    certifications: List[Certification] = Field(default_factory=list)
    languages: List[LanguageSkill] = Field(default_factory=list)
    publications: List[GenericSectionItem] = Field(default_factory=list)
    awards: List[GenericSectionItem] = Field(default_factory=list)
    teaching: List[GenericSectionItem] = Field(default_factory=list)
    clinical: List[GenericSectionItem] = Field(default_factory=list)
    volunteering: List[GenericSectionItem] = Field(default_factory=list)
    other: List[GenericSectionItem] = Field(default_factory=list)
    raw_source_text: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def section_counts(self) -> Dict[str, int]:
        """Item count per guarded section."""
        return {name: len(getattr(self, name)) for name in GUARDED_SECTIONS}

    def is_empty(self) -> bool:
        """True when no identity field and no list section holds data."""
        if any(self.identity.model_dump().values()):
            return False
        if self.skills:
            return False
        return not any(getattr(self, name) for name in ID_PREFIXES)

    def content_dump(self) -> Dict[str, Any]:
        """Sections only, without bookkeeping fields, for prompts and audits."""
        return self.model_dump(
            include={"identity", "skills", "metadata", *ID_PREFIXES.keys()},
            mode="json",
        )


class DraftRecord(CVContent):
    """Not-yet-accepted output of one extraction or refinement round."""


class CanonicalRecord(CVContent):
    """Accepted, versioned CV record."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str = "unassigned"
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_draft(cls, draft: DraftRecord, owner_id: str = "unassigned") -> "CanonicalRecord":
        """First acceptance of a draft: new id, version 1."""
        now = utc_now()
        return cls(
            **draft.model_dump(),
            owner_id=owner_id,
            version=1,
            created_at=now,
            updated_at=now,
        )


class SchemaValidationError(BaseModel):
    """Structured rejection returned by the normalizer (never raised)."""

    message: str
    path: str = "$"
    received_type: Optional[str] = None
