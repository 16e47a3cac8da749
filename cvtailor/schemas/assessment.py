"""Pydantic schemas for validation reports, audits and gap guidance.

All of these are derived views over a record: they are recomputed on demand
and never merged or diffed.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from cvtailor.schemas.cv import utc_now


class ValidationReport(BaseModel):
    """Completeness and language check for one extraction attempt."""

    is_complete: bool = False
    completeness: int = Field(default=0, ge=0, le=100, description="Completeness score 0-100")
    warnings: List[str] = Field(default_factory=list)
    language_violations: List[str] = Field(
        default_factory=list,
        description="Strings written in a script unexpected for the document language",
    )


class FieldAuditItem(BaseModel):
    """Audit result for one field path (e.g. 'identity.email')."""

    field_path: str
    exists: bool = False
    completeness_score: int = Field(default=0, ge=0, le=100)
    quality_score: int = Field(default=0, ge=0, le=100)
    inferred: bool = Field(
        default=False,
        description="True when the fact was found in another populated field",
    )
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class AuditRecord(BaseModel):
    """Field-by-field audit of one accepted record."""

    record_id: Optional[str] = None
    record_version: Optional[int] = None
    audit_date: datetime = Field(default_factory=utc_now)
    overall_score: int = Field(default=0, ge=0, le=100)
    items: List[FieldAuditItem] = Field(default_factory=list)

    def item(self, field_path: str) -> Optional[FieldAuditItem]:
        for audit_item in self.items:
            if audit_item.field_path == field_path:
                return audit_item
        return None

    def items_with_issues(self) -> List[FieldAuditItem]:
        return [audit_item for audit_item in self.items if audit_item.issues]


class GapGuidanceItem(BaseModel):
    """One user-resolvable gap, explained with an example."""

    id: str = Field(..., description="Stable gap id, 'gap-<field_path>'")
    field: str
    guidance_text: str
    example: Optional[str] = None
    skip_allowed: bool = True
    completeness_score: int = Field(default=0, ge=0, le=100)


class GapGuidance(BaseModel):
    """Gap items derived from one AuditRecord."""

    record_id: Optional[str] = None
    domain: str = "general"
    items: List[GapGuidanceItem] = Field(default_factory=list)


class ResolvedGap(BaseModel):
    """User answer for a gap, sent back with a refinement request."""

    gap_id: str
    user_input: str = ""

    @property
    def field_path(self) -> str:
        """Field path encoded in the gap id."""
        return self.gap_id[len("gap-"):] if self.gap_id.startswith("gap-") else self.gap_id
