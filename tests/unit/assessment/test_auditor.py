"""Tests for the forgiving rule-based auditor."""

import pytest

from cvtailor.schemas.cv import (
    CanonicalRecord,
    Education,
    Identity,
    WorkExperience,
)
from cvtailor.services.assessment.auditor import Auditor, infer_field_of_study


@pytest.fixture
def auditor() -> Auditor:
    return Auditor()


class TestAuditForgiveness:
    """Facts stated elsewhere in the record are not reported missing."""

    def test_field_of_study_from_summary(self, auditor):
        record = CanonicalRecord(
            identity=Identity(summary="Physicist with an M.Sc. in Physics from TU Berlin."),
            education=[Education(id="edu-1", degree="M.Sc.", institution="TU Berlin")],
        )
        audit = auditor.audit(record)
        item = audit.item("education.field_of_study")

        assert item.issues == []
        assert item.inferred
        assert item.exists

    def test_field_of_study_from_degree(self, auditor):
        record = CanonicalRecord(education=[Education(id="edu-1", degree="Bachelor of Science in Chemistry")])
        assert auditor.audit(record).item("education.field_of_study").issues == []

    def test_field_of_study_missing(self, auditor):
        record = CanonicalRecord(education=[Education(id="edu-1", degree="M.Sc.", institution="TU Berlin")])
        item = auditor.audit(record).item("education.field_of_study")
        assert item.issues == ["Field of study missing for 1 education entries"]

    def test_field_of_study_not_audited_without_education(self, auditor):
        assert auditor.audit(CanonicalRecord()).item("education.field_of_study") is None

    def test_location_from_experience(self, auditor):
        record = CanonicalRecord(experience=[WorkExperience(id="work-1", job_title="Dev", location="Lagos")])
        item = auditor.audit(record).item("identity.location")
        assert item.inferred and item.issues == []
        assert item.completeness_score == 70

    def test_linkedin_from_website(self, auditor):
        record = CanonicalRecord(identity=Identity(website_url="https://jane.dev"))
        assert auditor.audit(record).item("identity.linkedin_url").issues == []

    def test_projects_from_experience(self, auditor):
        record = CanonicalRecord(experience=[
            WorkExperience(id="work-1", job_title="Dev", achievements=["Led the billing migration project"]),
        ])
        item = auditor.audit(record).item("projects")
        assert item.inferred and item.issues == []

    def test_education_is_never_inferred(self, auditor):
        record = CanonicalRecord(identity=Identity(summary="Holds a PhD in Chemistry from ETH Zurich."))
        item = auditor.audit(record).item("education")
        assert not item.exists
        assert item.issues == ["No education entries"]


class TestAuditScores:
    """Issues and scores."""

    def test_complete_record(self, auditor, accepted_record):
        audit = auditor.audit(accepted_record)

        assert audit.record_id == "rec-1"
        assert audit.record_version == 3
        assert audit.item("experience").completeness_score == 100
        assert audit.item("education.field_of_study").completeness_score == 100
        assert audit.item("identity.email").issues == []
        assert 0 < audit.overall_score <= 100

    def test_empty_record_scores_lower(self, auditor, accepted_record):
        empty = auditor.audit(CanonicalRecord())
        full = auditor.audit(accepted_record)
        assert empty.overall_score < full.overall_score
        assert empty.overall_score == 0

    def test_invalid_email(self, auditor):
        item = auditor.audit(CanonicalRecord(identity=Identity(email="jane at example"))).item("identity.email")
        assert item.exists
        assert item.issues == ["Email address looks invalid"]

    def test_short_summary(self, auditor):
        item = auditor.audit(CanonicalRecord(identity=Identity(summary="Engineer."))).item("identity.summary")
        assert item.completeness_score == 60
        assert item.issues == ["Professional summary is very short"]

    def test_experience_without_company(self, auditor):
        record = CanonicalRecord(experience=[WorkExperience(id="work-1", job_title="Dev", start_date="2020")])
        item = auditor.audit(record).item("experience")
        assert item.completeness_score == 50
        assert item.issues == ["1 experience entries lack a job title or company"]

    def test_few_skills(self, auditor):
        item = auditor.audit(CanonicalRecord(skills=["Go", "SQL"])).item("skills")
        assert item.completeness_score == 70
        assert item.issues == []


class TestInferFieldOfStudy:
    """Degree statements."""

    @pytest.mark.parametrize(
        "degree, expected",
        [
            ("B.Sc. in Computer Science", "Computer Science"),
            ("M.Sc. in Physics from TU Berlin", "Physics"),
            ("PhD in Molecular Biology", "Molecular Biology"),
            ("Diploma", None),
        ],
    )
    def test_degree_strings(self, degree, expected):
        assert infer_field_of_study(Education(id="edu-1", degree=degree), None) == expected
