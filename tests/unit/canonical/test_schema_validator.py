"""Tests for the canonical schema validator (normalizer)."""

import pytest

from cvtailor.schemas.cv import DraftRecord, SchemaValidationError
from cvtailor.services.canonical.schema_validator import (
    CanonicalSchemaValidator,
    as_string_list,
    is_present_marker,
    normalize_record,
    split_date_range,
)


@pytest.fixture
def validator() -> CanonicalSchemaValidator:
    return CanonicalSchemaValidator()


class TestTopLevel:
    """Only the top-level container can cause a rejection."""

    @pytest.mark.parametrize("tree, received", [(None, "null"), ("text", "str"), (42, "int")])
    def test_non_object_is_rejected(self, validator, tree, received):
        result = validator.normalize(tree)
        assert isinstance(result, SchemaValidationError)
        assert result.received_type == received

    def test_array_of_several_objects_is_rejected(self, validator):
        result = validator.normalize([{"name": "A"}, {"name": "B"}])
        assert isinstance(result, SchemaValidationError)
        assert result.received_type == "array"

    def test_single_object_array_is_unwrapped(self, validator):
        result = validator.normalize([{"full_name": "Jane Doe"}])
        assert isinstance(result, DraftRecord)
        assert result.identity.full_name == "Jane Doe"

    def test_unknown_envelope_is_unwrapped(self, validator):
        result = validator.normalize({"cv": {"personal_info": {"name": "Jane Doe"}, "skills": ["Go"]}})
        assert result.identity.full_name == "Jane Doe"
        assert result.skills == ["Go"]

    def test_empty_object_yields_empty_draft(self, validator):
        result = validator.normalize({}, raw_source_text="source")
        assert isinstance(result, DraftRecord)
        assert result.is_empty()
        assert result.experience == []
        assert result.identity.email is None
        assert result.raw_source_text == "source"


class TestCoercion:
    """Coerce, don't reject."""

    def test_alternate_spellings(self, validator):
        tree = {
            "personal_details": {
                "Name": "Jane Doe",
                "Phone-Number": "+49 170 1234567",
                "address": "Berlin",
                "LinkedIn": "linkedin.com/in/jane",
                "objective": "Payments engineer",
            },
            "work_experience": [{"position": "Dev", "employer": "Acme", "responsibilities": "APIs"}],
            "academic_background": [{"university": "MIT", "qualification": "B.Sc.", "major": "Physics"}],
        }
        draft = validator.normalize(tree)

        assert draft.identity.full_name == "Jane Doe"
        assert draft.identity.phone == "+49 170 1234567"
        assert draft.identity.location == "Berlin"
        assert draft.identity.linkedin_url == "linkedin.com/in/jane"
        assert draft.identity.summary == "Payments engineer"
        assert draft.experience[0].job_title == "Dev"
        assert draft.experience[0].company == "Acme"
        assert draft.experience[0].description == "APIs"
        assert draft.education[0].institution == "MIT"
        assert draft.education[0].field_of_study == "Physics"

    def test_identity_fields_at_top_level(self, validator):
        draft = validator.normalize({"full_name": "Jane Doe", "email": "jane@example.com", "experience": []})
        assert draft.identity.full_name == "Jane Doe"
        assert draft.identity.email == "jane@example.com"

    def test_ids_are_generated_per_section(self, validator):
        draft = validator.normalize({
            "experience": [{"job_title": "A"}, {"job_title": "B"}],
            "education": [{"institution": "MIT"}],
            "awards": [{"title": "Best paper"}],
        })
        assert [item.id for item in draft.experience] == ["work-1", "work-2"]
        assert draft.education[0].id == "edu-1"
        assert draft.awards[0].id == "award-1"

    def test_existing_ids_kept_and_duplicates_regenerated(self, validator):
        draft = validator.normalize({"experience": [{"id": "work-7", "job_title": "A"}, {"id": "work-7", "job_title": "B"}]})
        assert [item.id for item in draft.experience] == ["work-7", "work-2"]

    def test_single_object_becomes_list(self, validator):
        draft = validator.normalize({"education": {"school": "MIT", "degree": "B.Sc."}})
        assert len(draft.education) == 1
        assert draft.education[0].institution == "MIT"

    def test_empty_items_are_dropped(self, validator):
        draft = validator.normalize({"experience": [{}, {"job_title": None}, {"job_title": "Dev"}]})
        assert len(draft.experience) == 1
        assert draft.experience[0].job_title == "Dev"

    def test_list_valued_scalar_is_joined(self, validator):
        draft = validator.normalize({"experience": [{"job_title": "Dev", "description": ["Built APIs", "Ran on-call"]}]})
        assert draft.experience[0].description == "Built APIs\nRan on-call"

    def test_skill_shapes(self, validator):
        draft = validator.normalize({"skills": [{"name": "Python"}, "Go", "python", {"skill": "SQL"}]})
        assert draft.skills == ["Python", "Go", "SQL"]

    def test_skills_string_is_split(self, validator):
        draft = validator.normalize({"skills": "Python, SQL; Go"})
        assert draft.skills == ["Python", "SQL", "Go"]

    def test_skill_categories_are_flattened(self, validator):
        draft = validator.normalize({"skills": {"languages": ["Python", "Go"], "tools": ["Docker"]}})
        assert draft.skills == ["Python", "Go", "Docker"]

    def test_language_strings_with_level(self, validator):
        draft = validator.normalize({"languages": ["French (fluent)", "German - B2", "Italian"]})
        assert [(item.language, item.proficiency) for item in draft.languages] == [
            ("French", "fluent"),
            ("German", "B2"),
            ("Italian", None),
        ]

    def test_generic_string_items(self, validator):
        draft = validator.normalize({"publications": ["Short title", "A" * 150]})
        assert draft.publications[0].title == "Short title"
        assert draft.publications[1].content == "A" * 150

    def test_unclaimed_keys_go_to_metadata(self, validator):
        draft = validator.normalize({
            "full_name": "Jane",
            "hobbies": ["chess"],
            "metadata": {"driving_license": "B"},
            "empty": "",
        })
        assert draft.metadata == {"driving_license": "B", "hobbies": ["chess"]}

    def test_achievements_split_on_lines_only(self, validator):
        draft = validator.normalize({"experience": [{"job_title": "Dev", "achievements": "Saved $1,000,000\n- Hired 3 people"}]})
        assert draft.experience[0].achievements == ["Saved $1,000,000", "Hired 3 people"]


class TestDates:
    """Present markers and combined ranges."""

    def test_present_end_date_sets_current(self, validator):
        draft = validator.normalize({"experience": [{"job_title": "Dev", "start_date": "2020", "end_date": "Present"}]})
        job = draft.experience[0]
        assert job.end_date is None
        assert job.is_current is True

    def test_localized_present_marker(self, validator):
        draft = validator.normalize({"experience": [{"job_title": "Dev", "start_date": "2020", "end_date": "heute"}]})
        assert draft.experience[0].is_current is True

    def test_combined_range_field(self, validator):
        draft = validator.normalize({"experience": [{"job_title": "Dev", "dates": "2020–Present"}]})
        job = draft.experience[0]
        assert (job.start_date, job.end_date, job.is_current) == ("2020", None, True)

    def test_range_in_start_date(self, validator):
        draft = validator.normalize({"experience": [{"job_title": "Dev", "start_date": "Jan 2018 - Mar 2020"}]})
        job = draft.experience[0]
        assert (job.start_date, job.end_date, job.is_current) == ("Jan 2018", "Mar 2020", False)

    def test_iso_dates_are_not_split(self):
        assert split_date_range("2020-01-15") == ("2020-01-15", None)

    @pytest.mark.parametrize("value", ["Present", "current.", " NOW ", "aktuell", "по настоящее время"])
    def test_present_markers(self, value):
        assert is_present_marker(value)

    def test_education_present_does_not_fail(self, validator):
        draft = validator.normalize({"education": [{"institution": "MIT", "start_date": "2022", "end_date": "Present"}]})
        assert draft.education[0].end_date is None


class TestHelpers:
    """Test suite for module-level helpers."""

    def test_as_string_list_deduplicates_case_insensitively(self):
        assert as_string_list(["Go", "GO", " go ", "Rust"]) == ["Go", "Rust"]

    def test_normalize_record_shortcut(self):
        draft = normalize_record({"skills": ["Go"]}, raw_source_text="Go developer")
        assert draft.skills == ["Go"]
        assert draft.raw_source_text == "Go developer"
