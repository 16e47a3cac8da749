"""Pytest configuration and shared fixtures."""

import json
from typing import Any, Dict
from unittest.mock import AsyncMock, Mock

import pytest

from cvtailor.core.config import ExtractionSettings
from cvtailor.schemas.cv import (
    CanonicalRecord,
    Education,
    Identity,
    LanguageSkill,
    WorkExperience,
)
from cvtailor.schemas.llm import CompletionRequest

# Phrase in each stage's user prompt that identifies the stage
STAGE_MARKERS = {
    "personal_info": "Extract ONLY personal information",
    "work_experience": "Extract ALL work experience",
    "education_skills": "Extract education, skills",
    "additional_sections": "Extract every remaining section",
    "canonical": "Extract the COMPLETE CV",
    "refinement": "Here is the current structured CV",
}

E2E_SOURCE = "Senior Engineer at Acme, 2020–Present, led a team of 5"


def stage_of(request: CompletionRequest) -> str:
    content = request.user_content
    for name, marker in STAGE_MARKERS.items():
        if marker in content:
            return name
    return "render"


def make_stage_llm(replies: Dict[str, Any], default: str = "{}") -> AsyncMock:
    """Create a mock generation service that answers per stage.

    A reply may be a string (returned as-is), a dict or list (returned as
    JSON), an exception instance (raised), or a tuple of those consumed one
    per call, the last one repeating.
    """
    queues = {name: list(reply) if isinstance(reply, tuple) else [reply] for name, reply in replies.items()}

    async def complete(options, request):
        queue = queues.get(stage_of(request), [default])
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply

    llm = Mock()
    llm.complete = AsyncMock(side_effect=complete)
    return llm


def stage_requests(llm: Mock, stage: str):
    """Requests the mock received for one stage, in call order."""
    return [c.args[1] for c in llm.complete.call_args_list if stage_of(c.args[1]) == stage]


@pytest.fixture
def settings() -> ExtractionSettings:
    """Extraction settings with a short stage timeout.

    Returns:
        ExtractionSettings: Settings for tests
    """
    return ExtractionSettings(stage_max_retries=2, stage_timeout_seconds=2.0)


@pytest.fixture
def e2e_replies() -> Dict[str, Any]:
    """Stage replies for the one-job source text."""
    return {
        "personal_info": {"full_name": None, "email": None, "phone": None, "summary": None},
        "work_experience": [
            {
                "job_title": "Senior Engineer",
                "company": "Acme",
                "dates": "2020–Present",
                "description": "Led a team of 5",
                "achievements": [],
            }
        ],
        "education_skills": {"education": [], "skills": [], "languages": [], "certifications": [], "projects": []},
        "additional_sections": {"publications": [], "awards": [], "other": [], "metadata": {}},
    }


@pytest.fixture
def full_replies() -> Dict[str, Any]:
    """Stage replies describing a complete CV."""
    return {
        "personal_info": {
            "full_name": "Jane Doe",
            "email": "jane.doe@example.com",
            "phone": "+49 170 1234567",
            "location": "Berlin, Germany",
            "summary": "Backend engineer with eight years of experience building payment systems.",
        },
        "work_experience": [
            {
                "job_title": "Backend Engineer",
                "company": "Paystack",
                "start_date": "2019",
                "end_date": "Present",
                "description": "Built and operated the card payments API serving 2M requests per day.",
                "achievements": ["Cut p99 latency by 40%"],
            },
            {
                "job_title": "Software Developer",
                "company": "Initech",
                "start_date": "2016",
                "end_date": "2019",
                "description": "Maintained the billing platform and its reporting jobs for enterprise customers.",
            },
        ],
        "education_skills": {
            "education": [
                {"degree": "B.Sc.", "field_of_study": "Computer Science", "institution": "TU Berlin", "end_date": "2016"}
            ],
            "skills": ["Python", "Go", "PostgreSQL", "Kafka", "Docker"],
            "languages": [{"language": "English", "proficiency": "C2"}, "German (B2)"],
            "certifications": [],
            "projects": [],
        },
        "additional_sections": {
            "awards": [{"title": "Engineer of the Year 2022"}],
            "metadata": {"driving_license": "B"},
        },
    }


@pytest.fixture
def accepted_record() -> CanonicalRecord:
    """Accepted record at version 3."""
    return CanonicalRecord(
        id="rec-1",
        owner_id="user-1",
        version=3,
        identity=Identity(
            full_name="Jane Doe",
            email="jane.doe@example.com",
            location="Berlin, Germany",
            summary="Backend engineer with eight years of experience building payment systems.",
        ),
        experience=[
            WorkExperience(
                id="work-1",
                job_title="Backend Engineer",
                company="Paystack",
                start_date="2019",
                is_current=True,
                description="Built the card payments API.",
                achievements=["Cut p99 latency by 40%"],
            ),
            WorkExperience(
                id="work-2",
                job_title="Software Developer",
                company="Initech",
                start_date="2016",
                end_date="2019",
                description="Maintained the billing platform.",
            ),
        ],
        education=[
            Education(id="edu-1", degree="B.Sc.", field_of_study="Computer Science", institution="TU Berlin"),
        ],
        skills=["Python", "Go", "PostgreSQL"],
        languages=[LanguageSkill(id="lang-1", language="English", proficiency="C2")],
        metadata={"driving_license": "B"},
    )


@pytest.fixture
def mock_httpx_client() -> Mock:
    """Create mock httpx client.

    Returns:
        Mock: Mocked httpx client
    """
    client = Mock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client
