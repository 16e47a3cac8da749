"""Renders a record back into formatted prose."""

import asyncio
import json
from dataclasses import dataclass
from typing import List, Optional, Sequence

from cvtailor.core.config import ExtractionSettings
from cvtailor.core.llm_client import TextGenerationService
from cvtailor.schemas.cv import GENERIC_SECTIONS, CVContent
from cvtailor.schemas.llm import ChatMessage, CompletionOptions, CompletionRequest
from cvtailor.services.extraction.prompts import build_render_prompt, render_system_prompt
from cvtailor.utils.logging import get_logger


LOGGER = get_logger(__name__)


@dataclass
class RenderResult:
    text: str
    used_fallback: bool = False
    error: Optional[str] = None


def _join(*parts: Optional[str], sep: str = " | ") -> str:
    return sep.join(part for part in parts if part)


def _date_range(start: Optional[str], end: Optional[str], is_current: bool = False) -> str:
    end_label = "Present" if is_current else end
    if not start and not end_label:
        return ""
    return f" ({start or '?'} - {end_label or '?'})"


def render_text_fallback(record: CVContent) -> str:
    """Deterministic plain-text rendering used when the service is unavailable."""
    identity = record.identity
    lines: List[str] = [identity.full_name or ""]

    contact = _join(identity.email, identity.phone, identity.location)
    if contact:
        lines.append(contact)
    if identity.linkedin_url:
        lines.append(f"LinkedIn: {identity.linkedin_url}")
    if identity.website_url:
        lines.append(f"Website: {identity.website_url}")
    if identity.summary:
        lines.extend(["", "SUMMARY", identity.summary])

    if record.experience:
        lines.extend(["", "EXPERIENCE"])
        for job in record.experience:
            title = " @ ".join(part for part in (job.job_title, job.company) if part)
            lines.append(f"{title}{_date_range(job.start_date, job.end_date, job.is_current)}")
            if job.description:
                lines.append(job.description)
            lines.extend(f" - {achievement}" for achievement in job.achievements)
            lines.append("")

    if record.education:
        lines.extend(["", "EDUCATION"])
        for entry in record.education:
            degree = " in ".join(part for part in (entry.degree, entry.field_of_study) if part)
            heading = ", ".join(part for part in (degree, entry.institution) if part)
            lines.append(f"{heading}{_date_range(entry.start_date, entry.end_date)}")
            if entry.description:
                lines.append(entry.description)

    if record.skills:
        lines.extend(["", "SKILLS", ", ".join(record.skills)])

    if record.projects:
        lines.extend(["", "PROJECTS"])
        for project in record.projects:
            lines.append(project.name or "")
            if project.description:
                lines.append(project.description)
            if project.technologies:
                lines.append(f"Technologies: {', '.join(project.technologies)}")

    if record.certifications:
        lines.extend(["", "CERTIFICATIONS"])
        for cert in record.certifications:
            lines.append(_join(cert.name, cert.issuer, cert.date_obtained, sep=", "))

    if record.languages:
        lines.extend(["", "LANGUAGES"])
        for language in record.languages:
            lines.append(_join(language.language, language.proficiency, sep=": "))

    for section in GENERIC_SECTIONS:
        items = getattr(record, section)
        if not items:
            continue
        lines.extend(["", section.upper()])
        for item in items:
            lines.extend(part for part in (item.title, item.content) if part)

    if record.metadata:
        lines.extend(["", "ADDITIONAL DATA"])
        for key, value in record.metadata.items():
            rendered = json.dumps(value, ensure_ascii=False) if isinstance(value, (dict, list)) else value
            lines.append(f"{key}: {rendered}")

    return "\n".join(lines).strip() + "\n"


class Renderer:
    """Asks the generation service for prose, falling back to plain text."""

    def __init__(
        self,
        llm: TextGenerationService,
        settings: Optional[ExtractionSettings] = None,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
    ):
        self.llm = llm
        self.settings = settings or ExtractionSettings()
        self.api_key = api_key
        self.model_id = model_id

    async def render(
        self,
        record: CVContent,
        domains: Sequence[str] = ("general",),
        language: str = "en",
    ) -> RenderResult:
        options = CompletionOptions(
            api_key=self.api_key,
            temperature=0.0,
            max_output_tokens=self.settings.render_tokens,
        )
        request = CompletionRequest(
            model_id=self.model_id,
            messages=[
                ChatMessage(role="system", content=render_system_prompt(language)),
                ChatMessage(role="user", content=build_render_prompt(record.content_dump(), domains)),
            ],
            json_mode=False,
        )

        try:
            text = await asyncio.wait_for(
                self.llm.complete(options, request),
                timeout=self.settings.stage_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return self._fallback(record, f"Rendering timed out after {self.settings.stage_timeout_seconds}s")
        except Exception as e:
            return self._fallback(record, str(e))

        if not text or not text.strip():
            return self._fallback(record, "Generation service returned an empty rendering")
        return RenderResult(text=text.strip())

    @staticmethod
    def _fallback(record: CVContent, error: str) -> RenderResult:
        LOGGER.warning(f"Rendering failed, using plain-text fallback: {error}")
        return RenderResult(text=render_text_fallback(record), used_fallback=True, error=error)
