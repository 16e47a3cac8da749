"""Prompt builders for extraction, refinement and rendering stages.

Every builder is a pure function of its inputs. The source text is always
truncated to the configured character bound before it is embedded.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from cvtailor.services.canonical.schema_validator import as_list, as_text

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "fa": "Persian (Farsi)",
    "ar": "Arabic",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "tr": "Turkish",
}

TRUNCATION_MARKER = "\n[... source truncated ...]"


def language_name(language: str) -> str:
    return LANGUAGE_NAMES.get((language or "en").lower(), language or "English")


def bound_source(source_text: str, max_chars: int) -> str:
    """Trim the source to ``max_chars`` characters, marking the cut."""
    text = (source_text or "").strip()
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + TRUNCATION_MARKER


def stage_system_prompt(language: str) -> str:
    """System prompt shared by all JSON extraction stages."""
    lang = language_name(language)
    return f"""You are a CV parser. Extract ONLY the requested section.

CRITICAL RULES:
1. Return valid JSON only - no markdown, no code blocks, no explanations
2. Keep ALL content in {lang} - DO NOT translate or change language
3. Extract EVERYTHING from the document - do NOT skip any detail
4. If a field is missing, use null
5. NEVER summarize or shorten any content
6. If an end date says "Present" or "Current", set is_current to true and end_date to null"""


def _language_note(language: str) -> str:
    lang = language_name(language)
    return f"IMPORTANT: This document is in {lang}. Keep ALL text in {lang}. DO NOT translate."


def _with_source(body: str, source: str) -> str:
    return f"""{body}

CV TEXT:
---
{source}
---"""


def _already_extracted(context: Optional[Dict[str, Any]]) -> str:
    """Compact summary of earlier accepted stages."""
    if not context:
        return ""
    # Earlier replies are raw trees; any value may have an unexpected type
    lines: List[str] = []
    identity = context.get("identity")
    full_name = as_text(identity.get("full_name")) if isinstance(identity, dict) else None
    if full_name:
        lines.append(f"- candidate: {full_name}")
    for entry in as_list(context.get("experience")):
        if not isinstance(entry, dict):
            continue
        parts = (as_text(entry.get("job_title")), as_text(entry.get("company")))
        label = " at ".join(part for part in parts if part)
        if label:
            lines.append(f"- experience: {label}")
    education = as_list(context.get("education"))
    if education:
        lines.append(f"- education entries: {len(education)}")
    skills = as_list(context.get("skills"))
    if skills:
        lines.append(f"- skills: {len(skills)} listed")
    if not lines:
        return ""
    summary = "\n".join(lines)
    return f"\n\nALREADY EXTRACTED (do not repeat these in this section):\n{summary}"


def build_personal_info_prompt(source: str, language: str, context: Optional[Dict[str, Any]] = None) -> str:
    body = f"""{_language_note(language)}

Extract ONLY personal information from this CV.
Return JSON in this EXACT format:
{{
  "full_name": "string or null",
  "email": "string or null",
  "phone": "string or null",
  "location": "string or null",
  "linkedin_url": "string or null",
  "website_url": "string or null",
  "summary": "string or null - include the COMPLETE summary/objective, do not shorten"
}}"""
    return _with_source(body, source)


def build_work_experience_prompt(source: str, language: str, context: Optional[Dict[str, Any]] = None) -> str:
    body = f"""{_language_note(language)}

Extract ALL work experience entries from this CV.
Return a JSON ARRAY. Each entry format:
[
  {{
    "id": "work-1",
    "job_title": "string",
    "company": "string",
    "location": "string or null",
    "start_date": "string or null",
    "end_date": "string or null",
    "is_current": true/false,
    "description": "string - include ALL details, do NOT summarize",
    "achievements": ["string array"]
  }}
]

CRITICAL:
- Include EVERY work entry
- The "description" must contain ALL details from the CV
- Number entries: work-1, work-2, work-3...{_already_extracted(context)}"""
    return _with_source(body, source)


def build_education_skills_prompt(source: str, language: str, context: Optional[Dict[str, Any]] = None) -> str:
    body = f"""{_language_note(language)}

Extract education, skills, languages, certifications, and projects from this CV.
Return JSON:
{{
  "education": [
    {{"id": "edu-1", "degree": "string", "field_of_study": "string", "institution": "string",
      "location": "string or null", "start_date": "string or null", "end_date": "string or null",
      "gpa": "string or null", "description": "string or null"}}
  ],
  "skills": ["skill1", "skill2"],
  "languages": [{{"language": "string", "proficiency": "string"}}],
  "certifications": [{{"name": "string", "issuer": "string or null", "date_obtained": "string or null"}}],
  "projects": [{{"name": "string", "description": "string", "technologies": ["string"], "url": "string or null"}}]
}}

Extract ALL skills, even if many. Do NOT skip any.{_already_extracted(context)}"""
    return _with_source(body, source)


def build_additional_sections_prompt(source: str, language: str, context: Optional[Dict[str, Any]] = None) -> str:
    body = f"""{_language_note(language)}

Extract every remaining section of this CV that is not personal information,
work experience, education, skills, languages, certifications or projects.
Return JSON:
{{
  "publications": [{{"title": "string", "content": "string or null"}}],
  "awards": [{{"title": "string", "content": "string or null"}}],
  "teaching": [{{"title": "string", "content": "string or null"}}],
  "clinical": [{{"title": "string", "content": "string or null"}}],
  "volunteering": [{{"title": "string", "content": "string or null"}}],
  "other": [{{"title": "string", "content": "string or null"}}],
  "metadata": {{"any_other_key": "anything you found but could not classify"}}
}}
Use empty arrays for sections the CV does not have.{_already_extracted(context)}"""
    return _with_source(body, source)


def build_canonical_prompt(source: str, language: str, context: Optional[Dict[str, Any]] = None) -> str:
    body = f"""{_language_note(language)}

Extract the COMPLETE CV into this JSON structure:
{{
  "identity": {{"full_name": null, "email": null, "phone": null, "location": null,
               "linkedin_url": null, "website_url": null, "summary": null}},
  "experience": [{{"id": "work-1", "job_title": null, "company": null, "location": null,
                  "start_date": null, "end_date": null, "is_current": false,
                  "description": null, "achievements": []}}],
  "education": [{{"id": "edu-1", "degree": null, "field_of_study": null, "institution": null,
                 "location": null, "start_date": null, "end_date": null, "gpa": null, "description": null}}],
  "skills": [],
  "projects": [{{"id": "proj-1", "name": null, "description": null, "technologies": [], "url": null}}],
  "certifications": [{{"id": "cert-1", "name": null, "issuer": null, "date_obtained": null}}],
  "languages": [{{"id": "lang-1", "language": null, "proficiency": null}}],
  "publications": [], "awards": [], "teaching": [], "clinical": [], "volunteering": [], "other": [],
  "metadata": {{}}
}}

Items of publications, awards, teaching, clinical, volunteering and other are
{{"id": "...", "title": "...", "content": "..."}}.
Do not guess. Do not fill fields that the document does not state."""
    return _with_source(body, source)


def build_refinement_prompt(
    record: Dict[str, Any],
    language: str,
    answers: Sequence[Dict[str, str]] = (),
    instructions: Optional[str] = None,
    additional_text: Optional[str] = None,
) -> str:
    """User prompt asking for a refined record as JSON."""
    parts = [
        _language_note(language),
        "",
        "Here is the current structured CV (JSON):",
        json.dumps(record, ensure_ascii=False, indent=2),
    ]
    if answers:
        parts.append("")
        parts.append("The user answered these questions about missing information:")
        for answer in answers:
            parts.append(f"- {answer['field']}: {answer['answer']}")
    if instructions:
        parts.append("")
        parts.append(f"User instructions: {instructions}")
    if additional_text:
        parts.append("")
        parts.append("Additional source text:")
        parts.append("---")
        parts.append(additional_text)
        parts.append("---")
    parts.append("")
    parts.append(
        "Return the COMPLETE refined CV in the SAME JSON structure. Keep every existing "
        "item and its id. Add new information, never remove entries."
    )
    return "\n".join(parts)


def render_system_prompt(language: str) -> str:
    lang = language_name(language)
    return (
        f"You are a professional CV writer. Write the CV in {lang} as clean, well-structured "
        "plain text with section headings. Use only the facts in the provided data; do not invent anything."
    )


def build_render_prompt(record: Dict[str, Any], domains: Sequence[str] = ()) -> str:
    domain_note = f"Target domains: {', '.join(domains)}.\n\n" if domains else ""
    return f"""{domain_note}Render this CV data as a formatted document:

{json.dumps(record, ensure_ascii=False, indent=2)}"""
