"""Stage definitions and stage sets for each extraction strategy."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from cvtailor.core.config import ExtractionSettings
from cvtailor.services.canonical.schema_validator import SECTION_ALIASES, find_key
from cvtailor.services.extraction import prompts

PromptBuilder = Callable[[str, str, Optional[Dict[str, Any]]], str]
AcceptPredicate = Callable[[Any], bool]
Assigner = Callable[[Dict[str, Any], Any], None]


class ExtractionStrategy(str, Enum):
    """Which stage set the orchestrator runs."""
    LEGACY_FLAT = "legacy_flat"
    CANONICAL = "canonical"


def _fill_missing(tree: Dict[str, Any], parsed: Any) -> None:
    """Copy keys the tree does not have yet; earlier stages win."""
    if isinstance(parsed, dict):
        for key, value in parsed.items():
            tree.setdefault(key, value)


def _replace_all(tree: Dict[str, Any], parsed: Any) -> None:
    if isinstance(parsed, dict):
        tree.update(parsed)


def _assign_identity(tree: Dict[str, Any], parsed: Any) -> None:
    wrapped = find_key(parsed, SECTION_ALIASES["identity"])
    tree["identity"] = wrapped if isinstance(wrapped, dict) else parsed


def unwrap_list(parsed: Any) -> Optional[List[Any]]:
    """The reply itself if it is a list, else the first list-valued entry of an object."""
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        experience = find_key(parsed, SECTION_ALIASES["experience"])
        if isinstance(experience, list):
            return experience
        for value in parsed.values():
            if isinstance(value, list):
                return value
    return None


def _assign_experience(tree: Dict[str, Any], parsed: Any) -> None:
    tree["experience"] = unwrap_list(parsed) or []


def accepts_personal_info(parsed: Any) -> bool:
    if not isinstance(parsed, dict):
        return False
    return any(
        find_key(parsed, aliases, depth=1)
        for aliases in (("full_name", "name"), ("email",), ("phone", "phone_number"))
    )


def accepts_list(parsed: Any) -> bool:
    return unwrap_list(parsed) is not None


def accepts_object(parsed: Any) -> bool:
    return isinstance(parsed, dict)


@dataclass(frozen=True)
class StageDefinition:
    """One bounded extraction sub-task."""
    name: str
    token_budget: int
    prompt_builder: PromptBuilder
    accept_predicate: AcceptPredicate
    assign: Assigner = _fill_missing
    system_prompt_builder: Callable[[str], str] = prompts.stage_system_prompt
    json_mode: bool = True


def legacy_flat_stages(settings: ExtractionSettings) -> List[StageDefinition]:
    return [
        StageDefinition(
            name="personal_info",
            token_budget=settings.personal_info_tokens,
            prompt_builder=prompts.build_personal_info_prompt,
            accept_predicate=accepts_personal_info,
            assign=_assign_identity,
        ),
        StageDefinition(
            name="work_experience",
            token_budget=settings.work_experience_tokens,
            prompt_builder=prompts.build_work_experience_prompt,
            accept_predicate=accepts_list,
            assign=_assign_experience,
        ),
        StageDefinition(
            name="education_skills",
            token_budget=settings.education_skills_tokens,
            prompt_builder=prompts.build_education_skills_prompt,
            accept_predicate=accepts_object,
        ),
        StageDefinition(
            name="additional_sections",
            token_budget=settings.additional_sections_tokens,
            prompt_builder=prompts.build_additional_sections_prompt,
            accept_predicate=accepts_object,
        ),
    ]


def canonical_stages(settings: ExtractionSettings) -> List[StageDefinition]:
    return [
        StageDefinition(
            name="canonical",
            token_budget=settings.canonical_tokens,
            prompt_builder=prompts.build_canonical_prompt,
            accept_predicate=accepts_object,
            assign=_replace_all,
        )
    ]


def build_stage_set(strategy: ExtractionStrategy, settings: ExtractionSettings) -> List[StageDefinition]:
    """Stage list for the given strategy."""
    if ExtractionStrategy(strategy) == ExtractionStrategy.CANONICAL:
        return canonical_stages(settings)
    return legacy_flat_stages(settings)


def refinement_stage(
    settings: ExtractionSettings,
    record: Dict[str, Any],
    answers: Sequence[Dict[str, str]] = (),
    instructions: Optional[str] = None,
    additional_text: Optional[str] = None,
) -> StageDefinition:
    """Single stage asking for a refined record.

    The additional text is bounded here since the stage ignores the
    executor's source argument.
    """
    bounded_text = prompts.bound_source(additional_text, settings.max_source_chars) if additional_text else None

    def build(_source: str, language: str, _context: Optional[Dict[str, Any]] = None) -> str:
        return prompts.build_refinement_prompt(record, language, answers, instructions, bounded_text)

    return StageDefinition(
        name="refinement",
        token_budget=settings.refinement_tokens,
        prompt_builder=build,
        accept_predicate=accepts_object,
        assign=_replace_all,
    )
