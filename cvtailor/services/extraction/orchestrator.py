"""Sequences extraction stages and assembles their output into a draft."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from cvtailor.core.config import ExtractionSettings
from cvtailor.core.llm_client import TextGenerationService
from cvtailor.schemas.assessment import ValidationReport
from cvtailor.schemas.cv import DraftRecord, SchemaValidationError
from cvtailor.services.canonical.schema_validator import CanonicalSchemaValidator
from cvtailor.services.extraction.prompts import bound_source
from cvtailor.services.extraction.stage_executor import StageExecutor, StageResult
from cvtailor.services.extraction.stages import (
    ExtractionStrategy,
    StageDefinition,
    build_stage_set,
    refinement_stage,
)
from cvtailor.services.extraction.validation import ValidationReportBuilder
from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class ExtractionOutcome:
    """Result of one extraction request.

    ``success`` is False only when no stage produced anything usable; the
    last raw service reply is kept for diagnostics in that case.
    """
    success: bool
    draft: Optional[DraftRecord] = None
    validation: Optional[ValidationReport] = None
    stage_results: Dict[str, StageResult] = field(default_factory=dict)
    error: Optional[str] = None
    raw_response: Optional[str] = None

    @property
    def failed_stages(self) -> List[str]:
        return [name for name, result in self.stage_results.items() if not result.success]


@dataclass
class RefinementDraft:
    """Draft produced by the refinement stage (empty when the stage failed)."""
    draft: DraftRecord
    stage_result: Optional[StageResult] = None
    warnings: List[str] = field(default_factory=list)


class ExtractionOrchestrator:
    """Runs stages strictly in order and turns their output into a DraftRecord.

    A stage that fails permanently leaves its sections empty; later stages
    still run and see what earlier stages produced.
    """

    def __init__(
        self,
        llm: TextGenerationService,
        settings: Optional[ExtractionSettings] = None,
        validator: Optional[CanonicalSchemaValidator] = None,
        temperature: float = 0.0,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
    ):
        self.settings = settings or ExtractionSettings()
        self.executor = StageExecutor(
            llm,
            self.settings,
            temperature=temperature,
            api_key=api_key,
            model_id=model_id,
        )
        self.validator = validator or CanonicalSchemaValidator()
        self.report_builder = ValidationReportBuilder(self.settings)

    async def extract(
        self,
        source_text: str,
        language: str = "en",
        strategy: ExtractionStrategy = ExtractionStrategy.LEGACY_FLAT,
        stages: Optional[Sequence[StageDefinition]] = None,
    ) -> ExtractionOutcome:
        """Extract a draft record from free-form source text.

        Args:
            source_text: Document text
            language: Language tag the content must stay in
            strategy: Stage set to run when ``stages`` is not given
            stages: Explicit stage list, mainly for tests

        Returns:
            ExtractionOutcome; never raises for stage or service failures
        """
        if not source_text or not source_text.strip():
            return ExtractionOutcome(success=False, error="Source text is empty")

        stage_list = list(stages) if stages is not None else build_stage_set(strategy, self.settings)
        source = bound_source(source_text, self.settings.max_source_chars)
        if len(source) < len(source_text.strip()):
            LOGGER.warning(
                f"Source text truncated to {self.settings.max_source_chars} characters",
                extra={"original_length": len(source_text)},
            )

        tree: Dict[str, Any] = {}
        results: Dict[str, StageResult] = {}
        for stage in stage_list:
            result = await self.executor.run(stage, source, language, context=tree)
            results[stage.name] = result
            if result.success:
                stage.assign(tree, result.data)

        last_raw = self._last_raw_response(results)
        if not any(result.success for result in results.values()):
            LOGGER.error(
                "All extraction stages failed",
                extra={"stages": list(results), "strategy": ExtractionStrategy(strategy).value},
            )
            return ExtractionOutcome(
                success=False,
                stage_results=results,
                error="All extraction stages failed",
                raw_response=last_raw,
            )

        draft = self.validator.normalize(tree, raw_source_text=source_text)
        if isinstance(draft, SchemaValidationError):
            return ExtractionOutcome(
                success=False,
                stage_results=results,
                error=draft.message,
                raw_response=last_raw,
            )

        report = self.report_builder.build(draft, source_text, language)
        outcome = ExtractionOutcome(
            success=True,
            draft=draft,
            validation=report,
            stage_results=results,
            raw_response=last_raw,
        )
        if outcome.failed_stages:
            LOGGER.warning(f"Extraction finished with failed stages: {outcome.failed_stages}")
        return outcome

    async def extract_refinement(
        self,
        record: Dict[str, Any],
        language: str = "en",
        answers: Sequence[Dict[str, str]] = (),
        instructions: Optional[str] = None,
        additional_text: Optional[str] = None,
    ) -> RefinementDraft:
        """Ask the generation service for a refined record.

        Never fatal: a failed or unusable stage yields an empty draft.
        """
        stage = refinement_stage(self.settings, record, answers, instructions, additional_text)
        result = await self.executor.run(stage, "", language)
        if not result.success:
            return RefinementDraft(
                draft=DraftRecord(),
                stage_result=result,
                warnings=[f"Refinement stage failed: {result.error}"],
            )

        tree: Dict[str, Any] = {}
        stage.assign(tree, result.data)
        draft = self.validator.normalize(tree, raw_source_text=additional_text or "")
        if isinstance(draft, SchemaValidationError):
            return RefinementDraft(
                draft=DraftRecord(),
                stage_result=result,
                warnings=[f"Refinement output rejected: {draft.message}"],
            )
        return RefinementDraft(draft=draft, stage_result=result)

    @staticmethod
    def _last_raw_response(results: Dict[str, StageResult]) -> Optional[str]:
        for result in reversed(list(results.values())):
            if result.raw_response:
                return result.raw_response
        return None
