"""End-to-end pipeline: extract or merge, then audit and suggest gaps.

Extraction requests run ``EXTRACT -> AUDIT -> GAP_GENERATE -> DONE`` and
refinement requests run ``MERGE -> AUDIT -> GAP_GENERATE -> DONE``. Only a
failed extraction ends a request without a record; audit and gap failures
are logged and reported as ``None`` results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from cvtailor.core.config import ExtractionSettings, Settings, get_settings
from cvtailor.core.llm_client import TextGenerationService
from cvtailor.core.unified_llm import create_llm_client_from_settings
from cvtailor.schemas.assessment import AuditRecord, GapGuidance, ResolvedGap, ValidationReport
from cvtailor.schemas.cv import CanonicalRecord, DraftRecord
from cvtailor.services.assessment.auditor import Auditor
from cvtailor.services.assessment.domain_profiles import detect_domains
from cvtailor.services.assessment.gap_generator import GapGenerator
from cvtailor.services.canonical.gap_patcher import GapAnswerPatcher
from cvtailor.services.canonical.safe_merge import SafeMergeEngine
from cvtailor.services.extraction.orchestrator import ExtractionOrchestrator
from cvtailor.services.extraction.stage_executor import StageResult
from cvtailor.services.extraction.stages import ExtractionStrategy
from cvtailor.services.rendering.renderer import Renderer, RenderResult
from cvtailor.utils.logging import get_logger, set_log_level

LOGGER = get_logger(__name__)


class PipelineState(str, Enum):
    EXTRACT = "extract"
    MERGE = "merge"
    AUDIT = "audit"
    GAP_GENERATE = "gap_generate"
    DONE = "done"


@dataclass
class PipelineResult:
    """Everything one request produced.

    ``steps`` lists the states the request passed through, ending with DONE.
    """
    success: bool
    record: Optional[CanonicalRecord] = None
    draft: Optional[DraftRecord] = None
    validation: Optional[ValidationReport] = None
    audit: Optional[AuditRecord] = None
    gaps: Optional[GapGuidance] = None
    stage_results: Dict[str, StageResult] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    raw_response: Optional[str] = None
    domains: List[str] = field(default_factory=list)
    steps: List[PipelineState] = field(default_factory=list)

    @property
    def state(self) -> Optional[PipelineState]:
        return self.steps[-1] if self.steps else None


class PipelineOrchestrator:
    """Drives extraction, refinement, assessment and rendering for one record.

    The extraction strategy is chosen per call rather than configured once,
    so callers can mix legacy and canonical requests on one instance.
    """

    def __init__(
        self,
        llm: TextGenerationService,
        settings: Optional[ExtractionSettings] = None,
        temperature: float = 0.0,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
        auditor: Optional[Auditor] = None,
        gap_generator: Optional[GapGenerator] = None,
        merge_engine: Optional[SafeMergeEngine] = None,
    ):
        self.settings = settings or ExtractionSettings()
        self.extractor = ExtractionOrchestrator(
            llm,
            self.settings,
            temperature=temperature,
            api_key=api_key,
            model_id=model_id,
        )
        self.renderer = Renderer(llm, self.settings, api_key=api_key, model_id=model_id)
        self.auditor = auditor or Auditor()
        self.gap_generator = gap_generator or GapGenerator()
        self.merge_engine = merge_engine or SafeMergeEngine()
        self.patcher = GapAnswerPatcher()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PipelineOrchestrator":
        """Build a pipeline with the generation-service client the settings describe.

        Without ``settings`` the cached environment settings are used.

        Raises:
            ConfigurationError: If the provider or its API key is invalid
        """
        settings = settings or get_settings()
        set_log_level(settings.log_level)
        llm = create_llm_client_from_settings(settings.llm)
        return cls(llm, settings.extraction, temperature=settings.llm.temperature)

    async def extract(
        self,
        source_text: str,
        language: str = "en",
        strategy: ExtractionStrategy = ExtractionStrategy.LEGACY_FLAT,
        owner_id: str = "unassigned",
        domains: Optional[Sequence[str]] = None,
    ) -> PipelineResult:
        """Extract a first record from source text and assess it.

        Without explicit ``domains`` the career domains are detected from
        the source text.

        Returns:
            PipelineResult; ``success`` is False only when extraction failed
        """
        result = PipelineResult(success=False, steps=[PipelineState.EXTRACT])
        outcome = await self.extractor.extract(source_text, language=language, strategy=strategy)
        result.stage_results = outcome.stage_results
        result.raw_response = outcome.raw_response

        if not outcome.success:
            LOGGER.error(
                f"Extraction failed: {outcome.error}",
                extra={"strategy": ExtractionStrategy(strategy).value, "failed_stages": outcome.failed_stages},
            )
            result.error = outcome.error
            result.steps.append(PipelineState.DONE)
            return result

        result.success = True
        result.draft = outcome.draft
        result.validation = outcome.validation
        result.record = CanonicalRecord.from_draft(outcome.draft, owner_id=owner_id)
        result.warnings.extend(outcome.validation.warnings if outcome.validation else [])
        result.warnings.extend(f"Stage '{name}' failed" for name in outcome.failed_stages)

        self._assess(result, domains if domains is not None else detect_domains(source_text))
        return result

    async def refine(
        self,
        accepted: CanonicalRecord,
        draft: Optional[DraftRecord] = None,
        resolved_gaps: Sequence[ResolvedGap] = (),
        instructions: Optional[str] = None,
        additional_text: Optional[str] = None,
        language: str = "en",
        domains: Optional[Sequence[str]] = None,
    ) -> PipelineResult:
        """Merge new information into an accepted record and reassess it.

        Gap answers for identity fields and skills are patched in directly;
        everything else goes through the refinement stage. Never fatal: in
        the worst case the accepted record comes back unchanged. Domains
        default to the ones detected from the record's source text.
        """
        result = PipelineResult(success=True, steps=[PipelineState.MERGE])
        record = accepted
        merged_any = False

        patch, remaining = self.patcher.patch(list(resolved_gaps))
        for incoming in (patch, draft):
            if incoming is None or incoming.is_empty():
                continue
            merged = self._merge(record, incoming, result)
            merged_any = merged_any or merged.version > record.version
            record = merged

        if remaining or instructions or additional_text:
            answers = [{"field": gap.field_path, "answer": gap.user_input} for gap in remaining]
            refinement = await self.extractor.extract_refinement(
                record.content_dump(),
                language=language,
                answers=answers,
                instructions=instructions,
                additional_text=additional_text,
            )
            result.warnings.extend(refinement.warnings)
            if refinement.stage_result is not None:
                result.stage_results["refinement"] = refinement.stage_result
            if not refinement.draft.is_empty():
                result.draft = refinement.draft
                merged = self._merge(record, refinement.draft, result)
                merged_any = merged_any or merged.version > record.version
                record = merged

        # One refinement request is one accepted version
        if merged_any and record.version != accepted.version + 1:
            record = record.model_copy(update={"version": accepted.version + 1})
        result.record = record if merged_any else accepted.model_copy(deep=True)

        LOGGER.info(
            f"Refined record {accepted.id} (v{accepted.version} -> v{result.record.version})",
            extra={"answers": len(resolved_gaps), "warnings": len(result.warnings)},
        )
        if domains is None:
            domains = detect_domains(result.record.raw_source_text)
        self._assess(result, domains)
        return result

    async def render(
        self,
        record: CanonicalRecord,
        domains: Sequence[str] = ("general",),
        language: str = "en",
    ) -> RenderResult:
        return await self.renderer.render(record, domains=domains, language=language)

    def _merge(self, record: CanonicalRecord, incoming: DraftRecord, result: PipelineResult) -> CanonicalRecord:
        merged = self.merge_engine.merge(record, incoming)
        result.warnings.extend(merged.warnings)
        return merged.record

    def _assess(self, result: PipelineResult, domains: Sequence[str]) -> None:
        """Audit and gap steps; a failure ends the request with partial results."""
        result.domains = list(domains)
        result.steps.append(PipelineState.AUDIT)
        try:
            result.audit = self.auditor.audit(result.record)
        except Exception as e:
            LOGGER.error(f"Audit failed: {e}", exc_info=True, extra={"record_id": result.record.id})
            result.warnings.append(f"Audit failed: {e}")
            result.steps.append(PipelineState.DONE)
            return

        result.steps.append(PipelineState.GAP_GENERATE)
        try:
            result.gaps = self.gap_generator.generate(result.audit, domains)
        except Exception as e:
            LOGGER.error(f"Gap generation failed: {e}", exc_info=True, extra={"record_id": result.record.id})
            result.warnings.append(f"Gap generation failed: {e}")
        result.steps.append(PipelineState.DONE)
