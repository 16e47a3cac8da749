"""Runs one stage against the generation service with bounded retries."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from cvtailor.core.config import ExtractionSettings
from cvtailor.core.exceptions import ParseError, ServiceError, ServiceTimeoutError
from cvtailor.core.llm_client import TextGenerationService
from cvtailor.schemas.llm import ChatMessage, CompletionOptions, CompletionRequest
from cvtailor.services.extraction.stages import StageDefinition
from cvtailor.utils.json_parser import repair_json
from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)


class StageStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class StageResult:
    """Outcome of one stage after all attempts."""
    name: str
    status: StageStatus
    retries: int = 0
    data: Any = None
    error: Optional[str] = None
    raw_response: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == StageStatus.COMPLETED


class StageExecutor:
    """Calls the generation service for one stage, repairs and checks the reply.

    A stage gets ``1 + stage_max_retries`` attempts. Service errors,
    timeouts, unparseable replies and predicate rejections all count as a
    failed attempt; after the last one the stage is reported as failed
    rather than raised.
    """

    def __init__(
        self,
        llm: TextGenerationService,
        settings: ExtractionSettings,
        temperature: float = 0.0,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
    ):
        self.llm = llm
        self.settings = settings
        self.temperature = temperature
        self.api_key = api_key
        self.model_id = model_id

    def build_request(
        self,
        stage: StageDefinition,
        source: str,
        language: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> CompletionRequest:
        return CompletionRequest(
            model_id=self.model_id,
            messages=[
                ChatMessage(role="system", content=stage.system_prompt_builder(language)),
                ChatMessage(role="user", content=stage.prompt_builder(source, language, context)),
            ],
            json_mode=stage.json_mode,
        )

    async def call_service(self, options: CompletionOptions, request: CompletionRequest) -> str:
        """One bounded call; timeouts surface as ServiceTimeoutError."""
        try:
            return await asyncio.wait_for(
                self.llm.complete(options, request),
                timeout=self.settings.stage_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ServiceTimeoutError(
                f"Generation service did not answer within {self.settings.stage_timeout_seconds}s", e
            )

    def parse(self, raw: str) -> Any:
        parsed = repair_json(raw, enable_partial_fallback=self.settings.enable_partial_fallback)
        if parsed is None:
            raise ParseError(f"Reply could not be parsed even after repair ({len(raw or '')} chars)")
        return parsed

    async def run(
        self,
        stage: StageDefinition,
        source: str,
        language: str = "en",
        context: Optional[Dict[str, Any]] = None,
    ) -> StageResult:
        """Execute ``stage`` until it is accepted or attempts run out."""
        attempts = 1 + max(0, self.settings.stage_max_retries)
        options = CompletionOptions(
            api_key=self.api_key,
            temperature=self.temperature,
            max_output_tokens=stage.token_budget,
        )
        last_error: Optional[str] = None
        last_raw: Optional[str] = None

        for attempt in range(attempts):
            try:
                request = self.build_request(stage, source, language, context)
                raw = await self.call_service(options, request)
                last_raw = raw
                parsed = self.parse(raw)
                if not self._accepts(stage, parsed):
                    raise ParseError("Reply rejected by the stage acceptance check")
            except (ServiceError, ParseError) as e:
                last_error = str(e)
                LOGGER.warning(
                    f"Stage {stage.name} attempt {attempt + 1}/{attempts} failed: {e}",
                    extra={"stage": stage.name, "error_type": type(e).__name__},
                )
                continue
            except Exception as e:
                last_error = f"Unexpected error: {e}"
                LOGGER.warning(
                    f"Stage {stage.name} attempt {attempt + 1}/{attempts} raised unexpectedly: {e}",
                    exc_info=True,
                    extra={"stage": stage.name},
                )
                continue

            LOGGER.info(
                f"Stage {stage.name} succeeded",
                extra={"stage": stage.name, "success": True, "retries": attempt},
            )
            return StageResult(
                name=stage.name,
                status=StageStatus.COMPLETED,
                retries=attempt,
                data=parsed,
                raw_response=raw,
            )

        LOGGER.warning(
            f"Stage {stage.name} failed after {attempts} attempts: {last_error}",
            extra={"stage": stage.name, "success": False, "retries": attempts - 1},
        )
        return StageResult(
            name=stage.name,
            status=StageStatus.FAILED,
            retries=attempts - 1,
            error=last_error,
            raw_response=last_raw,
        )

    @staticmethod
    def _accepts(stage: StageDefinition, parsed: Any) -> bool:
        try:
            return bool(stage.accept_predicate(parsed))
        except Exception as e:
            LOGGER.warning(f"Acceptance check for stage {stage.name} raised: {e}", exc_info=True)
            return False
