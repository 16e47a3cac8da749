"""Staged extraction of draft records from free-form text.

This package contains:
- Stage definitions and prompt builders
- StageExecutor: one bounded, retried call per stage
- ExtractionOrchestrator: runs stages in order and assembles the draft
- Completeness and language validation
"""

from .orchestrator import ExtractionOrchestrator, ExtractionOutcome, RefinementDraft
from .stage_executor import StageExecutor, StageResult, StageStatus
from .stages import ExtractionStrategy, StageDefinition

__all__ = [
    "ExtractionOrchestrator",
    "ExtractionOutcome",
    "RefinementDraft",
    "StageExecutor",
    "StageResult",
    "StageStatus",
    "ExtractionStrategy",
    "StageDefinition",
]
