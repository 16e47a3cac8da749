"""Pipeline facade over extraction, merge, audit and gap generation."""

from .orchestrator import PipelineOrchestrator, PipelineResult, PipelineState

__all__ = ["PipelineOrchestrator", "PipelineResult", "PipelineState"]
