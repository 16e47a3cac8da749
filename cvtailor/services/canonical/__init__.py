"""Normalization and never-lose-data merging of records."""

from .gap_patcher import GapAnswerPatcher
from .safe_merge import MergeResult, SafeMergeEngine, merge_records
from .schema_validator import CanonicalSchemaValidator, normalize_record

__all__ = [
    "GapAnswerPatcher",
    "MergeResult",
    "SafeMergeEngine",
    "merge_records",
    "CanonicalSchemaValidator",
    "normalize_record",
]
