"""Turn simple gap answers into a draft patch without calling the generation service."""

from typing import Dict, List, Tuple

from cvtailor.schemas.assessment import ResolvedGap
from cvtailor.schemas.cv import DraftRecord, Identity
from cvtailor.services.canonical.schema_validator import as_string_list
from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)

IDENTITY_GAP_FIELDS: Dict[str, str] = {
    f"identity.{name}": name for name in Identity.model_fields
}


class GapAnswerPatcher:
    """Applies answers for identity scalars and skills directly.

    Answers for structured sections (experience, education, ...) need the
    generation service and are handed back unconsumed.
    """

    def patch(self, resolved_gaps: List[ResolvedGap]) -> Tuple[DraftRecord, List[ResolvedGap]]:
        """Split answers into a direct patch and the ones still to process.

        Empty answers count as skipped gaps and are dropped.

        Returns:
            (draft patch, answers that need the refinement stage)
        """
        identity: Dict[str, str] = {}
        skills: List[str] = []
        remaining: List[ResolvedGap] = []

        for gap in resolved_gaps:
            answer = gap.user_input.strip()
            if not answer:
                continue
            path = gap.field_path
            if path in IDENTITY_GAP_FIELDS:
                identity[IDENTITY_GAP_FIELDS[path]] = answer
            elif path == "skills":
                skills.extend(as_string_list(answer))
            else:
                remaining.append(gap)

        LOGGER.debug(
            f"Patched {len(identity)} identity fields and {len(skills)} skills from gap answers",
            extra={"remaining": len(remaining)},
        )
        return DraftRecord(identity=Identity(**identity), skills=skills), remaining
