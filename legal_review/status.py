"""
Document processing status state machine.

    pending ──► extracted ──► analyzing ──► analyzed
       │            │             │          │  ▲
       │            │             │          └──┘ (re-analysis goes through analyzing)
       └────────────┴─────────────┴──────────┴──► error ──► extracted | analyzing

Every status write in the registry goes through guard_transition() first and is
then applied as a compare-and-set against the status the caller observed, so a
document never shows a state that belongs to an operation that did not finish.

Rules:
- -> extracted needs text produced by a successful extraction
- -> analyzing needs raw_text; this is the only precondition for an analysis run
- analyzing -> analyzed is issued only after the Extraction and RiskAssessment
  rows were added in the same transaction (see services/orchestrator.py)
- -> error is always allowed and never touches raw_text or earlier records
- error is not terminal; retries follow the same rules as a fresh document
- analyzing only lives as long as the engine call; rows left there by a process
  that died are moved to error at startup (crud.recover_interrupted_analyses)
"""

from enum import Enum
from typing import Dict, FrozenSet

from legal_review.errors import InvalidTransitionError


class DocumentStatus(str, Enum):
    PENDING = "pending"
    EXTRACTED = "extracted"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    ERROR = "error"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


TRANSITIONS: Dict[DocumentStatus, FrozenSet[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.EXTRACTED, DocumentStatus.ERROR}),
    DocumentStatus.EXTRACTED: frozenset({DocumentStatus.ANALYZING, DocumentStatus.ERROR}),
    DocumentStatus.ANALYZING: frozenset({DocumentStatus.ANALYZED, DocumentStatus.ERROR}),
    DocumentStatus.ANALYZED: frozenset({DocumentStatus.ANALYZING, DocumentStatus.ERROR}),
    DocumentStatus.ERROR: frozenset({
        DocumentStatus.EXTRACTED,
        DocumentStatus.ANALYZING,
        DocumentStatus.ERROR,
    }),
}

# Statuses in which raw_text must be present. PENDING must not have it;
# ERROR keeps whatever the document had before the failure.
TEXT_REQUIRED: FrozenSet[DocumentStatus] = frozenset({
    DocumentStatus.EXTRACTED,
    DocumentStatus.ANALYZING,
    DocumentStatus.ANALYZED,
})

# Upper bounds (exclusive) of the low and medium bands
LOW_RISK_CEILING = 34
MEDIUM_RISK_CEILING = 67


def allowed_targets(current: DocumentStatus) -> FrozenSet[DocumentStatus]:
    return TRANSITIONS[DocumentStatus(current)]


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    """Return True if the state machine has an edge from current to target."""
    return DocumentStatus(target) in allowed_targets(current)


def guard_transition(
    current: DocumentStatus,
    target: DocumentStatus,
    has_text: bool,
) -> None:
    """
    Validate a status transition and its guard.

    Args:
        current: Status the caller observed
        target: Requested status
        has_text: Whether raw_text will be present once the transition applies
                  (for -> extracted: whether extraction produced text)

    Raises:
        InvalidTransitionError: If the edge does not exist or its guard fails
    """
    current = DocumentStatus(current)
    target = DocumentStatus(target)

    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)

    if target == DocumentStatus.ANALYZING and not has_text:
        raise InvalidTransitionError(
            current.value, target.value, "document text not yet extracted"
        )

    if target == DocumentStatus.EXTRACTED and not has_text:
        raise InvalidTransitionError(
            current.value, target.value, "extraction produced no text"
        )


def risk_level_for_score(score: int) -> RiskLevel:
    """
    Map an overall risk score (0-100) to its badge level.

    Used when the engine omits a level and by validation tooling. A level the
    engine states explicitly is stored as-is, even if it disagrees.

    Examples:
        >>> risk_level_for_score(25)
        <RiskLevel.LOW: 'low'>
        >>> risk_level_for_score(50).value
        'medium'
        >>> risk_level_for_score(72).value
        'high'
    """
    if score < LOW_RISK_CEILING:
        return RiskLevel.LOW
    if score < MEDIUM_RISK_CEILING:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH
