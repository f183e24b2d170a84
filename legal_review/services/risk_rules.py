"""
Rule-based risk checks.

Deterministic checks for clauses a contract of a given type should have. They
run after the engine's risk assessment and their flags are appended to the
engine's flags. They never change the engine's score or level.

Rules:
- All contracts: governing law clause, some termination clause
- nda: exclusions, a duration (clause or termination date)
- service_agreement: indemnification, limitation of liability, intellectual property
- lease: security deposit, maintenance and repairs

Usage Example:
    from legal_review.services.risk_rules import apply_rules

    flags = apply_rules(extraction_data, "nda")
"""

import logging
from typing import Callable, List, NamedTuple

from legal_review.schemas import ContractType, ExtractionData, RiskFlag
from legal_review.status import RiskLevel

logger = logging.getLogger(__name__)

# clause_type substrings that count as a termination clause
TERMINATION_MARKERS = ("termination", "term_and", "lease_term")


class MissingClauseRule(NamedTuple):
    """Flag raised when is_satisfied(extraction) is False."""
    is_satisfied: Callable[[ExtractionData], bool]
    category: str
    severity: RiskLevel
    description: str
    suggestion: str

    def check(self, extraction: ExtractionData) -> List[RiskFlag]:
        if self.is_satisfied(extraction):
            return []
        return [RiskFlag(
            category=self.category,
            severity=self.severity,
            description=self.description,
            suggestion=self.suggestion,
        )]


def has_clause(clause_type: str) -> Callable[[ExtractionData], bool]:
    def check(extraction: ExtractionData) -> bool:
        return any(clause.clause_type == clause_type for clause in extraction.clauses)
    return check


def _has_termination_clause(extraction: ExtractionData) -> bool:
    return any(
        marker in clause.clause_type
        for clause in extraction.clauses
        for marker in TERMINATION_MARKERS
    )


def _has_nda_duration(extraction: ExtractionData) -> bool:
    return has_clause("term_and_duration")(extraction) or extraction.termination_date is not None


UNIVERSAL_RULES = [
    MissingClauseRule(
        has_clause("governing_law"),
        "governing_law",
        RiskLevel.MEDIUM,
        "No governing law clause found. Disputes may be harder to resolve without a specified jurisdiction.",
        "Add a governing law clause specifying the applicable jurisdiction.",
    ),
    MissingClauseRule(
        _has_termination_clause,
        "termination",
        RiskLevel.HIGH,
        "No termination clause found. Without clear termination terms, exiting this agreement may be difficult.",
        "Add explicit termination provisions including notice period and termination for cause/convenience.",
    ),
]

CONTRACT_RULES = {
    ContractType.NDA: [
        MissingClauseRule(
            has_clause("exclusions"),
            "confidentiality",
            RiskLevel.HIGH,
            "No exclusions to confidential information defined. This could mean publicly "
            "available information is improperly classified as confidential.",
            "Add standard exclusions: publicly available info, independently developed info, "
            "info received from third parties.",
        ),
        MissingClauseRule(
            _has_nda_duration,
            "termination",
            RiskLevel.MEDIUM,
            "NDA has no specified duration or expiration. Confidentiality obligations may be perpetual.",
            "Specify a reasonable duration for confidentiality obligations (typically 2-5 years).",
        ),
    ],
    ContractType.SERVICE_AGREEMENT: [
        MissingClauseRule(
            has_clause("indemnification"),
            "indemnification",
            RiskLevel.HIGH,
            "No indemnification clause found. Without indemnification, there is no protection "
            "against third-party claims.",
            "Add mutual indemnification with reasonable caps tied to contract value.",
        ),
        MissingClauseRule(
            has_clause("limitation_of_liability"),
            "liability",
            RiskLevel.HIGH,
            "No limitation of liability clause found. Exposure to damages is potentially unlimited.",
            "Add a limitation of liability clause capping damages (typically 1-2x annual contract value).",
        ),
        MissingClauseRule(
            has_clause("intellectual_property"),
            "other",
            RiskLevel.MEDIUM,
            "No intellectual property clause found. IP ownership of deliverables may be unclear.",
            "Add clear IP assignment or licensing terms for work product.",
        ),
    ],
    ContractType.LEASE: [
        MissingClauseRule(
            has_clause("security_deposit"),
            "payment",
            RiskLevel.MEDIUM,
            "No security deposit clause found. Terms for deposit handling and return are undefined.",
            "Add security deposit terms including amount, conditions for withholding, and return timeline.",
        ),
        MissingClauseRule(
            has_clause("maintenance_and_repairs"),
            "other",
            RiskLevel.MEDIUM,
            "No maintenance and repairs clause found. Responsibilities for property upkeep are unclear.",
            "Define maintenance responsibilities for both landlord and tenant.",
        ),
    ],
}


def apply_rules(extraction: ExtractionData, contract_type: str) -> List[RiskFlag]:
    """
    Run the universal and contract-type rules against an extraction.

    Args:
        extraction: Validated extraction payload
        contract_type: nda / service_agreement / lease

    Returns:
        Flags for every missing clause, universal rules first
    """
    rules = UNIVERSAL_RULES + CONTRACT_RULES[ContractType(contract_type)]
    flags = [flag for rule in rules for flag in rule.check(extraction)]
    if flags:
        logger.debug(f"Rule checks raised {len(flags)} flags for {contract_type}")
    return flags
