"""Record and result types shared by the reconciliation stages."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Mapping, Optional

FUZZY = "fuzzy"
MANUAL = "manual"

REASON_NO_CANDIDATES = "no_candidates"
REASON_FILTERED = "filtered"
REASON_AMBIGUOUS = "ambiguous"
REASON_UNMATCHED = "unmatched"
REASON_ERROR = "error"


@dataclass(frozen=True)
class EntityRecord:
    record_id: str
    name: str
    region_code: Optional[str] = None
    region_name: Optional[str] = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    side: ClassVar[str] = "entity"


@dataclass(frozen=True)
class SourceRecord(EntityRecord):
    """Row of the survey table being linked."""

    side: ClassVar[str] = "source"


@dataclass(frozen=True)
class TargetRecord(EntityRecord):
    """Row of the reference (Census place) table."""

    side: ClassVar[str] = "target"


@dataclass(frozen=True)
class CandidatePair:
    source_id: str
    target_id: str
    score: float


@dataclass(frozen=True)
class Override:
    label: str
    source_id: str
    target_id: str
    note: str = ""


@dataclass(frozen=True)
class LinkedPair:
    source_id: str
    target_id: str
    provenance: str
    score: Optional[float] = None
    override_label: Optional[str] = None

    @property
    def is_manual(self) -> bool:
        return self.provenance == MANUAL


@dataclass(frozen=True)
class ResidualRecord:
    record_id: str
    side: str
    reason: str
    name: str = ""
    region_code: Optional[str] = None
    region_name: Optional[str] = None
    detail: str = ""

    @classmethod
    def from_record(cls, record: EntityRecord, reason: str, detail: str = "") -> "ResidualRecord":
        return cls(
            record_id=record.record_id,
            side=record.side,
            reason=reason,
            name=record.name,
            region_code=record.region_code,
            region_name=record.region_name,
            detail=detail,
        )


@dataclass
class RuleOutcome:
    """Candidates kept and removed by one disambiguation rule."""

    rule: str
    kept: List[CandidatePair] = field(default_factory=list)
    removed: List[CandidatePair] = field(default_factory=list)

    @property
    def resolved_sources(self) -> List[str]:
        counts = Counter(pair.source_id for pair in self.kept)
        return sorted(source_id for source_id, count in counts.items() if count == 1)


@dataclass
class ReconciliationResult:
    linked: List[LinkedPair]
    source_residual: List[ResidualRecord]
    target_residual: List[ResidualRecord]
    ambiguous: Dict[str, List[CandidatePair]] = field(default_factory=dict)
    candidates: List[CandidatePair] = field(default_factory=list)
    chain_removed: Dict[str, List[CandidatePair]] = field(default_factory=dict)
    rule_outcomes: Dict[str, RuleOutcome] = field(default_factory=dict)

    def linked_for(self, source_id: str) -> List[LinkedPair]:
        return [pair for pair in self.linked if pair.source_id == source_id]

    def provenance_counts(self) -> Dict[str, int]:
        return dict(Counter(pair.provenance for pair in self.linked))

    def residual_counts(self) -> Dict[str, Dict[str, int]]:
        return {
            "source": dict(Counter(residual.reason for residual in self.source_residual)),
            "target": dict(Counter(residual.reason for residual in self.target_residual)),
        }
