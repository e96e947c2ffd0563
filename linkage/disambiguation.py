"""Equality rules over auxiliary keys used to prune fuzzy candidates."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Sequence, Union

from linkage.errors import MatchingError
from linkage.models import CandidatePair, EntityRecord, RuleOutcome, SourceRecord, TargetRecord


@dataclass(frozen=True)
class FieldEqual:
    """Keep a pair only when both records carry the same non-empty value.

    A missing or blank value on either side never matches: the pair is
    removed rather than raising.
    """

    field: str

    @property
    def name(self) -> str:
        return self.field

    @property
    def config_name(self) -> str:
        return f"{self.field}_equal"

    def __call__(self, source: EntityRecord, target: EntityRecord) -> bool:
        left = getattr(source, self.field)
        right = getattr(target, self.field)
        if not left or not right:
            return False
        return left == right


@dataclass(frozen=True)
class Conjunction:
    left: "Rule"
    right: "Rule"

    @property
    def name(self) -> str:
        return f"{self.left.name}+{self.right.name}"

    @property
    def config_name(self) -> str:
        return f"{self.left.config_name}+{self.right.config_name}"

    def __call__(self, source: EntityRecord, target: EntityRecord) -> bool:
        return self.left(source, target) and self.right(source, target)


Rule = Union[FieldEqual, Conjunction]

REGION_CODE_EQUAL = FieldEqual("region_code")
REGION_NAME_EQUAL = FieldEqual("region_name")

RULES: Dict[str, Rule] = {
    "region_code_equal": REGION_CODE_EQUAL,
    "region_name_equal": REGION_NAME_EQUAL,
}


def conjunction_of(*rules: Rule) -> Rule:
    if not rules:
        raise MatchingError("conjunction_of needs at least one rule")
    combined = rules[0]
    for rule in rules[1:]:
        combined = Conjunction(combined, rule)
    return combined


def parse_rule(text: str) -> Rule:
    """Parse ``region_code_equal``, ``region_name_equal`` or ``a+b`` conjunctions."""
    parts = [part.strip() for part in text.split("+") if part.strip()]
    if not parts:
        raise MatchingError(f"Empty disambiguation rule: {text!r}")
    unknown = [part for part in parts if part not in RULES]
    if unknown:
        raise MatchingError(f"Unknown disambiguation rule(s) {unknown}; expected {sorted(RULES)}")
    return conjunction_of(*(RULES[part] for part in parts))


def parse_rules(texts: Iterable[str]) -> List[Rule]:
    return [parse_rule(text) for text in texts]


def index_records(records: Iterable[EntityRecord]) -> Dict[str, EntityRecord]:
    return {record.record_id: record for record in records}


def disambiguate(
    candidates: Sequence[CandidatePair],
    sources: Union[Sequence[SourceRecord], Mapping[str, SourceRecord]],
    targets: Union[Sequence[TargetRecord], Mapping[str, TargetRecord]],
    rule: Rule,
) -> RuleOutcome:
    """Split ``candidates`` into pairs satisfying ``rule`` and pairs it removes.

    Candidates referring to an id absent from ``sources`` or ``targets`` are
    treated like missing auxiliary values and removed.
    """
    source_index = sources if isinstance(sources, Mapping) else index_records(sources)
    target_index = targets if isinstance(targets, Mapping) else index_records(targets)
    outcome = RuleOutcome(rule=rule.name)
    for pair in candidates:
        source = source_index.get(pair.source_id)
        target = target_index.get(pair.target_id)
        if source is not None and target is not None and rule(source, target):
            outcome.kept.append(pair)
        else:
            outcome.removed.append(pair)
    return outcome
