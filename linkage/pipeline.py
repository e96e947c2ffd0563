"""Normalize, match, disambiguate and apply overrides to link two city tables."""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from linkage.disambiguation import REGION_CODE_EQUAL, REGION_NAME_EQUAL, Rule, disambiguate, index_records
from linkage.errors import MatchingError
from linkage.matching import CandidateMatcher, get_scorer
from linkage.models import (
    FUZZY,
    MANUAL,
    REASON_AMBIGUOUS,
    REASON_FILTERED,
    REASON_NO_CANDIDATES,
    REASON_UNMATCHED,
    CandidatePair,
    LinkedPair,
    ReconciliationResult,
    ResidualRecord,
    SourceRecord,
    TargetRecord,
)
from linkage.normalize import KEY_FUNCTIONS, KeyFunction, normalize_records
from linkage.overrides import OverrideTable

LOGGER = logging.getLogger("city_linkage")

NORMALIZED_FIELDS = ("name", "region_name", "region_code")


@dataclass(frozen=True)
class ReconcileConfig:
    threshold: float = 90.0
    scorer: str = "token_set_ratio"
    rules: Tuple[Rule, ...] = (REGION_CODE_EQUAL, REGION_NAME_EQUAL)
    blocking_prefix: int = 0
    workers: int = 1
    region_code_width: Optional[int] = None
    source_key: str = "name"
    target_key: str = "name"
    normalized_fields: Tuple[str, ...] = NORMALIZED_FIELDS
    rule_names: Tuple[str, ...] = field(init=False, default=())

    def __post_init__(self) -> None:
        scorer = get_scorer(self.scorer)
        object.__setattr__(self, "threshold", scorer.validate_threshold(self.threshold))
        object.__setattr__(self, "rules", tuple(self.rules))
        names = [rule.name for rule in self.rules]
        if len(set(names)) != len(names):
            raise MatchingError(f"Disambiguation rule listed twice: {names}")
        object.__setattr__(self, "rule_names", tuple(names))
        for key in (self.source_key, self.target_key):
            if key not in KEY_FUNCTIONS:
                raise MatchingError(f"Unknown comparison key {key!r}; expected one of {sorted(KEY_FUNCTIONS)}")
        if self.blocking_prefix < 0:
            raise MatchingError("blocking_prefix must be >= 0")
        if self.region_code_width is not None and self.region_code_width <= 0:
            raise MatchingError("region_code_width must be positive")

    @property
    def key_fn_source(self) -> KeyFunction:
        return KEY_FUNCTIONS[self.source_key]

    @property
    def key_fn_target(self) -> KeyFunction:
        return KEY_FUNCTIONS[self.target_key]


def provenance_for(rule: Optional[Rule]) -> str:
    if rule is None:
        return FUZZY
    return f"{FUZZY}+{rule.name}"


def group_by_source(pairs: Sequence[CandidatePair]) -> Dict[str, List[CandidatePair]]:
    grouped: Dict[str, List[CandidatePair]] = defaultdict(list)
    for pair in pairs:
        grouped[pair.source_id].append(pair)
    return grouped


def resolve_chain(
    candidates: Sequence[CandidatePair],
    sources: Dict[str, SourceRecord],
    targets: Dict[str, TargetRecord],
    rules: Sequence[Rule],
    logger: logging.Logger = LOGGER,
) -> Tuple[Dict[str, Tuple[Optional[Rule], List[CandidatePair]]], Dict[str, List[CandidatePair]]]:
    """Run the fallback chain over ``rules``.

    Each rule only sees the candidates of sources left with no surviving
    pair by the rules before it. Returns, per source id that kept at least
    one candidate, the rule that kept them together with the survivors, and
    the pairs removed by each rule.
    """
    survivors: Dict[str, Tuple[Optional[Rule], List[CandidatePair]]] = {}
    removed: Dict[str, List[CandidatePair]] = {}
    if not rules:
        for source_id, pairs in group_by_source(candidates).items():
            survivors[source_id] = (None, pairs)
        return survivors, removed

    pending = list(candidates)
    for rule in rules:
        if not pending:
            removed[rule.name] = []
            continue
        outcome = disambiguate(pending, sources, targets, rule)
        removed[rule.name] = outcome.removed
        kept = group_by_source(outcome.kept)
        for source_id, pairs in kept.items():
            survivors[source_id] = (rule, pairs)
        pending = [pair for pair in pending if pair.source_id not in kept]
        logger.info(
            "Rule %s resolved %d sources (%d kept, %d removed, %d sources still pending)",
            rule.name,
            len(kept),
            len(outcome.kept),
            len(outcome.removed),
            len({pair.source_id for pair in pending}),
        )
    return survivors, removed


def reconcile(
    sources: Sequence[SourceRecord],
    targets: Sequence[TargetRecord],
    config: Optional[ReconcileConfig] = None,
    overrides: Optional[OverrideTable] = None,
    source_errors: Sequence[ResidualRecord] = (),
    target_errors: Sequence[ResidualRecord] = (),
    logger: Optional[logging.Logger] = None,
) -> ReconciliationResult:
    """Link ``sources`` to ``targets``.

    Stages always run in the same order: normalization, fuzzy candidate
    generation, the disambiguation fallback chain, ambiguity triage and
    finally overrides, which replace whatever the automatic stages produced
    for their source id. Every source id ends in exactly one place: a
    :class:`LinkedPair` or the source residual (reason ``no_candidates``,
    ``filtered``, ``ambiguous`` or a loader ``error``).
    """
    config = config or ReconcileConfig()
    logger = logger or LOGGER
    overrides = overrides if overrides is not None else OverrideTable()
    overrides.validate(sources, targets)

    norm_sources = normalize_records(sources, config.normalized_fields, config.region_code_width)
    norm_targets = normalize_records(targets, config.normalized_fields, config.region_code_width)
    source_index = index_records(norm_sources)
    target_index = index_records(norm_targets)
    if len(source_index) != len(norm_sources) or len(target_index) != len(norm_targets):
        raise MatchingError("Record ids must be unique within each table")
    for side, index, errors in (("source", source_index, source_errors), ("target", target_index, target_errors)):
        error_ids = [residual.record_id for residual in errors]
        clashes = sorted({record_id for record_id in error_ids if record_id in index})
        if clashes or len(set(error_ids)) != len(error_ids):
            raise MatchingError(f"Malformed {side} rows reuse record ids: {clashes or error_ids}")
    logger.info("Normalized %d sources and %d targets", len(norm_sources), len(norm_targets))

    matcher = CandidateMatcher(
        scorer=config.scorer,
        threshold=config.threshold,
        blocking_prefix=config.blocking_prefix,
        workers=config.workers,
        logger=logger,
    )
    candidates = matcher.match(norm_sources, norm_targets, config.key_fn_source, config.key_fn_target)

    rule_outcomes = {
        rule.name: disambiguate(candidates, source_index, target_index, rule) for rule in config.rules
    }
    survivors, chain_removed = resolve_chain(candidates, source_index, target_index, config.rules, logger)

    automatic: Dict[str, LinkedPair] = {}
    ambiguous: Dict[str, List[CandidatePair]] = {}
    for record in norm_sources:
        entry = survivors.get(record.record_id)
        if entry is None:
            continue
        rule, pairs = entry
        if len(pairs) == 1:
            pair = pairs[0]
            automatic[record.record_id] = LinkedPair(
                source_id=pair.source_id,
                target_id=pair.target_id,
                provenance=provenance_for(rule),
                score=pair.score,
            )
        else:
            ambiguous[record.record_id] = pairs
            logger.debug("Ambiguous source %s: %d candidates", record.record_id, len(pairs))

    for entry in overrides:
        replaced = automatic.get(entry.source_id)
        if replaced is not None and replaced.target_id != entry.target_id:
            logger.info(
                "Override %r replaces %s link %s -> %s with %s",
                entry.label,
                replaced.provenance,
                entry.source_id,
                replaced.target_id,
                entry.target_id,
            )
        ambiguous.pop(entry.source_id, None)
        automatic[entry.source_id] = LinkedPair(
            source_id=entry.source_id,
            target_id=entry.target_id,
            provenance=MANUAL,
            override_label=entry.label,
        )

    linked = [automatic[record.record_id] for record in norm_sources if record.record_id in automatic]

    candidate_sources: Set[str] = {pair.source_id for pair in candidates}
    source_residual: List[ResidualRecord] = []
    for record in sources:
        if record.record_id in automatic:
            continue
        if record.record_id in ambiguous:
            detail = "|".join(pair.target_id for pair in ambiguous[record.record_id])
            source_residual.append(ResidualRecord.from_record(record, REASON_AMBIGUOUS, detail))
        elif record.record_id in candidate_sources:
            source_residual.append(ResidualRecord.from_record(record, REASON_FILTERED))
        else:
            source_residual.append(ResidualRecord.from_record(record, REASON_NO_CANDIDATES))
    source_residual.extend(source_errors)

    linked_targets = {pair.target_id for pair in linked}
    target_residual = [
        ResidualRecord.from_record(record, REASON_UNMATCHED)
        for record in targets
        if record.record_id not in linked_targets
    ]
    target_residual.extend(target_errors)

    logger.info(
        "Reconciliation finished: %d linked, %d ambiguous, %d source residuals, %d target residuals",
        len(linked),
        len(ambiguous),
        len(source_residual),
        len(target_residual),
    )
    return ReconciliationResult(
        linked=linked,
        source_residual=source_residual,
        target_residual=target_residual,
        ambiguous=ambiguous,
        candidates=candidates,
        chain_removed=chain_removed,
        rule_outcomes=rule_outcomes,
    )
