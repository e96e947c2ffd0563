"""Fuzzy candidate generation between source and target records."""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from rapidfuzz import distance, fuzz, process

from linkage.errors import MatchingError, ThresholdMisconfiguration
from linkage.models import CandidatePair, SourceRecord, TargetRecord
from linkage.normalize import KeyFunction, name_key

LOGGER = logging.getLogger("city_linkage")

CHUNK_ROWS = 1024


@dataclass(frozen=True)
class Scorer:
    """A rapidfuzz similarity function and the range of values it returns.

    Every scorer is called as ``func(source_key, target_key)``. ``symmetric``
    tells whether swapping the arguments can change the value.
    """

    name: str
    func: Callable[..., float]
    max_score: float
    symmetric: bool

    def validate_threshold(self, threshold: float) -> float:
        try:
            value = float(threshold)
        except (TypeError, ValueError) as exc:
            raise ThresholdMisconfiguration(f"Threshold must be numeric, got {threshold!r}") from exc
        if np.isnan(value) or value < 0 or value > self.max_score:
            raise ThresholdMisconfiguration(
                f"Threshold {threshold} outside [0, {self.max_score}] for scorer {self.name}"
            )
        return value


SCORERS: Dict[str, Scorer] = {
    "ratio": Scorer("ratio", fuzz.ratio, 100.0, True),
    "partial_ratio": Scorer("partial_ratio", fuzz.partial_ratio, 100.0, False),
    "token_sort_ratio": Scorer("token_sort_ratio", fuzz.token_sort_ratio, 100.0, True),
    "token_set_ratio": Scorer("token_set_ratio", fuzz.token_set_ratio, 100.0, True),
    "WRatio": Scorer("WRatio", fuzz.WRatio, 100.0, False),
    "QRatio": Scorer("QRatio", fuzz.QRatio, 100.0, True),
    "jaro_winkler": Scorer("jaro_winkler", distance.JaroWinkler.normalized_similarity, 1.0, True),
}


def get_scorer(name: str) -> Scorer:
    try:
        return SCORERS[name]
    except KeyError:
        raise MatchingError(f"Unknown scorer {name!r}; expected one of {sorted(SCORERS)}") from None


def block_key(key: str, prefix: int) -> str:
    if prefix <= 0:
        return ""
    return key[:prefix]


class CandidateMatcher:
    """Score every source key against every target key in the same block.

    Keys are not assumed unique on either side: two targets with the same
    name both become candidates. A source whose key is empty, or that clears
    the threshold for no target, simply yields no pairs.
    """

    def __init__(
        self,
        scorer: str | Scorer = "token_set_ratio",
        threshold: float = 90.0,
        blocking_prefix: int = 0,
        workers: int = 1,
        logger: Optional[logging.Logger] = None,
        chunk_rows: int = CHUNK_ROWS,
    ) -> None:
        self.scorer = scorer if isinstance(scorer, Scorer) else get_scorer(scorer)
        self.threshold = self.scorer.validate_threshold(threshold)
        self.blocking_prefix = blocking_prefix
        self.workers = workers
        self.logger = logger or LOGGER
        if chunk_rows <= 0:
            raise MatchingError("chunk_rows must be positive")
        self.chunk_rows = chunk_rows

    def match(
        self,
        sources: Sequence[SourceRecord],
        targets: Sequence[TargetRecord],
        key_fn_source: KeyFunction = name_key,
        key_fn_target: KeyFunction = name_key,
    ) -> List[CandidatePair]:
        source_keys = [key_fn_source(record) for record in sources]
        target_keys = [key_fn_target(record) for record in targets]

        target_blocks: Dict[str, List[int]] = defaultdict(list)
        for idx, key in enumerate(target_keys):
            if key:
                target_blocks[block_key(key, self.blocking_prefix)].append(idx)
        source_blocks: Dict[str, List[int]] = defaultdict(list)
        for idx, key in enumerate(source_keys):
            if key:
                source_blocks[block_key(key, self.blocking_prefix)].append(idx)

        hits: List[Tuple[int, int, float]] = []
        for block, source_indices in source_blocks.items():
            target_indices = target_blocks.get(block)
            if not target_indices:
                continue
            block_targets = [target_keys[j] for j in target_indices]
            # one float32 matrix of at most chunk_rows x len(block) at a time
            for start in range(0, len(source_indices), self.chunk_rows):
                chunk = source_indices[start:start + self.chunk_rows]
                scores = process.cdist(
                    [source_keys[i] for i in chunk],
                    block_targets,
                    scorer=self.scorer.func,
                    score_cutoff=self.threshold,
                    dtype=np.float32,
                    workers=self.workers,
                )
                for row, col in np.argwhere(scores >= self.threshold):
                    hits.append((chunk[row], target_indices[col], float(scores[row, col])))

        hits.sort(key=lambda hit: (hit[0], -hit[2], targets[hit[1]].record_id))
        candidates = [
            CandidatePair(source_id=sources[s].record_id, target_id=targets[t].record_id, score=score)
            for s, t, score in hits
        ]
        self.logger.info(
            "Candidate generation (%s >= %s): %d pairs for %d of %d sources",
            self.scorer.name,
            self.threshold,
            len(candidates),
            len({pair.source_id for pair in candidates}),
            len(sources),
        )
        return candidates


def match(
    sources: Sequence[SourceRecord],
    targets: Sequence[TargetRecord],
    key_fn_source: KeyFunction = name_key,
    key_fn_target: KeyFunction = name_key,
    scorer: str = "token_set_ratio",
    threshold: float = 90.0,
    blocking_prefix: int = 0,
    workers: int = 1,
) -> List[CandidatePair]:
    matcher = CandidateMatcher(scorer=scorer, threshold=threshold, blocking_prefix=blocking_prefix, workers=workers)
    return matcher.match(sources, targets, key_fn_source, key_fn_target)
