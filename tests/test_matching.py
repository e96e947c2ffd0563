import pytest

from linkage.errors import MatchingError, ThresholdMisconfiguration
from linkage.matching import CandidateMatcher, match
from linkage.models import CandidatePair
from linkage.normalize import name_key, place_key

from conftest import src, tgt


@pytest.mark.parametrize(
    "scorer, threshold",
    [("ratio", 101), ("ratio", -1), ("jaro_winkler", 90), ("token_set_ratio", "high"), ("ratio", float("nan"))],
)
def test_threshold_outside_scorer_range_is_rejected(scorer, threshold) -> None:
    with pytest.raises(ThresholdMisconfiguration):
        CandidateMatcher(scorer=scorer, threshold=threshold)


def test_unknown_scorer() -> None:
    with pytest.raises(MatchingError):
        CandidateMatcher(scorer="soundex")


def test_duplicate_target_names_all_become_candidates() -> None:
    sources = [src("s1", "springfield"), src("s2", "honolulu")]
    targets = [tgt("t2", "springfield"), tgt("t1", "springfield"), tgt("t3", "boston")]

    candidates = match(sources, targets, scorer="ratio", threshold=90)

    assert candidates == [
        CandidatePair("s1", "t1", 100.0),
        CandidatePair("s1", "t2", 100.0),
    ]


def test_candidates_ordered_by_source_then_score() -> None:
    sources = [src("s1", "portland"), src("s2", "springfield")]
    targets = [tgt("t1", "springfeld"), tgt("t2", "springfield"), tgt("t3", "portland")]

    candidates = CandidateMatcher(scorer="ratio", threshold=80).match(sources, targets)

    assert [(pair.source_id, pair.target_id) for pair in candidates] == [("s1", "t3"), ("s2", "t2"), ("s2", "t1")]
    assert candidates[1].score > candidates[2].score >= 80


def test_empty_result_is_not_an_error() -> None:
    assert match([src("s1", "honolulu")], [tgt("t1", "boston")], threshold=90) == []
    assert match([src("s1", "")], [tgt("t1", "")], threshold=0) == []
    assert match([], [tgt("t1", "boston")]) == []


def test_blocking_on_prefix_skips_other_blocks() -> None:
    sources = [src("s1", "springfield")]
    targets = [tgt("t1", "pringfield")]

    assert len(CandidateMatcher(scorer="ratio", threshold=90).match(sources, targets)) == 1
    assert CandidateMatcher(scorer="ratio", threshold=90, blocking_prefix=1).match(sources, targets) == []


def test_key_functions_choose_the_compared_text() -> None:
    sources = [src("s1", "boston")]
    targets = [tgt("t1", "boston city")]

    assert match(sources, targets, name_key, name_key, scorer="ratio", threshold=90) == []
    assert match(sources, targets, name_key, place_key, scorer="ratio", threshold=90) == [
        CandidatePair("s1", "t1", 100.0)
    ]


def test_jaro_winkler_uses_unit_range() -> None:
    candidates = match([src("s1", "boston")], [tgt("t1", "boston")], scorer="jaro_winkler", threshold=0.9)

    assert candidates == [CandidatePair("s1", "t1", 1.0)]


def test_parallel_workers_give_same_candidates() -> None:
    sources = [src(f"s{i}", name) for i, name in enumerate(["boston", "portland", "springfield", "salem"])]
    targets = [tgt(f"t{i}", name) for i, name in enumerate(["salem", "portland", "boston", "springfield", "portland"])]

    single = CandidateMatcher(threshold=90, workers=1).match(sources, targets)
    parallel = CandidateMatcher(threshold=90, workers=-1).match(sources, targets)

    assert single == parallel
    assert len(single) == 5


def test_scoring_in_small_chunks_gives_same_candidates() -> None:
    sources = [src(f"s{i}", name) for i, name in enumerate(["boston", "portland", "springfield", "salem", "bostonn"])]
    targets = [tgt(f"t{i}", name) for i, name in enumerate(["salem", "portland", "boston", "springfield", "portland"])]

    whole = CandidateMatcher(scorer="ratio", threshold=80).match(sources, targets)
    chunked = CandidateMatcher(scorer="ratio", threshold=80, chunk_rows=2).match(sources, targets)

    assert chunked == whole
    assert [pair.source_id for pair in chunked].count("s4") == 1
    assert all(isinstance(pair.score, float) for pair in chunked)
    with pytest.raises(MatchingError):
        CandidateMatcher(chunk_rows=0)
