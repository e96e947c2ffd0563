import pandas as pd
import pytest

from linkage.errors import AmbiguousOverride
from linkage.models import Override
from linkage.overrides import OverrideTable

from conftest import src, tgt


def test_lookup_by_source_and_label() -> None:
    table = OverrideTable([Override("Staten Island (NY)", "si", "new_york_city", "borough")])

    assert table.by_source("si").target_id == "new_york_city"
    assert table.by_label("Staten Island (NY)").source_id == "si"
    assert table.by_source("bk") is None
    assert "si" in table
    assert len(table) == 1


def test_many_sources_may_share_a_target() -> None:
    table = OverrideTable(
        [
            Override("Brooklyn (NY)", "bk", "new_york_city"),
            Override("Queens (NY)", "qn", "new_york_city"),
        ]
    )

    assert table.sources_for_target("new_york_city") == ["bk", "qn"]


def test_duplicate_label_is_fatal() -> None:
    with pytest.raises(AmbiguousOverride):
        OverrideTable([Override("Queens", "qn", "nyc"), Override("Queens", "qn2", "nyc")])


def test_same_source_twice_is_fatal() -> None:
    with pytest.raises(AmbiguousOverride):
        OverrideTable([Override("Queens (NY)", "qn", "nyc"), Override("Queens borough", "qn", "queens_cdp")])


def test_blank_target_is_fatal() -> None:
    with pytest.raises(AmbiguousOverride):
        OverrideTable([Override("Queens (NY)", "qn", " ")])


def test_append_leaves_original_untouched() -> None:
    table = OverrideTable([Override("Queens (NY)", "qn", "nyc")])
    extended = table.append(Override("Bronx (NY)", "bx", "nyc"))

    assert len(table) == 1
    assert len(extended) == 2
    with pytest.raises(AmbiguousOverride):
        extended.append(Override("Bronx (NY)", "bx2", "nyc"))


def test_validate_reports_unknown_ids() -> None:
    table = OverrideTable([Override("Queens (NY)", "qn", "nyc"), Override("Bronx (NY)", "bx", "nyc_typo")])
    sources = [src("qn", "queens"), src("bx", "bronx")]

    table.validate(sources, [tgt("nyc", "new york city"), tgt("nyc_typo", "x")])
    with pytest.raises(AmbiguousOverride, match="nyc_typo"):
        table.validate(sources, [tgt("nyc", "new york city")])


def test_from_csv(tmp_path) -> None:
    path = tmp_path / "overrides.csv"
    path.write_text(
        "label,source_id,target_id,note\n"
        "Staten Island (NY),s005,3651000,borough\n"
        "Brooklyn (NY),s006,3651000,\n",
        encoding="utf-8",
    )

    table = OverrideTable.from_csv(path)

    assert [entry.source_id for entry in table] == ["s005", "s006"]
    assert table.by_label("Brooklyn (NY)").note == ""
    assert list(table.to_frame().columns) == ["label", "source_id", "target_id", "note"]


def test_from_csv_keeps_hash_signs_in_free_text(tmp_path) -> None:
    path = tmp_path / "overrides.csv"
    path.write_text(
        "label,source_id,target_id,note\n"
        "Ward #3 (NY),s1,t1,x\n"
        "Springfield (MO),s2,t2,ticket #42 confirmed by clerk\n",
        encoding="utf-8",
    )

    table = OverrideTable.from_csv(path)

    assert table.by_label("Ward #3 (NY)").source_id == "s1"
    assert table.by_source("s2").note == "ticket #42 confirmed by clerk"


def test_from_frame_rejects_bad_tables(tmp_path) -> None:
    with pytest.raises(AmbiguousOverride):
        OverrideTable.from_frame(pd.DataFrame({"label": ["a"], "source_id": ["s1"]}))
    with pytest.raises(AmbiguousOverride):
        OverrideTable.from_frame(
            pd.DataFrame({"label": ["a", "a "], "source_id": ["s1", "s2"], "target_id": ["t1", "t1"]})
        )
    with pytest.raises(AmbiguousOverride):
        OverrideTable.from_csv(tmp_path / "missing.csv")


def test_bundled_override_table_loads(data_dir) -> None:
    table = OverrideTable.from_csv(data_dir / "city_overrides.csv")

    assert len(table.sources_for_target("3651000")) == 5
