import sys

import pandas as pd
import pytest

import match_cities
from linkage.errors import ThresholdMisconfiguration


def _run(data_dir, tmp_path, *extra):
    return match_cities.main(
        [
            "--source",
            str(data_dir / "sample_survey_cities.csv"),
            "--target",
            str(data_dir / "sample_census_places.csv"),
            "--overrides",
            str(data_dir / "city_overrides.csv"),
            "--out-dir",
            str(tmp_path / "out"),
            "--log",
            str(tmp_path / "run.log"),
            *extra,
        ]
    )


def test_end_to_end_on_sample_data(data_dir, tmp_path) -> None:
    result = _run(data_dir, tmp_path)

    linked = pd.read_csv(tmp_path / "out" / "linked.csv", dtype=str, keep_default_na=False).set_index("source_id")
    residual = pd.read_csv(tmp_path / "out" / "source_residual.csv", dtype=str, keep_default_na=False)

    assert len(linked) == 14
    assert linked.loc["s001", "target_id"] == "2507000"
    assert linked.loc["s002", "target_id"] == "1772000"
    assert linked.loc["s004", "target_id"] == "0644000"
    assert linked.loc["s004", "provenance"] == "fuzzy+region_name"
    assert linked.loc["s013", "provenance"] == "fuzzy+region_code"
    assert linked.loc["s015", "target_id"] == "2970000"
    assert set(linked.loc[["s005", "s006", "s007", "s008", "s009"], "target_id"]) == {"3651000"}
    assert linked.loc["s012", "provenance"] == "manual"
    assert list(residual["record_id"]) == ["s014"]
    assert list(residual["reason"]) == ["error"]
    assert result.target_residual == []
    assert "Linked pairs by provenance" in (tmp_path / "run.log").read_text(encoding="utf-8")


def test_region_code_width_recovers_strict_matches(data_dir, tmp_path) -> None:
    result = _run(data_dir, tmp_path, "--region-code-width", "5")

    assert result.linked_for("s004")[0].provenance == "fuzzy+region_code"


def test_single_rule_and_no_overrides(data_dir, tmp_path) -> None:
    result = match_cities.main(
        [
            "--source",
            str(data_dir / "sample_survey_cities.csv"),
            "--target",
            str(data_dir / "sample_census_places.csv"),
            "--out-dir",
            str(tmp_path / "out"),
            "--log",
            str(tmp_path / "run.log"),
            "--rule",
            "region_code_equal",
        ]
    )

    reasons = {residual.record_id: residual.reason for residual in result.source_residual}
    assert reasons["s004"] == "filtered"
    assert reasons["s005"] == "no_candidates"
    assert list(result.rule_outcomes) == ["region_code"]


def test_bad_threshold_fails_before_loading(tmp_path) -> None:
    with pytest.raises(ThresholdMisconfiguration):
        match_cities.main(
            [
                "--source",
                str(tmp_path / "missing.csv"),
                "--target",
                str(tmp_path / "missing.csv"),
                "--out-dir",
                str(tmp_path / "out"),
                "--log",
                str(tmp_path / "run.log"),
                "--threshold",
                "120",
            ]
        )


def test_cli_reports_missing_arguments(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["match_cities.py", "--source", "a.csv"])

    assert match_cities.cli() == 2
    assert "Missing required arguments" in capsys.readouterr().err
