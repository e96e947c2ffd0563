"""Tabular export of reconciliation results."""
from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

import pandas as pd

from linkage.models import EntityRecord, ReconciliationResult, ResidualRecord

OUTPUT_FILES = {
    "linked": "linked.csv",
    "source_residual": "source_residual.csv",
    "target_residual": "target_residual.csv",
    "ambiguous": "ambiguous.csv",
    "removed": "removed.csv",
    "rule_outcomes": "rule_outcomes.csv",
}

RESIDUAL_COLUMNS = ["record_id", "side", "reason", "name", "region_code", "region_name", "detail"]


def _describe(records: Mapping[str, EntityRecord], record_id: str, prefix: str) -> Dict[str, Optional[str]]:
    record = records.get(record_id)
    return {
        f"{prefix}_name": record.name if record else None,
        f"{prefix}_region_code": record.region_code if record else None,
        f"{prefix}_region_name": record.region_name if record else None,
    }


def linked_frame(
    result: ReconciliationResult,
    sources: Mapping[str, EntityRecord],
    targets: Mapping[str, EntityRecord],
) -> pd.DataFrame:
    rows = []
    for pair in result.linked:
        row = {"source_id": pair.source_id, **_describe(sources, pair.source_id, "source")}
        row.update({"target_id": pair.target_id, **_describe(targets, pair.target_id, "target")})
        row.update({"provenance": pair.provenance, "score": pair.score, "override_label": pair.override_label})
        rows.append(row)
    columns = [
        "source_id",
        "source_name",
        "source_region_code",
        "source_region_name",
        "target_id",
        "target_name",
        "target_region_code",
        "target_region_name",
        "provenance",
        "score",
        "override_label",
    ]
    return pd.DataFrame(rows, columns=columns)


def residual_frame(residuals: Sequence[ResidualRecord]) -> pd.DataFrame:
    return pd.DataFrame([asdict(residual) for residual in residuals], columns=RESIDUAL_COLUMNS)


def ambiguous_frame(
    result: ReconciliationResult,
    sources: Mapping[str, EntityRecord],
    targets: Mapping[str, EntityRecord],
) -> pd.DataFrame:
    rows = []
    for source_id, pairs in result.ambiguous.items():
        for pair in pairs:
            row = {"source_id": source_id, **_describe(sources, source_id, "source")}
            row.update({"target_id": pair.target_id, **_describe(targets, pair.target_id, "target")})
            row["score"] = pair.score
            rows.append(row)
    columns = [
        "source_id",
        "source_name",
        "source_region_code",
        "source_region_name",
        "target_id",
        "target_name",
        "target_region_code",
        "target_region_name",
        "score",
    ]
    return pd.DataFrame(rows, columns=columns)


def removed_frame(
    result: ReconciliationResult,
    sources: Mapping[str, EntityRecord],
    targets: Mapping[str, EntityRecord],
) -> pd.DataFrame:
    rows = []
    for rule, pairs in result.chain_removed.items():
        for pair in pairs:
            row = {"rule": rule, "source_id": pair.source_id, **_describe(sources, pair.source_id, "source")}
            row.update({"target_id": pair.target_id, **_describe(targets, pair.target_id, "target")})
            row["score"] = pair.score
            rows.append(row)
    columns = [
        "rule",
        "source_id",
        "source_name",
        "source_region_code",
        "source_region_name",
        "target_id",
        "target_name",
        "target_region_code",
        "target_region_name",
        "score",
    ]
    return pd.DataFrame(rows, columns=columns)


def rule_outcomes_frame(result: ReconciliationResult) -> pd.DataFrame:
    rows = []
    for rule, outcome in result.rule_outcomes.items():
        for status, pairs in (("kept", outcome.kept), ("removed", outcome.removed)):
            for pair in pairs:
                rows.append(
                    {
                        "rule": rule,
                        "status": status,
                        "source_id": pair.source_id,
                        "target_id": pair.target_id,
                        "score": pair.score,
                    }
                )
    return pd.DataFrame(rows, columns=["rule", "status", "source_id", "target_id", "score"])


def build_frames(
    result: ReconciliationResult,
    sources: Sequence[EntityRecord],
    targets: Sequence[EntityRecord],
) -> Dict[str, pd.DataFrame]:
    source_index = {record.record_id: record for record in sources}
    target_index = {record.record_id: record for record in targets}
    return {
        "linked": linked_frame(result, source_index, target_index),
        "source_residual": residual_frame(result.source_residual),
        "target_residual": residual_frame(result.target_residual),
        "ambiguous": ambiguous_frame(result, source_index, target_index),
        "removed": removed_frame(result, source_index, target_index),
        "rule_outcomes": rule_outcomes_frame(result),
    }


def save_outputs(
    result: ReconciliationResult,
    sources: Sequence[EntityRecord],
    targets: Sequence[EntityRecord],
    out_dir: Path,
) -> Dict[str, Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: Dict[str, Path] = {}
    for key, frame in build_frames(result, sources, targets).items():
        path = out_dir / OUTPUT_FILES[key]
        frame.to_csv(path, index=False)
        written[key] = path
    return written


def load_outputs(out_dir: Path) -> Dict[str, pd.DataFrame]:
    """Read back whatever export files exist in ``out_dir``."""
    if not out_dir.exists():
        raise FileNotFoundError(f"Output directory not found: {out_dir}")
    frames: Dict[str, pd.DataFrame] = {}
    for key, filename in OUTPUT_FILES.items():
        path = out_dir / filename
        if path.exists():
            frames[key] = pd.read_csv(path, dtype=str, keep_default_na=False)
    return frames
