"""Filtering and override-triage helpers for the review interface."""
from __future__ import annotations

from typing import Iterable

import pandas as pd

from linkage.overrides import OVERRIDE_COLUMNS


def filter_by_categories(df: pd.DataFrame, filters: dict[str, Iterable[str]]) -> pd.DataFrame:
    """Filter dataframe by multiple categorical selections; empty selections are ignored."""
    filtered = df.copy()
    for column, values in filters.items():
        values = list(values)
        if values and column in filtered.columns:
            filtered = filtered[filtered[column].isin(values)]
    return filtered


def search_names(df: pd.DataFrame, text: str, columns: Iterable[str] = ("name", "source_name", "target_name")) -> pd.DataFrame:
    """Keep rows where any of ``columns`` contains ``text`` (case-insensitive)."""
    text = text.strip()
    if not text:
        return df
    mask = pd.Series(False, index=df.index)
    for column in columns:
        if column in df.columns:
            mask |= df[column].astype(str).str.contains(text, case=False, regex=False)
    return df[mask]


def count_by(df: pd.DataFrame, column: str) -> pd.DataFrame:
    if df.empty or column not in df.columns:
        return pd.DataFrame(columns=[column, "count"])
    counts = df.groupby(column, as_index=False).size()
    return counts.rename(columns={"size": "count"}).sort_values("count", ascending=False, ignore_index=True)


def template_label(name: object, region_name: object, source_id: object) -> str:
    """``Name (Region) [id]``; the id keeps labels unique across same-named sources."""
    parts = [str(name).strip()]
    if isinstance(region_name, str) and region_name.strip():
        parts.append(f"({region_name.strip()})")
    parts.append(f"[{source_id}]")
    return " ".join(part for part in parts if part)


def override_template(ambiguous: pd.DataFrame, source_residual: pd.DataFrame) -> pd.DataFrame:
    """Blank override rows for every source still waiting for a manual decision.

    Ambiguous sources list their candidate target ids in ``note`` so the
    reviewer can copy the right primary key into ``target_id``.
    """
    rows = []
    if not ambiguous.empty:
        for source_id, group in ambiguous.groupby("source_id", sort=False):
            first = group.iloc[0]
            rows.append(
                {
                    "label": template_label(first["source_name"], first.get("source_region_name"), source_id),
                    "source_id": source_id,
                    "target_id": "",
                    "note": "candidates: " + " | ".join(
                        f"{row['target_id']}={row['target_name']}" for _, row in group.iterrows()
                    ),
                }
            )
    seen = {row["source_id"] for row in rows}
    if not source_residual.empty:
        pending = source_residual[source_residual["reason"] != "error"]
        for _, row in pending.iterrows():
            if row["record_id"] in seen:
                continue
            rows.append(
                {
                    "label": template_label(row["name"], row.get("region_name"), row["record_id"]),
                    "source_id": row["record_id"],
                    "target_id": "",
                    "note": row["reason"],
                }
            )
    return pd.DataFrame(rows, columns=OVERRIDE_COLUMNS)
