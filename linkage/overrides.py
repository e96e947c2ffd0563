"""Hand-maintained source -> target links that bypass automatic matching."""
from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

import pandas as pd

from linkage.errors import AmbiguousOverride
from linkage.models import Override, SourceRecord, TargetRecord

OVERRIDE_COLUMNS = ["label", "source_id", "target_id", "note"]
REQUIRED_COLUMNS = ["label", "source_id", "target_id"]


class OverrideTable:
    """Append-only table of manual links keyed by source id and by label.

    Labels are free text kept for traceability; lookups resolve to the
    target table's primary key, never to a display name. Several source ids
    may point at the same target (boroughs of a consolidated city), but a
    label or a source id may appear only once.
    """

    def __init__(self, entries: Iterable[Override] = ()) -> None:
        self._entries: List[Override] = []
        self._by_label: Dict[str, Override] = {}
        self._by_source: Dict[str, Override] = {}
        for entry in entries:
            self._add(entry)

    def _add(self, entry: Override) -> None:
        blank = [name for name in REQUIRED_COLUMNS if not getattr(entry, name).strip()]
        if blank:
            raise AmbiguousOverride(f"Override {entry!r} has blank {', '.join(blank)}")
        if entry.label in self._by_label:
            raise AmbiguousOverride(f"Duplicate override label: {entry.label!r}")
        existing = self._by_source.get(entry.source_id)
        if existing is not None:
            raise AmbiguousOverride(
                f"Source id {entry.source_id!r} overridden twice ({existing.label!r}, {entry.label!r})"
            )
        self._entries.append(entry)
        self._by_label[entry.label] = entry
        self._by_source[entry.source_id] = entry

    def append(self, entry: Override) -> "OverrideTable":
        return OverrideTable([*self._entries, entry])

    def __iter__(self) -> Iterator[Override]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._by_source

    def by_source(self, source_id: str) -> Optional[Override]:
        return self._by_source.get(source_id)

    def by_label(self, label: str) -> Optional[Override]:
        return self._by_label.get(label)

    def sources_for_target(self, target_id: str) -> List[str]:
        return [entry.source_id for entry in self._entries if entry.target_id == target_id]

    def validate(self, sources: Sequence[SourceRecord], targets: Sequence[TargetRecord]) -> None:
        """Raise :class:`AmbiguousOverride` if an entry names an unknown id."""
        source_ids = {record.record_id for record in sources}
        target_ids = {record.record_id for record in targets}
        problems = []
        for entry in self._entries:
            if entry.source_id not in source_ids:
                problems.append(f"{entry.label!r}: unknown source id {entry.source_id!r}")
            if entry.target_id not in target_ids:
                problems.append(f"{entry.label!r}: unknown target id {entry.target_id!r}")
        if problems:
            raise AmbiguousOverride("Invalid overrides: " + "; ".join(problems))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [[entry.label, entry.source_id, entry.target_id, entry.note] for entry in self._entries],
            columns=OVERRIDE_COLUMNS,
        )

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "OverrideTable":
        missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            raise AmbiguousOverride(f"Override table missing columns: {missing}")
        duplicated = [label for label, count in Counter(df["label"].astype(str).str.strip()).items() if count > 1]
        if duplicated:
            raise AmbiguousOverride(f"Duplicate override labels: {sorted(duplicated)}")
        entries = []
        for _, row in df.iterrows():
            entries.append(
                Override(
                    label=str(row["label"]).strip(),
                    source_id=str(row["source_id"]).strip(),
                    target_id=str(row["target_id"]).strip(),
                    note=str(row["note"]).strip() if "note" in row else "",
                )
            )
        return cls(entries)

    @classmethod
    def from_csv(cls, path: Path) -> "OverrideTable":
        if not path.exists():
            raise AmbiguousOverride(f"Override file not found: {path}")
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
        return cls.from_frame(df)
