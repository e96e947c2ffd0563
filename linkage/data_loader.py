"""Read source and target tables into records."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Type, TypeVar

import pandas as pd

from linkage.errors import MalformedInput, MatchingError
from linkage.models import REASON_ERROR, EntityRecord, ResidualRecord, SourceRecord, TargetRecord

LOGGER = logging.getLogger("city_linkage")

RecordT = TypeVar("RecordT", bound=EntityRecord)


@dataclass(frozen=True)
class ColumnMapping:
    """Which input columns feed the record's id, name and region fields."""

    id_col: str = "id"
    name_col: str = "name"
    region_code_col: Optional[str] = "region_code"
    region_name_col: Optional[str] = "region_name"

    def required(self) -> List[str]:
        columns = [self.id_col, self.name_col]
        for col in (self.region_code_col, self.region_name_col):
            if col:
                columns.append(col)
        return columns

    def model_columns(self) -> Set[str]:
        return set(self.required())


def load_table(path: Path, sheet: Optional[str] = None, mapping: Optional[ColumnMapping] = None) -> pd.DataFrame:
    if not path.exists():
        raise MatchingError(f"File not found: {path}")
    suffix = path.suffix.lower()
    if suffix in {".csv", ".txt"}:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    elif suffix in {".tsv", ".tab"}:
        df = pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False)
    elif suffix in {".xlsx", ".xlsm", ".xls"}:
        read_kwargs: Dict[str, Any] = {"dtype": str, "keep_default_na": False}
        if sheet:
            read_kwargs["sheet_name"] = sheet
        df = pd.read_excel(path, **read_kwargs)
    else:
        raise MatchingError(f"Unsupported file format: {path.suffix}")
    if mapping is not None:
        missing = [col for col in mapping.required() if col not in df.columns]
        if missing:
            raise MatchingError(f"Missing columns in {path}: {missing}")
    return df


def _cell(row: pd.Series, column: Optional[str]) -> Optional[str]:
    if not column or column not in row:
        return None
    value = row[column]
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text or None


def record_from_row(
    row: pd.Series,
    mapping: ColumnMapping,
    record_type: Type[RecordT],
    row_number: Optional[int] = None,
) -> RecordT:
    record_id = _cell(row, mapping.id_col)
    if record_id is None:
        raise MalformedInput(f"row {row_number}: missing {mapping.id_col!r}", row_number=row_number)
    name = _cell(row, mapping.name_col)
    if name is None:
        raise MalformedInput(
            f"row {row_number}: missing {mapping.name_col!r} for id {record_id!r}",
            row_number=row_number,
            record_id=record_id,
        )
    skip = mapping.model_columns()
    payload = {str(col): row[col] for col in row.index if col not in skip}
    return record_type(
        record_id=record_id,
        name=name,
        region_code=_cell(row, mapping.region_code_col),
        region_name=_cell(row, mapping.region_name_col),
        payload=payload,
    )


def frame_to_records(
    df: pd.DataFrame,
    mapping: ColumnMapping,
    record_type: Type[RecordT],
    logger: Optional[logging.Logger] = None,
) -> Tuple[List[RecordT], List[ResidualRecord]]:
    """Convert rows to records, setting malformed rows aside.

    Rows with a blank id or name, and repeats of an id already seen, are
    logged and returned as ``error`` residuals; the remaining rows still load.
    An error residual keeps its row's id only when no other row (loaded or
    malformed) claims that id, otherwise it is keyed ``row:N``.
    """
    logger = logger or LOGGER
    records: List[RecordT] = []
    failures: List[Tuple[int, pd.Series, MalformedInput]] = []
    seen: Set[str] = set()
    for position, (_, row) in enumerate(df.iterrows(), start=1):
        try:
            record = record_from_row(row, mapping, record_type, row_number=position)
            if record.record_id in seen:
                raise MalformedInput(
                    f"row {position}: duplicate id {record.record_id!r}",
                    row_number=position,
                )
        except MalformedInput as exc:
            logger.warning("Skipping malformed %s row: %s", record_type.side, exc)
            failures.append((position, row, exc))
            continue
        seen.add(record.record_id)
        records.append(record)

    errors: List[ResidualRecord] = []
    claimed = set(seen)
    for position, row, exc in failures:
        record_id = exc.record_id
        if record_id is None or record_id in claimed:
            record_id = f"row:{position}"
        claimed.add(record_id)
        errors.append(
            ResidualRecord(
                record_id=record_id,
                side=record_type.side,
                reason=REASON_ERROR,
                name=_cell(row, mapping.name_col) or "",
                region_code=_cell(row, mapping.region_code_col),
                region_name=_cell(row, mapping.region_name_col),
                detail=str(exc),
            )
        )
    return records, errors


def load_sources(
    path: Path,
    mapping: ColumnMapping,
    sheet: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> Tuple[List[SourceRecord], List[ResidualRecord]]:
    return frame_to_records(load_table(path, sheet, mapping), mapping, SourceRecord, logger)


def load_targets(
    path: Path,
    mapping: ColumnMapping,
    sheet: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> Tuple[List[TargetRecord], List[ResidualRecord]]:
    return frame_to_records(load_table(path, sheet, mapping), mapping, TargetRecord, logger)
