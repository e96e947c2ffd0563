from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from linkage.models import SourceRecord, TargetRecord

DATA_DIR = Path(__file__).resolve().parents[1] / "data"


def src(record_id: str, name: str, region_code: Optional[str] = None, region_name: Optional[str] = None) -> SourceRecord:
    return SourceRecord(record_id=record_id, name=name, region_code=region_code, region_name=region_name)


def tgt(record_id: str, name: str, region_code: Optional[str] = None, region_name: Optional[str] = None) -> TargetRecord:
    return TargetRecord(record_id=record_id, name=name, region_code=region_code, region_name=region_name)


@pytest.fixture
def data_dir() -> Path:
    return DATA_DIR
