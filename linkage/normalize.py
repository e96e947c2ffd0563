"""Canonical forms for the text fields compared across the two tables."""
from __future__ import annotations

import dataclasses
import unicodedata
from typing import Callable, List, Optional, Sequence, TypeVar

import regex

from linkage.models import EntityRecord

SPACE_PATTERN = regex.compile(r"[\s\u00A0\u2000-\u200F\u202F\u205F\u3000]+")
FLOAT_CODE_PATTERN = regex.compile(r"^(\d+)\.0+$")
# Legal/statistical area descriptions appended to Census place names.
PLACE_SUFFIX_PATTERN = regex.compile(
    r"\s+(?:city and borough|(?:consolidated|metropolitan|metro|unified) government|urban county"
    r"|city|town|village|borough|municipality|township|cdp|comunidad|zona urbana)"
    r"(?:\s+\(balance\))?$"
)

TEXT_FIELDS = ("name", "region_name")

RecordT = TypeVar("RecordT", bound=EntityRecord)
KeyFunction = Callable[[EntityRecord], str]


def normalize_text(value: Optional[object]) -> Optional[str]:
    """Case-fold and collapse whitespace; blank values become ``None``."""
    if value is None:
        return None
    text = unicodedata.normalize("NFC", str(value))
    text = SPACE_PATTERN.sub(" ", text).strip()
    if not text:
        return None
    return unicodedata.normalize("NFC", text.casefold())


def normalize_region_code(value: Optional[object], width: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    code = SPACE_PATTERN.sub("", str(value))
    if not code:
        return None
    float_match = FLOAT_CODE_PATTERN.match(code)
    if float_match:
        code = float_match.group(1)
    if width and code.isdigit():
        code = code.zfill(width)
    return code


def normalize_record(
    record: RecordT,
    fields: Sequence[str] = TEXT_FIELDS,
    region_code_width: Optional[int] = None,
) -> RecordT:
    changes = {}
    for name in fields:
        if name == "region_code":
            changes[name] = normalize_region_code(record.region_code, region_code_width)
        elif name == "name":
            changes[name] = normalize_text(record.name) or ""
        else:
            changes[name] = normalize_text(getattr(record, name))
    if "region_code" not in fields and region_code_width:
        changes["region_code"] = normalize_region_code(record.region_code, region_code_width)
    return dataclasses.replace(record, **changes)


def normalize_records(
    records: Sequence[RecordT],
    fields: Sequence[str] = TEXT_FIELDS,
    region_code_width: Optional[int] = None,
) -> List[RecordT]:
    """Return normalized copies of ``records``.

    Parameters
    ----------
    records:
        Source or target records. They are not modified; ids and payload are
        carried over untouched.
    fields:
        Record attributes to canonicalise. ``region_code`` is cleaned with
        :func:`normalize_region_code`, every other field with
        :func:`normalize_text`.
    region_code_width:
        When set, numeric region codes are left-padded with zeros to this
        width even if ``region_code`` is not listed in ``fields``.

    Applying the function to its own output returns an equal collection.
    """
    return [normalize_record(record, fields, region_code_width) for record in records]


def name_key(record: EntityRecord) -> str:
    return record.name or ""


def place_key(record: EntityRecord) -> str:
    """Name with a trailing Census place description removed ("boston city" -> "boston")."""
    name = record.name or ""
    stripped = PLACE_SUFFIX_PATTERN.sub("", name).strip()
    return stripped or name


KEY_FUNCTIONS = {
    "name": name_key,
    "place": place_key,
}
