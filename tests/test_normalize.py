from linkage.models import SourceRecord, TargetRecord
from linkage.normalize import normalize_records, normalize_region_code, normalize_text, place_key

from conftest import tgt


def test_normalize_text_casefolds_and_collapses_whitespace() -> None:
    assert normalize_text("  New    YORK ") == "new york"
    assert normalize_text("Straße") == "strasse"
    assert normalize_text("   ") is None
    assert normalize_text(None) is None


def test_normalizing_twice_equals_normalizing_once() -> None:
    records = [
        SourceRecord("1", "  SAN   Francisco ", "6075", " California ", {"population": "776733"}),
        SourceRecord("2", "Coeur d'Alene", "16055.0", "IDAHO"),
        SourceRecord("3", "Anchorage", None, None),
    ]
    fields = ("name", "region_name", "region_code")
    once = normalize_records(records, fields, region_code_width=5)
    twice = normalize_records(once, fields, region_code_width=5)

    assert once == twice
    assert once[0].name == "san francisco"
    assert once[0].region_code == "06075"
    assert once[0].region_name == "california"
    assert once[1].region_code == "16055"
    assert once[2].region_code is None


def test_ids_payload_and_undesignated_fields_are_untouched() -> None:
    record = TargetRecord("0644000", "Los Angeles city", "6037", "California", {"LSAD": "25"})
    (normalized,) = normalize_records([record])

    assert normalized.record_id == "0644000"
    assert normalized.payload == {"LSAD": "25"}
    assert normalized.region_code == "6037"
    assert normalized.name == "los angeles city"
    assert record.name == "Los Angeles city"
    assert isinstance(normalized, TargetRecord)


def test_region_code_cleanup() -> None:
    assert normalize_region_code("6037.0", 5) == "06037"
    assert normalize_region_code(" 06 037 ") == "06037"
    assert normalize_region_code("CA-1", 5) == "CA-1"
    assert normalize_region_code("") is None


def test_place_key_strips_census_description() -> None:
    assert place_key(tgt("1", "boston city")) == "boston"
    assert place_key(tgt("2", "nashville-davidson metropolitan government (balance)")) == "nashville-davidson"
    assert place_key(tgt("3", "urban honolulu cdp")) == "urban honolulu"
    assert place_key(tgt("4", "indianapolis city (balance)")) == "indianapolis"
    assert place_key(tgt("5", "city")) == "city"
