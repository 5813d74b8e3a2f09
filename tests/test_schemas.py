"""Pruebas de validación de envíos.

Tests for submission validation.
"""

import json

import pytest

from vigia.schemas import InvalidPayload, validate_submission


def test_minimal_payload_is_accepted():
    submission = validate_submission({"summary": {}, "by_party": []})

    assert submission.dedup_pd_code is None
    assert submission.dedup_sequence_number is None
    assert submission.to_record_fields() == {"summary": {}, "by_party": []}


@pytest.mark.parametrize(
    "payload",
    [
        {"by_party": []},
        {"summary": {}},
        {"summary": [], "by_party": []},
        {"summary": {}, "by_party": {}},
    ],
)
def test_missing_summary_or_by_party_is_rejected(payload):
    with pytest.raises(InvalidPayload):
        validate_submission(payload)


@pytest.mark.parametrize(
    "payload",
    [
        {"summary": {"valid": -1}, "by_party": []},
        {"summary": {"valid": "many"}, "by_party": []},
        {"summary": {}, "by_party": [{"party_code": "A", "votes": -5}]},
        {"summary": {}, "by_party": ["A"]},
        {"summary": {}, "by_party": [{"votes": 3}]},
        {"summary": {}, "by_party": [{"party_code": "A"}, {"party_code": "A"}]},
    ],
)
def test_malformed_shapes_are_rejected(payload):
    with pytest.raises(InvalidPayload):
        validate_submission(payload)


def test_legacy_camel_case_keys_are_migrated():
    submission = validate_submission(
        {"pdCode": "PD1", "sequenceNumber": 7, "edCode": "ED1", "summary": {}, "byParty": []}
    )
    fields = submission.to_record_fields()

    assert fields["pd_code"] == "PD1"
    assert fields["sequence_number"] == "7"
    assert fields["ed_code"] == "ED1"
    assert "pdCode" not in fields


def test_unknown_fields_are_preserved():
    submission = validate_submission({"summary": {"custom": 1}, "by_party": [], "source": "fax"})
    fields = submission.to_record_fields()

    assert fields["source"] == "fax"
    assert fields["summary"] == {"custom": 1}


def test_raw_json_bytes_are_parsed():
    raw = json.dumps({"pd_code": " PD1 ", "summary": {}, "by_party": []}).encode("utf-8")

    assert validate_submission(raw).dedup_pd_code == "PD1"


def test_invalid_payload_carries_context():
    with pytest.raises(InvalidPayload) as excinfo:
        validate_submission({"pd_code": "PD1", "sequence_number": "9", "summary": {"polled": -1}, "by_party": []})

    assert excinfo.value.pd_code == "PD1"
    assert excinfo.value.sequence_number == "9"
    assert "summary.polled" in str(excinfo.value)


@pytest.mark.parametrize("raw", [b"not json", "[1, 2]", b"\xff\xfe"])
def test_non_object_payload_is_rejected(raw):
    with pytest.raises(InvalidPayload):
        validate_submission(raw)


def test_numeric_provenance_fields_are_kept_as_submitted():
    submission = validate_submission(
        {
            "pd_code": "PD1",
            "timestamp": 1726912800,
            "reference": 12345,
            "type": 1,
            "pd_name": 7,
            "summary": {},
            "by_party": [{"party_code": "A", "party_name": 3, "votes": 1}],
        }
    )
    fields = submission.to_record_fields()

    assert fields["timestamp"] == 1726912800
    assert fields["reference"] == 12345
    assert fields["type"] == 1
    assert fields["pd_name"] == 7
    assert fields["by_party"][0]["party_name"] == 3
