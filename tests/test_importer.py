"""Pruebas de la preparación de archivos de importación.

Tests for staging import files.
"""

import json

import pytest

from vigia.importer import MalformedImport, missing_metadata, parse_import, stage_files


def _write(path, data):
    path.write_text(json.dumps(data) if not isinstance(data, str) else data, encoding="utf-8")
    return path


def test_parse_import_fills_template():
    payload = parse_import("a.json", json.dumps({"pd_code": "PD1", "summary": {"polled": 5}}))

    assert payload["pd_code"] == "PD1"
    assert payload["type"] == "PRESIDENTIAL-FIRST"
    assert payload["summary"]["polled"] == 5
    assert payload["summary"]["valid"] == 0
    assert payload["by_party"] == []


@pytest.mark.parametrize("text", ["{", "[1]"])
def test_parse_import_rejects_bad_json(text):
    with pytest.raises(MalformedImport) as excinfo:
        parse_import("bad.json", text)

    assert excinfo.value.name == "bad.json"
    assert excinfo.value.reason.startswith("Parse error")


def test_missing_metadata_lists_empty_fields():
    payload = parse_import("a.json", json.dumps({"pd_code": "PD1"}))

    missing = missing_metadata(payload)

    assert "pd_code" not in missing
    assert "ed_code" in missing
    assert missing[-1] == "by_party"


def test_stage_files_isolates_bad_files(tmp_path):
    good = _write(tmp_path / "good.json", {"pd_code": "PD1", "by_party": [{"party_code": "A", "votes": 3}]})
    bad = _write(tmp_path / "bad.json", "{not json")

    staged = stage_files([good, bad, tmp_path / "missing.json"])

    assert [item.status for item in staged.items] == ["pending", "invalid", "invalid"]
    assert staged.items[0].payload["by_party"][0]["percentage"] == 100.0
    assert staged.items[1].payload is None
    assert len(staged.errors) == 2


def test_stage_files_without_auto_calc_keeps_percentages(tmp_path):
    path = _write(tmp_path / "a.json", {"by_party": [{"party_code": "A", "votes": 3, "percentage": 12}]})

    staged = stage_files([path], auto_calc=False)

    assert staged.items[0].payload["by_party"][0]["percentage"] == 12


def test_strict_mode_requires_metadata(tmp_path):
    path = _write(tmp_path / "a.json", {"pd_code": "PD1"})

    staged = stage_files([path], strict=True)

    assert staged.items[0].status == "invalid"
    assert "Missing fields" in staged.errors[0].reason
