"""Pruebas del almacén de resultados: deduplicación, eventos y bitácora.

Tests for the result store: dedup, events and audit log.
"""

import threading

import pytest

from vigia.publisher import EventKind
from vigia.schemas import InvalidPayload
from vigia.store import AuditLog, AuditEntry, ResultStore


def _payload(pd_code=None, sequence_number=None, votes=100, **extra):
    payload = {
        "ed_code": "ED1",
        "summary": {"valid": votes, "polled": votes},
        "by_party": [{"party_code": "A", "votes": votes}],
        **extra,
    }
    if pd_code is not None:
        payload["pd_code"] = pd_code
    if sequence_number is not None:
        payload["sequence_number"] = sequence_number
    return payload


def test_first_submission_inserts_record(store):
    outcome = store.submit(_payload("PD1", "0001"))

    assert outcome.is_override is False
    assert outcome.event.kind is EventKind.CREATED
    assert outcome.record["id"]
    assert outcome.record["createdAt"] == "2024-09-21T10:00:01.000Z"
    assert "updatedAt" not in outcome.record
    assert len(store) == 1


def test_same_pd_code_overrides_in_place(store):
    first = store.submit(_payload("PD1", "0001", votes=100))
    second = store.submit(_payload("PD1", "0002", votes=80))

    assert second.is_override is True
    assert second.record["id"] == first.record["id"]
    assert second.record["createdAt"] == first.record["createdAt"]
    assert second.record["updatedAt"]
    assert second.record["by_party"][0]["votes"] == 80
    assert len(store) == 1


def test_pd_code_has_priority_over_sequence_number(store):
    store.submit(_payload("PD1", "0001"))
    target = store.submit(_payload("PD2", "0002"))

    outcome = store.submit(_payload("PD2", "0001", votes=5))

    assert outcome.is_override is True
    assert outcome.record["id"] == target.record["id"]
    assert [record["pd_code"] for record in store.snapshot()] == ["PD1", "PD2"]


def test_sequence_number_fallback_without_pd_code(store):
    first = store.submit(_payload(sequence_number=42))
    outcome = store.submit(_payload(sequence_number="42", votes=7))

    assert outcome.is_override is True
    assert outcome.record["id"] == first.record["id"]


def test_sequence_fallback_never_moves_a_different_division(store):
    store.submit(_payload("PD1", "0001"))

    outcome = store.submit(_payload("PD9", "0001"))

    assert outcome.is_override is False
    assert len(store) == 2


def test_submission_without_keys_always_inserts(store):
    store.submit(_payload())
    store.submit(_payload())

    assert len(store) == 2


def test_override_preserves_unsubmitted_and_extra_fields(store):
    store.submit(_payload("PD1", "0001", reference="ref-1", custom_field="kept"))
    outcome = store.submit(_payload("PD1", "0001", votes=10))

    assert outcome.record["reference"] == "ref-1"
    assert outcome.record["custom_field"] == "kept"


def test_client_cannot_set_store_owned_fields(store):
    outcome = store.submit(_payload("PD1", id="forged", createdAt="1999-01-01T00:00:00Z"))

    assert outcome.record["id"] != "forged"
    assert outcome.record["createdAt"].startswith("2024-09-21")


def test_idempotent_resubmission_emits_override_each_time(store):
    outcomes = [store.submit(_payload("PD1", "0001")) for _ in range(3)]
    events = [outcome.event for outcome in outcomes]
    records = [outcome.record for outcome in outcomes]

    assert [event.kind for event in events] == [EventKind.CREATED, EventKind.OVERRIDDEN, EventKind.OVERRIDDEN]
    assert [event.sequence for event in events] == [1, 2, 3]
    assert len(store) == 1
    assert len({record["id"] for record in records}) == 1
    assert len({record["createdAt"] for record in records}) == 1
    assert all(record["by_party"] == records[0]["by_party"] for record in records)
    assert all(record["summary"] == records[0]["summary"] for record in records)
    assert "updatedAt" not in records[0]
    assert records[1]["updatedAt"] != records[2]["updatedAt"]
    assert store.snapshot() == [records[2]]


def test_invalid_payload_is_rejected_without_mutation(store):
    with pytest.raises(InvalidPayload):
        store.submit({"pd_code": "PD1", "summary": {}})

    assert len(store) == 0
    entry = store.audit.entries()[-1]
    assert entry.outcome == "rejected"
    assert entry.pd_code == "PD1"
    assert entry.error


def test_snapshot_returns_deep_copies(store):
    store.submit(_payload("PD1"))
    snapshot = store.snapshot()
    snapshot[0]["by_party"][0]["votes"] = 999

    assert store.snapshot()[0]["by_party"][0]["votes"] == 100


def test_get_returns_copy_by_id(store):
    outcome = store.submit(_payload("PD1"))

    assert store.get(outcome.record["id"])["pd_code"] == "PD1"
    assert store.get("missing") is None


def test_concurrent_submissions_for_same_division_are_serialized():
    """Dos envíos simultáneos: un alta y una sobrescritura.

    English: Two concurrent submissions become one insert and one override.
    """
    store = ResultStore()
    barrier = threading.Barrier(2)
    outcomes = []

    def worker(votes):
        barrier.wait()
        outcomes.append(store.submit(_payload("PD1", votes=votes)))

    threads = [threading.Thread(target=worker, args=(votes,)) for votes in (10, 20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(store) == 1
    assert sorted(outcome.is_override for outcome in outcomes) == [False, True]


def test_audit_records_every_outcome(store):
    store.submit(_payload("PD1"))
    store.submit(_payload("PD1"))
    with pytest.raises(InvalidPayload):
        store.submit("not json")

    outcomes = [entry.outcome for entry in store.audit.entries()]
    assert outcomes == ["created", "overridden", "rejected"]


def test_audit_log_is_bounded():
    log = AuditLog(max_entries=2)
    for index in range(3):
        log.append(AuditEntry(timestamp=str(index), outcome="created"))

    assert len(log) == 2
    assert [entry.timestamp for entry in log.entries()] == ["1", "2"]
    assert [entry.timestamp for entry in log.entries(limit=1)] == ["2"]


def test_audit_order_follows_event_sequence_under_concurrency():
    store = ResultStore()
    barrier = threading.Barrier(8)

    def worker(index):
        barrier.wait()
        for round_number in range(10):
            store.submit(_payload(f"PD{index % 3}", votes=round_number))

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    sequences = [entry.sequence for entry in store.audit.entries()]
    assert sequences == list(range(1, 81))
