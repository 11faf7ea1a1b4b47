"""Tests for src/offline/models.py — action payloads and status machine."""

import pytest
from pydantic import ValidationError

from src.offline.models import (
    QUEUE_ADAPTER,
    ActionType,
    CrimePayload,
    HeistPayload,
    PropertyPayload,
    QueuedAction,
    SubmissionResult,
    SyncStatus,
    build_payload,
)


def make_action(**overrides):
    fields = {
        "id": "a1",
        "type": ActionType.HEIST,
        "payload": HeistPayload(heist_id=3),
        "enqueued_at": 100.0,
    }
    fields.update(overrides)
    return QueuedAction(**fields)


class TestBuildPayload:
    def test_crime(self):
        payload = build_payload("crime", {"crime_id": "mug", "mini_game_result": {"score": 3}})

        assert isinstance(payload, CrimePayload)
        assert payload.mini_game_result == {"score": 3}

    def test_property(self):
        payload = build_payload(ActionType.PROPERTY, {"operation": "upgrade", "property_id": 12})

        assert isinstance(payload, PropertyPayload)
        assert payload.operation == "upgrade"

    def test_action_type_wins_over_payload_type(self):
        payload = build_payload("heist", {"type": "crime", "heist_id": "bank"})

        assert isinstance(payload, HeistPayload)

    def test_accepts_model_instance(self):
        assert build_payload("heist", HeistPayload(heist_id=1)).heist_id == 1

    def test_missing_field_rejected(self):
        with pytest.raises(ValidationError):
            build_payload("heist", {})

    def test_empty_operation_rejected(self):
        with pytest.raises(ValidationError):
            build_payload("property", {"operation": "", "property_id": 1})

    def test_unknown_action_type(self):
        with pytest.raises(ValueError):
            build_payload("arson", {})


class TestQueuedAction:
    def test_defaults(self):
        action = make_action()

        assert action.status == SyncStatus.PENDING
        assert action.attempts == 0
        assert action.local_result == {}
        assert not action.is_terminal

    def test_payload_must_match_type(self):
        with pytest.raises(ValidationError):
            make_action(type=ActionType.CRIME)

    def test_negative_attempts_rejected(self):
        with pytest.raises(ValidationError):
            make_action(attempts=-1)

    def test_age(self):
        assert make_action().age(160.0) == 60.0

    def test_legal_transitions(self):
        action = make_action()
        action.advance(SyncStatus.SYNCING)
        action.advance(SyncStatus.PENDING)
        action.advance(SyncStatus.SYNCING)
        action.advance(SyncStatus.ADJUSTED)

        assert action.is_terminal

    @pytest.mark.parametrize(
        "start,target",
        [
            (SyncStatus.PENDING, SyncStatus.SYNCED),
            (SyncStatus.PENDING, SyncStatus.REJECTED),
            (SyncStatus.SYNCED, SyncStatus.PENDING),
            (SyncStatus.REJECTED, SyncStatus.SYNCING),
        ],
    )
    def test_illegal_transitions(self, start, target):
        action = make_action(status=start)

        with pytest.raises(ValueError):
            action.advance(target)

    def test_queue_serialization_keeps_payload_variant(self):
        queue = [
            make_action(),
            make_action(
                id="a2",
                type=ActionType.CRIME,
                payload=CrimePayload(crime_id=7),
                status=SyncStatus.ADJUSTED,
                reconciliation={"serverDiffered": True},
            ),
        ]

        restored = QUEUE_ADAPTER.validate_json(QUEUE_ADAPTER.dump_json(queue))

        assert restored == queue
        assert isinstance(restored[1].payload, CrimePayload)


class TestSubmissionResult:
    def test_adjustments_from_reconciliation(self):
        result = SubmissionResult(reconciliation={"adjustments": {"cash": -40}})

        assert result.adjustments == {"cash": -40}

    def test_no_reconciliation(self):
        assert SubmissionResult().adjustments is None
