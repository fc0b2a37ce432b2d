"""
Tests for `domain/fulfillment_state.py`.

Covers contract rules:
- State is read from the status column, falling back to legacy metadata flags.
- A `fulfilled` flag always wins.
- Claims go stale after the claim timeout.
- Metadata helpers never drop unrelated keys.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from domain.fulfillment_state import (
    FulfillmentState,
    FulfillmentStatus,
    claim_metadata,
    fulfilled_metadata,
    rollback_metadata,
)

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
TIMEOUT = timedelta(minutes=15)


def test_empty_record_is_unfulfilled() -> None:
    state = FulfillmentState.from_record(None, None)

    assert state.status is FulfillmentStatus.UNFULFILLED
    assert not state.is_fulfilled


def test_legacy_flags_are_understood() -> None:
    """Verify rows written before the status column existed still parse."""

    fulfilling = FulfillmentState.from_record(
        None, {"fulfilling": True, "fulfillingStartedAt": "2025-01-01T11:59:00Z"}
    )
    failed = FulfillmentState.from_record(
        None, {"fulfillingError": {"message": "boom", "at": "2025-01-01T11:00:00Z"}}
    )

    assert fulfilling.status is FulfillmentStatus.FULFILLING
    assert fulfilling.started_at == datetime(2025, 1, 1, 11, 59, tzinfo=timezone.utc)
    assert failed.status is FulfillmentStatus.FAILED_ROLLBACK
    assert failed.error == "boom"


def test_fulfilled_flag_wins_over_status_column() -> None:
    state = FulfillmentState.from_record("fulfilling", {"fulfilled": True})

    assert state.is_fulfilled


def test_claim_goes_stale_after_timeout() -> None:
    fresh = FulfillmentState(FulfillmentStatus.FULFILLING, started_at=NOW - timedelta(minutes=1))
    stale = FulfillmentState(FulfillmentStatus.FULFILLING, started_at=NOW - timedelta(hours=1))

    assert fresh.claim_is_active(NOW, TIMEOUT)
    assert not stale.claim_is_active(NOW, TIMEOUT)
    assert not FulfillmentState().claim_is_active(NOW, TIMEOUT)


def test_metadata_transitions_keep_unrelated_keys() -> None:
    original = {"source": "stripe", "utm": {"campaign": "launch"}}

    claimed = claim_metadata(original, NOW)
    done = fulfilled_metadata(
        claimed,
        fulfilled_at=NOW,
        email_sent=True,
        github_access=False,
        access_credentials={"licenseKey": "PRO-1"},
        github_username=None,
    )
    released = rollback_metadata(claimed, error_message="boom", failed_at=NOW)

    assert claimed["fulfilling"] is True
    assert claimed["source"] == "stripe"
    assert done["fulfilled"] is True
    assert done["fulfilling"] is False
    assert done["utm"] == {"campaign": "launch"}
    assert released["fulfilling"] is False
    assert "fulfilled" not in released
    assert released["fulfillingError"]["message"] == "boom"
    assert released["source"] == "stripe"
    assert "fulfilling" not in original


def test_unknown_status_column_falls_back_to_flags() -> None:
    """Verify an unrecognised column value does not make the row unreadable."""

    claimed = FulfillmentState.from_record(
        "paused", {"fulfilling": True, "fulfillingStartedAt": "2025-01-01T11:59:00Z"}
    )
    plain = FulfillmentState.from_record("paused", {})

    assert claimed.status is FulfillmentStatus.FULFILLING
    assert claimed.started_at == datetime(2025, 1, 1, 11, 59, tzinfo=timezone.utc)
    assert plain.status is FulfillmentStatus.UNFULFILLED
