import pytest

from campusgrub.core.exceptions import InvalidTransitionError
from campusgrub.services.order_status import (
    ACTIVE_STATUSES,
    STALE_CANDIDATE_STATUSES,
    TERMINAL_STATUSES,
    can_transition,
    ensure_transition,
    next_status,
    normalize_status,
    with_legacy,
)


# Tests: vocabulary

def test_terminal_and_active_partition_every_status():
    assert TERMINAL_STATUSES == {"delivered", "cancelled"}
    assert ACTIVE_STATUSES == {"pending", "preparing", "prepared", "delivering"}
    assert not TERMINAL_STATUSES & ACTIVE_STATUSES


def test_delivering_orders_are_not_stale_candidates():
    assert "delivering" not in STALE_CANDIDATE_STATUSES
    assert STALE_CANDIDATE_STATUSES == {"pending", "preparing", "prepared"}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Pending", "pending"),
        (" PREPARED ", "prepared"),
        ("accepted", "preparing"),
        ("Ready", "prepared"),
    ],
)
def test_normalize_status_migrates_case_and_legacy_names(raw, expected):
    assert normalize_status(raw) == expected


def test_normalize_status_rejects_unknown_values():
    with pytest.raises(ValueError):
        normalize_status("teleported")


def test_with_legacy_adds_old_aliases_for_sql_filters():
    assert with_legacy(frozenset({"preparing"})) == {"preparing", "accepted"}
    assert with_legacy(frozenset({"delivered"})) == {"delivered"}


# Tests: transitions

def test_next_status_walks_the_happy_path():
    path = ["pending"]
    while next_status(path[-1]) != path[-1]:
        path.append(next_status(path[-1]))
    assert path == ["pending", "preparing", "prepared", "delivering", "delivered"]


def test_next_status_of_terminal_is_itself():
    assert next_status("cancelled") == "cancelled"


@pytest.mark.parametrize("current", ["pending", "preparing", "prepared"])
def test_cancel_allowed_before_delivery_starts(current):
    assert can_transition(current, "cancelled")


def test_cannot_skip_a_step():
    assert not can_transition("preparing", "delivered")
    with pytest.raises(InvalidTransitionError) as exc:
        ensure_transition("preparing", "delivered")
    assert "preparing -> delivered" in exc.value.message
    assert exc.value.details["requested_status"] == "delivered"


def test_cancel_after_delivery_names_the_rule():
    with pytest.raises(InvalidTransitionError) as exc:
        ensure_transition("delivered", "cancelled")
    assert exc.value.message == "order already delivered, cannot cancel"


def test_delivering_order_can_no_longer_be_cancelled():
    with pytest.raises(InvalidTransitionError) as exc:
        ensure_transition("delivering", "cancelled")
    assert "can no longer be cancelled" in exc.value.message


def test_same_status_is_rejected():
    with pytest.raises(InvalidTransitionError) as exc:
        ensure_transition("prepared", "prepared")
    assert exc.value.message == "order is already prepared"
    assert exc.value.status_code == 400
    assert exc.value.retryable is False
