# campusgrub/services/order_status.py
"""
Canonical order lifecycle.

    pending -> preparing -> prepared -> delivering -> delivered
       |           |            |
       +-----------+------------+--> cancelled

`delivered` and `cancelled` are terminal. Rows written by older clients
may still carry the `accepted` / `ready` vocabulary; `normalize_status`
migrates them onto the canonical set.
"""

from typing import Literal

from campusgrub.core.exceptions import InvalidTransitionError

OrderStatus = Literal[
    "pending",
    "preparing",
    "prepared",
    "delivering",
    "delivered",
    "cancelled",
]

PENDING = "pending"
PREPARING = "preparing"
PREPARED = "prepared"
DELIVERING = "delivering"
DELIVERED = "delivered"
CANCELLED = "cancelled"

ORDER_STATUSES: tuple[str, ...] = (
    PENDING,
    PREPARING,
    PREPARED,
    DELIVERING,
    DELIVERED,
    CANCELLED,
)

TERMINAL_STATUSES = frozenset({DELIVERED, CANCELLED})
ACTIVE_STATUSES = frozenset(ORDER_STATUSES) - TERMINAL_STATUSES

# Statuses the stale-order reaper may force to delivered
STALE_CANDIDATE_STATUSES = frozenset({PENDING, PREPARING, PREPARED})

# The single "happy path" successor of each status
_NEXT: dict[str, str] = {
    PENDING: PREPARING,
    PREPARING: PREPARED,
    PREPARED: DELIVERING,
    DELIVERING: DELIVERED,
}

TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({PREPARING, CANCELLED}),
    PREPARING: frozenset({PREPARED, CANCELLED}),
    PREPARED: frozenset({DELIVERING, CANCELLED}),
    DELIVERING: frozenset({DELIVERED}),
    DELIVERED: frozenset(),
    CANCELLED: frozenset(),
}

LEGACY_STATUS_ALIASES: dict[str, str] = {
    "accepted": PREPARING,
    "ready": PREPARED,
}


def normalize_status(value: str) -> str:
    """
    Map a stored/requested status onto the canonical vocabulary.

    Raises:
        ValueError: if the value is not a known status.
    """
    status = value.strip().lower()
    status = LEGACY_STATUS_ALIASES.get(status, status)
    if status not in TRANSITIONS:
        raise ValueError(f"Unknown order status: {value!r}")
    return status


def with_legacy(statuses: frozenset[str]) -> frozenset[str]:
    """
    Stored values that mean one of `statuses`, for SQL IN filters
    over rows not yet migrated.
    """
    legacy = {old for old, new in LEGACY_STATUS_ALIASES.items() if new in statuses}
    return statuses | legacy


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def next_status(current: str) -> str:
    """
    Canonical successor of `current`, or `current` itself if terminal.
    """
    current = normalize_status(current)
    return _NEXT.get(current, current)


def can_transition(current: str, requested: str) -> bool:
    return requested in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, requested: str) -> None:
    """
    Validate a single edge of the state machine.

    Raises:
        InvalidTransitionError: with a message naming the violated rule.
    """
    if can_transition(current, requested):
        return

    details = {"current_status": current, "requested_status": requested}

    if is_terminal(current):
        verb = "cancel" if requested == CANCELLED else f"move to {requested}"
        raise InvalidTransitionError(
            f"order already {current}, cannot {verb}", details
        )

    if current == requested:
        raise InvalidTransitionError(f"order is already {current}", details)

    if requested == CANCELLED:
        raise InvalidTransitionError(
            f"order is {current}, it can no longer be cancelled", details
        )

    raise InvalidTransitionError(
        f"invalid status transition: {current} -> {requested} "
        f"(next allowed: {_NEXT.get(current, current)})",
        details,
    )
