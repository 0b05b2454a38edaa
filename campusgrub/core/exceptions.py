# campusgrub/core/exceptions.py
"""
Domain exceptions for the order lifecycle.

Exception Hierarchy:
    OrderServiceError (base)
    ├── OrderNotFoundError      - no such order / notification (permanent)
    ├── ForbiddenError          - caller does not own the order (permanent)
    ├── InvalidTransitionError  - requested status is not a valid successor (permanent)
    ├── ConflictError           - order changed since the caller's last read
    ├── TransientIOError        - store temporarily unreachable (retryable)
    └── SubscriptionError       - realtime subscription could not be established

Permanent errors are surfaced to the UI as-is and never retried.
ConflictError requires the caller to re-fetch before retrying.
main.py maps every OrderServiceError to a JSON response via `status_code`.
"""

from typing import Any


class OrderServiceError(Exception):
    """
    Base exception for all order lifecycle errors.
    """

    status_code: int = 500
    code: str = "order_error"
    retryable: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class OrderNotFoundError(OrderServiceError):
    status_code = 404
    code = "not_found"


class ForbiddenError(OrderServiceError):
    status_code = 403
    code = "forbidden"


class InvalidTransitionError(OrderServiceError):
    """
    The requested status is not a direct successor of the current one.

    Raised with a message naming the violated rule, e.g.
    "order already delivered, cannot cancel".
    """

    status_code = 400
    code = "invalid_transition"


class ConflictError(OrderServiceError):
    """
    The order's status changed concurrently.

    The core never retries: the caller re-fetches and decides.
    """

    status_code = 409
    code = "conflict"


class TransientIOError(OrderServiceError):
    status_code = 503
    code = "transient_io"
    retryable = True


class SubscriptionError(OrderServiceError):
    """
    Realtime subscription failed to establish.

    Handled by the owning view controller, which keeps its last snapshot.
    """

    status_code = 503
    code = "subscription_failed"
    retryable = True
