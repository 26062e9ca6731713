"""
Order State Manager
===================

Finite state machine governing all valid order status transitions. Every
status change MUST go through ``validate_transition`` before being persisted.

State machine overview::

    PENDING --> PROCESSING --> IN_PROGRESS --> COMPLETED

    PENDING / PROCESSING / IN_PROGRESS --> CANCELLED

COMPLETED and CANCELLED are terminal.

Guards enforce that only the correct actor type can trigger certain
transitions: staff confirm and dispatch, the customer confirms completion,
and the system may do anything the table allows (expiry voiding, webhooks).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from src.models.order import OrderStatus


# ---------------------------------------------------------------------------
# Actor types for guard enforcement
# ---------------------------------------------------------------------------

class ActorType(str, enum.Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    SYSTEM = "system"


# ---------------------------------------------------------------------------
# Transition guard result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionResult:
    """Result of a transition validation attempt."""
    allowed: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Transition definitions
# ---------------------------------------------------------------------------

# Each key is the current status, and the value is a set of statuses it can
# transition to. Guards are checked separately.
VALID_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.IN_PROGRESS,
        OrderStatus.CANCELLED,
    },
    OrderStatus.IN_PROGRESS: {
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    # Terminal states
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

# Position along the forward path; used to assert monotonicity.
STATUS_RANK: dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.PROCESSING: 1,
    OrderStatus.IN_PROGRESS: 2,
    OrderStatus.COMPLETED: 3,
    OrderStatus.CANCELLED: 3,
}

# Statuses in which the customer can still cancel on their own
_CUSTOMER_CANCELLABLE: frozenset[OrderStatus] = frozenset({
    OrderStatus.PENDING,
})

_STAFF_ACTORS: frozenset[ActorType] = frozenset({ActorType.STAFF, ActorType.SYSTEM})
_COMPLETING_ACTORS: frozenset[ActorType] = frozenset({ActorType.CUSTOMER, ActorType.SYSTEM})


# ---------------------------------------------------------------------------
# Guard functions
# ---------------------------------------------------------------------------

def _guard_staff_only(actor_type: ActorType, action: str) -> TransitionResult:
    if actor_type not in _STAFF_ACTORS:
        return TransitionResult(
            allowed=False,
            reason=f"Only staff can {action}.",
        )
    return TransitionResult(allowed=True)


def _guard_complete(actor_type: ActorType) -> TransitionResult:
    """Completion is confirmed by the customer (or the system on their behalf)."""
    if actor_type not in _COMPLETING_ACTORS:
        return TransitionResult(
            allowed=False,
            reason="COMPLETED is set by the customer verification step.",
        )
    return TransitionResult(allowed=True)


def _guard_cancel(current: OrderStatus, actor_type: ActorType) -> TransitionResult:
    """Customers may only cancel before staff confirmed the order."""
    if actor_type == ActorType.CUSTOMER and current not in _CUSTOMER_CANCELLABLE:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Customer cannot cancel an order in '{current.value}' status. "
                f"Cancellation by customer is only allowed in: "
                f"{', '.join(s.value for s in sorted(_CUSTOMER_CANCELLABLE, key=lambda s: s.value))}."
            ),
        )
    return TransitionResult(allowed=True)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_transition(
    current_status: OrderStatus,
    new_status: OrderStatus,
    actor_type: ActorType = ActorType.SYSTEM,
) -> TransitionResult:
    """Validate whether an order status transition is allowed.

    Checks two layers:
    1. Is the transition structurally valid per the state machine?
    2. Does the actor have permission for this specific transition (guards)?

    Returns a ``TransitionResult`` with ``allowed=True`` if the transition
    is permitted, or ``allowed=False`` with a human-readable ``reason``.
    """
    # 1. Structural check
    allowed_targets = VALID_TRANSITIONS.get(current_status, set())
    if new_status not in allowed_targets:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Invalid transition: '{current_status.value}' -> '{new_status.value}'. "
                f"Allowed transitions from '{current_status.value}': "
                f"{', '.join(s.value for s in sorted(allowed_targets, key=lambda s: s.value)) or 'none'}."
            ),
        )

    # 2. Guard checks for specific transitions
    if new_status == OrderStatus.PROCESSING:
        return _guard_staff_only(actor_type, "confirm an order")

    if new_status == OrderStatus.IN_PROGRESS:
        return _guard_staff_only(actor_type, "dispatch a cleaner")

    if new_status == OrderStatus.COMPLETED:
        return _guard_complete(actor_type)

    if new_status == OrderStatus.CANCELLED:
        return _guard_cancel(current_status, actor_type)

    return TransitionResult(allowed=True)


def get_valid_transitions(
    current_status: OrderStatus,
    actor_type: ActorType = ActorType.SYSTEM,
) -> list[OrderStatus]:
    """Return the list of statuses that the given actor can transition to
    from the current status.

    Useful for UI hints (e.g. showing available actions to staff).
    """
    candidates = VALID_TRANSITIONS.get(current_status, set())
    valid: list[OrderStatus] = []
    for target in candidates:
        result = validate_transition(current_status, target, actor_type)
        if result.allowed:
            valid.append(target)
    return sorted(valid, key=lambda s: s.value)
