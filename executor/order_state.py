"""
Snipe order state machine.

State flow:
- PENDING: resting limit order, initial state
- FILLED: fill inferred from market price crossing the limit
- CANCELLED: cancelled on explicit operator command
- EXPIRED: cancelled by the timeout sweep

Every state except PENDING is terminal. A terminal order is never mutated.
"""

from __future__ import annotations

import logging

from scanner.models import OrderStatus

logger = logging.getLogger(__name__)


# Valid state transitions: {from_state: set[valid_to_states]}
_VALID_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.EXPIRED},
    OrderStatus.FILLED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.EXPIRED: set(),
}


def can_transition_to(from_state: OrderStatus, to_state: OrderStatus) -> bool:
    """
    Check if a state transition is valid.

    Raises:
        ValueError: If from_state or to_state is not an OrderStatus
    """
    if not isinstance(from_state, OrderStatus):
        raise ValueError(f"Invalid from_state: {from_state}")
    if not isinstance(to_state, OrderStatus):
        raise ValueError(f"Invalid to_state: {to_state}")
    return to_state in _VALID_TRANSITIONS[from_state]


def transition_to(from_state: OrderStatus, to_state: OrderStatus) -> OrderStatus:
    """
    Perform a state transition, returning the new state.

    Raises:
        ValueError: If transition is invalid
    """
    if not can_transition_to(from_state, to_state):
        raise ValueError(
            f"Invalid state transition: {from_state.value} -> {to_state.value}"
        )
    logger.debug("State transition: %s -> %s", from_state.value, to_state.value)
    return to_state


def is_terminal_state(state: OrderStatus) -> bool:
    return not _VALID_TRANSITIONS[state]
