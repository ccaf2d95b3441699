"""Transaction state ordering enforced by the update planner.

Transaction states only move forward along a fixed order. A proposed state is
applied when it is strictly after the current one.
"""

from enum import Enum

from pspsync.common.errors import InvalidStateError


class TransactionState(str, Enum):
    INITIAL = "Initial"
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILURE = "Failure"


TRANSACTION_STATE_ORDER: dict[str, int] = {
    TransactionState.INITIAL.value: 0,
    TransactionState.PENDING.value: 1,
    TransactionState.SUCCESS.value: 2,
    TransactionState.FAILURE.value: 3,
}


def _ordinal(state: str | TransactionState) -> int:
    value = state.value if isinstance(state, TransactionState) else state
    if value not in TRANSACTION_STATE_ORDER:
        raise InvalidStateError(f"Invalid transaction state: {value!r}")
    return TRANSACTION_STATE_ORDER[value]


def compare_transaction_states(current: str | TransactionState, proposed: str | TransactionState) -> int:
    """Return how far `proposed` is ahead of `current`.

    Positive means the proposed state is an advance. Zero or negative means
    the current state must be kept.
    """

    return _ordinal(proposed) - _ordinal(current)


def is_advance(current: str | TransactionState, proposed: str | TransactionState) -> bool:
    return compare_transaction_states(current, proposed) > 0
