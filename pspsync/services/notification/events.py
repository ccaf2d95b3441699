"""Provider event code to payment transaction mapping.

Loaded once at import. Pairs that carry no transactional meaning (reports,
manual review outcomes, ...) are simply absent and map to `NO_TRANSACTION`.
"""

from enum import Enum
from typing import NamedTuple

from pspsync.common.state_machine import TransactionState


AUTHORISATION_EVENT = "AUTHORISATION"
CANCEL_OR_REFUND_EVENT = "CANCEL_OR_REFUND"
MODIFICATION_ACTION_FIELD = "modification.action"


class TransactionType(str, Enum):
    AUTHORIZATION = "Authorization"
    CHARGE = "Charge"
    REFUND = "Refund"
    CANCEL_AUTHORIZATION = "CancelAuthorization"
    CHARGEBACK = "Chargeback"


class EventMapping(NamedTuple):
    transaction_type: TransactionType | None
    transaction_state: TransactionState | None


NO_TRANSACTION = EventMapping(None, None)

EVENT_MAPPINGS: dict[tuple[str, bool], EventMapping] = {
    ("AUTHORISATION", True): EventMapping(TransactionType.AUTHORIZATION, TransactionState.SUCCESS),
    ("AUTHORISATION", False): EventMapping(TransactionType.AUTHORIZATION, TransactionState.FAILURE),
    ("OFFER_CLOSED", True): EventMapping(TransactionType.AUTHORIZATION, TransactionState.FAILURE),
    ("CAPTURE", True): EventMapping(TransactionType.CHARGE, TransactionState.SUCCESS),
    ("CAPTURE", False): EventMapping(TransactionType.CHARGE, TransactionState.FAILURE),
    ("CAPTURE_FAILED", True): EventMapping(TransactionType.CHARGE, TransactionState.FAILURE),
    ("CANCELLATION", True): EventMapping(TransactionType.CANCEL_AUTHORIZATION, TransactionState.SUCCESS),
    ("CANCELLATION", False): EventMapping(TransactionType.CANCEL_AUTHORIZATION, TransactionState.FAILURE),
    ("REFUND", True): EventMapping(TransactionType.REFUND, TransactionState.SUCCESS),
    ("REFUND", False): EventMapping(TransactionType.REFUND, TransactionState.FAILURE),
    ("REFUND_FAILED", True): EventMapping(TransactionType.REFUND, TransactionState.FAILURE),
    ("REFUNDED_REVERSED", True): EventMapping(TransactionType.REFUND, TransactionState.FAILURE),
    ("CHARGEBACK", True): EventMapping(TransactionType.CHARGEBACK, TransactionState.SUCCESS),
    # Type is decided per notification from the modification action.
    (CANCEL_OR_REFUND_EVENT, True): EventMapping(None, TransactionState.SUCCESS),
    (CANCEL_OR_REFUND_EVENT, False): EventMapping(None, TransactionState.FAILURE),
}

CANCEL_OR_REFUND_TYPES: dict[str, TransactionType] = {
    "refund": TransactionType.REFUND,
    "cancel": TransactionType.CANCEL_AUTHORIZATION,
}


def lookup_event(event_code: str, success: bool) -> EventMapping:
    """Return the transaction type/state implied by one provider event."""

    return EVENT_MAPPINGS.get((event_code, success), NO_TRANSACTION)


def resolve_transaction(
    event_code: str, success: bool, modification_action: str | None = None
) -> EventMapping:
    """Resolve the mapping, refining CANCEL_OR_REFUND by its modification action."""

    mapping = lookup_event(event_code, success)
    if event_code == CANCEL_OR_REFUND_EVENT and modification_action in CANCEL_OR_REFUND_TYPES:
        return EventMapping(CANCEL_OR_REFUND_TYPES[modification_action], mapping.transaction_state)
    return mapping
