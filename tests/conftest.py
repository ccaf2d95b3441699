"""Shared fixtures: an in-memory payment store and model factories."""

import asyncio
import os
from datetime import datetime, timezone
from uuid import uuid4

import pytest

os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "")

from pspsync.common.errors import ConcurrentModificationError  # noqa: E402
from pspsync.services.notification.models import (  # noqa: E402
    AddInterfaceInteraction,
    AddTransaction,
    ChangeTransactionState,
    ChangeTransactionTimestamp,
    InterfaceInteraction,
    Payment,
    SetKey,
    SetMethodInfoMethod,
    SetMethodInfoName,
    Transaction,
)
from pspsync.services.notification.schemas import Notification  # noqa: E402


FIXED_NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def fixed_now() -> datetime:
    return FIXED_NOW


def build_notification(**overrides) -> Notification:
    item = {
        "eventCode": "AUTHORISATION",
        "success": "true",
        "merchantReference": "M1",
        "pspReference": "P1",
        "merchantAccountCode": "TestMerchant",
        "eventDate": "2019-01-30T18:16:22+01:00",
        "amount": {"value": 1000, "currency": "EUR"},
    }
    item.update(overrides)
    return Notification.model_validate(item)


def build_payment(**overrides) -> Payment:
    data = {
        "id": "pay-1",
        "version": 1,
        "key": "M1",
        "interfaceInteractions": [],
        "transactions": [],
        "paymentMethodInfo": {"paymentInterface": "adyen"},
        "custom": {
            "fields": {
                "adyenMerchantAccount": "TestMerchant",
                "commercetoolsProjectKey": "test-project",
            }
        },
    }
    data.update(overrides)
    return Payment.model_validate(data)


def apply_actions(payment: Payment, actions) -> Payment:
    """Mutate a copy of `payment` the way the real store would."""

    updated = payment.model_copy(deep=True)
    for action in actions:
        if isinstance(action, AddInterfaceInteraction):
            updated.interface_interactions.append(
                InterfaceInteraction(type=action.type, fields=dict(action.fields))
            )
        elif isinstance(action, AddTransaction):
            draft = action.transaction
            updated.transactions.append(
                Transaction(
                    id=str(uuid4()),
                    type=draft.type,
                    state=draft.state,
                    amount=draft.amount,
                    interaction_id=draft.interaction_id,
                    timestamp=draft.timestamp,
                )
            )
        elif isinstance(action, (ChangeTransactionState, ChangeTransactionTimestamp)):
            for transaction in updated.transactions:
                if transaction.id != action.transaction_id:
                    continue
                if isinstance(action, ChangeTransactionState):
                    transaction.state = action.state
                else:
                    transaction.timestamp = action.timestamp
        elif isinstance(action, SetKey):
            updated.key = action.key
        elif isinstance(action, SetMethodInfoMethod):
            updated.payment_method_info.method = action.method
        elif isinstance(action, SetMethodInfoName):
            updated.payment_method_info.name = action.name
    updated.version += 1
    return updated


class InMemoryPaymentStore:
    """Payment store fake enforcing the optimistic version check.

    `conflicts` makes the next N updates fail as if a concurrent writer bumped
    the version first; `missing_lookups` hides the payment from the next N
    key lookups.
    """

    def __init__(self, *payments: Payment) -> None:
        self.payments = {payment.id: payment for payment in payments}
        self.conflicts = 0
        self.missing_lookups = 0
        self.lookup_error: Exception | None = None
        self.update_error: Exception | None = None
        self.lookups: list[list[str]] = []
        self.fetches: list[str] = []
        self.updates: list[tuple[str, int, list]] = []

    async def fetch_by_keys(self, keys: list[str]) -> Payment | None:
        self.lookups.append(list(keys))
        await asyncio.sleep(0)
        if self.lookup_error is not None:
            raise self.lookup_error
        if self.missing_lookups > 0:
            self.missing_lookups -= 1
            return None
        for payment in self.payments.values():
            if payment.key in keys:
                return payment.model_copy(deep=True)
        return None

    async def fetch_by_id(self, payment_id: str) -> Payment:
        self.fetches.append(payment_id)
        await asyncio.sleep(0)
        return self.payments[payment_id].model_copy(deep=True)

    async def update(self, payment_id: str, version: int, actions: list) -> Payment:
        self.updates.append((payment_id, version, list(actions)))
        await asyncio.sleep(0)
        if self.update_error is not None:
            raise self.update_error
        current = self.payments[payment_id]
        if self.conflicts > 0:
            self.conflicts -= 1
            current = current.model_copy(update={"version": current.version + 1})
            self.payments[payment_id] = current
        if version != current.version:
            raise ConcurrentModificationError(
                f"version {version} is stale", current_version=current.version
            )
        updated = apply_actions(current, actions)
        self.payments[payment_id] = updated
        return updated.model_copy(deep=True)


@pytest.fixture
def make_notification():
    return build_notification


@pytest.fixture
def make_payment():
    return build_payment


@pytest.fixture
def store():
    return InMemoryPaymentStore(build_payment())
