"""Update action planning for one (payment, notification) pair.

`plan_update_actions` is a pure function of the payment snapshot, the
notification and a `PlannerConfig`; it is re-run on every apply attempt so it
must never rely on state carried between calls. An empty plan means the
notification is already fully reflected on the payment.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pspsync.common.config import CommonSettings
from pspsync.common.errors import DateParseError
from pspsync.common.logging import logger
from pspsync.common.state_machine import is_advance
from pspsync.services.notification.events import MODIFICATION_ACTION_FIELD, resolve_transaction
from pspsync.services.notification.models import (
    AddInterfaceInteraction,
    AddTransaction,
    ChangeTransactionState,
    ChangeTransactionTimestamp,
    Money,
    Payment,
    SetKey,
    SetMethodInfoMethod,
    SetMethodInfoName,
    TransactionDraft,
    TypeReference,
    UpdateAction,
)
from pspsync.services.notification.schemas import Notification, serialize_notification


# Recurring details stay visible on the stored interaction even when
# additional data is removed.
HOISTED_ADDITIONAL_DATA: dict[str, str] = {
    "recurring.recurringDetailReference": "recurringDetailReference",
    "recurringProcessingModel": "recurringProcessingModel",
    "recurring.shopperReference": "shopperReference",
}
SENSITIVE_FIELDS = ("additionalData", "reason")


@dataclass(frozen=True)
class PlannerConfig:
    """Inputs to planning that come from configuration."""

    remove_sensitive_data: bool = True
    payment_method_names: dict[str, dict[str, str]] = field(default_factory=dict)
    interaction_type_key: str = "psp-interaction-notification"

    @classmethod
    def from_settings(cls, settings: CommonSettings) -> "PlannerConfig":
        return cls(
            remove_sensitive_data=settings.remove_sensitive_data,
            payment_method_names=settings.payment_method_names,
            interaction_type_key=settings.interaction_type_key,
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_event_date(value: str | None) -> datetime:
    """Parse a provider-local ISO-8601 event date into an aware UTC datetime."""

    if not value:
        raise DateParseError("event date is missing")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise DateParseError(f"unparseable event date {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def event_timestamp(notification: Notification, now: Callable[[], datetime] = utcnow) -> str:
    """UTC timestamp for transaction writes, falling back to the current time."""

    try:
        return format_timestamp(parse_event_date(notification.event_date))
    except DateParseError as exc:
        logger.warning(
            "event date parse failed, using current time psp_reference=%s error=%s",
            notification.psp_reference,
            exc,
        )
        return format_timestamp(now())


def redact_notification(notification: Notification, remove_sensitive_data: bool) -> dict[str, Any]:
    """Copy of the notification as it is stored on the payment."""

    data = notification.model_dump(by_alias=True, exclude_none=True)
    additional_data = data.get("additionalData") or {}
    for source, target in HOISTED_ADDITIONAL_DATA.items():
        if source in additional_data:
            data[target] = additional_data[source]
    if remove_sensitive_data:
        for name in SENSITIVE_FIELDS:
            data.pop(name, None)
    return data


def stored_notification(notification: Notification, remove_sensitive_data: bool) -> str:
    return json.dumps(
        redact_notification(notification, remove_sensitive_data),
        separators=(",", ":"),
        ensure_ascii=False,
    )


def interaction_status(notification: Notification) -> str:
    if notification.success:
        return notification.event_code
    return f"{notification.event_code.lower()}_failed"


def is_notification_recorded(payment: Payment, notification: Notification, config: PlannerConfig) -> bool:
    """True when an interaction already stores this exact notification.

    The full serialization and the stored form under either redaction setting
    all count, so toggling `remove_sensitive_data` never re-records an
    interaction written before the change.
    """

    candidates = {
        serialize_notification(notification),
        stored_notification(notification, True),
        stored_notification(notification, False),
    }
    return any(
        interaction.fields.get("notification") in candidates
        for interaction in payment.interface_interactions
    )


def _interaction_actions(
    payment: Payment, notification: Notification, config: PlannerConfig, now: Callable[[], datetime]
) -> list[UpdateAction]:
    if is_notification_recorded(payment, notification, config):
        return []
    return [
        AddInterfaceInteraction(
            type=TypeReference(key=config.interaction_type_key),
            fields={
                "status": interaction_status(notification),
                "type": "notification",
                "notification": stored_notification(notification, config.remove_sensitive_data),
                "createdAt": format_timestamp(now()),
            },
        )
    ]


def _transaction_actions(
    payment: Payment, notification: Notification, now: Callable[[], datetime]
) -> list[UpdateAction]:
    mapping = resolve_transaction(
        notification.event_code,
        notification.success,
        notification.additional(MODIFICATION_ACTION_FIELD),
    )
    if mapping.transaction_type is None or mapping.transaction_state is None:
        return []

    actions: list[UpdateAction] = []
    state = mapping.transaction_state.value
    existing = payment.find_transaction(notification.psp_reference)
    if existing is None:
        actions.append(
            AddTransaction(
                transaction=TransactionDraft(
                    type=mapping.transaction_type.value,
                    state=state,
                    amount=Money(
                        cent_amount=notification.amount.value,
                        currency_code=notification.amount.currency,
                    ),
                    timestamp=event_timestamp(notification, now),
                    interaction_id=notification.psp_reference,
                )
            )
        )
    elif is_advance(existing.state, state):
        actions.append(ChangeTransactionState(transaction_id=existing.id, state=state))
        actions.append(
            ChangeTransactionTimestamp(
                transaction_id=existing.id,
                timestamp=event_timestamp(notification, now),
            )
        )

    # Later notifications may only know the provider reference.
    if notification.success and notification.preferred_reference != payment.key:
        actions.append(SetKey(key=notification.preferred_reference))
    return actions


def _payment_method_actions(
    payment: Payment, notification: Notification, config: PlannerConfig
) -> list[UpdateAction]:
    method = notification.payment_method
    if not method or method == payment.payment_method_info.method:
        return []
    actions: list[UpdateAction] = [SetMethodInfoMethod(method=method)]
    name = config.payment_method_names.get(method)
    if name:
        actions.append(SetMethodInfoName(name=dict(name)))
    return actions


def plan_update_actions(
    payment: Payment,
    notification: Notification,
    config: PlannerConfig,
    now: Callable[[], datetime] = utcnow,
) -> list[UpdateAction]:
    """Compute the ordered update actions one notification implies for a payment."""

    return [
        *_interaction_actions(payment, notification, config, now),
        *_transaction_actions(payment, notification, now),
        *_payment_method_actions(payment, notification, config),
    ]
