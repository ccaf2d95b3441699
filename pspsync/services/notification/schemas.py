"""Inbound provider notification schemas.

Field names on the wire are the provider's camelCase names; the envelope keys
(`notificationItems`, `NotificationRequestItem`) are aliased explicitly.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel


class Amount(BaseModel):
    """Notification amount in minor units."""

    model_config = ConfigDict(frozen=True)

    value: int
    currency: str = Field(min_length=3, max_length=3)


class Notification(BaseModel):
    """One provider event delivery (`NotificationRequestItem`)."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    event_code: str
    success: bool
    merchant_reference: str = Field(min_length=1)
    psp_reference: str = Field(min_length=1)
    original_reference: str | None = None
    merchant_account_code: str | None = None
    event_date: str | None = None
    amount: Amount
    payment_method: str | None = None
    reason: str | None = None
    additional_data: dict[str, Any] | None = None

    @property
    def preferred_reference(self) -> str:
        """Reference the payment should finally be keyed by."""

        return self.original_reference or self.psp_reference

    def additional(self, name: str) -> Any | None:
        if not self.additional_data:
            return None
        return self.additional_data.get(name)


class NotificationItem(BaseModel):
    notification_request_item: Notification = Field(alias="NotificationRequestItem")


class NotificationRequest(BaseModel):
    """Envelope posted by the provider to the webhook endpoint.

    Items stay raw here and are validated one by one with
    `parse_notification_item`, so a malformed item never rejects its siblings.
    """

    model_config = ConfigDict(populate_by_name=True)

    live: bool | None = None
    notification_items: list[dict[str, Any]] = Field(alias="notificationItems", min_length=1)


def parse_notification_item(raw: dict[str, Any]) -> Notification:
    """Validate one raw envelope item; raises `pydantic.ValidationError`."""

    return NotificationItem.model_validate(raw).notification_request_item


def describe_validation_error(exc: ValidationError) -> str:
    """Field locations and messages only, never the offending input values."""

    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors(include_input=False)
    )


def serialize_notification(notification: Notification) -> str:
    """Compact JSON form used as the notification's dedupe identity."""

    return notification.model_dump_json(by_alias=True, exclude_none=True)
