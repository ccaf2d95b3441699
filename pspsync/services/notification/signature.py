"""HMAC authenticity check for provider notifications."""

import base64
import hashlib
import hmac
from collections.abc import Callable
from functools import partial

from pspsync.services.notification.schemas import Notification


HMAC_SIGNATURE_FIELD = "hmacSignature"


def signing_string(notification: Notification) -> str:
    return ":".join(
        [
            notification.psp_reference,
            notification.original_reference or "",
            notification.merchant_account_code or "",
            notification.merchant_reference,
            str(notification.amount.value),
            notification.amount.currency,
            notification.event_code,
            "true" if notification.success else "false",
        ]
    )


def calculate_hmac_signature(notification: Notification, hmac_key: str) -> str:
    """Base64 HMAC-SHA256 of the signing string under a hex-encoded key."""

    digest = hmac.new(
        bytes.fromhex(hmac_key),
        signing_string(notification).encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def validate_hmac_signature(notification: Notification, hmac_key: str) -> str | None:
    """Return an error message when the signature is missing or wrong."""

    provided = notification.additional(HMAC_SIGNATURE_FIELD)
    if not provided:
        return (
            "Notification does not contain the required field "
            f"'NotificationRequestItem.additionalData.{HMAC_SIGNATURE_FIELD}'"
        )
    expected = calculate_hmac_signature(notification, hmac_key)
    if not hmac.compare_digest(expected, str(provided)):
        return "Notification HMAC signature does not match the calculated signature"
    return None


def make_hmac_validator(hmac_key: str | None) -> Callable[[Notification], str | None] | None:
    """Validator bound to `hmac_key`, or None when validation is disabled."""

    if not hmac_key:
        return None
    return partial(validate_hmac_signature, hmac_key=hmac_key)
