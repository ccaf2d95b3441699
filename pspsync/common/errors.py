"""Error taxonomy for notification reconciliation."""


class NotificationValidationError(ValueError):
    """Notification failed authenticity validation and must be dropped."""


class InvalidStateError(ValueError):
    """A transaction state outside the known enumeration was encountered."""


class DateParseError(ValueError):
    """Provider event date could not be parsed."""


class PaymentNotFoundError(LookupError):
    """No payment matched the notification references."""


class NotPaymentReadyError(RuntimeError):
    """Payment exists but lacks the custom fields marking it payment-ready."""


class StoreError(RuntimeError):
    """Any failure returned by the payment store."""

    def __init__(self, message: str, status_code: int | None = None, body: object = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ConcurrentModificationError(StoreError):
    """Update was rejected because the submitted version is stale."""

    def __init__(self, message: str, current_version: int | None, body: object = None) -> None:
        super().__init__(message, status_code=409, body=body)
        self.current_version = current_version


class PaymentLookupError(RuntimeError):
    """Payment lookup failed for a reason other than absence."""


class UpdateRetryExhaustedError(RuntimeError):
    """Version conflicts persisted past the retry budget."""

    def __init__(self, message: str, attempted_version: int, current_version: int | None) -> None:
        super().__init__(message)
        self.attempted_version = attempted_version
        self.current_version = current_version


class UnexpectedUpdateError(RuntimeError):
    """Payment update failed with a non-retryable store error."""
