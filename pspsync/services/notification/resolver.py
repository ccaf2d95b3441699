"""Locate the payment a notification refers to."""

from pspsync.common.errors import PaymentLookupError
from pspsync.services.notification.models import Payment
from pspsync.services.notification.store import PaymentStore


async def resolve_payment(
    store: PaymentStore, merchant_reference: str, alternate_reference: str
) -> Payment | None:
    """Find the payment keyed by either reference.

    A payment may still carry the merchant reference as key or may already
    have been re-keyed to the provider reference. Absence is returned as None;
    any store failure is raised immediately.
    """

    keys = list(dict.fromkeys([merchant_reference, alternate_reference]))
    try:
        return await store.fetch_by_keys(keys)
    except Exception as exc:
        raise PaymentLookupError(
            f"Failed to fetch a payment with merchantReference={merchant_reference} "
            f"reference={alternate_reference}: {exc}"
        ) from exc
