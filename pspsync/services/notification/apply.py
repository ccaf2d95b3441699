"""Apply planned update actions under optimistic concurrency.

Every attempt re-plans against the snapshot it holds, so a retry after a
version conflict only submits what is still missing on the refreshed payment.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pspsync.common.errors import (
    ConcurrentModificationError,
    StoreError,
    UnexpectedUpdateError,
    UpdateRetryExhaustedError,
)
from pspsync.common.logging import logger
from pspsync.common.metrics import retries_total
from pspsync.services.notification.models import Payment, UpdateAction, serialize_actions
from pspsync.services.notification.planner import PlannerConfig, plan_update_actions, utcnow
from pspsync.services.notification.schemas import Notification
from pspsync.services.notification.store import PaymentStore


DEFAULT_MAX_RETRIES = 20


@dataclass(slots=True)
class ApplyResult:
    """Summary of one apply run."""

    payment: Payment
    applied_actions: int = 0
    store_calls: int = 0


def describe_actions(actions: list[UpdateAction], remove_sensitive_data: bool) -> list[dict[str, Any]]:
    """Serialized actions for diagnostics, without notification payloads when redacting."""

    described = serialize_actions(actions)
    if remove_sensitive_data:
        for action in described:
            if action["action"] == "addInterfaceInteraction":
                action["fields"] = {k: v for k, v in action["fields"].items() if k != "notification"}
    return described


async def apply_notification(
    store: PaymentStore,
    payment: Payment,
    notification: Notification,
    config: PlannerConfig,
    max_retries: int = DEFAULT_MAX_RETRIES,
    service_name: str = "notification",
    now: Callable[[], datetime] = utcnow,
) -> ApplyResult:
    """Bring `payment` in line with `notification`, retrying version conflicts."""

    current = payment
    version = payment.version
    retry_count = 0
    store_calls = 0
    while True:
        actions = plan_update_actions(current, notification, config, now)
        if not actions:
            return ApplyResult(payment=current, store_calls=store_calls)
        store_calls += 1
        try:
            updated = await store.update(current.id, version, actions)
        except ConcurrentModificationError as exc:
            retry_count += 1
            if retry_count > max_retries:
                raise UpdateRetryExhaustedError(
                    f"Got a concurrent modification error when updating payment with id {current.id}. "
                    f"Version tried {version}, current version {exc.current_version}. "
                    f"Won't retry again because of a reached limit of {max_retries} max retries.",
                    attempted_version=version,
                    current_version=exc.current_version,
                ) from exc
            retries_total.labels(service=service_name, dependency="payment_update").inc()
            logger.info(
                "retrying payment update payment_id=%s attempt=%s version=%s current_version=%s",
                current.id,
                retry_count,
                version,
                exc.current_version,
            )
            current = await store.fetch_by_id(current.id)
            version = current.version
            continue
        except StoreError as exc:
            raise UnexpectedUpdateError(
                f"Unexpected error during updating a payment with id {current.id} at version {version}. "
                f"actions={describe_actions(actions, config.remove_sensitive_data)} error={exc}"
            ) from exc
        return ApplyResult(payment=updated, applied_actions=len(actions), store_calls=store_calls)
