"""Notification reconciliation engine.

Resolves the payment each provider notification refers to, tolerating payments
that do not exist yet, and applies the implied update actions. Failures are
contained per notification: every outcome is logged and counted, and nothing
raised while reconciling one notification reaches its siblings.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum
from typing import Any

from pydantic import ValidationError

from pspsync.common.config import CommonSettings
from pspsync.common.errors import (
    NotificationValidationError,
    NotPaymentReadyError,
    PaymentNotFoundError,
)
from pspsync.common.logging import logger, merchant_reference_ctx, payment_id_ctx, psp_reference_ctx
from pspsync.common.metrics import (
    duplicate_interactions_skipped_total,
    notifications_processed_total,
    notifications_received_total,
    reconciliation_latency_seconds,
    retries_total,
)
from pspsync.common.tracing import tracer
from pspsync.services.notification.apply import DEFAULT_MAX_RETRIES, apply_notification
from pspsync.services.notification.events import AUTHORISATION_EVENT
from pspsync.services.notification.models import Payment
from pspsync.services.notification.planner import PlannerConfig, is_notification_recorded
from pspsync.services.notification.resolver import resolve_payment
from pspsync.services.notification.schemas import Notification, describe_validation_error, parse_notification_item
from pspsync.services.notification.signature import make_hmac_validator
from pspsync.services.notification.store import PaymentStore


SignatureValidator = Callable[[Notification], str | None]


class ReconciliationOutcome(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    NOT_PAYMENT_READY = "not_payment_ready"
    FAILED = "failed"


class NotificationService:
    """Reconciles provider notifications against payments in the store."""

    def __init__(
        self,
        store: PaymentStore,
        planner_config: PlannerConfig | None = None,
        validator: SignatureValidator | None = None,
        service_name: str = "notification",
        concurrency: int = 10,
        update_max_retries: int = DEFAULT_MAX_RETRIES,
        missing_payment_max_attempts: int = 7,
        missing_payment_retry_delay: float = 1.0,
        payment_ready_fields: list[str] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.planner_config = planner_config or PlannerConfig()
        self.validator = validator
        self.service_name = service_name
        self.concurrency = concurrency
        self.update_max_retries = update_max_retries
        self.missing_payment_max_attempts = missing_payment_max_attempts
        self.missing_payment_retry_delay = missing_payment_retry_delay
        self.payment_ready_fields = payment_ready_fields or []
        self._sleep = sleep

    @classmethod
    def from_settings(cls, store: PaymentStore, settings: CommonSettings) -> "NotificationService":
        return cls(
            store,
            planner_config=PlannerConfig.from_settings(settings),
            validator=make_hmac_validator(settings.hmac_key),
            service_name=settings.service_name,
            concurrency=settings.notification_concurrency,
            update_max_retries=settings.update_max_retries,
            missing_payment_max_attempts=settings.missing_payment_max_attempts,
            missing_payment_retry_delay=settings.missing_payment_retry_delay_seconds,
            payment_ready_fields=settings.payment_ready_fields,
        )

    async def process_notifications(self, notifications: Iterable[Notification]) -> list[ReconciliationOutcome]:
        """Reconcile a batch concurrently, at most `concurrency` at a time."""

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(notification: Notification) -> ReconciliationOutcome:
            async with semaphore:
                return await self.process_notification(notification)

        return list(await asyncio.gather(*(run(notification) for notification in notifications)))

    async def process_items(self, items: Iterable[dict[str, Any]]) -> list[ReconciliationOutcome]:
        """Validate raw envelope items one by one and reconcile the valid ones.

        Outcomes are returned in item order. A malformed item is rejected on
        its own and its siblings are still reconciled.
        """

        outcomes: dict[int, ReconciliationOutcome] = {}
        valid: dict[int, Notification] = {}
        for index, raw in enumerate(items):
            try:
                valid[index] = parse_notification_item(raw)
            except ValidationError as exc:
                outcomes[index] = self._reject_malformed(index, raw, exc)
        processed = await self.process_notifications(valid.values())
        outcomes.update(zip(valid.keys(), processed))
        return [outcomes[index] for index in sorted(outcomes)]

    def _reject_malformed(self, index: int, raw: dict[str, Any], exc: ValidationError) -> ReconciliationOutcome:
        item = raw.get("NotificationRequestItem")
        item = item if isinstance(item, dict) else {}
        notifications_received_total.labels(service=self.service_name).inc()
        logger.error(
            "malformed notification item rejected index=%s merchant_reference=%s psp_reference=%s errors=%s",
            index,
            item.get("merchantReference"),
            item.get("pspReference"),
            describe_validation_error(exc),
        )
        outcome = ReconciliationOutcome.REJECTED
        notifications_processed_total.labels(service=self.service_name, outcome=outcome.value).inc()
        return outcome

    async def process_notification(self, notification: Notification) -> ReconciliationOutcome:
        """Reconcile one notification; never raises."""

        merchant_token = merchant_reference_ctx.set(notification.merchant_reference)
        psp_token = psp_reference_ctx.set(notification.psp_reference)
        payment_token = payment_id_ctx.set("")
        notifications_received_total.labels(service=self.service_name).inc()
        try:
            with reconciliation_latency_seconds.labels(service=self.service_name).time():
                with tracer.start_as_current_span("reconcile_notification") as span:
                    span.set_attribute("notification.event_code", notification.event_code)
                    span.set_attribute("notification.psp_reference", notification.psp_reference)
                    span.set_attribute("notification.merchant_reference", notification.merchant_reference)
                    outcome = await self._reconcile(notification)
                    span.set_attribute("reconciliation.outcome", outcome.value)
        finally:
            merchant_reference_ctx.reset(merchant_token)
            psp_reference_ctx.reset(psp_token)
            payment_id_ctx.reset(payment_token)
        notifications_processed_total.labels(service=self.service_name, outcome=outcome.value).inc()
        return outcome

    def _validate(self, notification: Notification) -> None:
        if self.validator is None:
            return
        error = self.validator(notification)
        if error is not None:
            raise NotificationValidationError(error)

    async def _resolve_with_retry(self, notification: Notification) -> Payment | None:
        """Resolve the payment, waiting for it to appear on authorisation events.

        An authorisation can be delivered before the payment has been created,
        so only that event is retried. Every other event gets one attempt.
        """

        max_attempts = 1
        if notification.event_code == AUTHORISATION_EVENT:
            max_attempts = max(1, self.missing_payment_max_attempts)
        for attempt in range(1, max_attempts + 1):
            payment = await resolve_payment(
                self.store,
                notification.merchant_reference,
                notification.preferred_reference,
            )
            if payment is not None:
                return payment
            if attempt < max_attempts:
                retries_total.labels(service=self.service_name, dependency="payment_lookup").inc()
                logger.info(
                    "payment not found yet attempt=%s max_attempts=%s delay_s=%s",
                    attempt,
                    max_attempts,
                    self.missing_payment_retry_delay,
                )
                await self._sleep(self.missing_payment_retry_delay)
        return None

    async def _reconcile(self, notification: Notification) -> ReconciliationOutcome:
        try:
            self._validate(notification)
            payment = await self._resolve_with_retry(notification)
            if payment is None:
                raise PaymentNotFoundError(
                    f"Payment with merchantReference={notification.merchant_reference} "
                    f"pspReference={notification.psp_reference} was not found"
                )
            payment_id_ctx.set(payment.id)

            if is_notification_recorded(payment, notification, self.planner_config):
                logger.info("notification already recorded on payment payment_id=%s", payment.id)
                duplicate_interactions_skipped_total.labels(service=self.service_name).inc()

            # Apply even when not payment-ready so the notification is recorded.
            result = await apply_notification(
                self.store,
                payment,
                notification,
                self.planner_config,
                max_retries=self.update_max_retries,
                service_name=self.service_name,
            )
            if not payment.is_payment_ready(self.payment_ready_fields):
                raise NotPaymentReadyError(
                    f"Payment {payment.id} is missing payment-ready custom fields "
                    f"{self.payment_ready_fields}"
                )
            logger.info(
                "notification reconciled payment_id=%s event_code=%s actions=%s store_calls=%s",
                payment.id,
                notification.event_code,
                result.applied_actions,
                result.store_calls,
            )
            if result.applied_actions:
                return ReconciliationOutcome.UPDATED
            return ReconciliationOutcome.UNCHANGED
        except NotificationValidationError as exc:
            logger.error("notification rejected event_code=%s reason=%s", notification.event_code, exc)
            return ReconciliationOutcome.REJECTED
        except PaymentNotFoundError as exc:
            logger.error("%s", exc)
            return ReconciliationOutcome.NOT_FOUND
        except NotPaymentReadyError as exc:
            logger.warning("%s", exc)
            return ReconciliationOutcome.NOT_PAYMENT_READY
        except Exception as exc:
            logger.exception("notification reconciliation failed event_code=%s error=%s", notification.event_code, exc)
            return ReconciliationOutcome.FAILED
