"""Update action planner tests."""

import json
import logging

from conftest import apply_actions, fixed_now

from pspsync.services.notification.models import (
    AddInterfaceInteraction,
    AddTransaction,
    ChangeTransactionState,
    ChangeTransactionTimestamp,
    SetKey,
    SetMethodInfoMethod,
    SetMethodInfoName,
)
from pspsync.services.notification.planner import (
    PlannerConfig,
    event_timestamp,
    plan_update_actions,
    redact_notification,
)
from pspsync.services.notification.schemas import serialize_notification


CONFIG = PlannerConfig(payment_method_names={"scheme": {"en": "Credit Card"}})


def plan(payment, notification, config=CONFIG):
    return plan_update_actions(payment, notification, config, now=fixed_now)


def existing_transaction(state, interaction_id="P1", type_="Authorization"):
    return {
        "id": "tx-1",
        "type": type_,
        "state": state,
        "interactionId": interaction_id,
        "amount": {"centAmount": 1000, "currencyCode": "EUR"},
    }


def test_authorisation_on_fresh_payment(make_payment, make_notification):
    """New AUTHORISATION records the interaction and adds a successful authorization."""

    payment = make_payment(key="P1")
    actions = plan(payment, make_notification())

    assert [type(action) for action in actions] == [AddInterfaceInteraction, AddTransaction]
    interaction, add_transaction = actions
    assert interaction.fields["status"] == "AUTHORISATION"
    assert interaction.fields["type"] == "notification"
    assert interaction.fields["createdAt"] == "2024-01-01T12:00:00.000Z"
    transaction = add_transaction.transaction
    assert transaction.type == "Authorization"
    assert transaction.state == "Success"
    assert transaction.amount.cent_amount == 1000
    assert transaction.amount.currency_code == "EUR"
    assert transaction.interaction_id == "P1"
    assert transaction.timestamp == "2019-01-30T17:16:22.000Z"


def test_replaying_applied_notification_is_a_noop(make_payment, make_notification):
    payment = make_payment(key="P1")
    notification = make_notification()

    updated = apply_actions(payment, plan(payment, notification))

    assert plan(updated, notification) == []
    assert len(updated.interface_interactions) == 1
    assert len(updated.transactions) == 1


def test_failed_notification_status_is_lowercased(make_payment, make_notification):
    actions = plan(make_payment(), make_notification(success="false"))

    assert actions[0].fields["status"] == "authorisation_failed"
    assert actions[1].transaction.state == "Failure"
    assert not any(isinstance(action, SetKey) for action in actions)


def test_rekey_to_psp_reference(make_payment, make_notification):
    actions = plan(make_payment(key="M1"), make_notification(pspReference="PSP1"))

    set_keys = [action for action in actions if isinstance(action, SetKey)]
    assert len(set_keys) == 1
    assert set_keys[0].key == "PSP1"


def test_no_rekey_when_key_already_matches(make_payment, make_notification):
    actions = plan(make_payment(key="PSP1"), make_notification(pspReference="PSP1"))

    assert not any(isinstance(action, SetKey) for action in actions)


def test_rekey_prefers_original_reference(make_payment, make_notification):
    notification = make_notification(eventCode="CAPTURE", pspReference="CAP1", originalReference="P1")

    actions = plan(make_payment(key="M1"), notification)

    assert [action.key for action in actions if isinstance(action, SetKey)] == ["P1"]


def test_state_advance_changes_state_and_timestamp(make_payment, make_notification):
    payment = make_payment(key="P1", transactions=[existing_transaction("Pending")])
    interaction = plan(payment, make_notification())[0]
    payment = apply_actions(payment, [interaction])

    actions = plan(payment, make_notification())

    assert actions == [
        ChangeTransactionState(transaction_id="tx-1", state="Success"),
        ChangeTransactionTimestamp(transaction_id="tx-1", timestamp="2019-01-30T17:16:22.000Z"),
    ]


def test_out_of_order_notification_never_regresses_state(make_payment, make_notification):
    """A late successful AUTHORISATION does not move a failed authorization back."""

    payment = make_payment(key="P1", transactions=[existing_transaction("Failure")])

    actions = plan(payment, make_notification())

    assert not any(isinstance(action, (ChangeTransactionState, AddTransaction)) for action in actions)


def test_transaction_matched_by_psp_reference_only(make_payment, make_notification):
    payment = make_payment(key="P1", transactions=[existing_transaction("Success", interaction_id="OTHER")])

    actions = plan(payment, make_notification())

    assert any(isinstance(action, AddTransaction) for action in actions)


def test_cancel_or_refund_creates_refund_transaction(make_payment, make_notification):
    notification = make_notification(
        eventCode="CANCEL_OR_REFUND",
        pspReference="R1",
        originalReference="P1",
        additionalData={"modification.action": "refund"},
    )

    actions = plan(make_payment(key="P1"), notification)

    transactions = [action.transaction for action in actions if isinstance(action, AddTransaction)]
    assert [(t.type, t.state, t.interaction_id) for t in transactions] == [("Refund", "Success", "R1")]


def test_cancel_or_refund_without_action_only_records_interaction(make_payment, make_notification):
    actions = plan(make_payment(key="P1"), make_notification(eventCode="CANCEL_OR_REFUND"))

    assert [type(action) for action in actions] == [AddInterfaceInteraction]


def test_informational_event_only_records_interaction(make_payment, make_notification):
    actions = plan(make_payment(key="M1"), make_notification(eventCode="REPORT_AVAILABLE"))

    assert [type(action) for action in actions] == [AddInterfaceInteraction]


def test_redaction_hoists_recurring_fields(make_notification):
    notification = make_notification(
        reason="Refused",
        additionalData={
            "recurring.recurringDetailReference": "8415",
            "recurringProcessingModel": "Subscription",
            "recurring.shopperReference": "shopper-1",
            "cardSummary": "1111",
        },
    )

    redacted = redact_notification(notification, remove_sensitive_data=True)
    kept = redact_notification(notification, remove_sensitive_data=False)

    assert "additionalData" not in redacted
    assert "reason" not in redacted
    assert redacted["recurringDetailReference"] == "8415"
    assert redacted["recurringProcessingModel"] == "Subscription"
    assert redacted["shopperReference"] == "shopper-1"
    assert kept["additionalData"]["cardSummary"] == "1111"
    assert kept["reason"] == "Refused"


def test_stored_interaction_is_redacted(make_payment, make_notification):
    notification = make_notification(additionalData={"cardSummary": "1111"})

    interaction = plan(make_payment(key="P1"), notification)[0]

    stored = json.loads(interaction.fields["notification"])
    assert stored["pspReference"] == "P1"
    assert "additionalData" not in stored


def test_redaction_flag_does_not_change_actions(make_payment, make_notification):
    notification = make_notification(additionalData={"cardSummary": "1111"}, paymentMethod="scheme")
    payment = make_payment()

    redacting = plan(payment, notification, PlannerConfig(remove_sensitive_data=True))
    keeping = plan(payment, notification, PlannerConfig(remove_sensitive_data=False))

    assert [action.action for action in redacting] == [action.action for action in keeping]


def test_interaction_stored_in_full_form_is_recognized(make_payment, make_notification):
    """Interactions recorded before redaction was enabled still dedupe."""

    notification = make_notification(additionalData={"cardSummary": "1111"})
    payment = make_payment(
        key="P1",
        interfaceInteractions=[{"fields": {"notification": serialize_notification(notification)}}],
    )

    actions = plan(payment, notification)

    assert not any(isinstance(action, AddInterfaceInteraction) for action in actions)


def test_interaction_recorded_while_redacting_survives_turning_redaction_off(make_payment, make_notification):
    """An interaction stored redacted is still recognized once redaction is disabled."""

    notification = make_notification(
        additionalData={"recurring.shopperReference": "shopper-1", "cardSummary": "1111"}
    )
    payment = make_payment(key="P1")
    redacting = PlannerConfig(remove_sensitive_data=True)
    keeping = PlannerConfig(remove_sensitive_data=False)

    updated = apply_actions(payment, plan(payment, notification, redacting))

    assert plan(updated, notification, redacting) == []
    assert plan(updated, notification, keeping) == []


def test_interaction_recorded_unredacted_survives_turning_redaction_on(make_payment, make_notification):
    notification = make_notification(additionalData={"recurring.shopperReference": "shopper-1"})
    payment = make_payment(key="P1")
    keeping = PlannerConfig(remove_sensitive_data=False)

    updated = apply_actions(payment, plan(payment, notification, keeping))

    assert plan(updated, notification, PlannerConfig(remove_sensitive_data=True)) == []


def test_payment_method_and_localized_name(make_payment, make_notification):
    actions = plan(make_payment(key="P1"), make_notification(paymentMethod="scheme"))

    assert actions[-2:] == [
        SetMethodInfoMethod(method="scheme"),
        SetMethodInfoName(name={"en": "Credit Card"}),
    ]


def test_payment_method_without_localized_name(make_payment, make_notification):
    actions = plan(make_payment(key="P1"), make_notification(paymentMethod="sepadirectdebit"))

    assert actions[-1] == SetMethodInfoMethod(method="sepadirectdebit")
    assert not any(isinstance(action, SetMethodInfoName) for action in actions)


def test_unchanged_payment_method_is_left_alone(make_payment, make_notification):
    payment = make_payment(key="P1", paymentMethodInfo={"method": "scheme"})

    actions = plan(payment, make_notification(paymentMethod="scheme"))

    assert not any(isinstance(action, (SetMethodInfoMethod, SetMethodInfoName)) for action in actions)


def test_event_timestamp_falls_back_to_now_on_bad_date(make_notification, caplog):
    with caplog.at_level(logging.WARNING, logger="pspsync"):
        timestamp = event_timestamp(make_notification(eventDate="yesterday"), now=fixed_now)

    assert timestamp == "2024-01-01T12:00:00.000Z"
    assert "event date parse failed" in caplog.text


def test_event_timestamp_treats_naive_dates_as_utc(make_notification):
    notification = make_notification(eventDate="2021-06-01T10:00:00")

    assert event_timestamp(notification, now=fixed_now) == "2021-06-01T10:00:00.000Z"
