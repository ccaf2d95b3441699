"""Payment aggregate snapshot and update action models.

These mirror the payment store's JSON resources. The service never owns a
payment: a `Payment` is a point-in-time copy fetched from the store, and update
actions are built fresh for every planning pass.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class StoreModel(BaseModel):
    """Base for store resources (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Money(StoreModel):
    cent_amount: int
    currency_code: str


class TypeReference(StoreModel):
    type_id: str = "type"
    key: str | None = None
    id: str | None = None


class Transaction(StoreModel):
    """Financial operation recorded on a payment."""

    id: str
    type: str
    state: str
    amount: Money
    interaction_id: str | None = None
    timestamp: str | None = None


class InterfaceInteraction(StoreModel):
    """Append-only log entry of a raw provider interaction."""

    type: TypeReference | None = None
    fields: dict[str, Any] = Field(default_factory=dict)


class PaymentMethodInfo(StoreModel):
    payment_interface: str | None = None
    method: str | None = None
    name: dict[str, str] | None = None


class CustomFields(StoreModel):
    type: TypeReference | None = None
    fields: dict[str, Any] = Field(default_factory=dict)


class Payment(StoreModel):
    """Point-in-time snapshot of a versioned payment aggregate."""

    id: str
    version: int
    key: str | None = None
    interface_interactions: list[InterfaceInteraction] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    payment_method_info: PaymentMethodInfo = Field(default_factory=PaymentMethodInfo)
    custom: CustomFields | None = None

    def find_transaction(self, interaction_id: str) -> Transaction | None:
        for transaction in self.transactions:
            if transaction.interaction_id == interaction_id:
                return transaction
        return None

    def is_payment_ready(self, required_fields: list[str]) -> bool:
        """True when every required custom field is present on the payment."""

        fields = self.custom.fields if self.custom else {}
        return all(fields.get(name) is not None for name in required_fields)


class TransactionDraft(StoreModel):
    type: str
    state: str
    amount: Money
    timestamp: str | None = None
    interaction_id: str | None = None


class AddInterfaceInteraction(StoreModel):
    action: Literal["addInterfaceInteraction"] = "addInterfaceInteraction"
    type: TypeReference
    fields: dict[str, Any]


class AddTransaction(StoreModel):
    action: Literal["addTransaction"] = "addTransaction"
    transaction: TransactionDraft


class ChangeTransactionState(StoreModel):
    action: Literal["changeTransactionState"] = "changeTransactionState"
    transaction_id: str
    state: str


class ChangeTransactionTimestamp(StoreModel):
    action: Literal["changeTransactionTimestamp"] = "changeTransactionTimestamp"
    transaction_id: str
    timestamp: str


class SetKey(StoreModel):
    action: Literal["setKey"] = "setKey"
    key: str


class SetMethodInfoMethod(StoreModel):
    action: Literal["setMethodInfoMethod"] = "setMethodInfoMethod"
    method: str


class SetMethodInfoName(StoreModel):
    action: Literal["setMethodInfoName"] = "setMethodInfoName"
    name: dict[str, str]


UpdateAction = Annotated[
    Union[
        AddInterfaceInteraction,
        AddTransaction,
        ChangeTransactionState,
        ChangeTransactionTimestamp,
        SetKey,
        SetMethodInfoMethod,
        SetMethodInfoName,
    ],
    Field(discriminator="action"),
]


def serialize_actions(actions: list[UpdateAction]) -> list[dict[str, Any]]:
    """Render update actions in the store's wire format."""

    return [action.model_dump(by_alias=True, exclude_none=True) for action in actions]
