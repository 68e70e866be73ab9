from __future__ import annotations

import copy
from datetime import datetime
from decimal import Decimal
from typing import Any, Type

from pydantic import BaseModel, Field, ValidationError, create_model, field_validator

from fingraph.enums import (
    AccountType,
    CurrencyType,
    SummaryType,
    TransactionType,
    UserRole,
    UserState,
)
from fingraph.errors import ErrorMessage, ValidationException


def omit_fields(
    base: Type[BaseModel],
    *names: str,
    model_name: str,
    overrides: dict[str, tuple[Any, Any]] | None = None,
) -> Type[BaseModel]:
    """Derive a model from ``base`` without the named fields.

    ``overrides`` replaces the definition of kept fields, e.g. to make an
    optional ``id`` required on update payloads.
    """
    overrides = overrides or {}
    unknown = [name for name in names if name not in base.model_fields]
    if unknown:
        raise ValueError(f"{base.__name__} has no fields {unknown}.")
    definitions: dict[str, Any] = {}
    for field_name, info in base.model_fields.items():
        if field_name in names:
            continue
        if field_name in overrides:
            definitions[field_name] = overrides[field_name]
        else:
            definitions[field_name] = (info.annotation, copy.copy(info))
    return create_model(model_name, __doc__=base.__doc__, **definitions)


def parse_payload(model: Type[BaseModel], data: dict | BaseModel) -> BaseModel:
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        payload = model.model_validate(data)
        validate = getattr(model, "validate_payload", None)
        if validate is not None:
            payload = validate(payload)
    except ValidationError as exc:
        raise ValidationException(_format_validation_error(exc)) from exc
    except ValueError as exc:
        raise ValidationException(str(exc)) from exc
    return payload


def _format_validation_error(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(messages) or ErrorMessage.MSG_PARAMETER_REQUIRED


CLEARABLE_FIELDS = frozenset({"name", "nick_name", "note", "phone", "profile_img", "account_number"})


def provided(payload: BaseModel, *exclude: str) -> dict:
    """Fields the client actually set, minus ``exclude``.

    An explicit null survives only for the optional text columns in
    ``CLEARABLE_FIELDS``; elsewhere it leaves the stored value unchanged.
    """
    return {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if key not in exclude and (value is not None or key in CLEARABLE_FIELDS)
    }


class SortPayload(BaseModel):
    field: str = Field(min_length=1, description="Column to order by")
    direction: bool = Field(True, description="True for ascending order")


class PageSearchPayload(BaseModel):
    page: int = Field(1, ge=1)
    take: int = Field(10, ge=1, le=100)
    sort_by: list[SortPayload] = Field(default_factory=list)


class CreateBankSummaryPayload(BaseModel):
    name: str = Field(min_length=1)
    account_number: str | None = None


class CreateStockSummaryPayload(BaseModel):
    name: str = Field(min_length=1)
    account_number: str | None = None


class CreateCoinSummaryPayload(BaseModel):
    name: str = Field(min_length=1)
    account_number: str | None = None


class AccountPayload(BaseModel):
    id: int | None = None
    user_id: int | None = None
    nick_name: str | None = None
    type: AccountType | None = None
    currency: CurrencyType | None = None
    note: str | None = None
    is_delete: bool | None = None


class CreateAccountPayload(BaseModel):
    user_id: int | None = None
    nick_name: str | None = None
    type: AccountType
    currency: CurrencyType = CurrencyType.KRW
    note: str | None = None
    bank_summary: CreateBankSummaryPayload | None = None
    stock_summary: CreateStockSummaryPayload | None = None
    coin_summary: CreateCoinSummaryPayload | None = None

    @classmethod
    def validate_payload(cls, payload: "CreateAccountPayload") -> "CreateAccountPayload":
        nested = {
            AccountType.BANK: payload.bank_summary,
            AccountType.STOCK: payload.stock_summary,
            AccountType.COIN: payload.coin_summary,
        }
        if payload.type in nested:
            summary = nested[payload.type]
            if summary is None or not summary.name.strip():
                raise ValueError(ErrorMessage.MSG_PARAMETER_REQUIRED)
            summary.name = summary.name.strip()
            if not payload.nick_name:
                payload.nick_name = summary.name
        payload.nick_name = payload.nick_name.strip() if payload.nick_name else None
        return payload


UpdateAccountPayload = omit_fields(
    AccountPayload,
    "type",
    model_name="UpdateAccountPayload",
    overrides={"id": (int, Field(description="Account id"))},
)


class AccountsArgsPayload(PageSearchPayload):
    user_id: int | None = None
    name: str | None = None
    type: AccountType | None = None


class BankSummaryPayload(BaseModel):
    id: int | None = None
    name: str | None = None
    account_number: str | None = None
    account_id: int | None = None


UpdateBankSummaryPayload = omit_fields(
    BankSummaryPayload,
    "account_id",
    model_name="UpdateBankSummaryPayload",
    overrides={"id": (int, Field(description="Bank summary id"))},
)


class HoldingSummaryPayload(BaseModel):
    id: int | None = None
    name: str | None = None
    symbol: str | None = None
    account_number: str | None = None
    quantity: Decimal | None = Field(None, ge=0)
    amount: Decimal | None = Field(None, ge=0)
    type: SummaryType | None = None
    is_delete: bool | None = None
    account_id: int | None = None


UpdateHoldingSummaryPayload = omit_fields(
    HoldingSummaryPayload,
    "symbol",
    "type",
    "account_id",
    model_name="UpdateHoldingSummaryPayload",
    overrides={"id": (int, Field(description="Summary id"))},
)


class HoldingSummariesArgsPayload(PageSearchPayload):
    account_id: int


class EtcSummaryPayload(BaseModel):
    id: int | None = None
    purchase_price: Decimal | None = Field(None, ge=0)
    current_price: Decimal | None = Field(None, ge=0)
    currency: CurrencyType | None = None
    account_id: int | None = None


UpdateEtcSummaryPayload = omit_fields(
    EtcSummaryPayload,
    "account_id",
    model_name="UpdateEtcSummaryPayload",
    overrides={"id": (int, Field(description="Etc summary id"))},
)


class LiabilitiesSummaryPayload(BaseModel):
    id: int | None = None
    amount: Decimal | None = Field(None, ge=0)
    remaining_amount: Decimal | None = Field(None, ge=0)
    currency: CurrencyType | None = None
    account_id: int | None = None


UpdateLiabilitiesSummaryPayload = omit_fields(
    LiabilitiesSummaryPayload,
    "account_id",
    model_name="UpdateLiabilitiesSummaryPayload",
    overrides={"id": (int, Field(description="Liabilities summary id"))},
)


class BankTransactionPayload(BaseModel):
    id: int | None = None
    account_id: int | None = None
    name: str | None = None
    amount: Decimal | None = Field(None, ge=0)
    type: TransactionType | None = None
    note: str | None = None
    transaction_date: datetime | None = None
    is_delete: bool | None = None


class CreateBankTransactionPayload(BaseModel):
    account_id: int
    name: str | None = None
    amount: Decimal = Field(ge=0)
    type: TransactionType
    note: str | None = None
    transaction_date: datetime | None = None


UpdateBankTransactionPayload = omit_fields(
    BankTransactionPayload,
    "account_id",
    model_name="UpdateBankTransactionPayload",
    overrides={"id": (int, Field(description="Bank transaction id"))},
)


class TransactionsArgsPayload(PageSearchPayload):
    account_id: int
    name: str | None = None
    note: str | None = None
    type: TransactionType | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None

    @classmethod
    def validate_payload(cls, payload: "TransactionsArgsPayload") -> "TransactionsArgsPayload":
        if payload.from_date and payload.to_date and payload.from_date > payload.to_date:
            raise ValueError(ErrorMessage.MSG_INVALID_DATE_FORMAT)
        return payload


class HoldingTransactionsArgsPayload(TransactionsArgsPayload):
    symbol: str | None = None


class HoldingTransactionPayload(BaseModel):
    id: int | None = None
    account_id: int | None = None
    name: str | None = None
    symbol: str | None = None
    quantity: Decimal | None = Field(None, ge=0)
    amount: Decimal | None = Field(None, ge=0)
    type: TransactionType | None = None
    note: str | None = None
    transaction_date: datetime | None = None
    is_delete: bool | None = None


class CreateHoldingTransactionPayload(BaseModel):
    account_id: int
    name: str | None = None
    symbol: str = Field(min_length=1)
    quantity: Decimal = Field(ge=0)
    amount: Decimal = Field(ge=0)
    type: TransactionType
    note: str | None = None
    transaction_date: datetime | None = None

    @field_validator("symbol")
    @classmethod
    def strip_symbol(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError(ErrorMessage.MSG_PARAMETER_REQUIRED)
        return value


UpdateHoldingTransactionPayload = omit_fields(
    HoldingTransactionPayload,
    "symbol",
    "name",
    "account_id",
    model_name="UpdateHoldingTransactionPayload",
    overrides={"id": (int, Field(description="Transaction id"))},
)


class EtcTransactionPayload(BaseModel):
    id: int | None = None
    account_id: int | None = None
    name: str | None = None
    purchase_price: Decimal | None = Field(None, ge=0)
    current_price: Decimal | None = Field(None, ge=0)
    operation: str | None = None
    currency: CurrencyType | None = None
    note: str | None = None
    transaction_date: datetime | None = None
    is_complete: bool | None = None
    is_delete: bool | None = None


class CreateEtcTransactionPayload(BaseModel):
    account_id: int
    name: str | None = None
    purchase_price: Decimal = Field(ge=0)
    current_price: Decimal | None = Field(None, ge=0)
    operation: str | None = None
    currency: CurrencyType | None = None
    note: str | None = None
    transaction_date: datetime | None = None
    is_complete: bool = False


UpdateEtcTransactionPayload = omit_fields(
    EtcTransactionPayload,
    "account_id",
    model_name="UpdateEtcTransactionPayload",
    overrides={"id": (int, Field(description="Etc transaction id"))},
)


class LiabilitiesTransactionPayload(BaseModel):
    id: int | None = None
    account_id: int | None = None
    name: str | None = None
    amount: Decimal | None = Field(None, ge=0)
    remaining_amount: Decimal | None = Field(None, ge=0)
    rate: Decimal | None = Field(None, ge=0)
    is_yearly: bool | None = None
    operation: str | None = None
    currency: CurrencyType | None = None
    note: str | None = None
    transaction_date: datetime | None = None
    repayment_date: datetime | None = None
    is_complete: bool | None = None
    is_delete: bool | None = None


class CreateLiabilitiesTransactionPayload(BaseModel):
    account_id: int
    name: str | None = None
    amount: Decimal = Field(ge=0)
    remaining_amount: Decimal | None = Field(None, ge=0)
    rate: Decimal | None = Field(None, ge=0)
    is_yearly: bool = True
    operation: str | None = None
    currency: CurrencyType | None = None
    note: str | None = None
    transaction_date: datetime | None = None
    repayment_date: datetime | None = None
    is_complete: bool = False


UpdateLiabilitiesTransactionPayload = omit_fields(
    LiabilitiesTransactionPayload,
    "account_id",
    model_name="UpdateLiabilitiesTransactionPayload",
    overrides={"id": (int, Field(description="Liabilities transaction id"))},
)


class ItemTransactionsArgsPayload(PageSearchPayload):
    account_id: int
    name: str | None = None
    note: str | None = None
    is_complete: bool | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None


class CreateTransferPayload(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: Decimal = Field(gt=0)
    transaction_date: datetime | None = None
    description: str | None = None

    @classmethod
    def validate_payload(cls, payload: "CreateTransferPayload") -> "CreateTransferPayload":
        if payload.from_account_id == payload.to_account_id:
            raise ValueError(ErrorMessage.MSG_SAME_ACCOUNT_TRANSFER)
        payload.description = payload.description.strip() if payload.description else None
        return payload


class AccountsByCurrencyPayload(BaseModel):
    currency: CurrencyType


class RebalancingGoalPayload(BaseModel):
    id: int | None = None
    user_id: int | None = None
    goal_type: str | None = None
    reference_id: str | None = None
    target_ratio: Decimal = Field(ge=0, le=100, decimal_places=2)


CreateRebalancingGoalPayload = omit_fields(
    RebalancingGoalPayload,
    "id",
    model_name="CreateRebalancingGoalPayload",
    overrides={"goal_type": (str, Field(min_length=1, description="Goal category"))},
)


class SignUpPayload(BaseModel):
    email: str | None = None
    password: str | None = None
    name: str | None = Field(None, min_length=2)
    phone: str | None = None
    sns_type: str | None = None
    sns_id: str | None = None
    currency: CurrencyType | None = None


class SignInPayload(BaseModel):
    email: str | None = None
    password: str | None = None
    sns_type: str | None = None
    sns_id: str | None = None


class UserPayload(BaseModel):
    id: int | None = None
    name: str | None = Field(None, min_length=2)
    email: str | None = None
    phone: str | None = None
    profile_img: str | None = None
    role: UserRole | None = None
    state: UserState | None = None
    currency: CurrencyType | None = None


UpdateUserPayload = omit_fields(UserPayload, "email", model_name="UpdateUserPayload")


class UsersArgsPayload(PageSearchPayload):
    name: str | None = None
    email: str | None = None
    role: UserRole | None = None


class PasswordPayload(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


class CommonPayload(BaseModel):
    value1: str = Field(min_length=1)
