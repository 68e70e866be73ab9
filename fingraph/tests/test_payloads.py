import unittest
from decimal import Decimal

from pydantic import BaseModel

from fingraph.enums import AccountType
from fingraph.errors import ErrorMessage, ValidationException
from fingraph.payloads import (
    CreateAccountPayload,
    CreateHoldingTransactionPayload,
    CreateRebalancingGoalPayload,
    CreateTransferPayload,
    PageSearchPayload,
    SignUpPayload,
    TransactionsArgsPayload,
    UpdateAccountPayload,
    UpdateHoldingTransactionPayload,
    UpdateUserPayload,
    omit_fields,
    parse_payload,
    provided,
)


class OmitFieldsTests(unittest.TestCase):
    def test_update_payloads_drop_immutable_fields(self) -> None:
        self.assertNotIn("type", UpdateAccountPayload.model_fields)
        self.assertNotIn("email", UpdateUserPayload.model_fields)
        for name in ("symbol", "name", "account_id"):
            self.assertNotIn(name, UpdateHoldingTransactionPayload.model_fields)

    def test_override_makes_id_required(self) -> None:
        with self.assertRaises(ValidationException):
            parse_payload(UpdateAccountPayload, {"nick_name": "Savings"})

    def test_unknown_field_is_rejected(self) -> None:
        class Sample(BaseModel):
            a: int

        with self.assertRaises(ValueError):
            omit_fields(Sample, "b", model_name="Broken")

    def test_omitted_field_is_ignored_on_input(self) -> None:
        payload = parse_payload(UpdateAccountPayload, {"id": 1, "type": "BANK", "note": "main"})

        self.assertEqual(provided(payload, "id"), {"note": "main"})

    def test_explicit_null_survives_only_for_clearable_fields(self) -> None:
        payload = parse_payload(UpdateAccountPayload, {"id": 1, "note": None, "nick_name": None, "currency": None})

        self.assertEqual(provided(payload, "id"), {"note": None, "nick_name": None})


class ParsePayloadTests(unittest.TestCase):
    def test_bank_account_requires_bank_summary(self) -> None:
        with self.assertRaises(ValidationException) as ctx:
            parse_payload(CreateAccountPayload, {"type": "BANK"})

        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_PARAMETER_REQUIRED)

    def test_nick_name_defaults_to_summary_name(self) -> None:
        payload = parse_payload(
            CreateAccountPayload,
            {"type": "STOCK", "stock_summary": {"name": "  Broker  "}},
        )

        self.assertIs(payload.type, AccountType.STOCK)
        self.assertEqual(payload.nick_name, "Broker")

    def test_transfer_to_same_account_is_rejected(self) -> None:
        with self.assertRaises(ValidationException) as ctx:
            parse_payload(CreateTransferPayload, {"from_account_id": 3, "to_account_id": 3, "amount": "10"})

        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_SAME_ACCOUNT_TRANSFER)

    def test_transfer_amount_must_be_positive(self) -> None:
        with self.assertRaises(ValidationException):
            parse_payload(CreateTransferPayload, {"from_account_id": 1, "to_account_id": 2, "amount": "0"})

    def test_date_range_must_be_ordered(self) -> None:
        with self.assertRaises(ValidationException) as ctx:
            parse_payload(
                TransactionsArgsPayload,
                {"account_id": 1, "from_date": "2024-05-02T00:00:00", "to_date": "2024-05-01T00:00:00"},
            )

        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_INVALID_DATE_FORMAT)

    def test_page_size_is_capped(self) -> None:
        with self.assertRaises(ValidationException):
            parse_payload(PageSearchPayload, {"take": 101})

    def test_blank_symbol_is_rejected(self) -> None:
        with self.assertRaises(ValidationException):
            parse_payload(
                CreateHoldingTransactionPayload,
                {"account_id": 1, "symbol": "   ", "quantity": 1, "amount": 1, "type": "DEPOSIT"},
            )

    def test_target_ratio_bounds(self) -> None:
        payload = parse_payload(CreateRebalancingGoalPayload, {"goal_type": "STOCK", "target_ratio": "12.5"})
        self.assertEqual(payload.target_ratio, Decimal("12.5"))

        for ratio in ("100.01", "-1", "10.123"):
            with self.subTest(ratio=ratio):
                with self.assertRaises(ValidationException):
                    parse_payload(CreateRebalancingGoalPayload, {"goal_type": "STOCK", "target_ratio": ratio})

    def test_user_name_needs_two_characters(self) -> None:
        for model in (SignUpPayload, UpdateUserPayload):
            with self.subTest(model=model.__name__):
                with self.assertRaises(ValidationException):
                    parse_payload(model, {"name": "J"})

        self.assertEqual(parse_payload(UpdateUserPayload, {"name": "Jo"}).name, "Jo")

    def test_accepts_pydantic_models(self) -> None:
        source = UpdateAccountPayload(id=4, note="renamed")

        payload = parse_payload(UpdateAccountPayload, source)

        self.assertEqual(provided(payload, "id"), {"note": "renamed"})


if __name__ == "__main__":
    unittest.main()
