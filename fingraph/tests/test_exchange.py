import unittest
from dataclasses import replace
from decimal import Decimal
from unittest.mock import Mock

from fingraph.currency_conversion import RateProviderUnavailable, StaticRateProvider
from fingraph.errors import ExternalServiceException
from fingraph.exchange import (
    LOCAL_SKIP_MESSAGE,
    latest_exchange_rate,
    latest_rate_table,
    tracked_currencies,
    update_exchange,
)
from fingraph.items import ETC, create_item_transaction
from fingraph.tests.support import SETTINGS, bank_account, create_user, item_account, make_engine, seed_rates


class ExchangeUpdateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.owner = create_user(self.engine)
        bank_account(self.engine, self.owner, currency="KRW")
        bank_account(self.engine, self.owner, name="Dollar", currency="USD")
        stash = item_account(self.engine, self.owner, "ETC", "Stash", currency="KRW")
        create_item_transaction(
            self.engine, self.owner, ETC, {"account_id": stash["id"], "purchase_price": "1", "currency": "JPY"}
        )
        self.provider = StaticRateProvider(
            base="USD",
            rates={"USD": Decimal("1"), "KRW": Decimal("1300"), "JPY": Decimal("150"), "EUR": Decimal("0.9")},
        )

    def test_tracked_currencies(self) -> None:
        self.assertEqual(tracked_currencies(self.engine), ["JPY", "KRW", "USD"])

    def test_local_environment_is_skipped(self) -> None:
        provider = Mock()

        result = update_exchange(self.engine, replace(SETTINGS, environment="local"), provider)

        self.assertEqual(result, LOCAL_SKIP_MESSAGE)
        provider.latest.assert_not_called()
        self.assertIsNone(latest_exchange_rate(self.engine))

    def test_stores_rates_for_tracked_currencies(self) -> None:
        self.assertEqual(update_exchange(self.engine, SETTINGS, self.provider), "success")

        row = latest_exchange_rate(self.engine)
        self.assertEqual(row["base"], "USD")
        self.assertEqual(set(row["exchange_rates"]), {"USD", "KRW", "JPY"})
        self.assertEqual(latest_rate_table(self.engine).rate("KRW"), Decimal("1300"))

    def test_newest_snapshot_wins(self) -> None:
        seed_rates(self.engine, USD="1", KRW="1200")
        seed_rates(self.engine, USD="1", KRW="1250")

        self.assertEqual(latest_rate_table(self.engine).rate("KRW"), Decimal("1250"))

    def test_provider_failure(self) -> None:
        provider = Mock()
        provider.latest.side_effect = RateProviderUnavailable("timeout")

        with self.assertRaises(ExternalServiceException):
            update_exchange(self.engine, SETTINGS, provider)

    def test_missing_configuration(self) -> None:
        with self.assertRaises(ExternalServiceException):
            update_exchange(self.engine, SETTINGS)


if __name__ == "__main__":
    unittest.main()
