"""
Unit tests for vault settings, their YAML loading and the admin entry points.
"""

import os
import tempfile
import unittest

from nftvault import (
    SECONDS_PER_YEAR,
    InvalidInputError,
    InvalidRateError,
    Rate,
    UnauthorizedError,
    VaultSettings,
    load_settings,
)
from vault_fixtures import ALICE, DAO, TEST_SETTINGS, WAD, VaultWorld, make_settings


class TestVaultSettings(unittest.TestCase):
    def test_packaged_defaults(self):
        """Test that the defaults file ships with the package"""
        settings = VaultSettings.default()

        self.assertEqual(settings.debt_interest_apr, Rate(2, 100))
        self.assertEqual(settings.organization_fee_rate, Rate(5, 1000))
        self.assertEqual(settings.insurance_purchase_rate, Rate(1, 100))
        self.assertEqual(settings.insurance_liquidation_penalty_rate, Rate(25, 100))
        self.assertEqual(settings.insurance_repurchase_time_limit, 72 * 60 * 60)
        self.assertEqual(settings.borrow_amount_cap, 10_000_000 * WAD)

    def test_load_yaml_string_over_defaults(self):
        settings = load_settings("debt_interest_apr: 7/100\ninsurance_repurchase_time_limit: 3600\n")

        self.assertEqual(settings.debt_interest_apr, Rate(7, 100))
        self.assertEqual(settings.insurance_repurchase_time_limit, 3600)
        self.assertEqual(settings.organization_fee_rate, Rate(5, 1000))

    def test_load_yaml_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "vault.yml")
            with open(path, "w", encoding="utf-8") as fh:
                fh.write("organization_fee_rate:\n  numerator: 1\n  denominator: 100\n")

            settings = load_settings(path, borrow_amount_cap=5)

        self.assertEqual(settings.organization_fee_rate, Rate(1, 100))
        self.assertEqual(settings.borrow_amount_cap, 5)

    def test_load_mapping(self):
        settings = load_settings({"insurance_purchase_rate": [0, 1]})
        self.assertEqual(settings.insurance_purchase_rate, Rate(0, 1))

    def test_unknown_key(self):
        with self.assertRaises(InvalidInputError) as context:
            load_settings({"debt_interest_rate": [1, 100]})
        self.assertIn("debt_interest_rate", str(context.exception))

    def test_missing_key(self):
        with self.assertRaises(InvalidInputError):
            VaultSettings.from_mapping({"debt_interest_apr": [1, 100]})

    def test_rate_above_one(self):
        with self.assertRaises(InvalidRateError):
            load_settings({"insurance_liquidation_penalty_rate": [101, 100]})

    def test_bad_window_and_cap(self):
        with self.assertRaises(InvalidInputError):
            make_settings(insurance_repurchase_time_limit=0)
        with self.assertRaises(InvalidInputError):
            make_settings(borrow_amount_cap=-1)

    def test_to_dict_round_trip(self):
        self.assertEqual(VaultSettings.from_mapping(TEST_SETTINGS.to_dict()), TEST_SETTINGS)


class TestVaultAdministration(unittest.TestCase):
    def setUp(self):
        self.world = VaultWorld()
        self.vault = self.world.vault
        self.world.give_nft(ALICE, 1)

    def test_set_settings_is_dao_only(self):
        with self.assertRaises(UnauthorizedError):
            self.vault.set_settings(ALICE, make_settings(debt_interest_apr=Rate(50, 100)))

    def test_set_settings_accrues_under_old_apr(self):
        """Test that interest up to the change uses the previous APR"""
        self.vault.borrow(ALICE, 1, 500 * WAD)
        self.world.clock.advance(SECONDS_PER_YEAR)

        self.vault.set_settings(DAO, make_settings(debt_interest_apr=Rate(50, 100)))

        # 10% for the first year
        self.assertEqual(self.world.pool.total_debt_amount, 550 * WAD)
        self.assertEqual(self.world.pool.last_accrued_at, self.world.clock.now)
        self.assertEqual(self.vault.settings.debt_interest_apr, Rate(50, 100))
        self.assertEqual(self.world.event_names()[-1], "SettingsUpdated")

        # 50% afterwards
        self.world.clock.advance(SECONDS_PER_YEAR)
        self.assertEqual(self.vault.get_debt_amount(1), 825 * WAD)

    def test_invalid_settings_are_rejected(self):
        """Test that an invalid update leaves the old settings in place"""
        bad = VaultSettings(Rate(3, 2), Rate(1, 100), Rate(1, 100), Rate(25, 100), 3600, 10**30)

        with self.assertRaises(InvalidRateError):
            self.vault.set_settings(DAO, bad)

        self.assertEqual(self.vault.settings, TEST_SETTINGS)
        self.assertEqual(self.world.event_names(), [])

    def test_set_borrow_amount_cap(self):
        self.vault.set_borrow_amount_cap(DAO, 0)
        self.assertEqual(self.vault.settings.borrow_amount_cap, 0)
        with self.assertRaises(InvalidInputError):
            self.vault.set_borrow_amount_cap(DAO, -1)
        with self.assertRaises(UnauthorizedError):
            self.vault.set_borrow_amount_cap(ALICE, 10)

    def test_collect_fees(self):
        """Test that the DAO receives fees and accrued interest"""
        self.vault.borrow(ALICE, 1, 500 * WAD)
        self.world.clock.advance(SECONDS_PER_YEAR)

        with self.assertRaises(UnauthorizedError):
            self.vault.collect(ALICE)

        collected = self.vault.collect(DAO)

        self.assertEqual(collected, 5 * WAD + 50 * WAD)
        self.assertEqual(self.world.stablecoin.balance_of(DAO), 55 * WAD)
        self.assertEqual(self.world.pool.total_fee_collected, 0)
        self.assertEqual(self.vault.collect(DAO), 0)


if __name__ == '__main__':
    unittest.main()
