"""
Unit tests for vaults over fungible and semi-fungible collateral.
"""

import unittest

from nftvault import (
    AccessControl,
    Clock,
    FungibleToken,
    FungibleVault,
    InvalidInputError,
    InvalidStateError,
    LimitExceededError,
    MultiToken,
    OracleValueProvider,
    PriceOracle,
    Rate,
    SemiFungibleVault,
    Stablecoin,
    UnauthorizedError,
)
from vault_fixtures import ALICE, BOB, DAO, TEST_SETTINGS, UNLIMITED, WAD


class TestFungibleVault(unittest.TestCase):
    def setUp(self):
        """WETH at 2000 per token, 50% credit: one token backs 1000"""
        self.clock = Clock()
        access = AccessControl(DAO)
        self.stablecoin = Stablecoin(DAO)
        self.weth = FungibleToken("weth", "WETH", 18)
        oracle = PriceOracle(self.clock, 2000 * WAD)
        provider = OracleValueProvider.for_fungible(oracle, Rate(50, 100), Rate(60, 100), token_decimals=18)
        self.vault = FungibleVault("weth_vault", self.weth, self.stablecoin, provider, access, self.clock,
                                   TEST_SETTINGS)
        self.stablecoin.add_minter(DAO, "weth_vault")

        for account in (ALICE, BOB):
            self.weth.mint(account, 10 * WAD)
            self.weth.approve(account, "weth_vault", UNLIMITED)
            self.stablecoin.approve(account, "weth_vault", UNLIMITED)

    def test_borrow_requires_deposit(self):
        """Test that fungible positions are opened by a deposit, not a borrow"""
        with self.assertRaises(InvalidStateError):
            self.vault.borrow(ALICE, ALICE, 100 * WAD)

    def test_deposit_and_borrow(self):
        self.vault.deposit(ALICE, 1 * WAD)

        self.assertEqual(self.weth.balance_of("weth_vault"), 1 * WAD)
        self.assertEqual(self.vault.get_credit_limit(ALICE), 1000 * WAD)

        received = self.vault.borrow(ALICE, ALICE, 1000 * WAD)
        self.assertEqual(received, 990 * WAD)
        with self.assertRaises(LimitExceededError):
            self.vault.borrow(ALICE, ALICE, 1)

    def test_top_up_raises_credit(self):
        self.vault.deposit(ALICE, 1 * WAD)
        self.vault.deposit(ALICE, 1 * WAD)

        self.assertEqual(self.vault.positions[ALICE].collateral, 2 * WAD)
        self.assertEqual(self.vault.get_credit_limit(ALICE), 2000 * WAD)
        self.assertEqual(self.vault.events[-1].name, "CollateralDeposited")

    def test_withdraw_keeps_debt_covered(self):
        """Test that a withdrawal cannot leave the debt above the credit limit"""
        self.vault.deposit(ALICE, 2 * WAD)
        self.vault.borrow(ALICE, ALICE, 1000 * WAD)

        with self.assertRaises(LimitExceededError):
            self.vault.withdraw(ALICE, 1 * WAD + 1)

        remaining = self.vault.withdraw(ALICE, 1 * WAD)
        self.assertEqual(remaining, 1 * WAD)
        self.assertEqual(self.weth.balance_of(ALICE), 9 * WAD)

    def test_withdraw_everything_closes_debt_free_position(self):
        self.vault.deposit(ALICE, 3 * WAD)

        self.vault.withdraw(ALICE, 3 * WAD)

        self.assertEqual(self.vault.total_positions(), 0)
        self.assertEqual(self.weth.balance_of(ALICE), 10 * WAD)

    def test_withdraw_more_than_deposited(self):
        self.vault.deposit(ALICE, 1 * WAD)
        with self.assertRaises(InvalidInputError):
            self.vault.withdraw(ALICE, 2 * WAD)

    def test_positions_are_keyed_by_owner(self):
        """Test that nobody can act on another owner's position"""
        self.vault.deposit(ALICE, 1 * WAD)
        with self.assertRaises(UnauthorizedError):
            self.vault.borrow(BOB, ALICE, 100 * WAD)
        with self.assertRaises(InvalidInputError):
            self.vault.ledger.deposit(BOB, ALICE + "_other", 1 * WAD)

    def test_repay_and_close(self):
        self.vault.deposit(ALICE, 1 * WAD)
        self.vault.borrow(ALICE, ALICE, 100 * WAD)
        self.stablecoin.add_minter(DAO, DAO)
        self.stablecoin.mint(DAO, ALICE, 1 * WAD)

        self.vault.repay(ALICE, ALICE, 100 * WAD)
        self.vault.close_position(ALICE, ALICE)

        self.assertEqual(self.weth.balance_of(ALICE), 10 * WAD)
        self.assertEqual(self.vault.total_positions(), 0)

    def test_failed_deposit_leaves_no_position(self):
        """Test that a deposit the owner cannot cover is undone"""
        with self.assertRaises(ValueError):
            self.vault.deposit(ALICE, 11 * WAD)
        self.assertEqual(self.vault.total_positions(), 0)


class TestSemiFungibleVault(unittest.TestCase):
    def setUp(self):
        """Token id 7 is worth 100 per unit: ten units back 500 at 50%"""
        self.clock = Clock()
        access = AccessControl(DAO)
        self.stablecoin = Stablecoin(DAO)
        self.items = MultiToken("items", "Items")
        oracle = PriceOracle(self.clock, 100 * WAD)
        provider = OracleValueProvider(oracle, Rate(50, 100), Rate(60, 100))
        self.vault = SemiFungibleVault("item_vault", self.items, self.stablecoin, provider, access, self.clock,
                                       TEST_SETTINGS)
        self.stablecoin.add_minter(DAO, "item_vault")

        self.items.mint(ALICE, 7, 20)
        self.items.mint(ALICE, 8, 5)
        self.items.set_approval_for_all(ALICE, "item_vault")
        self.stablecoin.approve(ALICE, "item_vault", UNLIMITED)

    def test_positions_per_token_id(self):
        """Test that each token id of an owner is its own position"""
        self.vault.deposit(ALICE, 7, 10)
        self.vault.deposit(ALICE, 8, 5)

        key7 = SemiFungibleVault.key_for(ALICE, 7)
        key8 = SemiFungibleVault.key_for(ALICE, 8)
        self.assertEqual(self.vault.open_position_keys(), [key7, key8])
        self.assertEqual(self.vault.get_credit_limit(key7), 500 * WAD)
        self.assertEqual(self.vault.get_credit_limit(key8), 250 * WAD)
        self.assertEqual(self.items.balance_of("item_vault", 7), 10)

    def test_borrow_and_withdraw(self):
        key = SemiFungibleVault.key_for(ALICE, 7)
        self.vault.deposit(ALICE, 7, 10)
        self.vault.borrow(ALICE, key, 400 * WAD)

        # Eight units back 400
        with self.assertRaises(LimitExceededError):
            self.vault.withdraw(ALICE, 7, 3)
        self.assertEqual(self.vault.withdraw(ALICE, 7, 2), 8)
        self.assertEqual(self.items.balance_of(ALICE, 7), 12)

    def test_key_must_belong_to_depositor(self):
        with self.assertRaises(InvalidInputError):
            self.vault.ledger.deposit(BOB, (ALICE, 7), 1)


if __name__ == '__main__':
    unittest.main()
