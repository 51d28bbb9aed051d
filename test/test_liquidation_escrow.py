"""
Unit tests for the LiquidationEscrow and the Auction it feeds.
"""

import unittest

from nftvault import (
    LIQUIDATOR_ROLE,
    Auction,
    InsufficientFundsError,
    InvalidStateError,
    LiquidationEscrow,
    OracleFailureError,
    PriceOracle,
    UnauthorizedError,
)
from vault_fixtures import ALICE, BOB, CAROL, DAO, VAULT, WAD, WINDOW, VaultWorld

KEEPER = "keeper"
ESCROW = "escrow"
AUCTION = "auction"


class TestLiquidationEscrow(unittest.TestCase):
    def setUp(self):
        """
        Alice (uninsured) and Bob (insured) borrow 1000 each, Carol borrows
        100. The floor price then drops to 1600, so the liquidation limit is
        960 and only Alice and Bob can be liquidated.
        """
        self.world = VaultWorld()
        self.vault = self.world.vault
        self.stablecoin = self.world.stablecoin

        self.auction = Auction(AUCTION, self.world.clock)
        self.eth_oracle = PriceOracle(self.world.clock, 2000 * WAD, description="ETH/USD")
        self.escrow = LiquidationEscrow(ESCROW, self.stablecoin, self.auction, {VAULT: self.eth_oracle})
        self.world.access.grant_role(DAO, LIQUIDATOR_ROLE, ESCROW)

        for index, owner in enumerate((ALICE, BOB, CAROL), start=1):
            self.world.give_nft(owner, index)
        self.vault.borrow(ALICE, 1, 1000 * WAD)
        self.vault.borrow(BOB, 2, 1000 * WAD, use_insurance=True)
        self.vault.borrow(CAROL, 3, 100 * WAD)
        self.world.set_price(1600 * WAD)

        self.world.fund(KEEPER, 2000 * WAD)
        self.stablecoin.approve(KEEPER, ESCROW, 2000 * WAD)

    def test_liquidate_skips_healthy_positions(self):
        """Test a batch where one candidate is not liquidatable"""
        with self.assertLogs("nftvault.liquidation_escrow", level="WARNING") as logs:
            liquidated = self.escrow.liquidate(KEEPER, self.vault, [1, 2, 3])

        self.assertEqual(liquidated, [1, 2])
        self.assertIn("not liquidatable", logs.output[0])
        self.assertEqual(self.stablecoin.balance_of(KEEPER), 0)
        self.assertEqual(self.stablecoin.balance_of(ESCROW), 0)
        self.assertIn(3, self.world.ledger.positions)

    def test_uninsured_collateral_is_auctioned(self):
        """Test that the auction gets the NFT and a min bid converted to ETH"""
        self.escrow.liquidate(KEEPER, self.vault, [1])

        self.assertEqual(self.world.collection.owner_of(1), AUCTION)
        lot = self.auction.get_lot(0)
        self.assertEqual(lot.seller, KEEPER)
        self.assertEqual(lot.key, 1)
        # 1000 USD of debt at 2000 USD/ETH
        self.assertEqual(lot.min_bid, WAD // 2)

    def test_insured_liquidation_is_recorded(self):
        """Test that insured positions stay in the vault with the escrow as liquidator"""
        self.escrow.liquidate(KEEPER, self.vault, [2])

        position = self.world.ledger.positions[2]
        self.assertTrue(position.is_liquidated)
        self.assertEqual(position.liquidator, ESCROW)
        self.assertEqual(self.escrow.insured[(VAULT, 2)].funder, KEEPER)
        self.assertEqual(self.escrow.insured[(VAULT, 2)].debt, 1000 * WAD)
        self.assertEqual(self.auction.lots, {})

    def test_nothing_to_liquidate(self):
        with self.assertRaises(InvalidStateError):
            self.escrow.liquidate(KEEPER, self.vault, [3, 99])

    def test_insufficient_funds_aborts_everything(self):
        """Test that a funder who runs out of money undoes the whole batch"""
        self.stablecoin.transfer(KEEPER, CAROL, 500 * WAD)

        with self.assertRaises(InsufficientFundsError):
            self.escrow.liquidate(KEEPER, self.vault, [1, 2])

        self.assertFalse(self.world.ledger.positions[1].is_liquidated)
        self.assertFalse(self.world.ledger.positions[2].is_liquidated)
        self.assertEqual(self.world.collection.owner_of(1), VAULT)
        self.assertIn(1, self.world.ledger.positions)
        self.assertEqual(self.stablecoin.balance_of(KEEPER), 1500 * WAD)
        self.assertEqual(self.auction.lots, {})

    def test_missing_oracle_uses_raw_debt(self):
        self.escrow.set_oracle(VAULT, None)
        self.escrow.liquidate(KEEPER, self.vault, [1])
        self.assertEqual(self.auction.get_lot(0).min_bid, 1000 * WAD)

    def test_broken_oracle_aborts(self):
        """Test that a never-updated secondary oracle is fatal"""
        self.escrow.set_oracle(VAULT, PriceOracle(self.world.clock))

        with self.assertRaises(OracleFailureError):
            self.escrow.liquidate(KEEPER, self.vault, [1])
        self.assertIn(1, self.world.ledger.positions)

    def test_claim_expired_insurance(self):
        """Test that the funder auctions insured collateral after the window"""
        self.escrow.liquidate(KEEPER, self.vault, [2])

        with self.assertRaises(UnauthorizedError):
            self.escrow.claim_expired_insurance(ALICE, self.vault, [2])
        with self.assertRaises(InvalidStateError):
            self.escrow.claim_expired_insurance(KEEPER, self.vault, [2])

        self.world.clock.advance(WINDOW)
        auction_ids = self.escrow.claim_expired_insurance(KEEPER, self.vault, [2])

        self.assertEqual(len(auction_ids), 1)
        self.assertEqual(self.world.collection.owner_of(2), AUCTION)
        self.assertEqual(self.auction.get_lot(auction_ids[0]).min_bid, WAD // 2)
        self.assertNotIn((VAULT, 2), self.escrow.insured)
        self.assertNotIn(2, self.world.ledger.positions)

    def test_withdraw_repurchase_proceeds(self):
        """Test that the funder is paid once the owner buys the position back"""
        self.escrow.liquidate(KEEPER, self.vault, [2])

        with self.assertRaises(InvalidStateError):
            self.escrow.withdraw_repurchase_proceeds(KEEPER, self.vault, 2)

        # 1000 frozen debt plus the 25% penalty
        self.world.fund(BOB, 1250 * WAD - self.stablecoin.balance_of(BOB))
        self.vault.repurchase(BOB, 2, 1000 * WAD)
        self.assertEqual(self.stablecoin.balance_of(ESCROW), 1000 * WAD)

        with self.assertRaises(UnauthorizedError):
            self.escrow.withdraw_repurchase_proceeds(ALICE, self.vault, 2)

        paid = self.escrow.withdraw_repurchase_proceeds(KEEPER, self.vault, 2)

        self.assertEqual(paid, 1000 * WAD)
        self.assertEqual(self.stablecoin.balance_of(KEEPER), 2000 * WAD)
        self.assertEqual(self.stablecoin.balance_of(ESCROW), 0)
        self.assertEqual(self.world.collection.owner_of(2), BOB)


class TestAuction(unittest.TestCase):
    def test_lots_get_sequential_ids(self):
        auction = Auction(AUCTION, VaultWorld().clock)
        first = auction.new_auction(KEEPER, "nft:1", 1, 1, 10)
        second = auction.new_auction(ALICE, "nft:2", 2, 1, 20)

        self.assertEqual((first, second), (0, 1))
        self.assertEqual([lot.key for lot in auction.lots_by_seller(KEEPER)], [1])
        with self.assertRaises(InvalidStateError):
            auction.get_lot(5)


if __name__ == '__main__':
    unittest.main()
