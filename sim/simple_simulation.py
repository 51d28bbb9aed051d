"""
Simple simulation for the vault economic model.

This script walks one NFT vault through a handful of borrowers, a price
crash, liquidations through the escrow, an insurance repurchase and a fee
collection, printing the system state along the way.
"""

import logging

import numpy as np

from nftvault import SECONDS_PER_YEAR
from nftvault.economic_model import LIQUIDATOR, VaultEconomicModel, from_wei


def print_state(model, title):
    print(f"\n{title}")
    for key, value in model.get_system_state().items():
        print(f"  {key}: {value}")


def run_basic_simulation():
    # Initialize the model
    model = VaultEconomicModel(initial_floor_price=30_000.0, eth_price=2_000.0, seed=7)
    rng = np.random.default_rng(7)

    print("Opening positions...")
    for i in range(6):
        fraction = rng.uniform(0.5, 0.95)
        insured = i % 2 == 0
        index = model.open_position(f"user{i}", borrow_fraction=fraction, insured=insured)
        debt = model.vault.get_debt_amount(index)
        print(f"Position {index}: borrowed {from_wei(debt):.2f} ({fraction:.0%} of credit), insured={insured}")

    print_state(model, "Initial state:")

    # A month of interest
    model.update_time(SECONDS_PER_YEAR // 12)
    print_state(model, "After one month:")

    # Floor price crash
    liquidated = model.update_price(27_000.0)
    print(f"\nPrice dropped to 27000, liquidated positions: {liquidated}")
    print(f"Liquidator balance: {from_wei(model.stablecoin.balance_of(LIQUIDATOR)):.2f}")

    # Owners of insured positions may buy them back
    model.process_insurance(repurchase_probability=1.0)
    print_state(model, "After repurchases:")

    fees = model.collect_fees()
    print(f"\nCollected {from_wei(fees):.2f} in fees")

    for lot in model.auction.lots.values():
        print(f"Auction {lot.auction_id}: {lot.collateral} min bid {from_wei(lot.min_bid):.4f} ETH")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    run_basic_simulation()
