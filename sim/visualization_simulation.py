"""
Visualization simulation for the vault economic model.

This script opens borrowers with varying risk profiles and runs a volatile
market scenario, then plots floor price, total debt, open positions and
protocol fees.
"""

import argparse
import logging

import numpy as np

from nftvault.economic_model import VaultEconomicModel


def run_visualization_simulation(days=60, volatility=0.06, seed=None, save_path=None):
    # Initialize the model
    model = VaultEconomicModel(initial_floor_price=30_000.0, eth_price=2_000.0, seed=seed)
    rng = np.random.default_rng(seed)

    print("Opening positions...")
    # Borrow between 50% and 99% of the credit limit
    for i in range(20):
        fraction = 0.5 + (i * 0.49 / 20)
        insured = bool(rng.random() < 0.4)
        index = model.open_position(f"user{i}", borrow_fraction=fraction, insured=insured)
        print(f"Position {index}: {fraction:.0%} of credit limit, insured={insured}")

    print(f"\nRunning {days}-day simulation...")
    results = model.simulate_market_scenario(days, price_volatility=volatility, drift=-0.01,
                                             repurchase_probability=0.3, plot_results=True,
                                             save_path=save_path)

    print("\nSimulation Results:")
    for key, value in results.items():
        print(f"  {key}: {value}")
    return results


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--days", type=int, default=60)
    parser.add_argument("--volatility", type=float, default=0.06)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--save", dest="save_path", default=None, help="save the figure instead of showing it")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    run_visualization_simulation(args.days, args.volatility, args.seed, args.save_path)
