"""
Economic Model for the vault protocol.

This module combines all the individual components into a complete model of
one NFT vault: collection, price oracles, value provider, stablecoin, vault,
auction and liquidation escrow. It can be used to simulate market scenarios
and look at how debt, liquidations and protocol fees evolve.

Prices are given to the model as floats (USD per NFT, USD per ETH) and
converted to 18-decimal integers for the on-chain style components.
"""

import logging

import matplotlib.pyplot as plt
import numpy as np

from .access_control import AccessControl
from .auction import Auction
from .clock import Clock
from .constants import DECIMAL_PRECISION, LIQUIDATOR_ROLE
from .errors import VaultError
from .liquidation_escrow import LiquidationEscrow
from .position_ledger import BorrowType
from .rate import Rate
from .stablecoin import Stablecoin
from .tokens import NFTCollection
from .value_provider import OracleValueProvider, PriceOracle
from .vault import NFTVault

log = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

DAO = "dao"
LIQUIDATOR = "liquidator"
VAULT = "nft_vault"
ESCROW = "liquidation_escrow"
AUCTION = "auction"
COLLECTION = "collection"


def to_wei(amount: float) -> int:
    """Converts a float amount to an 18-decimal integer (cent precision)."""
    return int(round(amount * 100)) * DECIMAL_PRECISION // 100


def from_wei(amount: int) -> float:
    return amount / DECIMAL_PRECISION


class VaultEconomicModel:
    """
    Complete economic model of one NFT vault.
    Combines all components and provides simulation capabilities.
    """

    def __init__(self, initial_floor_price=30_000.0, eth_price=2_000.0, settings=None,
                 credit_limit_rate=Rate(32, 100), liquidation_limit_rate=Rate(33, 100), seed=None):
        self.clock = Clock()
        self.rng = np.random.default_rng(seed)

        # Roles and stablecoin
        self.access = AccessControl(DAO)
        self.stablecoin = Stablecoin(DAO)

        # Collateral and its valuation
        self.collection = NFTCollection(COLLECTION, "Collection")
        self.floor_oracle = PriceOracle(self.clock, to_wei(initial_floor_price), description="floor/USD")
        self.eth_oracle = PriceOracle(self.clock, to_wei(eth_price), description="ETH/USD")
        self.value_provider = OracleValueProvider(self.floor_oracle, credit_limit_rate, liquidation_limit_rate,
                                                  access=self.access)

        # Vault, auction and escrow
        self.vault = NFTVault(VAULT, self.collection, self.stablecoin, self.value_provider,
                              self.access, self.clock, settings)
        self.auction = Auction(AUCTION, self.clock)
        self.escrow = LiquidationEscrow(ESCROW, self.stablecoin, self.auction, {VAULT: self.eth_oracle})

        # Wire permissions
        self.stablecoin.add_minter(DAO, VAULT)
        # The DAO mints to stand in for market purchases of stablecoin
        self.stablecoin.add_minter(DAO, DAO)
        self.access.grant_role(DAO, LIQUIDATOR_ROLE, ESCROW)

        self.next_index = 0
        self.fees_collected = 0
        self.liquidation_count = 0
        self.repurchase_count = 0
        self.expired_count = 0

        # History tracking
        self.time_history = []
        self.price_history = []
        self.total_debt_history = []
        self.open_positions_history = []
        self.fees_history = []

    # ------------------------------------------------------------------
    # Actors
    # ------------------------------------------------------------------

    def open_position(self, owner, borrow_fraction=0.9, insured=False):
        """
        Mints a new NFT to `owner` and borrows against it.

        Args:
            owner: Borrower address
            borrow_fraction: Share of the credit limit to borrow
            insured: Whether to buy insurance

        Returns:
            The token index used as position key
        """
        index = self.next_index
        self.next_index += 1
        self.collection.mint(owner, index)
        self.collection.set_approval_for_all(owner, VAULT)
        # Owners let the vault burn their stablecoin on repay and repurchase
        self.stablecoin.approve(owner, VAULT, 2**255)

        credit_limit = self.value_provider.credit_limit(owner, 1)
        amount = credit_limit * int(round(borrow_fraction * 10_000)) // 10_000
        self.vault.borrow(owner, index, amount, insured)
        return index

    def fund(self, account, amount):
        """Gives `account` stablecoin bought on the market."""
        if amount > 0:
            self.stablecoin.mint(DAO, account, amount)

    def liquidate_positions(self):
        """
        Liquidates every liquidatable position through the escrow.

        Returns:
            Keys that were liquidated
        """
        keys = [key for key in self.vault.open_position_keys() if self.vault.is_liquidatable(key)]
        if not keys:
            return []

        # Each liquidation can shift the floored debt of the next one by a unit
        needed = sum(self.vault.get_debt_amount(key) for key in keys) + len(keys)
        self.fund(LIQUIDATOR, needed - self.stablecoin.balance_of(LIQUIDATOR))
        self.stablecoin.approve(LIQUIDATOR, ESCROW, needed)

        liquidated = self.escrow.liquidate(LIQUIDATOR, self.vault, keys)
        self.liquidation_count += len(liquidated)
        return liquidated

    def process_insurance(self, repurchase_probability=0.5):
        """
        Resolves insured positions in their repurchase window.

        Each owner repurchases with the given probability; positions whose
        window has passed are claimed by the liquidator.
        """
        settings = self.vault.settings
        for key in self.vault.open_position_keys():
            position = self.vault.positions[key]
            if not position.is_liquidated:
                continue

            deadline = position.liquidated_at + settings.insurance_repurchase_time_limit
            if self.clock.now >= deadline:
                self.escrow.claim_expired_insurance(LIQUIDATOR, self.vault, [key])
                self.expired_count += 1
                continue

            if self.rng.random() >= repurchase_probability:
                continue

            frozen = position.debt_amount_for_repurchase
            penalty = settings.insurance_liquidation_penalty_rate.calculate(frozen)
            owner = position.owner
            self.fund(owner, frozen + penalty - self.stablecoin.balance_of(owner))
            try:
                self.vault.repurchase(owner, key, frozen)
            except VaultError as e:
                log.warning("Repurchase of %s failed: %s", key, e)
                continue
            self.escrow.withdraw_repurchase_proceeds(LIQUIDATOR, self.vault, key)
            self.repurchase_count += 1

    def collect_fees(self):
        fees = self.vault.collect(DAO)
        self.fees_collected += fees
        return fees

    # ------------------------------------------------------------------
    # Market
    # ------------------------------------------------------------------

    def update_price(self, new_price):
        """
        Updates the floor price and liquidates what became liquidatable.

        Args:
            new_price: New floor price in USD

        Returns:
            Keys that were liquidated
        """
        self.floor_oracle.set_price(to_wei(new_price))
        liquidated = self.liquidate_positions()
        self._update_history()
        return liquidated

    def update_time(self, seconds):
        self.clock.advance(seconds)
        self._update_history()

    def get_system_state(self):
        """
        Returns the current state of the system.

        Returns:
            Dictionary with system state
        """
        open_keys = self.vault.open_position_keys()
        in_window = sum(1 for key in open_keys if self.vault.positions[key].is_liquidated)
        insured = sum(1 for key in open_keys if self.vault.positions[key].borrow_type is BorrowType.INSURED)

        return {
            'time': self.clock.now,
            'floor_price': from_wei(self.floor_oracle.price),
            'total_debt': from_wei(self.vault.total_debt_amount()),
            'open_positions': len(open_keys) - in_window,
            'insured_positions': insured,
            'in_repurchase_window': in_window,
            'pending_fees': from_wei(self.vault.debt_pool.total_fee_collected),
            'fees_collected': from_wei(self.fees_collected),
            'stablecoin_supply': from_wei(self.stablecoin.total_supply),
            'auction_lots': len(self.auction.lots),
            'liquidations': self.liquidation_count,
            'repurchases': self.repurchase_count,
            'expired_insurance': self.expired_count,
        }

    def _update_history(self):
        state = self.get_system_state()
        self.time_history.append(state['time'])
        self.price_history.append(state['floor_price'])
        self.total_debt_history.append(state['total_debt'])
        self.open_positions_history.append(state['open_positions'])
        self.fees_history.append(state['pending_fees'] + state['fees_collected'])

    def simulate_market_scenario(self, days, price_volatility=0.05, drift=0.0,
                                 repurchase_probability=0.5, plot_results=True, save_path=None):
        """
        Runs a simulation with random floor price movements.

        Args:
            days: Number of days to simulate
            price_volatility: Daily volatility (standard deviation of log returns)
            drift: Daily drift of log returns
            repurchase_probability: Chance per step that a liquidated insured
                owner repurchases
            plot_results: Whether to plot the results
            save_path: Save the figure there instead of showing it

        Returns:
            Dictionary with simulation results
        """
        steps = days * 24  # hourly steps
        step_size = SECONDS_PER_DAY // 24

        # Reset history
        self.time_history, self.price_history = [], []
        self.total_debt_history, self.open_positions_history, self.fees_history = [], [], []
        self._update_history()

        # Generate random price movements (log-normal)
        price = from_wei(self.floor_oracle.latest_price())
        hourly_volatility = price_volatility / np.sqrt(24)
        log_returns = self.rng.normal(drift / 24, hourly_volatility, steps)

        for i in range(steps):
            self.update_time(step_size)
            price *= np.exp(log_returns[i])
            self.update_price(float(price))
            self.process_insurance(repurchase_probability)

        self.collect_fees()
        self._update_history()

        if plot_results:
            self.plot_history(save_path)

        results = self.get_system_state()
        log.info("Simulated %d days: %d liquidations, %d repurchases", days,
                 self.liquidation_count, self.repurchase_count)
        return results

    def plot_history(self, save_path=None):
        """Plots floor price, total debt, open positions and fees over time."""
        days = (np.array(self.time_history) - self.time_history[0]) / SECONDS_PER_DAY

        fig, axs = plt.subplots(4, 1, figsize=(12, 16), sharex=True)

        # Plot floor price
        axs[0].plot(days, self.price_history)
        axs[0].set_title('Floor Price')
        axs[0].set_ylabel('USD')

        # Plot total debt
        axs[1].plot(days, self.total_debt_history)
        axs[1].set_title('Total Vault Debt')
        axs[1].set_ylabel(self.stablecoin.symbol)

        # Plot open positions
        axs[2].plot(days, self.open_positions_history)
        axs[2].set_title('Open Positions')
        axs[2].set_ylabel('Count')

        # Plot protocol fees
        axs[3].plot(days, self.fees_history)
        axs[3].set_title('Protocol Fees (pending + collected)')
        axs[3].set_ylabel(self.stablecoin.symbol)
        axs[3].set_xlabel('Days')

        plt.tight_layout()
        if save_path:
            fig.savefig(save_path)
            plt.close(fig)
        else:
            plt.show()
        return fig
