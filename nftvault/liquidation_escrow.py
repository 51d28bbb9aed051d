"""
Liquidation Escrow Model for the vault protocol.

The escrow is the protocol's liquidator. It holds LIQUIDATOR_ROLE on the
vaults, so third parties never call vault.liquidate directly. Instead they
fund liquidations through the escrow:

1. The funder calls liquidate() with a list of position keys. Positions
   that are not liquidatable are skipped.
2. For each liquidatable position the escrow pulls the debt from the
   funder and liquidates the position, which burns that debt.
3. Uninsured collateral goes straight to the auction, listed with a minimum
   bid equal to the debt, converted through the vault's secondary oracle.
4. Insured positions stay in the vault for the repurchase window. The
   escrow remembers who funded them:
   - if the owner repurchases, the vault mints the frozen debt to the
     escrow and the funder withdraws it with withdraw_repurchase_proceeds();
   - if the window passes, the funder calls claim_expired_insurance() and
     the collateral is auctioned like an uninsured one.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Optional, Tuple

from .auction import Auction
from .errors import InvalidStateError, UnauthorizedError
from .position_ledger import BorrowType
from .snapshot import SnapshotMixin, atomic
from .stablecoin import Stablecoin
from .value_provider import PriceOracle, convert_amount

log = logging.getLogger(__name__)


@dataclass
class InsuredLiquidation:
    """Funder of an insured liquidation and the debt they paid."""
    funder: str
    debt: int


class LiquidationEscrow(SnapshotMixin):
    """
    Drives batch liquidations on behalf of funders.

    Attributes:
        address: The escrow's own account (holds LIQUIDATOR_ROLE on vaults)
        oracles: Secondary oracle per vault address, used to quote auction
            minimum bids in another unit than the stablecoin
        insured: Funders of insured liquidations by (vault address, key)
    """

    snapshot_fields = ("insured",)

    def __init__(self, address: str, stablecoin: Stablecoin, auction: Auction,
                 oracles: Optional[Dict[str, PriceOracle]] = None):
        self.address = address
        self.stablecoin = stablecoin
        self.auction = auction
        self.oracles: Dict[str, PriceOracle] = dict(oracles or {})
        self.insured: Dict[Tuple[str, Hashable], InsuredLiquidation] = {}

    def set_oracle(self, vault_address: str, oracle: Optional[PriceOracle]) -> None:
        """Sets (or with None, removes) the secondary oracle of a vault."""
        if oracle is None:
            self.oracles.pop(vault_address, None)
        else:
            self.oracles[vault_address] = oracle

    def liquidate(self, caller: str, vault, keys: Iterable) -> List[Hashable]:
        """
        Liquidates every liquidatable position among `keys`, paid by `caller`.

        Args:
            caller: Funder; must have approved the escrow for the debts
            vault: Vault holding the positions
            keys: Position keys to try

        Returns:
            Keys that were liquidated

        Raises:
            InsufficientFundsError: If the caller cannot fund one of the
                liquidations (nothing is liquidated then)
            InvalidStateError: If none of the positions was liquidatable
        """
        with atomic(self, self.stablecoin, self.auction, *vault.participants()):
            liquidated = []
            for key in keys:
                if not vault.is_liquidatable(key):
                    log.warning("Skipping %s: position is not liquidatable", vault.custody.describe(key))
                    continue

                position = vault.ledger.get_position(key)
                insured = position.borrow_type is BorrowType.INSURED
                collateral = position.collateral
                debt = vault.get_debt_amount(key)

                # Pull the debt from the funder, then let the vault burn it
                self.stablecoin.transfer_from(self.address, caller, self.address, debt)
                self.stablecoin.approve(self.address, vault.address, debt)
                vault.liquidate(self.address, key, self.auction.address)

                record_key = (vault.address, key)
                if insured:
                    previous = self.insured.get(record_key)
                    if previous is not None:
                        # Earlier liquidation of this position was repurchased
                        self._pay_out(previous)
                    self.insured[record_key] = InsuredLiquidation(funder=caller, debt=debt)
                else:
                    self.auction.new_auction(caller, vault.custody.describe(key), key, collateral,
                                             self._min_bid(vault, debt))
                liquidated.append(key)

            if not liquidated:
                raise InvalidStateError("No position was liquidated")

            log.info("%s liquidated %d positions of vault %s", caller, len(liquidated), vault.address)
            return liquidated

    def claim_expired_insurance(self, caller: str, vault, keys: Iterable) -> List[int]:
        """
        Claims collateral of insured positions whose repurchase window passed.

        Only the funder of each liquidation may claim it. The collateral is
        auctioned with the frozen debt as minimum bid.

        Returns:
            Auction ids of the new lots
        """
        with atomic(self, self.stablecoin, self.auction, *vault.participants()):
            auction_ids = []
            for key in keys:
                record = self.insured.get((vault.address, key))
                if record is None or record.funder != caller:
                    raise UnauthorizedError(f"{caller} did not fund the liquidation of {vault.custody.describe(key)}")

                collateral = vault.ledger.get_position(key).collateral
                vault.claim_expired_insurance(self.address, key, self.auction.address)
                del self.insured[(vault.address, key)]

                auction_ids.append(self.auction.new_auction(
                    caller, vault.custody.describe(key), key, collateral, self._min_bid(vault, record.debt)
                ))
            return auction_ids

    def withdraw_repurchase_proceeds(self, caller: str, vault, key) -> int:
        """
        Pays a funder back after the owner repurchased the position.

        Returns:
            The amount transferred to the funder
        """
        with atomic(self, self.stablecoin):
            record = self.insured.get((vault.address, key))
            if record is None:
                raise InvalidStateError(f"No insured liquidation recorded for {vault.custody.describe(key)}")
            if record.funder != caller:
                raise UnauthorizedError(f"{caller} did not fund the liquidation of {vault.custody.describe(key)}")

            position = vault.ledger.positions.get(key)
            if position is not None and position.is_liquidated and position.liquidator == self.address:
                raise InvalidStateError(f"{vault.custody.describe(key)} has not been repurchased")

            del self.insured[(vault.address, key)]
            self._pay_out(record)
            return record.debt

    def _pay_out(self, record):
        self.stablecoin.transfer(self.address, record.funder, record.debt)
        log.info("Paid %d repurchase proceeds to %s", record.debt, record.funder)

    def _min_bid(self, vault, debt):
        # A zero or stale secondary oracle aborts the whole call
        return convert_amount(debt, self.oracles.get(vault.address))
