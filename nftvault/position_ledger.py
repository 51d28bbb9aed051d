"""
Position Ledger Model for the vault protocol.

This module holds the core state machine of a vault: one record per
collateral key, and the operations that move a position between its
states:

    (absent) --open/first borrow--> OPEN --liquidate, uninsured--> (absent)
                                     |  \\--close (zero debt)----> (absent)
                                     |
                                     +--liquidate, insured--> LIQUIDATED
                                                              |      |
                              repurchase within the window <--+      +--> claim after
                              (back to OPEN, or absent when           the window
                               the whole debt was repaid)             (absent)

The ledger is generic over the collateral kind. Moving collateral is
delegated to a CollateralCustody adapter, valuing it to a ValueProvider,
and debt bookkeeping to the vault's DebtPool. The ledger never accrues
interest itself; the vault accrues before calling the operations that need
it.

Every operation validates first and mutates its own accounting before it
calls the stablecoin or the custody adapter. Rolling back a failed call is
the vault's job (see snapshot.atomic).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Hashable, List, Optional

from .access_control import AccessControl
from .clock import Clock
from .constants import LIQUIDATOR_ROLE, is_zero_address
from .custody import CollateralCustody
from .debt_pool import DebtPool
from .errors import (
    InvalidInputError,
    InvalidStateError,
    LedgerInvariantError,
    LimitExceededError,
    UnauthorizedError,
)
from .settings import VaultSettings
from .snapshot import SnapshotMixin
from .stablecoin import Stablecoin
from .value_provider import ValueProvider

log = logging.getLogger(__name__)


class BorrowType(Enum):
    """
    Insurance mode of a position.

    The mode is chosen by the first borrow and fixed until the position is
    deleted.
    """
    NOT_CONFIRMED = 0  # No borrow yet
    NON_INSURED = 1    # Liquidation sends the collateral away immediately
    INSURED = 2        # Liquidation opens a repurchase window for the owner


@dataclass
class Position:
    """
    A single collateralized debt position.

    A position exists from the moment collateral enters custody until the
    collateral leaves it again. `liquidated_at == 0` means the position has
    not been liquidated.
    """
    owner: str
    collateral: int = 0                  # Amount held in custody
    borrow_type: BorrowType = BorrowType.NOT_CONFIRMED
    debt_principal: int = 0              # Borrowed amount not yet repaid, without interest
    debt_portion: int = 0                # Share of the pool's total debt
    debt_amount_for_repurchase: int = 0  # Debt frozen at an insured liquidation
    liquidated_at: int = 0               # Timestamp of an insured liquidation
    liquidator: Optional[str] = None     # Who liquidated an insured position

    @property
    def is_liquidated(self) -> bool:
        return self.liquidated_at != 0


@dataclass
class PositionPreview:
    """Read-only summary of a position, as returned by show_position()."""
    key: Any
    owner: str
    collateral: int
    borrow_type: BorrowType
    debt_principal: int
    debt_interest: int
    debt_amount: int
    credit_limit: int
    liquidation_limit: int
    is_liquidatable: bool
    liquidated_at: int
    liquidator: Optional[str]
    debt_amount_for_repurchase: int
    repurchase_deadline: int  # 0 unless the position is in its insurance window


@dataclass
class Event:
    """One entry of the ledger's event log."""
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


class PositionLedger(SnapshotMixin):
    """
    Owns every position of one vault and enforces their state machine.

    Attributes:
        positions: Position records by key
        open_keys: Keys of existing positions, in opening order
        settings: Current vault settings (replaced by the vault's admin calls)
        events: Event log, rolled back together with the positions
    """

    snapshot_fields = ("positions", "open_keys", "settings", "events")

    def __init__(self, debt_pool: DebtPool, custody: CollateralCustody, stablecoin: Stablecoin,
                 value_provider: ValueProvider, access: AccessControl, clock: Clock,
                 settings: VaultSettings, address: str):
        self.debt_pool = debt_pool
        self.custody = custody
        self.stablecoin = stablecoin
        self.value_provider = value_provider
        self.access = access
        self.clock = clock
        self.settings = settings
        self.address = address

        self.positions: Dict[Hashable, Position] = {}
        # Used as an insertion-ordered set
        self.open_keys: Dict[Hashable, None] = {}
        self.events: List[Event] = []

    @property
    def now(self) -> int:
        return self.clock.now

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_position(self, key) -> Position:
        """
        Returns the position stored under `key`.

        Raises:
            InvalidStateError: If no position exists for the key
        """
        position = self.positions.get(key)
        if position is None:
            raise InvalidStateError(f"No position for {self.custody.describe(key)}")
        return position

    def debt_amount(self, key) -> int:
        """
        Current debt of a position, pending interest included.

        Never less than the principal: the portion conversion floors and
        may lose a unit or two right after a borrow.
        """
        position = self.positions.get(key)
        if position is None:
            return 0
        calculated = self.debt_pool.debt_of(position.debt_portion, self.now, self.settings.debt_interest_apr)
        return max(calculated, position.debt_principal)

    def debt_interest(self, key) -> int:
        position = self.positions.get(key)
        if position is None:
            return 0
        return self.debt_amount(key) - position.debt_principal

    def credit_limit(self, key) -> int:
        position = self.get_position(key)
        return self.value_provider.credit_limit(position.owner, self.custody.value_of(position))

    def liquidation_limit(self, key) -> int:
        position = self.get_position(key)
        return self.value_provider.liquidation_limit(position.owner, self.custody.value_of(position))

    def is_liquidatable(self, key) -> bool:
        """True when the position exists, is not liquidated and its debt reached the liquidation limit."""
        position = self.positions.get(key)
        if position is None or position.is_liquidated:
            return False
        debt = self.debt_amount(key)
        return debt > 0 and debt >= self.liquidation_limit(key)

    def repurchase_deadline(self, key) -> int:
        position = self.get_position(key)
        if not position.is_liquidated:
            return 0
        return position.liquidated_at + self.settings.insurance_repurchase_time_limit

    def show_position(self, key) -> PositionPreview:
        position = self.get_position(key)
        debt = self.debt_amount(key)
        return PositionPreview(
            key=key,
            owner=position.owner,
            collateral=position.collateral,
            borrow_type=position.borrow_type,
            debt_principal=position.debt_principal,
            debt_interest=debt - position.debt_principal,
            debt_amount=debt,
            credit_limit=self.credit_limit(key),
            liquidation_limit=self.liquidation_limit(key),
            is_liquidatable=self.is_liquidatable(key),
            liquidated_at=position.liquidated_at,
            liquidator=position.liquidator,
            debt_amount_for_repurchase=position.debt_amount_for_repurchase,
            repurchase_deadline=self.repurchase_deadline(key),
        )

    def get_open_keys(self) -> List[Hashable]:
        return list(self.open_keys)

    def total_positions(self) -> int:
        return len(self.open_keys)

    # ------------------------------------------------------------------
    # Opening and collateral
    # ------------------------------------------------------------------

    def open(self, owner: str, key, amount: int) -> Position:
        """
        Opens a position by pulling `amount` of collateral from `owner`.

        Args:
            owner: Account the position will belong to
            key: Collateral key (token index, owner address or (owner, id))
            amount: Collateral amount to pull into custody

        Returns:
            The new position

        Raises:
            InvalidStateError: If a position already exists for the key
        """
        position = self._create_position(owner, key, amount)
        self.custody.transfer_in(owner, key, amount)
        self.emit("PositionOpened", key=key, owner=owner, collateral=amount)
        return position

    def deposit(self, account: str, key, amount: int) -> Position:
        """
        Adds collateral to the account's position, opening it if needed.

        Only fungible kinds can be topped up; an NFT position holds exactly
        one token.
        """
        if amount <= 0:
            raise InvalidInputError("Deposit amount must be greater than zero")
        position = self.positions.get(key)
        if position is None:
            return self.open(account, key, amount)

        if position.owner != account:
            raise UnauthorizedError(f"{account} does not own position {self.custody.describe(key)}")
        if position.is_liquidated:
            raise InvalidStateError(f"Position {self.custody.describe(key)} is liquidated")
        if self.custody.opens_on_borrow:
            raise InvalidStateError("NFT positions cannot be topped up")

        position.collateral += amount
        self.custody.transfer_in(account, key, amount)
        self.emit("CollateralDeposited", key=key, owner=account, amount=amount)
        return position

    def withdraw(self, account: str, key, amount: int) -> int:
        """
        Returns part of a fungible position's collateral to its owner.

        The remaining collateral must still cover the current debt.
        Withdrawing everything from a debt-free position deletes it.

        Returns:
            The collateral left in the position
        """
        position = self.get_position(key)
        if position.owner != account:
            raise UnauthorizedError(f"{account} does not own position {self.custody.describe(key)}")
        if position.is_liquidated:
            raise InvalidStateError(f"Position {self.custody.describe(key)} is liquidated")
        if self.custody.opens_on_borrow:
            raise InvalidStateError("NFT positions are released with close_position")
        if amount <= 0 or amount > position.collateral:
            raise InvalidInputError(f"Cannot withdraw {amount} of {position.collateral} collateral")

        remaining = position.collateral - amount
        debt = self.debt_amount(key)
        if debt > 0:
            credit_limit = self.value_provider.credit_limit(position.owner, remaining)
            if debt > credit_limit:
                raise LimitExceededError(
                    f"Withdrawal leaves debt {debt} above credit limit {credit_limit}"
                )

        position.collateral = remaining
        if remaining == 0 and debt == 0:
            self._release_dust_portion(position)
            self._delete_position(key)

        self.custody.transfer_out(account, key, amount)
        self.emit("CollateralWithdrawn", key=key, owner=account, amount=amount, remaining=remaining)
        return remaining

    # ------------------------------------------------------------------
    # Borrowing and repaying
    # ------------------------------------------------------------------

    def borrow(self, account: str, key, amount: int, use_insurance: bool = False) -> int:
        """
        Borrows stablecoin against a position.

        For NFT collateral the first borrow opens the position and pulls
        the token. The first borrow also fixes the insurance mode.

        Args:
            account: Borrower; must own the position if it exists
            key: Collateral key
            amount: Debt to take on (fees are deducted from the payout)
            use_insurance: Whether the position is insured

        Returns:
            The stablecoin amount paid out (amount minus fees)

        Raises:
            InvalidInputError: If amount is not positive
            UnauthorizedError: If account does not own the position
            InvalidStateError: If the position is liquidated, not yet
                opened, or borrowed under the other insurance mode
            LimitExceededError: If the credit limit or the global debt cap
                would be exceeded
        """
        if amount <= 0:
            raise InvalidInputError("Borrow amount must be greater than zero")
        if is_zero_address(account):
            raise InvalidInputError("Borrower cannot be the zero address")

        borrow_type = BorrowType.INSURED if use_insurance else BorrowType.NON_INSURED
        position = self.positions.get(key)

        if position is None:
            if not self.custody.opens_on_borrow:
                raise InvalidStateError(f"No collateral deposited for {self.custody.describe(key)}")
            self.custody.check_key(account, key)
            collateral = self.custody.unit
            debt = 0
            current_type = BorrowType.NOT_CONFIRMED
        else:
            if position.owner != account:
                raise UnauthorizedError(f"{account} does not own position {self.custody.describe(key)}")
            if position.is_liquidated:
                raise InvalidStateError(f"Position {self.custody.describe(key)} is liquidated")
            collateral = self.custody.value_of(position)
            debt = self.debt_amount(key)
            current_type = position.borrow_type

        if current_type not in (BorrowType.NOT_CONFIRMED, borrow_type):
            raise InvalidStateError(
                f"Position {self.custody.describe(key)} is {current_type.name}, cannot borrow as {borrow_type.name}"
            )

        credit_limit = self.value_provider.credit_limit(account, collateral)
        if debt + amount > credit_limit:
            raise LimitExceededError(f"Debt {debt} + {amount} exceeds credit limit {credit_limit}")

        if self.debt_pool.total_debt_amount + amount > self.settings.borrow_amount_cap:
            raise LimitExceededError(
                f"Borrow of {amount} exceeds the global debt cap {self.settings.borrow_amount_cap}"
            )

        opened = position is None
        if opened:
            position = self._create_position(account, key, collateral)

        # Update debt
        position.borrow_type = borrow_type
        portion = self.debt_pool.add_debt(amount)
        position.debt_portion += portion
        position.debt_principal += amount

        # Fees are kept by the protocol out of the payout
        fee = self.settings.organization_fee_rate.calculate(amount)
        if borrow_type is BorrowType.INSURED:
            fee += self.settings.insurance_purchase_rate.calculate(amount)
        self.debt_pool.add_fee(fee)

        if opened:
            self.custody.transfer_in(account, key, collateral)
            self.emit("PositionOpened", key=key, owner=account, collateral=collateral)
        paid_out = amount - fee
        self.stablecoin.mint(self.address, account, paid_out)

        self.emit("Borrowed", key=key, owner=account, amount=amount, fee=fee, insured=use_insurance)
        log.info("%s borrowed %d against %s (fee %d)", account, amount, self.custody.describe(key), fee)
        return paid_out

    def repay(self, account: str, key, amount: int) -> int:
        """
        Repays debt of a position, interest first.

        The amount is clamped to the outstanding debt, so over-repayment is
        impossible.

        Returns:
            The amount actually repaid and burned
        """
        if amount <= 0:
            raise InvalidInputError("Repay amount must be greater than zero")
        position = self.get_position(key)
        if position.owner != account:
            raise UnauthorizedError(f"{account} does not own position {self.custody.describe(key)}")
        if position.is_liquidated:
            raise InvalidStateError(f"Position {self.custody.describe(key)} is liquidated")

        debt = self.debt_amount(key)
        if debt == 0:
            raise InvalidStateError(f"Position {self.custody.describe(key)} has no debt")

        amount = min(amount, debt)
        interest = debt - position.debt_principal
        paid_principal = max(amount - interest, 0)

        if amount == debt:
            portion = position.debt_portion
        else:
            # A partly repaid position keeps at least one portion so it still accrues
            portion = min(self.debt_pool.portion_for_amount(amount), max(position.debt_portion - 1, 0))

        # Update debt
        self.debt_pool.remove_debt(amount, portion)
        position.debt_portion -= portion
        position.debt_principal -= paid_principal

        self.stablecoin.burn_from(self.address, account, amount)

        self.emit("Repaid", key=key, owner=account, amount=amount, interest=min(amount, interest))
        log.info("%s repaid %d on %s", account, amount, self.custody.describe(key))
        return amount

    def close_position(self, account: str, key) -> None:
        """Deletes a debt-free position and returns its collateral to the owner."""
        position = self.get_position(key)
        if position.owner != account:
            raise UnauthorizedError(f"{account} does not own position {self.custody.describe(key)}")
        if position.is_liquidated:
            raise InvalidStateError(f"Position {self.custody.describe(key)} is liquidated")
        debt = self.debt_amount(key)
        if debt > 0:
            raise InvalidStateError(f"Position {self.custody.describe(key)} still owes {debt}")

        self._release_dust_portion(position)
        self._delete_position(key)
        self.custody.transfer_out(account, key, position.collateral)

        self.emit("PositionClosed", key=key, owner=account, collateral=position.collateral)
        log.info("%s closed %s", account, self.custody.describe(key))

    # ------------------------------------------------------------------
    # Liquidation and insurance
    # ------------------------------------------------------------------

    def liquidate(self, caller: str, key, recipient: str) -> int:
        """
        Liquidates a position whose debt reached its liquidation limit.

        The caller pays the whole debt, which is burned. An uninsured
        position is deleted and its collateral sent to `recipient`. An
        insured position keeps its collateral in custody for the
        repurchase window and remembers the caller as its liquidator.

        Returns:
            The debt burned from the caller
        """
        self.access.check_role(LIQUIDATOR_ROLE, caller)
        if is_zero_address(recipient):
            raise InvalidInputError("Liquidation recipient cannot be the zero address")
        position = self.get_position(key)
        if position.is_liquidated:
            raise InvalidStateError(f"Position {self.custody.describe(key)} is already liquidated")

        debt = self.debt_amount(key)
        if debt == 0:
            raise InvalidStateError(f"Position {self.custody.describe(key)} has no debt")
        liquidation_limit = self.liquidation_limit(key)
        if debt < liquidation_limit:
            raise InvalidStateError(
                f"Position {self.custody.describe(key)} is not liquidatable: debt {debt} < limit {liquidation_limit}"
            )

        # Update debt
        self.debt_pool.remove_debt(debt, position.debt_portion)
        position.debt_portion = 0
        position.debt_principal = 0

        insured = position.borrow_type is BorrowType.INSURED
        if insured:
            position.debt_amount_for_repurchase = debt
            position.liquidated_at = self.now
            position.liquidator = caller
        else:
            self._delete_position(key)

        self.stablecoin.burn_from(self.address, caller, debt)
        if not insured:
            self.custody.transfer_out(recipient, key, position.collateral)

        self.emit("Liquidated", key=key, owner=position.owner, liquidator=caller, debt=debt, insured=insured)
        log.info("%s liquidated %s for %d (insured=%s)", caller, self.custody.describe(key), debt, insured)
        return debt

    def repurchase(self, account: str, key, repay_amount: int) -> int:
        """
        Buys back an insured, liquidated position within the insurance window.

        The owner repays part or all of the frozen debt plus a penalty. The
        liquidator is made whole with the full frozen debt. Whatever is not
        repaid becomes the position's new debt and must fit the current
        credit limit; repaying everything releases the collateral.

        Returns:
            The penalty charged
        """
        position = self.get_position(key)
        if position.owner != account:
            raise UnauthorizedError(f"{account} does not own position {self.custody.describe(key)}")
        if not position.is_liquidated:
            raise InvalidStateError(f"Position {self.custody.describe(key)} is not liquidated")
        if position.borrow_type is not BorrowType.INSURED:
            raise LedgerInvariantError(f"Liquidated position {key!r} is not insured")
        deadline = position.liquidated_at + self.settings.insurance_repurchase_time_limit
        if self.now >= deadline:
            raise InvalidStateError(f"Insurance of {self.custody.describe(key)} expired at {deadline}")

        frozen_debt = position.debt_amount_for_repurchase
        if repay_amount <= 0 or repay_amount > frozen_debt:
            raise InvalidInputError(f"Repurchase amount must be in (0, {frozen_debt}], got {repay_amount}")

        new_debt = frozen_debt - repay_amount
        credit_limit = self.value_provider.credit_limit(position.owner, self.custody.value_of(position))
        if new_debt > credit_limit:
            raise LimitExceededError(f"Remaining debt {new_debt} exceeds credit limit {credit_limit}")

        penalty = self.settings.insurance_liquidation_penalty_rate.calculate(frozen_debt)
        liquidator = position.liquidator

        # Clear the liquidation and restore the remaining debt
        position.liquidated_at = 0
        position.liquidator = None
        position.debt_amount_for_repurchase = 0
        if new_debt > 0:
            # Price the new portion against a pool that includes pending interest
            self.debt_pool.accrue(self.now, self.settings.debt_interest_apr)
            position.debt_portion = self.debt_pool.add_debt(new_debt)
            position.debt_principal = new_debt
        else:
            self._delete_position(key)
        self.debt_pool.add_fee(penalty)

        self.stablecoin.burn_from(self.address, account, repay_amount + penalty)
        self.stablecoin.mint(self.address, liquidator, frozen_debt)
        if new_debt == 0:
            self.custody.transfer_out(account, key, position.collateral)

        self.emit("Repurchased", key=key, owner=account, liquidator=liquidator,
                   repaid=repay_amount, penalty=penalty, remaining_debt=new_debt)
        log.info("%s repurchased %s (repaid %d, penalty %d)", account, self.custody.describe(key), repay_amount, penalty)
        return penalty

    def claim_expired_insurance(self, caller: str, key, recipient: str) -> None:
        """Lets the liquidator take the collateral once the repurchase window closed."""
        if is_zero_address(recipient):
            raise InvalidInputError("Recipient cannot be the zero address")
        position = self.get_position(key)
        if not position.is_liquidated:
            raise InvalidStateError(f"Position {self.custody.describe(key)} is not liquidated")
        if caller != position.liquidator:
            raise UnauthorizedError(f"{caller} did not liquidate {self.custody.describe(key)}")
        deadline = position.liquidated_at + self.settings.insurance_repurchase_time_limit
        if self.now < deadline:
            raise InvalidStateError(f"Insurance of {self.custody.describe(key)} is valid until {deadline}")

        self._delete_position(key)
        self.custody.transfer_out(recipient, key, position.collateral)

        self.emit("InsuranceExpired", key=key, owner=position.owner, liquidator=caller, recipient=recipient)
        log.info("%s claimed expired insurance of %s", caller, self.custody.describe(key))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def emit(self, name: str, **args) -> None:
        """Appends an event to the log. Also used by the vault's admin calls."""
        self.events.append(Event(name, args))

    def _create_position(self, owner, key, amount):
        if is_zero_address(owner):
            raise InvalidInputError("Owner cannot be the zero address")
        if amount <= 0:
            raise InvalidInputError("Collateral amount must be greater than zero")
        self.custody.check_key(owner, key)
        if key in self.positions:
            raise InvalidStateError(f"Position {self.custody.describe(key)} already exists")

        position = Position(owner=owner, collateral=amount)
        self.positions[key] = position
        self.open_keys[key] = None
        return position

    def _delete_position(self, key):
        if key not in self.positions or key not in self.open_keys:
            raise LedgerInvariantError(f"Position {key!r} is missing from the open set")
        del self.positions[key]
        del self.open_keys[key]

    def _release_dust_portion(self, position):
        # A debt that floors to zero can still hold portions
        if position.debt_portion:
            self.debt_pool.remove_debt(0, position.debt_portion)
            position.debt_portion = 0
