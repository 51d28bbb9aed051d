"""
Debt Pool Model for the vault protocol.

This module holds the global debt counters shared by every position of a
vault. Interest is never applied position by position: it is added to the
pool's total debt, and each position owns a proportional "portion" of that
total. A position's debt is therefore

    debt = total_debt_amount * position_portion // total_debt_portion

which makes accrual O(1) no matter how many positions are open.

All changes to total_debt_amount and total_debt_portion go through
add_debt() and remove_debt(), which in turn use portion_for().
"""

import logging

from .constants import SECONDS_PER_YEAR
from .errors import InvalidInputError, LedgerInvariantError
from .rate import Rate
from .snapshot import SnapshotMixin

log = logging.getLogger(__name__)


def portion_for(user_debt: int, total_portion: int, total_debt: int) -> int:
    """
    Converts an absolute debt amount into pool portions.

    When the pool has no portions yet, portions are issued 1:1 with debt.

    Args:
        user_debt: Debt amount to convert
        total_portion: Current total portions of the pool
        total_debt: Current total debt of the pool

    Returns:
        floor(total_portion * user_debt / total_debt)
    """
    if total_portion == 0:
        return user_debt
    if total_debt == 0:
        raise LedgerInvariantError("Pool has portions but no debt")
    return total_portion * user_debt // total_debt


def debt_for(total_debt: int, user_portion: int, total_portion: int) -> int:
    """
    Converts pool portions back into an absolute debt amount.

    The result is floored, so it can fall one or two units below the
    principal right after a borrow. Callers clamp it to the principal.
    """
    if total_portion == 0:
        return 0
    return total_debt * user_portion // total_portion


class DebtPool(SnapshotMixin):
    """
    Global interest pool of one vault.

    Attributes:
        total_debt_amount: Outstanding debt of all positions, interest included
        total_debt_portion: Sum of all position portions
        total_fee_collected: Interest and fees owed to the protocol, not yet minted
        last_accrued_at: Timestamp of the last accrual
    """

    snapshot_fields = ("total_debt_amount", "total_debt_portion", "total_fee_collected", "last_accrued_at")

    def __init__(self, start_time: int = 0):
        self.total_debt_amount = 0
        self.total_debt_portion = 0
        self.total_fee_collected = 0
        self.last_accrued_at = start_time

    def calculate_additional_interest(self, now: int, apr: Rate) -> int:
        """
        Calculates interest accrued since the last accrual, without applying it.

        Args:
            now: Current timestamp
            apr: Annual interest rate

        Returns:
            elapsed * total_debt_amount * apr // SECONDS_PER_YEAR (floored)
        """
        elapsed = now - self.last_accrued_at
        if elapsed < 0:
            raise LedgerInvariantError(f"Accrual time went backwards: {now} < {self.last_accrued_at}")
        if elapsed == 0 or self.total_debt_amount == 0:
            return 0
        return elapsed * self.total_debt_amount * apr.numerator // apr.denominator // SECONDS_PER_YEAR

    def accrue(self, now: int, apr: Rate) -> int:
        """
        Applies pending interest to the pool.

        The interest is added to both the total debt and the protocol's
        collected fees. A second call at the same timestamp adds nothing.

        Returns:
            The interest added
        """
        additional_interest = self.calculate_additional_interest(now, apr)
        self.last_accrued_at = now
        if additional_interest > 0:
            self.total_debt_amount += additional_interest
            self.total_fee_collected += additional_interest
            log.debug("Accrued %d interest at %d (total debt %d)", additional_interest, now, self.total_debt_amount)
        return additional_interest

    def total_debt_with_interest(self, now: int, apr: Rate) -> int:
        """Total debt as it would be after accruing at `now`."""
        return self.total_debt_amount + self.calculate_additional_interest(now, apr)

    def debt_of(self, portion: int, now: int, apr: Rate) -> int:
        """Debt represented by `portion`, pending interest included."""
        return debt_for(self.total_debt_with_interest(now, apr), portion, self.total_debt_portion)

    def add_debt(self, amount: int) -> int:
        """
        Adds new debt to the pool.

        Args:
            amount: Absolute debt being added

        Returns:
            The portions issued for it
        """
        if amount < 0:
            raise InvalidInputError("Debt increase cannot be negative")
        portion = portion_for(amount, self.total_debt_portion, self.total_debt_amount)
        self.total_debt_amount += amount
        self.total_debt_portion += portion
        log.debug("Added debt %d as %d portions", amount, portion)
        return portion

    def remove_debt(self, amount: int, portion: int) -> None:
        """
        Removes debt and its portions from the pool.

        The position-side amount can exceed the pool total by rounding dust
        (positions are clamped to their principal), so the debt total
        saturates: at zero once no portions remain, otherwise at one unit so
        the remaining portions keep a non-zero debt to convert against.
        """
        if portion > self.total_debt_portion:
            raise LedgerInvariantError(
                f"Removing {portion} portions from a pool of {self.total_debt_portion}"
            )
        self.total_debt_portion -= portion
        floor = 1 if self.total_debt_portion else 0
        if amount > self.total_debt_amount - floor:
            log.debug("Debt removal %d exceeds pool total %d; saturating", amount, self.total_debt_amount)
            amount = max(self.total_debt_amount - floor, 0)
        self.total_debt_amount -= amount

    def portion_for_amount(self, amount: int) -> int:
        """Portions currently worth `amount` of debt."""
        return portion_for(amount, self.total_debt_portion, self.total_debt_amount)

    def add_fee(self, amount: int) -> None:
        if amount < 0:
            raise InvalidInputError("Fee cannot be negative")
        self.total_fee_collected += amount

    def take_fees(self) -> int:
        """Zeroes and returns the fees owed to the protocol."""
        fees = self.total_fee_collected
        self.total_fee_collected = 0
        return fees
