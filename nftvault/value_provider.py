"""
Collateral valuation collaborators.

The vault never prices collateral itself. It asks a ValueProvider for two
numbers per owner and collateral amount: the credit limit (how much may be
borrowed) and the liquidation limit (the debt level at which the position
can be liquidated). Both are expressed in the stablecoin's unit.

OracleValueProvider derives both from a PriceOracle reading and two rates.
It also enforces the configuration convention that the liquidation rate is
not below the credit rate; the ledger itself does not check this.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .access_control import AccessControl
from .clock import Clock
from .constants import SETTER_ROLE
from .errors import InvalidInputError, OracleFailureError
from .rate import Rate

log = logging.getLogger(__name__)


class PriceOracle:
    """
    Price feed for one asset pair.

    A reading is unusable when the price is zero or it was never updated
    (zero timestamp); latest_price() then raises OracleFailureError.
    """

    def __init__(self, clock: Clock, price: int = 0, decimals: int = 18, description: str = ""):
        self.clock = clock
        self.decimals = decimals
        self.description = description
        self.price = 0
        self.updated_at = 0
        if price:
            self.set_price(price)

    def set_price(self, new_price: int) -> None:
        """Sets a new price stamped with the current clock time."""
        if new_price < 0:
            raise InvalidInputError("Price cannot be negative")
        self.price = new_price
        self.updated_at = self.clock.now
        log.debug("%s price set to %d at %d", self.description or "oracle", new_price, self.updated_at)

    def latest_price(self) -> int:
        """
        Returns the current price.

        Raises:
            OracleFailureError: On a zero price or a never-updated feed
        """
        if self.updated_at == 0:
            raise OracleFailureError(f"{self.description or 'oracle'} has never been updated")
        if self.price <= 0:
            raise OracleFailureError(f"{self.description or 'oracle'} returned a zero price")
        return self.price


class ValueProvider(ABC):
    """Interface the ledger uses to value collateral."""

    @abstractmethod
    def credit_limit(self, owner: str, collateral_amount: int) -> int:
        """Maximum debt a position with this collateral may carry."""

    @abstractmethod
    def liquidation_limit(self, owner: str, collateral_amount: int) -> int:
        """Debt at or above which a position with this collateral is liquidatable."""


class OracleValueProvider(ValueProvider):
    """
    Values collateral as `amount * price // unit` and scales by two rates.

    Args:
        oracle: Price feed quoting one collateral unit in stablecoin units
        credit_limit_rate: Share of collateral value that may be borrowed
        liquidation_limit_rate: Share of collateral value that triggers liquidation
        unit: Collateral amount the oracle price refers to (1 for NFTs,
            10**decimals for fungible tokens)
        access: Role registry; rate setters require SETTER_ROLE
    """

    def __init__(self, oracle: PriceOracle, credit_limit_rate: Rate, liquidation_limit_rate: Rate,
                 unit: int = 1, access: Optional[AccessControl] = None):
        if unit <= 0:
            raise InvalidInputError("Valuation unit must be positive")
        self.oracle = oracle
        self.unit = unit
        self.access = access
        self._check_rates(credit_limit_rate, liquidation_limit_rate)
        self.credit_limit_rate = credit_limit_rate
        self.liquidation_limit_rate = liquidation_limit_rate

    @classmethod
    def for_fungible(cls, oracle: PriceOracle, credit_limit_rate: Rate, liquidation_limit_rate: Rate,
                     token_decimals: int = 18, access: Optional[AccessControl] = None):
        return cls(oracle, credit_limit_rate, liquidation_limit_rate, 10**token_decimals, access)

    def collateral_value(self, collateral_amount: int) -> int:
        return collateral_amount * self.oracle.latest_price() // self.unit

    def credit_limit(self, owner: str, collateral_amount: int) -> int:
        return self.credit_limit_rate.calculate(self.collateral_value(collateral_amount))

    def liquidation_limit(self, owner: str, collateral_amount: int) -> int:
        return self.liquidation_limit_rate.calculate(self.collateral_value(collateral_amount))

    def set_rates(self, caller: str, credit_limit_rate: Rate, liquidation_limit_rate: Rate) -> None:
        """Updates both rates. Requires SETTER_ROLE when a role registry is attached."""
        if self.access is not None:
            self.access.check_role(SETTER_ROLE, caller)
        self._check_rates(credit_limit_rate, liquidation_limit_rate)
        self.credit_limit_rate = credit_limit_rate
        self.liquidation_limit_rate = liquidation_limit_rate
        log.info("Value rates set: credit %s, liquidation %s", credit_limit_rate, liquidation_limit_rate)

    @staticmethod
    def _check_rates(credit_limit_rate: Rate, liquidation_limit_rate: Rate) -> None:
        credit_limit_rate.validate(below_one=True, name="credit_limit_rate")
        liquidation_limit_rate.validate(below_one=True, name="liquidation_limit_rate")
        if liquidation_limit_rate.as_fraction() < credit_limit_rate.as_fraction():
            raise InvalidInputError(
                f"liquidation_limit_rate {liquidation_limit_rate} must not be below "
                f"credit_limit_rate {credit_limit_rate}"
            )


def convert_amount(amount: int, oracle: Optional[PriceOracle]) -> int:
    """
    Converts an amount quoted in stablecoin units into the oracle's base unit.

    Used to price auctions in a different unit than the debt. Without an
    oracle the amount is returned unchanged.
    """
    if oracle is None:
        return amount
    return amount * 10**oracle.decimals // oracle.latest_price()
