"""
Vault aggregate of the lending protocol.

A vault lets owners of one collateral token borrow the protocol stablecoin
against it. It ties together:
- a DebtPool holding the global debt counters and accruing interest,
- a PositionLedger holding every position and its state machine,
- a BatchExecutor running several actions in one call,
- the external collaborators: stablecoin, collateral custody, value
  provider, role registry and clock.

Every public mutating entry point is a transaction: it rejects re-entry and
either completes or leaves all participants exactly as they were. Entry
points that depend on current debt accrue interest first.

The collateral kind is chosen by the subclass: NFTVault, FungibleVault or
SemiFungibleVault.
"""

import functools
import logging
from typing import Iterable, List, Optional

from .access_control import AccessControl
from .actions import BatchExecutor
from .clock import Clock
from .constants import DAO_ROLE
from .custody import CollateralCustody, FungibleCustody, NFTCustody, SemiFungibleCustody
from .debt_pool import DebtPool
from .errors import InvalidInputError, InvalidStateError
from .position_ledger import PositionLedger, PositionPreview
from .settings import VaultSettings
from .snapshot import atomic
from .stablecoin import Stablecoin
from .value_provider import ValueProvider

log = logging.getLogger(__name__)


def transaction(method):
    """Makes a vault method non-reentrant and all-or-nothing."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._entered:
            raise InvalidStateError(f"Reentrant call into vault {self.address}")
        self._entered = True
        try:
            with atomic(*self.participants()):
                return method(self, *args, **kwargs)
        finally:
            self._entered = False

    return wrapper


class Vault:
    """
    Base vault, generic over the collateral kind.

    Subclasses set `custody_class`. Positions are addressed by key: the
    token index for NFTs, the owner address for fungible tokens and the
    (owner, token_id) pair for semi-fungible tokens.
    """

    custody_class = CollateralCustody

    def __init__(self, address: str, collateral_token, stablecoin: Stablecoin,
                 value_provider: ValueProvider, access: AccessControl, clock: Clock,
                 settings: Optional[VaultSettings] = None):
        self.address = address
        self.clock = clock
        self.access = access
        self.stablecoin = stablecoin
        self.value_provider = value_provider
        self.custody = self.custody_class(collateral_token, address)

        settings = (settings or VaultSettings.default()).validate()
        self.debt_pool = DebtPool(start_time=clock.now)
        self.ledger = PositionLedger(self.debt_pool, self.custody, stablecoin, value_provider,
                                     access, clock, settings, address)
        self.executor = BatchExecutor(self)
        self._entered = False

    def participants(self) -> List[object]:
        """Components whose state a vault transaction may change."""
        return [self.debt_pool, self.ledger, self.stablecoin, self.custody.token, self.access]

    @property
    def settings(self) -> VaultSettings:
        return self.ledger.settings

    # ------------------------------------------------------------------
    # Interest
    # ------------------------------------------------------------------

    def accrue(self) -> int:
        """
        Applies interest accrued since the last accrual.

        Safe to call any number of times; a second call in the same second
        adds nothing.
        """
        return self.debt_pool.accrue(self.clock.now, self.settings.debt_interest_apr)

    # ------------------------------------------------------------------
    # Position operations
    # ------------------------------------------------------------------

    @transaction
    def borrow(self, account: str, key, amount: int, use_insurance: bool = False) -> int:
        self.accrue()
        return self.ledger.borrow(account, key, amount, use_insurance)

    @transaction
    def repay(self, account: str, key, amount: int) -> int:
        self.accrue()
        return self.ledger.repay(account, key, amount)

    @transaction
    def close_position(self, account: str, key) -> None:
        self.accrue()
        self.ledger.close_position(account, key)

    @transaction
    def liquidate(self, caller: str, key, recipient: str) -> int:
        self.accrue()
        return self.ledger.liquidate(caller, key, recipient)

    @transaction
    def repurchase(self, account: str, key, repay_amount: int) -> int:
        return self.ledger.repurchase(account, key, repay_amount)

    @transaction
    def claim_expired_insurance(self, caller: str, key, recipient: str) -> None:
        self.ledger.claim_expired_insurance(caller, key, recipient)

    @transaction
    def do_actions(self, account: str, actions: Iterable) -> list:
        """
        Runs a batch of actions for `account` as one transaction.

        Args:
            account: Acting address for every action
            actions: Action objects or `(tag, args)` pairs

        Returns:
            The result of each action
        """
        return self.executor.execute(account, actions)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @transaction
    def set_settings(self, caller: str, settings: VaultSettings) -> None:
        """
        Replaces the vault settings. DAO only.

        Interest up to now is accrued under the old APR before the new
        settings take effect.
        """
        self.access.check_role(DAO_ROLE, caller)
        if not isinstance(settings, VaultSettings):
            raise InvalidInputError(f"Expected VaultSettings, got {type(settings).__name__}")
        settings.validate()
        self.accrue()
        self.ledger.settings = settings
        self.ledger.emit("SettingsUpdated", caller=caller, settings=settings.to_dict())
        log.info("Vault %s settings updated by %s", self.address, caller)

    @transaction
    def set_borrow_amount_cap(self, caller: str, cap: int) -> None:
        self.access.check_role(DAO_ROLE, caller)
        settings = self.settings.with_changes(borrow_amount_cap=cap).validate()
        self.ledger.settings = settings
        self.ledger.emit("SettingsUpdated", caller=caller, settings=settings.to_dict())
        log.info("Vault %s borrow cap set to %d", self.address, cap)

    @transaction
    def collect(self, caller: str) -> int:
        """
        Mints every fee and interest collected so far to the caller. DAO only.

        Returns:
            The amount minted
        """
        self.access.check_role(DAO_ROLE, caller)
        self.accrue()
        fees = self.debt_pool.take_fees()
        self.stablecoin.mint(self.address, caller, fees)
        self.ledger.emit("FeeCollected", caller=caller, amount=fees)
        log.info("Vault %s collected %d in fees", self.address, fees)
        return fees

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_debt_amount(self, key) -> int:
        return self.ledger.debt_amount(key)

    def get_debt_interest(self, key) -> int:
        return self.ledger.debt_interest(key)

    def get_credit_limit(self, key) -> int:
        return self.ledger.credit_limit(key)

    def get_liquidation_limit(self, key) -> int:
        return self.ledger.liquidation_limit(key)

    def is_liquidatable(self, key) -> bool:
        return self.ledger.is_liquidatable(key)

    def show_position(self, key) -> PositionPreview:
        return self.ledger.show_position(key)

    def open_position_keys(self) -> list:
        return self.ledger.get_open_keys()

    def total_positions(self) -> int:
        return self.ledger.total_positions()

    def total_debt_amount(self) -> int:
        """Total debt of the vault including interest not yet accrued."""
        return self.debt_pool.total_debt_with_interest(self.clock.now, self.settings.debt_interest_apr)

    @property
    def positions(self):
        return self.ledger.positions

    @property
    def events(self):
        return self.ledger.events


class NFTVault(Vault):
    """
    Vault over an ERC721-style collection.

    The first borrow against a token index opens the position and pulls the
    token; close_position hands it back.
    """

    custody_class = NFTCustody


class FungibleVault(Vault):
    """Vault over an ERC20-style token: one position per owner."""

    custody_class = FungibleCustody

    @staticmethod
    def key_for(account: str) -> str:
        return account

    @transaction
    def deposit(self, account: str, amount: int) -> None:
        self.ledger.deposit(account, self.key_for(account), amount)

    @transaction
    def withdraw(self, account: str, amount: int) -> int:
        self.accrue()
        return self.ledger.withdraw(account, self.key_for(account), amount)


class SemiFungibleVault(Vault):
    """Vault over an ERC1155-style token: one position per owner and token id."""

    custody_class = SemiFungibleCustody

    @staticmethod
    def key_for(account: str, token_id: int) -> tuple:
        return (account, token_id)

    @transaction
    def deposit(self, account: str, token_id: int, amount: int) -> None:
        self.ledger.deposit(account, self.key_for(account, token_id), amount)

    @transaction
    def withdraw(self, account: str, token_id: int, amount: int) -> int:
        self.accrue()
        return self.ledger.withdraw(account, self.key_for(account, token_id), amount)
