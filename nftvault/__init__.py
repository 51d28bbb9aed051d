"""
Model of a collateralized-debt lending vault.

Owners lock collateral (NFTs, fungible or semi-fungible tokens) in a vault
and borrow a stablecoin against it. Interest accrues on a shared debt pool,
under-collateralized positions are liquidated, and insured positions can be
bought back by their owner for a limited time after liquidation.
"""

import logging

from .access_control import AccessControl
from .actions import (
    ActionTag,
    BatchExecutor,
    Borrow,
    ClaimExpiredInsurance,
    ClosePosition,
    Liquidate,
    Repay,
    Repurchase,
    decode_actions,
)
from .auction import Auction, AuctionLot
from .clock import Clock
from .constants import DAO_ROLE, LIQUIDATOR_ROLE, SECONDS_PER_YEAR, SETTER_ROLE, ZERO_ADDRESS
from .custody import FungibleCustody, NFTCustody, SemiFungibleCustody
from .debt_pool import DebtPool, debt_for, portion_for
from .errors import (
    ErrorKind,
    InsufficientFundsError,
    InvalidInputError,
    InvalidRateError,
    InvalidStateError,
    LedgerInvariantError,
    LimitExceededError,
    OracleFailureError,
    UnauthorizedError,
    VaultError,
)
from .liquidation_escrow import LiquidationEscrow
from .position_ledger import BorrowType, Event, Position, PositionLedger, PositionPreview
from .rate import Rate
from .settings import VaultSettings, load_settings
from .stablecoin import Stablecoin
from .tokens import FungibleToken, MultiToken, NFTCollection
from .value_provider import OracleValueProvider, PriceOracle, ValueProvider, convert_amount
from .vault import FungibleVault, NFTVault, SemiFungibleVault, Vault

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())


def configure_logging(level="INFO"):
    """Sets the level of every logger under the nftvault package."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    logging.getLogger(__name__).setLevel(level)
