"""
Auction Model for the vault protocol.

Liquidated collateral that leaves a vault is sent to the auction contract,
which sells it to recover the debt that was paid on liquidation. Bidding
itself is outside this model: the auction only records the lots it was
asked to sell, with the seller to be paid and the minimum acceptable bid.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from .clock import Clock
from .errors import InvalidInputError, InvalidStateError
from .snapshot import SnapshotMixin

log = logging.getLogger(__name__)


@dataclass
class AuctionLot:
    """One lot of collateral put up for sale."""
    auction_id: int
    seller: str          # Account paid out of the proceeds
    collateral: str      # Human readable collateral description
    key: Any             # Collateral key in the selling vault
    amount: int          # Collateral amount
    min_bid: int         # Minimum bid, in the auction's quote unit
    created_at: int


class Auction(SnapshotMixin):
    """
    Records collateral lots to be sold.

    Attributes:
        address: Account that receives liquidated collateral
        lots: Lots by auction id
        next_auction_id: Id the next lot will get
    """

    snapshot_fields = ("lots", "next_auction_id")

    def __init__(self, address: str, clock: Clock):
        self.address = address
        self.clock = clock
        self.lots: Dict[int, AuctionLot] = {}
        self.next_auction_id = 0

    def new_auction(self, seller: str, collateral: str, key, amount: int, min_bid: int) -> int:
        """
        Lists a lot for sale.

        Args:
            seller: Account to be paid from the proceeds
            collateral: Description of the collateral being sold
            key: Collateral key in the vault it came from
            amount: Collateral amount
            min_bid: Minimum acceptable bid

        Returns:
            The new auction id
        """
        if amount <= 0:
            raise InvalidInputError("Auction amount must be greater than zero")
        if min_bid < 0:
            raise InvalidInputError("Minimum bid cannot be negative")

        auction_id = self.next_auction_id
        self.lots[auction_id] = AuctionLot(
            auction_id=auction_id,
            seller=seller,
            collateral=collateral,
            key=key,
            amount=amount,
            min_bid=min_bid,
            created_at=self.clock.now,
        )
        self.next_auction_id += 1

        log.info("Auction %d: %s listed by %s, min bid %d", auction_id, collateral, seller, min_bid)
        return auction_id

    def get_lot(self, auction_id: int) -> AuctionLot:
        try:
            return self.lots[auction_id]
        except KeyError:
            raise InvalidStateError(f"Auction {auction_id} does not exist") from None

    def lots_by_seller(self, seller: str) -> List[AuctionLot]:
        return [lot for lot in self.lots.values() if lot.seller == seller]
