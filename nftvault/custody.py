"""
Collateral custody adapters.

The ledger is generic over the collateral kind. Everything kind-specific
about moving collateral in and out of the vault lives here, behind the
narrow CollateralCustody interface:

- NFTCustody: one position per token index, the key is the index.
- FungibleCustody: one position per owner, the key is the owner address.
- SemiFungibleCustody: one position per owner and token id, the key is
  the (owner, token_id) pair.
"""

from abc import ABC, abstractmethod
from typing import Tuple

from .errors import InvalidInputError
from .tokens import FungibleToken, MultiToken, NFTCollection


class CollateralCustody(ABC):
    """
    Moves collateral between accounts and the vault.

    Attributes:
        token: The collateral token contract
        vault_address: Address that holds collateral in custody
        opens_on_borrow: Whether a first borrow may open the position by
            pulling `unit` collateral (NFTs) instead of requiring a deposit
        unit: Collateral amount pulled when a borrow opens the position
    """

    opens_on_borrow = False
    unit = 1

    def __init__(self, token, vault_address: str):
        self.token = token
        self.vault_address = vault_address

    @abstractmethod
    def transfer_in(self, owner: str, key, amount: int) -> None:
        """Pulls `amount` of collateral for `key` from `owner` into the vault."""

    @abstractmethod
    def transfer_out(self, recipient: str, key, amount: int) -> None:
        """Sends `amount` of collateral for `key` from the vault to `recipient`."""

    def value_of(self, position) -> int:
        """Collateral amount handed to the value provider for a position."""
        return position.collateral

    def check_key(self, account: str, key) -> None:
        """Rejects keys that cannot belong to `account`."""

    def describe(self, key) -> str:
        return f"{getattr(self.token, 'address', self.token)}:{key}"


class NFTCustody(CollateralCustody):
    """Custody for ERC721-style collateral keyed by token index."""

    opens_on_borrow = True
    unit = 1

    def __init__(self, token: NFTCollection, vault_address: str):
        super().__init__(token, vault_address)

    def transfer_in(self, owner: str, key: int, amount: int = 1) -> None:
        self._check_unit(amount)
        self.token.transfer_from(self.vault_address, owner, self.vault_address, key)

    def transfer_out(self, recipient: str, key: int, amount: int = 1) -> None:
        self._check_unit(amount)
        self.token.transfer_from(self.vault_address, self.vault_address, recipient, key)

    @staticmethod
    def _check_unit(amount):
        if amount != 1:
            raise InvalidInputError(f"NFT positions hold exactly one token, got {amount}")


class FungibleCustody(CollateralCustody):
    """Custody for ERC20-style collateral keyed by owner address."""

    def __init__(self, token: FungibleToken, vault_address: str):
        super().__init__(token, vault_address)

    def transfer_in(self, owner: str, key: str, amount: int) -> None:
        self.token.transfer_from(self.vault_address, owner, self.vault_address, amount)

    def transfer_out(self, recipient: str, key: str, amount: int) -> None:
        self.token.transfer(self.vault_address, recipient, amount)

    def check_key(self, account: str, key: str) -> None:
        if key != account:
            raise InvalidInputError(f"Fungible positions are keyed by owner: {key} != {account}")


class SemiFungibleCustody(CollateralCustody):
    """Custody for ERC1155-style collateral keyed by (owner, token id)."""

    def __init__(self, token: MultiToken, vault_address: str):
        super().__init__(token, vault_address)

    def transfer_in(self, owner: str, key: Tuple[str, int], amount: int) -> None:
        self.token.safe_transfer_from(self.vault_address, owner, self.vault_address, key[1], amount)

    def transfer_out(self, recipient: str, key: Tuple[str, int], amount: int) -> None:
        self.token.safe_transfer_from(self.vault_address, self.vault_address, recipient, key[1], amount)

    def check_key(self, account: str, key: Tuple[str, int]) -> None:
        if not isinstance(key, tuple) or len(key) != 2:
            raise InvalidInputError(f"Semi-fungible keys are (owner, token_id) pairs, got {key!r}")
        if key[0] != account:
            raise InvalidInputError(f"Position key {key!r} does not belong to {account}")
