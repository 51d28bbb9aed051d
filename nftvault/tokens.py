"""
Collateral token models.

Three small token ledgers stand in for the collateral contracts a vault can
hold: an ERC721-style collection (one owner per index), an ERC20-style
fungible token and an ERC1155-style multi-token (balances per owner and id).
They only implement what custody and the simulations need: minting,
ownership/balance queries, operator approvals and transfers.
"""

from typing import Dict, Set, Tuple

from .constants import is_zero_address
from .errors import InsufficientFundsError, InvalidInputError, UnauthorizedError
from .snapshot import SnapshotMixin


class NFTCollection(SnapshotMixin):
    """ERC721-like collection."""

    snapshot_fields = ("owners", "operators")

    def __init__(self, address: str, name: str = "NFT"):
        self.address = address
        self.name = name
        self.owners: Dict[int, str] = {}
        # (owner, operator) pairs approved for all tokens
        self.operators: Set[Tuple[str, str]] = set()

    def mint(self, to: str, index: int) -> None:
        if is_zero_address(to):
            raise InvalidInputError("Cannot mint to the zero address")
        if index in self.owners:
            raise InvalidInputError(f"{self.name} #{index} already exists")
        self.owners[index] = to

    def owner_of(self, index: int) -> str:
        try:
            return self.owners[index]
        except KeyError:
            raise InvalidInputError(f"{self.name} #{index} does not exist") from None

    def set_approval_for_all(self, owner: str, operator: str, approved: bool = True) -> None:
        if approved:
            self.operators.add((owner, operator))
        else:
            self.operators.discard((owner, operator))

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return (owner, operator) in self.operators

    def transfer_from(self, operator: str, sender: str, recipient: str, index: int) -> None:
        """
        Moves token `index` from `sender` to `recipient`.

        Raises:
            UnauthorizedError: If `sender` does not own the token or `operator` is not approved
        """
        if is_zero_address(recipient):
            raise InvalidInputError("Cannot transfer to the zero address")
        owner = self.owner_of(index)
        if owner != sender:
            raise UnauthorizedError(f"{sender} does not own {self.name} #{index}")
        if operator != owner and not self.is_approved_for_all(owner, operator):
            raise UnauthorizedError(f"{operator} is not approved to move {self.name} #{index}")
        self.owners[index] = recipient


class FungibleToken(SnapshotMixin):
    """ERC20-like token used as fungible collateral."""

    snapshot_fields = ("balances", "allowances", "total_supply")

    def __init__(self, address: str, symbol: str = "TOKEN", decimals: int = 18):
        self.address = address
        self.symbol = symbol
        self.decimals = decimals
        self.total_supply = 0
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}

    def mint(self, to: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidInputError("Amount must be greater than zero")
        self.balances[to] = self.balances.get(to, 0) + amount
        self.total_supply += amount

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self.allowances[(owner, spender)] = amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        if is_zero_address(recipient):
            raise InvalidInputError("Cannot transfer to the zero address")
        balance = self.balances.get(sender, 0)
        if balance < amount:
            raise InsufficientFundsError(f"Insufficient {self.symbol} balance: {sender} has {balance}, needs {amount}")
        self.balances[sender] = balance - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

    def transfer_from(self, spender: str, sender: str, recipient: str, amount: int) -> None:
        if spender != sender:
            allowed = self.allowances.get((sender, spender), 0)
            if allowed < amount:
                raise InsufficientFundsError(f"Insufficient {self.symbol} allowance for {spender}")
            self.allowances[(sender, spender)] = allowed - amount
        self.transfer(sender, recipient, amount)


class MultiToken(SnapshotMixin):
    """ERC1155-like token: balances keyed by (owner, token id)."""

    snapshot_fields = ("balances", "operators")

    def __init__(self, address: str, name: str = "MULTI"):
        self.address = address
        self.name = name
        self.balances: Dict[Tuple[str, int], int] = {}
        self.operators: Set[Tuple[str, str]] = set()

    def mint(self, to: str, token_id: int, amount: int) -> None:
        if amount <= 0:
            raise InvalidInputError("Amount must be greater than zero")
        self.balances[(to, token_id)] = self.balances.get((to, token_id), 0) + amount

    def balance_of(self, account: str, token_id: int) -> int:
        return self.balances.get((account, token_id), 0)

    def set_approval_for_all(self, owner: str, operator: str, approved: bool = True) -> None:
        if approved:
            self.operators.add((owner, operator))
        else:
            self.operators.discard((owner, operator))

    def safe_transfer_from(self, operator: str, sender: str, recipient: str, token_id: int, amount: int) -> None:
        if is_zero_address(recipient):
            raise InvalidInputError("Cannot transfer to the zero address")
        if operator != sender and (sender, operator) not in self.operators:
            raise UnauthorizedError(f"{operator} is not approved by {sender}")
        balance = self.balances.get((sender, token_id), 0)
        if balance < amount:
            raise InsufficientFundsError(
                f"Insufficient {self.name} #{token_id} balance: {sender} has {balance}, needs {amount}"
            )
        self.balances[(sender, token_id)] = balance - amount
        self.balances[(recipient, token_id)] = self.balances.get((recipient, token_id), 0) + amount
