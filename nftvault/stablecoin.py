"""
Stablecoin Model for the vault protocol.

This module simulates the stablecoin contract the vaults mint against
collateral. It handles minting, burning with allowances, and transfers.
Only registered minters (the vaults) may mint or burn.
"""

from .constants import is_zero_address
from .errors import InsufficientFundsError, InvalidInputError, UnauthorizedError
from .snapshot import SnapshotMixin


class Stablecoin(SnapshotMixin):
    """
    Simulates the stablecoin token contract.
    """

    snapshot_fields = ("total_supply", "balances", "allowances")

    def __init__(self, owner, symbol="PUSD"):
        self.symbol = symbol

        # Total token supply
        self.total_supply = 0

        # Mapping of addresses to token balances
        self.balances = {}

        # Mapping of (owner, spender) to approved amounts
        self.allowances = {}

        # Accounts that are allowed to mint and burn
        self.minters = set()

        # Owner of the contract
        self.owner = owner

    def add_minter(self, caller, minter):
        """
        Adds an address to the list of allowed minters.
        Only callable by the owner.
        """
        if caller != self.owner:
            raise UnauthorizedError("Only the owner can add minters")
        self.minters.add(minter)

    def remove_minter(self, caller, minter):
        """
        Removes an address from the list of allowed minters.
        Only callable by the owner.
        """
        if caller != self.owner:
            raise UnauthorizedError("Only the owner can remove minters")
        self.minters.discard(minter)

    def balance_of(self, account):
        """Returns the token balance of the given account."""
        return self.balances.get(account, 0)

    def allowance(self, owner, spender):
        return self.allowances.get((owner, spender), 0)

    def approve(self, owner, spender, amount):
        """Sets the amount `spender` may move or burn on behalf of `owner`."""
        if amount < 0:
            raise InvalidInputError("Allowance cannot be negative")
        self.allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender, recipient, amount):
        """
        Transfers tokens from sender to recipient.

        Args:
            sender: Address sending the tokens
            recipient: Address receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful

        Raises:
            InsufficientFundsError: If the sender's balance is too low
        """
        self._check_amount(amount)
        if is_zero_address(recipient):
            raise InvalidInputError("Cannot transfer to the zero address")

        sender_balance = self.balances.get(sender, 0)
        if sender_balance < amount:
            raise InsufficientFundsError(
                f"Insufficient {self.symbol} balance: {sender} has {sender_balance}, needs {amount}"
            )

        # Update balances
        self.balances[sender] = sender_balance - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

        return True

    def transfer_from(self, spender, owner, recipient, amount):
        """Transfers on behalf of `owner`, consuming `spender`'s allowance."""
        self._spend_allowance(owner, spender, amount)
        return self.transfer(owner, recipient, amount)

    def mint(self, minter, recipient, amount):
        """
        Mints new tokens to the recipient account.
        Only callable by authorized minters. Minting zero is a no-op.

        Args:
            minter: Address performing the mint
            recipient: Address receiving the minted tokens
            amount: Amount of tokens to mint

        Returns:
            True if successful
        """
        if minter not in self.minters:
            raise UnauthorizedError(f"{minter} is not a {self.symbol} minter")
        self._check_amount(amount)
        if is_zero_address(recipient):
            raise InvalidInputError("Cannot mint to the zero address")

        # Update recipient balance
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

        # Update total supply
        self.total_supply += amount

        return True

    def burn_from(self, spender, account, amount):
        """
        Burns tokens from the given account.

        The spender must be a minter; unless it burns its own tokens it also
        needs an allowance from the account. Burning zero is a no-op.

        Args:
            spender: Minter performing the burn
            account: Address to burn tokens from
            amount: Amount of tokens to burn

        Returns:
            True if successful

        Raises:
            InsufficientFundsError: If balance or allowance is too low
        """
        if spender not in self.minters:
            raise UnauthorizedError(f"{spender} is not a {self.symbol} minter")
        self._check_amount(amount)
        if spender != account:
            self._spend_allowance(account, spender, amount)

        from_balance = self.balances.get(account, 0)
        if from_balance < amount:
            raise InsufficientFundsError(
                f"Insufficient {self.symbol} balance: {account} has {from_balance}, needs {amount}"
            )

        # Update balance
        self.balances[account] = from_balance - amount

        # Update total supply
        self.total_supply -= amount

        return True

    def _spend_allowance(self, owner, spender, amount):
        allowed = self.allowances.get((owner, spender), 0)
        if allowed < amount:
            raise InsufficientFundsError(
                f"Insufficient {self.symbol} allowance: {spender} may spend {allowed} of {owner}, needs {amount}"
            )
        self.allowances[(owner, spender)] = allowed - amount

    @staticmethod
    def _check_amount(amount):
        if not isinstance(amount, int) or amount < 0:
            raise InvalidInputError(f"Amount must be a non-negative integer, got {amount!r}")
