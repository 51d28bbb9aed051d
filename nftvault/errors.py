"""
Error taxonomy for the vault model.

Every user-facing rejection derives from VaultError, which itself is a
ValueError so broad handlers keep working. Each class carries an ErrorKind
so callers can decide whether to retry with different parameters or give
up without inspecting messages.

LedgerInvariantError is separate: it signals a bug in the ledger's own
bookkeeping, never a bad request.
"""

from enum import Enum


class ErrorKind(Enum):
    """Kinds of rejection a vault operation can produce."""
    INVALID_INPUT = "invalid_input"
    UNAUTHORIZED = "unauthorized"
    INVALID_STATE = "invalid_state"
    LIMIT_EXCEEDED = "limit_exceeded"
    ORACLE_FAILURE = "oracle_failure"
    INSUFFICIENT_FUNDS = "insufficient_funds"


class VaultError(ValueError):
    """Base error class for rejected vault operations."""
    kind: ErrorKind = ErrorKind.INVALID_INPUT


class InvalidInputError(VaultError):
    """Zero amount, zero address, malformed rate or unknown action."""
    kind = ErrorKind.INVALID_INPUT


class InvalidRateError(InvalidInputError):
    """A Rate failed validation when settings were set."""


class UnauthorizedError(VaultError):
    """Caller is not the owner, lacks a role, or is not the liquidator."""
    kind = ErrorKind.UNAUTHORIZED


class InvalidStateError(VaultError):
    """Operation attempted in the wrong position lifecycle state."""
    kind = ErrorKind.INVALID_STATE


class LimitExceededError(VaultError):
    """Debt would exceed the credit limit or the global borrow cap."""
    kind = ErrorKind.LIMIT_EXCEEDED


class OracleFailureError(VaultError):
    """A price feed returned a zero or stale reading."""
    kind = ErrorKind.ORACLE_FAILURE


class InsufficientFundsError(VaultError):
    """A token burn or transfer could not be covered."""
    kind = ErrorKind.INSUFFICIENT_FUNDS


class LedgerInvariantError(AssertionError):
    """Internal bookkeeping invariant broken; indicates a logic bug."""
