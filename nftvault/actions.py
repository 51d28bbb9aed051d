"""
Batched position actions.

A caller can submit several actions in one call. Each action is a small
frozen dataclass; wire-style `(tag, args)` pairs are decoded into them once,
at the boundary, so the executor only ever sees typed actions.

Interest is accrued at most once per batch, right before the first action
that depends on up-to-date debt. Actions run in the order given and each
one sees the state left by the previous one. The vault runs the whole batch
as one transaction, so any failure undoes every action of the batch.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Tuple, Union

from .errors import InvalidInputError

log = logging.getLogger(__name__)


class ActionTag(Enum):
    """Numeric tags of the action kinds, as used by encoded batches."""
    BORROW = 0
    REPAY = 1
    CLOSE_POSITION = 2
    LIQUIDATE = 3
    REPURCHASE = 4
    CLAIM_EXPIRED_INSURANCE = 5


@dataclass(frozen=True)
class Borrow:
    key: Any
    amount: int
    use_insurance: bool = False

    tag = ActionTag.BORROW
    requires_accrual = True


@dataclass(frozen=True)
class Repay:
    key: Any
    amount: int

    tag = ActionTag.REPAY
    requires_accrual = True


@dataclass(frozen=True)
class ClosePosition:
    key: Any

    tag = ActionTag.CLOSE_POSITION
    requires_accrual = True


@dataclass(frozen=True)
class Liquidate:
    key: Any
    recipient: str

    tag = ActionTag.LIQUIDATE
    requires_accrual = True


@dataclass(frozen=True)
class Repurchase:
    """Repurchase works on the debt frozen at liquidation, so it needs no accrual."""
    key: Any
    repay_amount: int

    tag = ActionTag.REPURCHASE
    requires_accrual = False


@dataclass(frozen=True)
class ClaimExpiredInsurance:
    key: Any
    recipient: str

    tag = ActionTag.CLAIM_EXPIRED_INSURANCE
    requires_accrual = False


Action = Union[Borrow, Repay, ClosePosition, Liquidate, Repurchase, ClaimExpiredInsurance]

ACTION_TYPES = {
    ActionTag.BORROW: Borrow,
    ActionTag.REPAY: Repay,
    ActionTag.CLOSE_POSITION: ClosePosition,
    ActionTag.LIQUIDATE: Liquidate,
    ActionTag.REPURCHASE: Repurchase,
    ActionTag.CLAIM_EXPIRED_INSURANCE: ClaimExpiredInsurance,
}


def decode_action(tag, args) -> Action:
    """
    Builds a typed action from a tag and its arguments.

    Args:
        tag: An ActionTag or its integer value
        args: Positional arguments (sequence) or keyword arguments (mapping)

    Raises:
        InvalidInputError: On an unknown tag or arguments that do not fit it
    """
    # bool is an int subclass; True must not decode as REPAY
    if not isinstance(tag, ActionTag) and (isinstance(tag, bool) or not isinstance(tag, int)):
        raise InvalidInputError(f"Action tag must be an integer, got {tag!r}")
    try:
        tag = ActionTag(tag)
    except ValueError:
        raise InvalidInputError(f"Unknown action tag {tag!r}") from None

    action_type = ACTION_TYPES[tag]
    try:
        if isinstance(args, Mapping):
            return action_type(**args)
        return action_type(*args)
    except TypeError as e:
        raise InvalidInputError(f"Bad arguments for {tag.name}: {e}") from None


def decode_actions(encoded: Iterable[Tuple[Any, Any]]) -> List[Action]:
    """Decodes a list of `(tag, args)` pairs. Nothing is decoded lazily."""
    return [decode_action(tag, args) for tag, args in encoded]


class BatchExecutor:
    """
    Runs a batch of actions against one vault's ledger.

    The executor does not open a transaction itself; Vault.do_actions wraps
    execute() in one.
    """

    def __init__(self, vault):
        self.vault = vault

    def execute(self, account: str, actions: Iterable) -> List[Any]:
        """
        Executes `actions` in order on behalf of `account`.

        Actions may be typed action objects or `(tag, args)` pairs; every
        pair is decoded before the first action runs.

        Returns:
            The result of each action, in order
        """
        batch = [self._coerce(action) for action in actions]

        results = []
        accrued = False
        for action in batch:
            if action.requires_accrual and not accrued:
                self.vault.accrue()
                accrued = True
            results.append(self._apply(account, action))

        log.debug("Executed %d actions for %s", len(batch), account)
        return results

    @staticmethod
    def _coerce(action) -> Action:
        if isinstance(action, tuple(ACTION_TYPES.values())):
            return action
        if isinstance(action, (tuple, list)) and len(action) == 2:
            return decode_action(*action)
        raise InvalidInputError(f"Unrecognized action {action!r}")

    def _apply(self, account, action):
        ledger = self.vault.ledger
        if isinstance(action, Borrow):
            return ledger.borrow(account, action.key, action.amount, action.use_insurance)
        elif isinstance(action, Repay):
            return ledger.repay(account, action.key, action.amount)
        elif isinstance(action, ClosePosition):
            return ledger.close_position(account, action.key)
        elif isinstance(action, Liquidate):
            return ledger.liquidate(account, action.key, action.recipient)
        elif isinstance(action, Repurchase):
            return ledger.repurchase(account, action.key, action.repay_amount)
        elif isinstance(action, ClaimExpiredInsurance):
            return ledger.claim_expired_insurance(account, action.key, action.recipient)
        raise InvalidInputError(f"Unrecognized action {action!r}")
