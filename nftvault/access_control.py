"""
Role registry consumed by the vault and its helpers.

Roles gate the privileged operations: DAO_ROLE administers roles and
settings and collects fees, LIQUIDATOR_ROLE may liquidate positions and
SETTER_ROLE may tune the value provider.
"""

import logging
from typing import Dict, Set

from .constants import DAO_ROLE, is_zero_address
from .errors import InvalidInputError, UnauthorizedError
from .snapshot import SnapshotMixin

log = logging.getLogger(__name__)


class AccessControl(SnapshotMixin):
    """
    Simple role -> members registry with DAO_ROLE as the admin role.
    """

    snapshot_fields = ("members",)

    def __init__(self, admin: str):
        if is_zero_address(admin):
            raise InvalidInputError("Admin cannot be the zero address")
        self.members: Dict[str, Set[str]] = {DAO_ROLE: {admin}}

    def has_role(self, role: str, account: str) -> bool:
        return account in self.members.get(role, ())

    def check_role(self, role: str, account: str) -> None:
        """
        Raises:
            UnauthorizedError: If the account does not hold the role
        """
        if not self.has_role(role, account):
            raise UnauthorizedError(f"{account} is missing role {role}")

    def grant_role(self, caller: str, role: str, account: str) -> None:
        """Grants a role. Only DAO_ROLE members may call this."""
        self.check_role(DAO_ROLE, caller)
        if is_zero_address(account):
            raise InvalidInputError("Cannot grant a role to the zero address")
        self.members.setdefault(role, set()).add(account)
        log.info("Granted %s to %s", role, account)

    def revoke_role(self, caller: str, role: str, account: str) -> None:
        """Revokes a role. Only DAO_ROLE members may call this."""
        self.check_role(DAO_ROLE, caller)
        self.members.get(role, set()).discard(account)
        log.info("Revoked %s from %s", role, account)
