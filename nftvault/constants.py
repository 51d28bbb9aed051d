"""
Protocol-wide constants for the vault model.
"""

# Time
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Accounts
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Roles
DAO_ROLE = "DAO_ROLE"
LIQUIDATOR_ROLE = "LIQUIDATOR_ROLE"
SETTER_ROLE = "SETTER_ROLE"

# Fixed point precision used by oracles and USD/ETH values
DECIMAL_PRECISION = 10**18


def is_zero_address(account) -> bool:
    """Returns True for the zero address, an empty string or None."""
    return not account or account == ZERO_ADDRESS
