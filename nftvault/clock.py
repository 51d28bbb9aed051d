"""
Simulated block time shared by the vault and its collaborators.
"""

# 2020-09-13, an arbitrary positive genesis so that 0 can mean "never"
GENESIS_TIMESTAMP = 1_600_000_000


class Clock:
    """
    Monotonic integer clock in seconds.

    Every component that needs "now" reads the same Clock instance, so a
    simulation advances time in one place. Timestamps are always positive.
    """

    def __init__(self, start: int = GENESIS_TIMESTAMP):
        if start <= 0:
            raise ValueError("Clock must start at a positive timestamp")
        self.now = start

    def advance(self, seconds: int) -> int:
        """Moves the clock forward and returns the new timestamp."""
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self.now += seconds
        return self.now

    def set(self, timestamp: int) -> int:
        """Jumps to an absolute timestamp (never backwards)."""
        if timestamp < self.now:
            raise ValueError("Clock cannot move backwards")
        self.now = timestamp
        return self.now
