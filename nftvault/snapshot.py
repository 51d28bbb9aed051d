"""
All-or-nothing state changes for the in-memory model.

On chain a reverted transaction discards every effect, including token
mints, burns and transfers done by other contracts. The model gets the
same behaviour by snapshotting each participant's own state before an
entry point runs and restoring it if an exception escapes.

Each stateful component lists the attributes it owns in `snapshot_fields`.
References to other components are never part of a snapshot.
"""

import copy
import logging
from contextlib import contextmanager
from typing import Dict, Tuple

log = logging.getLogger(__name__)


class SnapshotMixin:
    """Adds get_snapshot / revert_to_snapshot over `snapshot_fields`."""

    snapshot_fields: Tuple[str, ...] = ()

    def get_snapshot(self) -> Dict[str, object]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self.snapshot_fields}

    def revert_to_snapshot(self, snapshot: Dict[str, object]) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)


@contextmanager
def atomic(*participants):
    """
    Runs the enclosed block as one transaction over the given participants.

    Duplicate participants are snapshotted once. Any exception restores all
    of them and is re-raised unchanged.
    """
    unique = list({id(p): p for p in participants if p is not None}.values())
    snapshots = [(p, p.get_snapshot()) for p in unique]
    try:
        yield
    except BaseException:
        for participant, snapshot in snapshots:
            participant.revert_to_snapshot(snapshot)
        log.debug("Reverted %d participants", len(snapshots))
        raise
