"""Freshness policy for pushed fields versus REST snapshots.

A REST response and a push event both describe the same backend state,
but they can arrive out of order: a listing requested before a stock
change may be delivered after the push for that change.  The rule here is
per field: a pushed value survives a reload only when it was received
after the reloaded snapshot was requested.  Otherwise the snapshot wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PushedField:
    """Last pushed value of one field of one entity."""

    value: Any
    received_at: float


def pushed_value_wins(*, received_at: float, snapshot_as_of: float) -> bool:
    """Whether a pushed value is newer than a snapshot requested at *snapshot_as_of*."""
    return received_at >= snapshot_as_of


def newer_pushed_fields(fields: dict[str, PushedField], snapshot_as_of: float) -> dict[str, Any]:
    """Subset of *fields* that must be re-applied over a snapshot."""
    return {
        name: pushed.value
        for name, pushed in fields.items()
        if pushed_value_wins(received_at=pushed.received_at, snapshot_as_of=snapshot_as_of)
    }
