# src/libs/holdings-engine/holdings_engine/verification.py
"""
Compares a stored projection with positions freshly derived from the ledger.

Monetary fields are compared after rounding to the presentation precision,
because SQL backends may store them with a different scale.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .stores import PositionKey
from .transaction_domain.models import Position
from .utils import quantize_amount


class DriftKind(str, Enum):
    MISSING = "MISSING"      # derivable from the ledger, absent from the projection
    STALE = "STALE"          # present in both, with different values
    ORPHANED = "ORPHANED"    # in the projection with no open position in the ledger


@dataclass(frozen=True)
class ProjectionDrift:
    kind: DriftKind
    account_id: str
    instrument_code: str
    expected: Optional[Position] = None
    stored: Optional[Position] = None
    fields: tuple[str, ...] = ()

    @property
    def position_key(self) -> PositionKey:
        return (self.account_id, self.instrument_code)


def differing_fields(expected: Position, stored: Position) -> tuple[str, ...]:
    differences = []
    for name in ("instrument_name", "quantity", "currency", "last_effective_at"):
        if getattr(expected, name) != getattr(stored, name):
            differences.append(name)
    for name in ("average_cost", "total_cost"):
        if quantize_amount(getattr(expected, name)) != quantize_amount(getattr(stored, name)):
            differences.append(name)
    return tuple(differences)


def find_drifts(expected: Iterable[Position], stored: Iterable[Position]) -> list[ProjectionDrift]:
    """Returns every difference between the two sets, ordered by key."""
    expected_by_key = {p.position_key: p for p in expected}
    stored_by_key = {p.position_key: p for p in stored}

    drifts = []
    for key in sorted(expected_by_key.keys() | stored_by_key.keys()):
        want = expected_by_key.get(key)
        have = stored_by_key.get(key)
        if have is None:
            drifts.append(ProjectionDrift(DriftKind.MISSING, *key, expected=want))
        elif want is None:
            drifts.append(ProjectionDrift(DriftKind.ORPHANED, *key, stored=have))
        else:
            fields = differing_fields(want, have)
            if fields:
                drifts.append(ProjectionDrift(DriftKind.STALE, *key, expected=want, stored=have, fields=fields))
    return drifts
