"""
Settlement plan: the ordered payment instructions produced by the planner.

Transfers reference participants by registry index; names are only resolved
at the presentation boundary via rows().
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, NamedTuple, Tuple

from cashflow.errors import InvariantViolation
from cashflow.registry import ParticipantRegistry


# Bump when the planner's selection or routing rules change in a way that
# changes plan hashes for the same input.
SETTLEMENT_PLAN_VERSION = 1


@dataclass(frozen=True)
class Transfer:
    """One payment instruction: payer sends amount to payee over channel."""
    payer: int
    payee: int
    amount: int
    channel: str
    routed: bool = False  # leg of a Treasurer-mediated settlement


class PlanRow(NamedTuple):
    """A transfer with participant names resolved, ready for rendering."""
    payer: str
    payee: str
    amount: int
    channel: str


class SettlementPlan:
    """Append-only during planning, read-only once frozen."""

    def __init__(self):
        self._transfers: List[Transfer] = []
        self._frozen = False

    def append(self, transfer: Transfer) -> None:
        if self._frozen:
            raise InvariantViolation("settlement plan is frozen")
        if transfer.amount <= 0:
            raise InvariantViolation(f"transfer amount must be positive, got {transfer.amount}")
        if transfer.payer == transfer.payee:
            raise InvariantViolation(f"transfer from participant #{transfer.payer} to itself")
        self._transfers.append(transfer)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def transfers(self) -> Tuple[Transfer, ...]:
        return tuple(self._transfers)

    def __len__(self) -> int:
        return len(self._transfers)

    def __iter__(self) -> Iterator[Transfer]:
        return iter(tuple(self._transfers))

    def __getitem__(self, index: int) -> Transfer:
        return self._transfers[index]

    def total_amount(self) -> int:
        return sum(t.amount for t in self._transfers)

    def treasurer_hops(self) -> int:
        """Number of transfers that were legs of a Treasurer-mediated settlement."""
        return sum(1 for t in self._transfers if t.routed)

    def rows(self, registry: ParticipantRegistry) -> List[PlanRow]:
        return [
            PlanRow(registry.name_of(t.payer), registry.name_of(t.payee), t.amount, t.channel)
            for t in self._transfers
        ]

    def to_dicts(self, registry: ParticipantRegistry) -> List[Dict[str, Any]]:
        return [
            {"payer": r.payer, "payee": r.payee, "amount": r.amount, "channel": r.channel}
            for r in self.rows(registry)
        ]

    def plan_hash(self, registry: ParticipantRegistry) -> str:
        """Deterministic hash of the plan. Transfer order is significant."""
        payload = {
            "v": SETTLEMENT_PLAN_VERSION,
            "participants": registry.names,
            "transfers": self.to_dicts(registry),
        }
        return hashlib.sha256(
            json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()
        ).hexdigest()
