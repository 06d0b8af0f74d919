"""
Debt ledger and balance netting.

All computations use integer amounts (no floats).

Flow:
1. DebtLedger accumulates validated (debtor, creditor, amount) records into an
   n x n matrix, debt[i][j] = total i owes j
2. NettingEngine turns the matrix into one net balance per participant,
   balance[i] = sum_j debt[j][i] - sum_j debt[i][j], and writes it onto the
   registry exactly once

The diagonal (self-debts) is tolerated and nets to zero.
"""

import hashlib
import json
import logging
from typing import Any, Dict, List, Sequence

from cashflow.config import LOG_LEVELS
from cashflow.errors import InputError, InvariantViolation
from cashflow.registry import ParticipantRegistry


logger = logging.getLogger("cashflow.netting")


class DebtLedger:
    """Validated raw debts between the participants of one registry."""

    def __init__(self, registry: ParticipantRegistry, reject_self_debts: bool = False):
        if not registry.sealed:
            raise InvariantViolation("debt ledger requires a sealed participant registry")
        self.registry = registry
        self.reject_self_debts = reject_self_debts
        n = len(registry)
        self._matrix: List[List[int]] = [[0] * n for _ in range(n)]
        self._records: List[Dict[str, Any]] = []

    def _log(self, msg: str, level: str = 'debug') -> None:
        logger.log(LOG_LEVELS[level], f"cashflow: ledger: {msg}")

    def add(self, debtor: str, creditor: str, amount: int) -> None:
        """Record that debtor owes creditor amount; repeated pairs accumulate."""
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InputError(f"debt amount must be an integer, got {amount!r}")
        if amount <= 0:
            raise InputError(f"debt amount must be positive, got {amount}")
        d = self.registry.index_of(debtor)
        c = self.registry.index_of(creditor)
        debtor, creditor = self.registry.name_of(d), self.registry.name_of(c)

        if d == c:
            if self.reject_self_debts:
                raise InputError(f"participant {debtor!r} cannot owe themselves")
            self._log(f"self-debt of {amount} for {debtor} ignored in netting", level='warn')

        self._matrix[d][c] += amount
        self._records.append({"debtor": debtor, "creditor": creditor, "amount": amount})
        self._log(f"{debtor} owes {creditor} {amount}")

    def __len__(self) -> int:
        return len(self._records)

    @property
    def matrix(self) -> List[List[int]]:
        """Copy of the accumulated debt matrix."""
        return [list(row) for row in self._matrix]

    def records(self) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._records]

    def total(self) -> int:
        return sum(r["amount"] for r in self._records)

    def fingerprint(self) -> str:
        """Deterministic hash of the debt records, independent of entry order."""
        canonical = json.dumps(
            sorted(self._records, key=lambda r: (r["debtor"], r["creditor"], r["amount"])),
            sort_keys=True,
            separators=(',', ':'),
        )
        return hashlib.sha256(canonical.encode()).hexdigest()


class NettingEngine:
    """Collapse raw pairwise debts into one net balance per participant."""

    def __init__(self, registry: ParticipantRegistry):
        self.registry = registry

    def _log(self, msg: str, level: str = 'debug') -> None:
        logger.log(LOG_LEVELS[level], f"cashflow: netting: {msg}")

    @staticmethod
    def compute_net_balances(matrix: Sequence[Sequence[int]]) -> List[int]:
        """
        Net balance per participant from a square debt matrix.

        Positive means the participant is owed money. Diagonal entries cancel
        out, so self-debts never move a balance.
        """
        n = len(matrix)
        for row in matrix:
            if len(row) != n:
                raise InvariantViolation("debt matrix must be square")
        return [
            sum(matrix[j][i] for j in range(n)) - sum(matrix[i][j] for j in range(n))
            for i in range(n)
        ]

    def apply(self, ledger: DebtLedger) -> List[int]:
        """Write net balances from the ledger onto the registry. Allowed once."""
        if ledger.registry is not self.registry:
            raise InvariantViolation("ledger belongs to a different registry")
        balances = self.compute_net_balances(ledger.matrix)
        if sum(balances) != 0:
            raise InvariantViolation(f"net balances do not sum to zero: {sum(balances)}")

        self.registry.mark_netted()
        for participant, balance in zip(self.registry, balances):
            participant.adjust_balance(balance)

        self._log(
            f"netted {len(ledger)} debts totalling {ledger.total()} into "
            f"{sum(1 for b in balances if b != 0)} open balances",
            level='info',
        )
        return balances
