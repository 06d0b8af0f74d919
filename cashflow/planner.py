"""
Greedy settlement planner.

Each round takes the participant with the most negative balance (the max
debtor) and settles as much of its debt as possible:

1. Direct: among participants with a positive balance that share a channel
   with the debtor, pay the one with the largest balance, up to
   min(debt, credit), over the smallest shared channel identifier.
2. Routed: if no creditor shares a channel with the debtor, the debtor pays
   its whole debt to the Treasurer, and the Treasurer immediately forwards
   what it now owes to the largest remaining non-Treasurer creditor, capped
   at that creditor's balance.

Ties are broken by lowest registry index, and channel choice by smallest
identifier, so the same input always yields the same plan.

Every transfer moves the same amount out of one balance and into another,
so balances sum to zero after each one. A direct round zeroes the debtor or
the creditor; a routed round zeroes a non-Treasurer debtor for good. The
loop therefore ends within twice as many rounds as there are participants.
"""

import logging
from typing import List, Optional, Tuple

from cashflow.config import LOG_LEVELS
from cashflow.errors import InvariantViolation
from cashflow.plan import SettlementPlan, Transfer
from cashflow.registry import ParticipantRegistry, TREASURER_INDEX


logger = logging.getLogger("cashflow.planner")


class SettlementPlanner:
    """Produces a SettlementPlan by mutating registry balances down to zero."""

    def __init__(self, registry: ParticipantRegistry):
        self.registry = registry

    def _log(self, msg: str, level: str = 'debug') -> None:
        logger.log(LOG_LEVELS[level], f"cashflow: planner: {msg}")

    # =========================================================================
    # SELECTION
    # =========================================================================

    def max_debtor(self) -> int:
        """Index of the most negative balance (lowest index on ties)."""
        registry = self.registry
        return min(range(len(registry)), key=lambda i: registry[i].balance)

    def max_creditor(self, exclude: Optional[int] = None) -> Optional[int]:
        """Index of the largest positive balance, or None if nobody is owed."""
        best, best_balance = None, 0
        for i, participant in enumerate(self.registry):
            if i == exclude:
                continue
            if participant.balance > best_balance:
                best, best_balance = i, participant.balance
        return best

    def find_settlement(self, debtor: int) -> Optional[Tuple[int, int, str]]:
        """
        Best direct creditor for a debtor.

        Returns (creditor, creditor_balance, channel) for the creditor with
        the strictly largest balance among those sharing a channel with the
        debtor, or None when no creditor shares one.
        """
        best: Optional[Tuple[int, int, str]] = None
        for i, participant in enumerate(self.registry):
            if participant.balance <= 0:
                continue
            common = self.registry.shared_channels(debtor, i)
            if not common:
                continue
            if best is None or participant.balance > best[1]:
                best = (i, participant.balance, common[0])
        return best

    # =========================================================================
    # ROUNDS
    # =========================================================================

    def _transfer(self, plan: SettlementPlan, payer: int, payee: int,
                  amount: int, channel: str, routed: bool = False) -> Transfer:
        registry = self.registry
        if channel not in registry[payer].channels or channel not in registry[payee].channels:
            raise InvariantViolation(
                f"channel {channel!r} not shared by #{payer} and #{payee}"
            )
        transfer = Transfer(payer=payer, payee=payee, amount=amount, channel=channel, routed=routed)
        plan.append(transfer)
        registry[payer].adjust_balance(amount)
        registry[payee].adjust_balance(-amount)
        return transfer

    def settle_round(self, plan: SettlementPlan) -> List[Transfer]:
        """Resolve the current max debtor; return the transfers emitted."""
        registry = self.registry
        debtor = self.max_debtor()
        owed = -registry[debtor].balance
        if owed <= 0:
            raise InvariantViolation("settlement round started with no debtor")

        found = self.find_settlement(debtor)
        if found is not None:
            creditor, credit, channel = found
            amount = min(owed, credit)
            self._log(f"direct {registry.name_of(debtor)} -> {registry.name_of(creditor)} "
                      f"{amount} via {channel}")
            return [self._transfer(plan, debtor, creditor, amount, channel)]

        return self._route_through_treasurer(plan, debtor, owed)

    def _route_through_treasurer(self, plan: SettlementPlan, debtor: int, owed: int) -> List[Transfer]:
        registry = self.registry
        treasurer = TREASURER_INDEX
        if debtor == treasurer or not registry.shared_channels(debtor, treasurer):
            raise InvariantViolation(
                f"no settlement path for {registry.name_of(debtor)}: "
                f"treasurer does not share a channel"
            )

        emitted = [
            self._transfer(plan, debtor, treasurer, owed,
                           registry.first_channel(debtor), routed=True)
        ]

        forward_to = self.max_creditor(exclude=treasurer)
        if forward_to is None:
            # Treasurer now owes money, so a creditor must exist
            raise InvariantViolation(
                f"treasurer holds {owed} from {registry.name_of(debtor)} with no creditor to forward to"
            )

        # Treasurer forwards its whole outstanding debt, including any of its own
        forward = min(-registry[treasurer].balance, registry[forward_to].balance)
        emitted.append(
            self._transfer(plan, treasurer, forward_to, forward,
                           registry.first_channel(forward_to), routed=True)
        )
        self._log(f"routed {registry.name_of(debtor)} -> {registry.treasurer.name} -> "
                  f"{registry.name_of(forward_to)} ({owed} in, {forward} out)", level='info')
        return emitted

    def plan(self) -> SettlementPlan:
        """Run rounds until every balance is zero and return the frozen plan."""
        registry = self.registry
        if not registry.sealed:
            raise InvariantViolation("cannot plan before registration is sealed")
        if registry.total_balance() != 0:
            raise InvariantViolation(f"balances do not sum to zero: {registry.total_balance()}")

        plan = SettlementPlan()
        max_rounds = 2 * len(registry)
        rounds = 0
        while not registry.all_settled():
            if rounds >= max_rounds:
                raise InvariantViolation(f"settlement did not converge in {max_rounds} rounds")
            self.settle_round(plan)
            rounds += 1
            if registry.total_balance() != 0:
                raise InvariantViolation("transfer broke balance conservation")

        plan.freeze()
        self._log(f"planned {len(plan)} transfers in {rounds} rounds "
                  f"({plan.treasurer_hops()} via treasurer, total {plan.total_amount()})",
                  level='info')
        return plan
