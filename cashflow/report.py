"""Rendering of settlement plans and balances for people and for machines."""

import json
from typing import Any, Dict, List, Sequence

from cashflow.plan import PlanRow, SettlementPlan, SETTLEMENT_PLAN_VERSION
from cashflow.registry import ParticipantRegistry, TREASURER_INDEX


def format_table(rows: Sequence[PlanRow]) -> str:
    """
    Fixed-width settlement summary, one line per transfer:

        Payer          Payee          Amount  Channel
        --------------------------------------------------
        P1             Treasurer      7       upi-b
    """
    if not rows:
        return "Everyone is already settled."
    lines = [
        f"{'Payer':<15}{'Payee':<15}{'Amount':<8}Channel",
        "-" * 50,
    ]
    for row in rows:
        lines.append(f"{row.payer:<15}{row.payee:<15}{row.amount:<8}{row.channel}")
    return "\n".join(lines)


def describe_balances(registry: ParticipantRegistry, balances: Sequence[int]) -> str:
    """
    Lines like:
      'Alice is owed 120'
      'Bob owes 45'
      'Cara is settled'
    """
    lines = []
    for participant, balance in zip(registry, balances):
        if balance > 0:
            lines.append(f"{participant.name} is owed {balance}")
        elif balance < 0:
            lines.append(f"{participant.name} owes {-balance}")
        else:
            lines.append(f"{participant.name} is settled")
    return "\n".join(lines)


def describe_participants(registry: ParticipantRegistry, treasurer_label: str = "Treasurer") -> str:
    lines = []
    for i, participant in enumerate(registry):
        role = treasurer_label if i == TREASURER_INDEX else "Member"
        lines.append(f"{role} {i + 1}: {participant.name} [{', '.join(sorted(participant.channels))}]")
    return "\n".join(lines)


def plan_payload(
    plan: SettlementPlan,
    registry: ParticipantRegistry,
    balances: Sequence[int] = (),
) -> Dict[str, Any]:
    """JSON-ready summary of a finished plan."""
    payload: Dict[str, Any] = {
        "plan_version": SETTLEMENT_PLAN_VERSION,
        "plan_hash": plan.plan_hash(registry),
        "treasurer": registry.treasurer.name,
        "transfers": plan.to_dicts(registry),
        "transfer_count": len(plan),
        "treasurer_hops": plan.treasurer_hops(),
        "total_amount": plan.total_amount(),
    }
    if balances:
        payload["net_balances"] = {
            participant.name: balance for participant, balance in zip(registry, balances)
        }
    return payload


def render(
    plan: SettlementPlan,
    registry: ParticipantRegistry,
    output_format: str = "table",
    balances: Sequence[int] = (),
    treasurer_label: str = "Treasurer",
) -> str:
    if output_format == "json":
        return json.dumps(plan_payload(plan, registry, balances), indent=2)

    sections: List[str] = []
    if balances:
        sections.append(describe_participants(registry, treasurer_label))
        sections.append(describe_balances(registry, balances))
    sections.append(format_table(plan.rows(registry)))
    return "\n\n".join(sections)
