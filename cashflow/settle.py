"""Netting plus planning in one call, for callers that hold validated input."""

from typing import Any, Dict, Optional, Tuple

from cashflow.config import SettleConfig
from cashflow.ingest import parse_document
from cashflow.netting import DebtLedger, NettingEngine
from cashflow.plan import SettlementPlan
from cashflow.planner import SettlementPlanner
from cashflow.registry import ParticipantRegistry


def settle(registry: ParticipantRegistry, ledger: DebtLedger) -> SettlementPlan:
    """Net the ledger onto the registry once, then plan until every balance is zero."""
    NettingEngine(registry).apply(ledger)
    return SettlementPlanner(registry).plan()


def settle_document(
    doc: Dict[str, Any],
    config: Optional[SettleConfig] = None,
) -> Tuple[ParticipantRegistry, DebtLedger, SettlementPlan]:
    """Parse a participants/debts document and settle it."""
    registry, ledger = parse_document(doc, config or SettleConfig())
    return registry, ledger, settle(registry, ledger)
