"""
cashflow: settle mutual debts in a closed group with channel-constrained transfers.

The Treasurer (first registered participant) supports every payment channel
in use and routes any debt that has no direct channel to its creditor.
"""

from cashflow.errors import (
    CashflowError,
    ConfigurationError,
    InputError,
    InvariantViolation,
)
from cashflow.registry import Participant, ParticipantRegistry, TREASURER_INDEX
from cashflow.netting import DebtLedger, NettingEngine
from cashflow.plan import PlanRow, SettlementPlan, Transfer
from cashflow.planner import SettlementPlanner
from cashflow.settle import settle, settle_document

__version__ = "0.3.0"

__all__ = [
    "CashflowError",
    "ConfigurationError",
    "InputError",
    "InvariantViolation",
    "Participant",
    "ParticipantRegistry",
    "TREASURER_INDEX",
    "DebtLedger",
    "NettingEngine",
    "PlanRow",
    "SettlementPlan",
    "Transfer",
    "SettlementPlanner",
    "settle",
    "settle_document",
]
