"""Matching engine, flavor strategies and supporting components."""

from .engine import ReconciliationService
from .generator import CandidateGenerator
from .assigner import Assigner, ranking_key
from .ledger import MatchLedger
from .strategies import (
    FlavorStrategy,
    ReimbursementStrategy,
    TransferStrategy,
    DuplicateStrategy,
    strategy_for,
)
from . import tolerance

__all__ = [
    "ReconciliationService",
    "CandidateGenerator",
    "Assigner",
    "ranking_key",
    "MatchLedger",
    "FlavorStrategy",
    "ReimbursementStrategy",
    "TransferStrategy",
    "DuplicateStrategy",
    "strategy_for",
    "tolerance",
]
