"""Screening, batch pacing and the per-cycle decision engine."""

from .engine import Action, CycleReport, Decision, DecisionEngine
from .screening import ScreenResult, passes_fundamental_filter, screen, select_candidates
from .state import BatchBook, BatchExecutionState, PositionStage

__all__ = [
    "Action",
    "BatchBook",
    "BatchExecutionState",
    "CycleReport",
    "Decision",
    "DecisionEngine",
    "PositionStage",
    "ScreenResult",
    "passes_fundamental_filter",
    "screen",
    "select_candidates",
]
