"""Per-symbol batch-execution state and position stages."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum
from typing import Iterator

from dividend_value_system.ledger.keyed_state import KeyedStateStore


class PositionStage(StrEnum):
    NOT_HELD = "not_held"
    SCREENING = "screening"
    BATCH_BUYING = "batch_buying"
    HELD = "held"
    SELL_EVALUATING = "sell_evaluating"
    SOLD = "sold"


@dataclass(frozen=True, slots=True)
class BatchExecutionState:
    """Progress of a multi-batch entry; replaced, never mutated in place."""

    symbol: str
    target_amount: float
    batch_count: int
    completed_batches: int = 0
    deployed_amount: float = 0.0
    last_trade_date: datetime | None = None

    @property
    def remaining_batches(self) -> int:
        return max(self.batch_count - self.completed_batches, 0)

    @property
    def complete(self) -> bool:
        return self.completed_batches >= self.batch_count

    def next_batch_amount(self) -> float:
        if self.complete:
            return 0.0
        return max(self.target_amount - self.deployed_amount, 0.0) / self.remaining_batches

    def advance(self, filled_amount: float, when: datetime) -> "BatchExecutionState":
        if self.complete:
            raise ValueError(f"batch entry for {self.symbol} is already complete")
        return replace(
            self,
            completed_batches=self.completed_batches + 1,
            deployed_amount=self.deployed_amount + float(filled_amount),
            last_trade_date=when,
        )


class BatchBook:
    """
    Keyed store of open batch entries.

    `hold` keeps the symbol's lock for the whole decide-order-update sequence,
    so a symbol's decision and its state change are atomic for that symbol.
    """

    def __init__(self) -> None:
        self._states: KeyedStateStore[BatchExecutionState] = KeyedStateStore()

    @contextmanager
    def hold(self, symbol: str) -> Iterator["BatchSlot"]:
        with self._states.entry(symbol) as slot:
            yield BatchSlot(slot)

    def get(self, symbol: str) -> BatchExecutionState | None:
        return self._states.get(symbol)

    def in_progress(self) -> list[str]:
        return sorted(self._states.keys())

    def clear(self, symbol: str) -> BatchExecutionState | None:
        return self._states.pop(symbol)


class BatchSlot:
    """Locked view of one symbol's batch state."""

    __slots__ = ("_slot",)

    def __init__(self, slot) -> None:
        self._slot = slot

    @property
    def state(self) -> BatchExecutionState | None:
        return self._slot.value

    def set(self, state: BatchExecutionState) -> None:
        current = self._slot.value
        if current is not None and state.completed_batches < current.completed_batches:
            raise ValueError(f"batch counter for {state.symbol} cannot move backwards")
        self._slot.value = state

    def clear(self) -> None:
        self._slot.value = None
