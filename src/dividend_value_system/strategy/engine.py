"""Per-cycle buy/sell/hold decisions for the dividend value strategy."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
import math
import threading
from typing import Any, Callable, Mapping

from loguru import logger

from dividend_value_system.config import StrategyConfig, SystemConfig
from dividend_value_system.errors import CycleAborted, DataUnavailable, OrderRejected
from dividend_value_system.execution.costs import TradeCostModel
from dividend_value_system.execution.optimizer import CostTimingOptimizer
from dividend_value_system.execution.sweep import CashSweeper, SweepResult
from dividend_value_system.ledger.history import TradeHistoryStore
from dividend_value_system.providers.base import (
    BoundedCaller,
    IndustryClassifier,
    MarketDataProvider,
    OrderGateway,
    PositionProvider,
    capture_positions,
    execute_order,
)
from dividend_value_system.risk.evaluator import RiskEvaluator
from dividend_value_system.risk.snapshot import PortfolioSnapshot, build_snapshot
from dividend_value_system.time_utils import Clock, now_utc
from dividend_value_system.types import FilledOrder, FundamentalSnapshot, OrderType, Side

from .screening import screen
from .state import BatchBook, BatchExecutionState, BatchSlot, PositionStage


class Action(StrEnum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"
    SKIP = "skip"
    REJECTED = "rejected"
    ERROR = "error"


ORDER_ACTIONS = frozenset({Action.BUY, Action.SELL, Action.REJECTED, Action.ERROR})


@dataclass(frozen=True, slots=True)
class Decision:
    symbol: str
    action: Action
    stage: PositionStage
    reason: str
    quantity: float = 0.0
    price: float | None = None
    fill: FilledOrder | None = None

    @property
    def order_attempted(self) -> bool:
        return self.action in ORDER_ACTIONS

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "action": str(self.action),
            "stage": str(self.stage),
            "reason": self.reason,
            "quantity": self.quantity,
            "price": self.price,
            "order_id": self.fill.order_id if self.fill else None,
        }


@dataclass(slots=True)
class CycleReport:
    """Outcome of one decision cycle."""

    cycle_id: str
    started_at: datetime
    decisions: list[Decision] = field(default_factory=list)
    sweep: SweepResult | None = None
    cash_after: float = 0.0

    def decision_for(self, symbol: str) -> Decision | None:
        for decision in reversed(self.decisions):
            if decision.symbol == symbol:
                return decision
        return None

    def count(self, action: Action) -> int:
        return sum(1 for decision in self.decisions if decision.action == action)

    @property
    def orders_sent(self) -> int:
        return sum(1 for decision in self.decisions if decision.order_attempted)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "decisions": [decision.to_dict() for decision in self.decisions],
            "sweep_lots": self.sweep.lots if self.sweep else 0,
            "cash_after": self.cash_after,
        }


@dataclass(slots=True)
class _CycleContext:
    cycle_id: str
    now: datetime
    snapshot: PortfolioSnapshot
    fundamentals: Mapping[str, FundamentalSnapshot]
    cash: float
    report: CycleReport
    industry_committed: dict[str, float] = field(default_factory=dict)
    sold: set[str] = field(default_factory=set)
    freed_cash: float = 0.0

    def industry_of(self, symbol: str) -> str:
        industry = self.snapshot.industries.get(symbol)
        if industry:
            return industry
        fundamental = self.fundamentals.get(symbol)
        if fundamental is not None and fundamental.industry:
            return fundamental.industry
        raise DataUnavailable(f"no industry for {symbol}", symbol=symbol)


class DecisionEngine:
    """
    Screens, gates and paces entries and exits once per evaluation cycle.

    Positions, cash and industry membership are captured once at cycle start
    and never refreshed mid-cycle. Exits run first so their proceeds are
    available to the entry pass of the same cycle. The only state carried
    across cycles is the batch book.
    """

    def __init__(
        self,
        config: SystemConfig,
        market: MarketDataProvider,
        gateway: OrderGateway,
        positions: PositionProvider,
        classifier: IndustryClassifier,
        history: TradeHistoryStore | None = None,
        risk: RiskEvaluator | None = None,
        cost_model: TradeCostModel | None = None,
        optimizer: CostTimingOptimizer | None = None,
        sweeper: CashSweeper | None = None,
        batches: BatchBook | None = None,
        caller: BoundedCaller | None = None,
        clock: Clock = now_utc,
    ) -> None:
        self.config = config
        self.market = market
        self.gateway = gateway
        self.positions = positions
        self.classifier = classifier
        self.clock = clock
        self.history = history or TradeHistoryStore(clock=clock)
        self.risk = risk or RiskEvaluator(config.risk, self.history, clock=clock)
        self.cost_model = cost_model or TradeCostModel(config.costs)
        self.optimizer = optimizer
        self.sweeper = sweeper
        self.batches = batches or BatchBook()
        self.caller = caller or BoundedCaller()
        self._cycle_lock = threading.Lock()
        self._cycle_id: str | None = None
        self._acted: dict[str, Decision] = {}

    @property
    def strategy(self) -> StrategyConfig:
        return self.config.strategy

    @property
    def cash_equivalents(self) -> frozenset[str]:
        """Holdings parked by the cash sweep; never screened or sold as equities."""
        if self.sweeper is None:
            return frozenset()
        return frozenset({self.sweeper.instrument})

    def stage_of(self, symbol: str, snapshot: PortfolioSnapshot) -> PositionStage:
        state = self.batches.get(symbol)
        if state is not None and not state.complete:
            return PositionStage.BATCH_BUYING
        position = snapshot.position(symbol)
        if position is not None and position.quantity > 0:
            return PositionStage.HELD
        last = self.history.last_record(symbol)
        if last is not None and last.side == Side.SELL:
            return PositionStage.SOLD
        return PositionStage.NOT_HELD

    def run_cycle(self, cycle_id: str | None = None) -> CycleReport:
        """
        Evaluate every held, building and candidate symbol once.

        Re-running a cycle id returns the recorded decision for any symbol
        that already had an order attempted, without sending a new order.
        Raises CycleAborted when account state cannot be captured.
        """
        with self._cycle_lock:
            now = self.clock()
            cycle_id = cycle_id or now.isoformat()
            if cycle_id != self._cycle_id:
                self._cycle_id = cycle_id
                self._acted = {}
            with self.caller.metrics.timed("decision_cycle"):
                ctx = self._open_cycle(cycle_id, now)
                self._evaluate_exits(ctx)
                self._evaluate_entries(ctx)
                self._sweep_idle_cash(ctx)
            ctx.report.cash_after = ctx.cash
            report = ctx.report
            logger.info(
                "cycle {} done: buys={} sells={} holds={} skipped={} rejected={} errors={} cash={:.2f}",
                cycle_id,
                report.count(Action.BUY),
                report.count(Action.SELL),
                report.count(Action.HOLD),
                report.count(Action.SKIP),
                report.count(Action.REJECTED),
                report.count(Action.ERROR),
                ctx.cash,
            )
            return report

    def _open_cycle(self, cycle_id: str, now: datetime) -> _CycleContext:
        timeout = self.strategy.data_timeout_seconds
        try:
            positions, cash = capture_positions(self.caller, self.positions, timeout)
        except Exception as exc:
            logger.error("cycle {} aborted: cannot capture account state: {}", cycle_id, exc)
            raise CycleAborted(f"account state unavailable: {exc}") from exc

        symbols = sorted((set(self.config.universe) | set(positions) | set(self.batches.in_progress())) - self.cash_equivalents)
        try:
            fundamentals = self.caller.call(
                "fundamental_snapshot",
                self.market.fundamental_snapshot,
                symbols,
                timeout=timeout,
            )
            snapshot = self.caller.call(
                "build_snapshot",
                build_snapshot,
                positions,
                cash,
                self.classifier,
                symbols,
                now,
                self.cash_equivalents,
                timeout=timeout,
            )
        except Exception as exc:
            logger.error("cycle {} aborted: cannot capture market snapshot: {}", cycle_id, exc)
            raise CycleAborted(f"market snapshot unavailable: {exc}") from exc

        missing = [symbol for symbol in symbols if symbol not in fundamentals]
        if missing:
            logger.warning("cycle {}: no fundamentals for {} symbols: {}", cycle_id, len(missing), missing)
        logger.info(
            "cycle {} started: symbols={} held={} total_value={:.2f} cash={:.2f}",
            cycle_id,
            len(symbols),
            len(snapshot.held_symbols()),
            snapshot.total_value,
            cash.available,
        )
        return _CycleContext(
            cycle_id=cycle_id,
            now=now,
            snapshot=snapshot,
            fundamentals=dict(fundamentals),
            cash=float(cash.available),
            report=CycleReport(cycle_id=cycle_id, started_at=now),
        )

    def _run_symbol(
        self,
        ctx: _CycleContext,
        symbol: str,
        stage: PositionStage,
        step: Callable[[_CycleContext, str, BatchSlot], Decision],
    ) -> Decision:
        cached = self._acted.get(symbol)
        if cached is not None:
            logger.debug("{} already acted on in cycle {}: {}", symbol, ctx.cycle_id, cached.action)
            ctx.report.decisions.append(cached)
            return cached
        try:
            with self.batches.hold(symbol) as slot:
                decision = step(ctx, symbol, slot)
        except DataUnavailable as exc:
            logger.warning("{} skipped this cycle: data unavailable: {}", symbol, exc)
            decision = Decision(symbol, Action.SKIP, stage, f"data unavailable: {exc}")
        except Exception as exc:
            logger.exception("{} failed this cycle: {}", symbol, exc)
            decision = Decision(symbol, Action.ERROR, stage, f"error: {exc}")
        if decision.order_attempted:
            self._acted[symbol] = decision
        ctx.report.decisions.append(decision)
        return decision

    def limit_price(self, symbol: str, quantity: float, side: Side) -> float | None:
        """Advised limit price, or None to send a market order."""
        if self.optimizer is None:
            return None
        return self.optimizer.recommend_price(symbol, quantity, side)

    def _execute(self, symbol: str, quantity: float, side: Side, limit_price: float | None = None) -> FilledOrder:
        return execute_order(
            self.caller,
            self.gateway,
            symbol,
            quantity,
            side,
            self.strategy.order_timeout_seconds,
            order_type=OrderType.MARKET if limit_price is None else OrderType.LIMIT,
            limit_price=limit_price,
        )

    # Exits

    def _evaluate_exits(self, ctx: _CycleContext) -> None:
        for symbol in ctx.snapshot.held_symbols():
            if self.batches.get(symbol) is not None or symbol in self.cash_equivalents:
                continue
            self._run_symbol(ctx, symbol, self.stage_of(symbol, ctx.snapshot), self._evaluate_exit)
        if ctx.sold:
            logger.info(
                "cycle {}: sold {} freeing {:.2f}; re-screening for entries",
                ctx.cycle_id,
                sorted(ctx.sold),
                ctx.freed_cash,
            )

    def exit_reason(self, symbol: str, fundamental: FundamentalSnapshot, industry: str) -> str | None:
        price = fundamental.price
        if self.risk.check_stop_loss(symbol, price):
            return f"stop_loss at {price:.4f} (last trade {self.history.last_price(symbol):.4f})"
        if self.risk.check_take_profit(symbol, price):
            return f"take_profit at {price:.4f} (last trade {self.history.last_price(symbol):.4f})"
        timeout = self.strategy.data_timeout_seconds
        average_pb = self.caller.call(
            "average_pb",
            self.classifier.average_pb,
            industry,
            timeout=timeout,
            symbol=symbol,
        )
        if fundamental.pb >= average_pb:
            return f"pb {fundamental.pb:.3f} >= industry {industry} average {average_pb:.3f}"
        percentile = self.caller.call(
            "pe_history_percentile",
            self.classifier.pe_history_percentile,
            symbol,
            self.strategy.pe_lookback_days,
            timeout=timeout,
            symbol=symbol,
        )
        if percentile > self.strategy.pe_high_percentile:
            return f"pe percentile {percentile:.2%} > {self.strategy.pe_high_percentile:.2%}"
        return None

    def _evaluate_exit(self, ctx: _CycleContext, symbol: str, slot: BatchSlot) -> Decision:
        position = ctx.snapshot.position(symbol)
        fundamental = ctx.fundamentals.get(symbol)
        if fundamental is None:
            raise DataUnavailable(f"no fundamentals for {symbol}", symbol=symbol)
        reason = self.exit_reason(symbol, fundamental, ctx.industry_of(symbol))
        if reason is None:
            return Decision(symbol, Action.HOLD, PositionStage.HELD, "no exit condition")

        quantity = position.available_quantity
        if quantity <= 0:
            logger.warning("exit signal for {} ({}) but nothing is available to sell", symbol, reason)
            return Decision(symbol, Action.HOLD, PositionStage.SELL_EVALUATING, f"{reason}; nothing available")

        limit_price = self.limit_price(symbol, quantity, Side.SELL)
        logger.info("selling {}: quantity={} limit={} reason={}", symbol, quantity, limit_price, reason)
        try:
            fill = self._execute(symbol, quantity, Side.SELL, limit_price)
        except OrderRejected as exc:
            logger.warning("sell order for {} rejected: {}; retrying next cycle", symbol, exc)
            return Decision(
                symbol, Action.REJECTED, PositionStage.SELL_EVALUATING, f"{reason}; rejected: {exc}", quantity, fundamental.price
            )

        self.history.record(symbol, fill.price, fill.quantity, Side.SELL, timestamp=ctx.now)
        slot.clear()
        cost = self.cost_model.sell_cost(fill.price, fill.quantity)
        proceeds = fill.amount - cost.fees
        ctx.cash += proceeds
        ctx.freed_cash += proceeds
        ctx.sold.add(symbol)
        stage = PositionStage.SOLD if fill.quantity >= position.quantity else PositionStage.HELD
        logger.info(
            "sold {}: quantity={} price={:.4f} proceeds={:.2f} fees={:.2f} partial={}",
            symbol,
            fill.quantity,
            fill.price,
            proceeds,
            cost.fees,
            fill.partial,
        )
        return Decision(symbol, Action.SELL, stage, reason, fill.quantity, fill.price, fill)

    # Entries

    def _entry_symbols(self, ctx: _CycleContext) -> list[str]:
        ordered = self.batches.in_progress()
        held = set(ctx.snapshot.held_symbols())
        for symbol in self.config.universe:
            if symbol in ordered or symbol in ctx.sold or symbol in held:
                continue
            ordered.append(symbol)
        return ordered

    def _evaluate_entries(self, ctx: _CycleContext) -> None:
        for symbol in self._entry_symbols(ctx):
            self._run_symbol(ctx, symbol, self.stage_of(symbol, ctx.snapshot), self._evaluate_entry)

    def batch_quantity(self, symbol: str, price: float, amount: float) -> int:
        """Batch amount in whole lots, shrunk further by execution advice."""
        lot = self.strategy.lot_size
        if price <= 0 or amount <= 0:
            return 0
        quantity = int(math.floor(amount / price / lot)) * lot
        if quantity > 0 and self.optimizer is not None:
            advised = self.optimizer.recommend_quantity(symbol, price, amount)
            if advised < quantity:
                logger.info("execution advice shrinks {} batch from {} to {}", symbol, quantity, advised)
                quantity = advised
        return quantity

    def _evaluate_entry(self, ctx: _CycleContext, symbol: str, slot: BatchSlot) -> Decision:
        fundamental = ctx.fundamentals.get(symbol)
        if fundamental is None:
            raise DataUnavailable(f"no fundamentals for {symbol}", symbol=symbol)

        state = slot.state
        if state is None:
            result = screen(fundamental, self.strategy, self.history.last_price(symbol))
            if not result.passed:
                logger.debug("{} not selected: {}", symbol, result.reason)
                return Decision(symbol, Action.SKIP, PositionStage.NOT_HELD, result.reason)
            state = BatchExecutionState(
                symbol=symbol,
                target_amount=self.strategy.target_position_value,
                batch_count=self.strategy.batch_count,
            )
            stage = PositionStage.SCREENING
            reason = f"selected ({result.reason})"
        else:
            stage = PositionStage.BATCH_BUYING
            reason = "continue batch entry"

        price = fundamental.price
        batch_number = state.completed_batches + 1
        quantity = self.batch_quantity(symbol, price, state.next_batch_amount())
        if quantity <= 0:
            logger.info(
                "{} batch {}/{} rounds to zero lots at price {:.4f}; no order",
                symbol,
                batch_number,
                state.batch_count,
                price,
            )
            return Decision(symbol, Action.HOLD, stage, "batch below minimum lot", 0.0, price)

        amount = price * quantity
        industry = ctx.industry_of(symbol)
        gate = self.risk.gate(
            ctx.snapshot,
            symbol,
            industry,
            amount,
            pending_industry_amount=ctx.industry_committed.get(industry, 0.0),
        )
        if not gate.allowed:
            return Decision(symbol, Action.SKIP, stage, gate.reason, quantity, price)

        cost = self.cost_model.buy_cost(price, quantity)
        if cost.total_cost > ctx.cash:
            logger.info(
                "{} batch {}/{} skipped: needs {:.2f} but only {:.2f} cash left",
                symbol,
                batch_number,
                state.batch_count,
                cost.total_cost,
                ctx.cash,
            )
            return Decision(symbol, Action.SKIP, stage, "insufficient cash", quantity, price)

        logger.info(
            "buying {} batch {}/{}: quantity={} price={:.4f} amount={:.2f} fees={:.2f} ({})",
            symbol,
            batch_number,
            state.batch_count,
            quantity,
            price,
            amount,
            cost.fees,
            reason,
        )
        limit_price = self.limit_price(symbol, quantity, Side.BUY)
        try:
            fill = self._execute(symbol, quantity, Side.BUY, limit_price)
        except OrderRejected as exc:
            logger.warning(
                "buy order for {} rejected: {}; batch {}/{} not advanced",
                symbol,
                exc,
                state.completed_batches,
                state.batch_count,
            )
            return Decision(symbol, Action.REJECTED, stage, f"{reason}; rejected: {exc}", quantity, price)

        self.history.record(symbol, fill.price, fill.quantity, Side.BUY, timestamp=ctx.now)
        advanced = state.advance(fill.amount, ctx.now)
        ctx.cash -= fill.amount + self.cost_model.buy_cost(fill.price, fill.quantity).fees
        ctx.industry_committed[industry] = ctx.industry_committed.get(industry, 0.0) + fill.amount
        if advanced.complete:
            slot.clear()
            stage = PositionStage.HELD
        else:
            slot.set(advanced)
            stage = PositionStage.BATCH_BUYING
        logger.info(
            "bought {} batch {}/{}: quantity={} price={:.4f} deployed={:.2f}/{:.2f} partial={}",
            symbol,
            advanced.completed_batches,
            advanced.batch_count,
            fill.quantity,
            fill.price,
            advanced.deployed_amount,
            advanced.target_amount,
            fill.partial,
        )
        return Decision(symbol, Action.BUY, stage, reason, fill.quantity, fill.price, fill)

    # Session close

    def _sweep_idle_cash(self, ctx: _CycleContext) -> None:
        if self.sweeper is None or not self.sweeper.due(ctx.now):
            return
        try:
            ctx.report.sweep = self.sweeper.sweep(max(ctx.cash, 0.0), ctx.now)
        except (DataUnavailable, OrderRejected) as exc:
            logger.warning("cash sweep of {:.2f} failed: {}; retrying on the next tick in the window", ctx.cash, exc)
            return
        sweep = ctx.report.sweep
        if sweep is not None and sweep.lots > 0:
            fees = self.cost_model.buy_cost(self.sweeper.config.lot_amount, sweep.lots).fees
            ctx.cash -= sweep.amount + fees
