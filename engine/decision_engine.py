"""决策引擎宿主（DecisionEngine）。

目标是“一眼能看懂”：快照源 → 策略 → 决策出口 → 总结。
两条单向通道（EventSource 入、DecisionSink 出）都归引擎所有，策略本身不持有任何通道；
快照严格串行处理，决策顺序即快照顺序。
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from broker.abstract_broker import DecisionSink
from engine.base_engine import BaseEngine
from engine.sources.event_source import EventSource, UpstreamError
from shared.models.models import OperationType, PlaceLimitOrder, Snapshot
from shared.utils.logging import setup_logger
from strategy.stop_loss import StopLossStrategy, StrategyInternalError


class DecisionEngine(BaseEngine):
    def __init__(
        self,
        *,
        strategy: StopLossStrategy,
        source: EventSource,
        sink: DecisionSink,
        logger: logging.Logger | None = None,
        max_snapshots: int | None = None,
    ):
        self.strategy = strategy
        self.source = source
        self.sink = sink
        self.logger = logger or setup_logger("engine")
        self._max_snapshots = max_snapshots

        self.snapshots = 0
        self.buys = 0
        self.sells = 0
        self.status = "pending"
        self.error: str | None = None

    def setup(self) -> None:
        self.strategy.init()
        self.source.setup()
        self.status = "running"

    def teardown(self) -> None:
        self.source.teardown()
        self.sink.close()
        self.strategy.cleanup()

    def _snapshots(self) -> Iterator[Snapshot]:
        """逐个取快照；快照源抛出的任何异常都视为上游终止错误。"""
        it = iter(self.source.events())
        while True:
            try:
                snapshot = next(it)
            except StopIteration:
                return
            except Exception as exc:
                raise UpstreamError(str(exc) or type(exc).__name__) from exc
            yield snapshot

    def loop(self) -> dict[str, Any]:
        try:
            for snapshot in self._snapshots():
                decision = self.strategy.on_snapshot(snapshot)
                self.sink.publish(decision)
                self.snapshots += 1
                if isinstance(decision, PlaceLimitOrder):
                    if decision.order.operation is OperationType.BUY:
                        self.buys += 1
                    else:
                        self.sells += 1
                if self._max_snapshots is not None and self.snapshots >= self._max_snapshots:
                    self.logger.info("Reached max_snapshots=%s, stopping", self._max_snapshots)
                    break
            self.status = "completed"
        except UpstreamError as exc:
            self.strategy.on_error(exc)
            self.status = "upstream_error"
            self.error = str(exc)
        except StrategyInternalError:
            self.status = "internal_error"
            self.logger.exception("Strategy failed after %s snapshots", self.snapshots)
            raise
        return self._build_summary()

    def _build_summary(self) -> dict[str, Any]:
        state = self.strategy.state
        summary: dict[str, Any] = {
            "status": self.status,
            "snapshots": self.snapshots,
            "orders": self.buys + self.sells,
            "buys": self.buys,
            "sells": self.sells,
            "last_outcome": state.last_outcome.value,
            "extremum": None if state.extremum is None else str(state.extremum),
            "can_trade": state.can_trade,
        }
        if self.error is not None:
            summary["error"] = self.error
        return summary

    def artifacts(self) -> dict[str, Any] | None:
        summary_fn = getattr(self.sink, "summary", None)
        if callable(summary_fn):
            return {"broker": summary_fn()}
        return None
