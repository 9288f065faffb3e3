"""Mock broker（dry-run 用）。

不触网，也不撮合：只记录收到的决策并打日志，便于观察策略输出。
"""

from __future__ import annotations

from shared.models.models import Decision, LimitOrder, PlaceLimitOrder
from shared.utils.logging import setup_logger
from .abstract_broker import BrokerMode, DecisionSink


class MockBroker(DecisionSink):
    """干跑模式的决策记录器。"""

    mode = BrokerMode.DRY_RUN

    def __init__(self):
        self.logger = setup_logger("mock-broker")
        self.decisions: list[Decision] = []
        self.closed = False

    @property
    def orders(self) -> list[LimitOrder]:
        return [d.order for d in self.decisions if isinstance(d, PlaceLimitOrder)]

    def publish(self, decision: Decision) -> None:
        if self.closed:
            raise RuntimeError("MockBroker is closed")
        self.decisions.append(decision)
        if isinstance(decision, PlaceLimitOrder):
            order = decision.order
            self.logger.info(
                f"[MOCK ORDER] {order.operation.value.upper()} {order.figi} lots={order.lots} price={order.price}"
            )

    def close(self) -> None:
        self.closed = True
