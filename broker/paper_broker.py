"""模拟 broker（paper）。

- 不触网，纯本地撮合与记账；
- 同一时刻最多一张挂单；买单在后续 K 线 low <= 限价时成交，卖单在 high >= 限价时成交；
- 一律按限价全额成交（不模拟滑点与部分成交）；
- 挂单连续 cancel_after_candles 根 K 线未成交则撤单；
- 现金上限（cash_balance）在这里执行，策略侧只按 max_operation_value 计算手数。
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from shared.config.schema import Instrument
from shared.models.models import (
    Candle,
    Decision,
    InstrumentInfo,
    LimitOrder,
    OperationType,
    OutstandingOrder,
    PlaceLimitOrder,
    PositionInfo,
    Snapshot,
)
from shared.utils.logging import setup_logger
from shared.utils.precision import floor_lots
from .abstract_broker import BrokerMode, DecisionSink


@dataclass(frozen=True)
class PaperPosition:
    """本地多头持仓。"""

    enter_price: Decimal
    lots: int


@dataclass(frozen=True)
class PaperFill:
    """单笔成交记录。"""

    order_id: str
    operation: OperationType
    lots: int
    price: Decimal
    realized_pnl: Decimal


class PaperBroker(DecisionSink):
    """纸面撮合 broker：按 K 线区间判定限价单是否成交。

    Parameters
    ----------
    instrument:
        唯一允许交易的品种。
    cash_balance:
        可用现金；None 表示不限制。
    cancel_after_candles:
        挂单最多等待的 K 线根数。
    """

    mode = BrokerMode.PAPER

    def __init__(
        self,
        *,
        instrument: Instrument,
        cash_balance: Decimal | None = None,
        cancel_after_candles: int = 3,
    ):
        if cancel_after_candles <= 0:
            raise ValueError("cancel_after_candles must be positive")
        self.instrument = instrument
        self.cash_balance = cash_balance
        self.cancel_after_candles = int(cancel_after_candles)
        self.logger = setup_logger("paper-broker")

        self.position: PaperPosition | None = None
        self.pending: LimitOrder | None = None
        self.pending_id: str | None = None
        self._pending_age = 0
        self._next_order_id = 1

        self.fills: list[PaperFill] = []
        self.rejections: list[tuple[LimitOrder, str]] = []
        self.cancelled: list[LimitOrder] = []
        self.realized_pnl = Decimal(0)
        self.closed = False

    # ---- 决策出口 ----
    def publish(self, decision: Decision) -> None:
        if self.closed:
            raise RuntimeError("PaperBroker is closed")
        if not isinstance(decision, PlaceLimitOrder):
            return

        order = decision.order
        reason = self._reject_reason(order)
        if reason is None and order.operation is OperationType.BUY and self.cash_balance is not None:
            affordable = floor_lots(self.cash_balance, order.price, self.instrument.lot)
            if affordable <= 0:
                reason = "insufficient cash"
            elif affordable < order.lots:
                self.logger.info(f"Clip buy lots {order.lots} -> {affordable} by cash balance {self.cash_balance}")
                order = replace(order, lots=affordable)

        if reason is not None:
            self.rejections.append((order, reason))
            self.logger.warning(
                f"[PAPER REJECT] {order.operation.value.upper()} {order.figi} lots={order.lots} "
                f"price={order.price}: {reason}"
            )
            return

        self.pending = order
        self.pending_id = f"paper-{self._next_order_id}"
        self._next_order_id += 1
        self._pending_age = 0
        self.logger.info(
            f"[PAPER ORDER] {self.pending_id} {order.operation.value.upper()} {order.figi} "
            f"lots={order.lots} price={order.price}"
        )

    def close(self) -> None:
        self.closed = True

    def _reject_reason(self, order: LimitOrder) -> str | None:
        if self.pending is not None:
            return "order already outstanding"
        if order.figi != self.instrument.figi:
            return f"unknown instrument {order.figi}"
        if order.lots <= 0:
            return "lots must be positive"
        if order.operation is OperationType.SELL and self.position is None:
            return "no position to sell"
        if order.operation is OperationType.BUY and self.position is not None:
            return "position already open"
        return None

    # ---- 撮合 ----
    @staticmethod
    def _crosses(order: LimitOrder, candle: Candle) -> bool:
        if order.operation is OperationType.BUY:
            return candle.low <= order.price
        return candle.high >= order.price

    def on_candle(self, candle: Candle) -> PaperFill | None:
        """用新 K 线撮合挂单；返回本根 K 线上的成交（如有）。"""
        order = self.pending
        if order is None:
            return None
        if self._crosses(order, candle):
            return self._fill(order)

        self._pending_age += 1
        if self._pending_age >= self.cancel_after_candles:
            self.logger.info(f"[PAPER CANCEL] {self.pending_id} unfilled after {self._pending_age} candles")
            self.cancelled.append(order)
            self.pending = None
            self.pending_id = None
        return None

    def _fill(self, order: LimitOrder) -> PaperFill:
        lot = Decimal(self.instrument.lot)
        realized = Decimal(0)
        if order.operation is OperationType.BUY:
            lots = order.lots
            self.position = PaperPosition(enter_price=order.price, lots=lots)
            if self.cash_balance is not None:
                self.cash_balance -= order.price * lot * lots
        else:
            if self.position is None:
                raise RuntimeError(f"sell order {self.pending_id} filled without a position")
            # 卖出即平掉全部持仓
            lots = self.position.lots
            realized = (order.price - self.position.enter_price) * lot * lots
            self.realized_pnl += realized
            if self.cash_balance is not None:
                self.cash_balance += order.price * lot * lots
            self.position = None

        fill = PaperFill(
            order_id=self.pending_id or "",
            operation=order.operation,
            lots=lots,
            price=order.price,
            realized_pnl=realized,
        )
        self.fills.append(fill)
        self.logger.info(
            f"[PAPER FILL] {fill.order_id} {order.operation.value.upper()} lots={lots} "
            f"price={order.price} realized={realized}"
        )
        self.pending = None
        self.pending_id = None
        return fill

    # ---- 快照回馈 ----
    def snapshot(self, candle: Candle | None, instrument_info: InstrumentInfo | None = None) -> Snapshot:
        """按当前本地状态构造下一个快照。"""
        position = None
        if self.position is not None:
            position = PositionInfo(enter_price=self.position.enter_price, lots=self.position.lots)
        outstanding = None
        if self.pending is not None and self.pending_id is not None:
            outstanding = OutstandingOrder(order_id=self.pending_id, operation=self.pending.operation)
        return Snapshot(
            candle=candle,
            instrument_info=instrument_info,
            position=position,
            outstanding_order=outstanding,
        )

    def summary(self) -> dict[str, Any]:
        return {
            "fills": len(self.fills),
            "rejections": len(self.rejections),
            "cancelled": len(self.cancelled),
            "realized_pnl": str(self.realized_pnl),
            "cash_balance": None if self.cash_balance is None else str(self.cash_balance),
            "position_lots": self.position.lots if self.position else 0,
        }
