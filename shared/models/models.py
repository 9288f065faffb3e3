"""核心数据结构：Candle/Snapshot（输入） 与 LimitOrder/Decision（输出）。"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Union

from shared.utils.precision import midpoint, to_decimal


class OperationType(Enum):
    """订单方向。"""

    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class Candle:
    """K 线数据。决策只用 high/low，其余字段原样透传。"""

    high: Decimal
    low: Decimal
    open: Decimal | None = None
    close: Decimal | None = None
    volume: int | None = None
    time: datetime | None = None
    interval: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "high", to_decimal(self.high))
        object.__setattr__(self, "low", to_decimal(self.low))
        if self.open is not None:
            object.__setattr__(self, "open", to_decimal(self.open))
        if self.close is not None:
            object.__setattr__(self, "close", to_decimal(self.close))
        if self.low <= 0:
            raise ValueError(f"candle low must be positive, got {self.low}")
        if self.high < self.low:
            raise ValueError(f"candle high {self.high} is below low {self.low}")

    @property
    def midpoint(self) -> Decimal:
        return midpoint(self.high, self.low)


@dataclass(frozen=True)
class InstrumentInfo:
    """交易所推送的品种状态。trade_status 不参与决策，只用于日志。"""

    can_trade: bool
    trade_status: str = ""


@dataclass(frozen=True)
class PositionInfo:
    """当前多头持仓（enter_price 为成本价）。"""

    enter_price: Decimal
    lots: int | None = None

    def __post_init__(self):
        object.__setattr__(self, "enter_price", to_decimal(self.enter_price))


@dataclass(frozen=True)
class OutstandingOrder:
    """交易所侧尚未成交/撤销的挂单；引擎只关心它是否存在。"""

    order_id: str
    operation: OperationType | None = None


@dataclass(frozen=True)
class Snapshot:
    """单个 tick 的市场快照。"""

    candle: Candle | None = None
    instrument_info: InstrumentInfo | None = None
    position: PositionInfo | None = None
    outstanding_order: OutstandingOrder | None = None


@dataclass(frozen=True)
class LimitOrder:
    """限价单（与具体 wire 格式无关）。"""

    figi: str
    lots: int
    operation: OperationType
    price: Decimal


@dataclass(frozen=True)
class Pass:
    """本 tick 不动作。"""


@dataclass(frozen=True)
class PlaceLimitOrder:
    """本 tick 下一张限价单。"""

    order: LimitOrder


Decision = Union[Pass, PlaceLimitOrder]

PASS = Pass()
