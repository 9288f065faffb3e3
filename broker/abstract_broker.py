"""下单方（决策出口）抽象接口与运行模式定义。"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum

from shared.models.models import Decision


class BrokerMode(Enum):
    """下单方运行模式枚举。"""

    DRY_RUN = "dry-run"
    PAPER = "paper"


class DecisionSink(ABC):
    """决策出口：每个入站快照恰好收到一次 publish。

    引擎只负责把决策交出去；下单失败对策略不可见，
    后续快照里自然表现为“无持仓、无挂单”。
    """

    mode: BrokerMode

    @abstractmethod
    def publish(self, decision: Decision) -> None:
        """接收一个决策（Pass 或 PlaceLimitOrder）。"""

    def close(self) -> None:
        """关闭出口；之后不再接收决策。"""
