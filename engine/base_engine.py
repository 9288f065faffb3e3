"""执行引擎基类（模板模式）。

目标：
- 把“快照推进/事件循环”与“策略决策/下单执行”解耦；
- 固定生命周期：setup → loop → teardown，teardown 无论成败都会执行。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class EngineResult:
    """引擎运行结果（统一出口）。"""

    summary: dict[str, Any]
    artifacts: dict[str, Any] | None = None


class BaseEngine(ABC):
    """引擎抽象基类。"""

    def setup(self) -> None:
        """可选初始化钩子。"""

    @abstractmethod
    def loop(self) -> dict[str, Any]:
        """主循环，返回 summary。"""
        raise NotImplementedError

    def teardown(self) -> None:
        """可选清理钩子（异常时同样调用）。"""

    def artifacts(self) -> dict[str, Any] | None:
        return None

    def run(self) -> EngineResult:
        self.setup()
        try:
            summary = self.loop()
        finally:
            self.teardown()
        return EngineResult(summary=summary, artifacts=self.artifacts())
