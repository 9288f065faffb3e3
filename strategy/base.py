from abc import ABC, abstractmethod

from shared.models.models import Decision, Snapshot


class Strategy(ABC):
    """单品种策略接口：由宿主依次推送快照，每个快照恰好返回一个决策。"""

    def init(self) -> None:
        """建立初始状态（宿主在推送第一个快照前调用）。"""

    @abstractmethod
    def on_snapshot(self, snapshot: Snapshot) -> Decision:
        """
        输入一个 Snapshot，输出一个 Decision。
        """
        ...

    def on_error(self, exc: BaseException) -> None:
        """上游快照流出错（终止性）。"""

    def cleanup(self) -> None:
        """释放资源（宿主在停止消费后调用）。"""
