"""纸面回放事件源（PaperSnapshotSource）。

把历史 K 线与 PaperBroker 的本地状态拼成快照：
每根 K 线先交给 broker 撮合上一根留下的挂单，再按 broker 当前状态生成快照。
生成器是惰性的，所以每个快照都已经反映了上一个决策的结果。
"""

from __future__ import annotations

from typing import Iterator

import pandas as pd

from broker.paper_broker import PaperBroker
from engine.sources.event_source import EventSource, candles_from_frame
from shared.models.models import InstrumentInfo, Snapshot


class PaperSnapshotSource(EventSource):
    def __init__(
        self,
        df: pd.DataFrame,
        broker: PaperBroker,
        *,
        instrument_info: InstrumentInfo | None = None,
        interval: str | None = None,
    ):
        self._df = df
        self._broker = broker
        self._instrument_info = instrument_info
        self._interval = interval

    def events(self) -> Iterator[Snapshot]:
        if self._df.empty:
            return
        for idx, candle in enumerate(candles_from_frame(self._df, interval=self._interval)):
            self._broker.on_candle(candle)
            info = self._instrument_info if idx == 0 else None
            yield self._broker.snapshot(candle, info)
