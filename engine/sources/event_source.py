"""事件源抽象（EventSource）。

目标：把“获取下一个快照”从 engine 中剥离出来。
引擎只负责消费 Snapshot，不关心它来自 CSV 回放还是交易所推送。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Iterator

import pandas as pd

from shared.models.models import Candle, InstrumentInfo, Snapshot
from shared.utils.precision import to_decimal

PRICE_COLUMNS = ("open", "high", "low", "close")
REQUIRED_COLUMNS = ("high", "low")


class UpstreamError(RuntimeError):
    """快照源在产出下一个快照时失败（终止性错误）。"""


class EventSource(ABC):
    """事件源抽象基类。"""

    def setup(self) -> None:
        """可选初始化钩子（例如建立 WS 连接）。"""

    def teardown(self) -> None:
        """可选清理钩子（例如关闭连接）。"""

    @abstractmethod
    def events(self) -> Iterator[Snapshot]:
        """核心生成器：产生 Snapshot 事件流。"""
        raise NotImplementedError


class IteratorEventSource(EventSource):
    """把任意 Snapshot 迭代器包装成 EventSource。"""

    def __init__(self, iterator: Iterable[Snapshot]):
        self._iterator = iterator

    def events(self) -> Iterator[Snapshot]:
        yield from self._iterator


def load_candles_csv(path: str | Path) -> pd.DataFrame:
    """读取 K 线 CSV。价格列按字符串读入，保证转 Decimal 时不经过 float。"""
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Candles file not found: {csv_path}")
    df = pd.read_csv(csv_path, dtype={c: str for c in PRICE_COLUMNS})
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Candles file {csv_path} is missing columns: {', '.join(missing)}")
    return df


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _price(value: Any) -> Decimal:
    if isinstance(value, str):
        return Decimal(value.strip())
    # numpy 标量先转成 Python 原生类型
    if hasattr(value, "item"):
        value = value.item()
    return to_decimal(value)


def _optional_price(value: Any) -> Decimal | None:
    return None if _is_missing(value) else _price(value)


def candles_from_frame(df: pd.DataFrame, *, interval: str | None = None) -> Iterator[Candle]:
    """把 DataFrame 按行转成 Candle。

    约定：df 至少包含列 `high/low`；`open/close/volume/time` 可选。
    """
    has_volume = "volume" in df.columns
    has_time = "time" in df.columns
    for row in df.to_dict("records"):
        volume = None
        if has_volume and not _is_missing(row["volume"]):
            volume = int(float(row["volume"]))
        ts = None
        if has_time and not _is_missing(row["time"]):
            ts = pd.Timestamp(row["time"]).to_pydatetime()
        yield Candle(
            high=_price(row["high"]),
            low=_price(row["low"]),
            open=_optional_price(row.get("open")),
            close=_optional_price(row.get("close")),
            volume=volume,
            time=ts,
            interval=interval,
        )


class CandleFrameEventSource(EventSource):
    """只含 K 线的快照流（无持仓、无挂单回馈），用于 dry-run。

    instrument_info 只随第一个快照下发，之后保持为空（引擎沿用最近一次的值）。
    """

    def __init__(
        self,
        df: pd.DataFrame,
        *,
        instrument_info: InstrumentInfo | None = None,
        interval: str | None = None,
    ):
        self._df = df
        self._instrument_info = instrument_info
        self._interval = interval

    def events(self) -> Iterator[Snapshot]:
        if self._df.empty:
            return
        for idx, candle in enumerate(candles_from_frame(self._df, interval=self._interval)):
            info = self._instrument_info if idx == 0 else None
            yield Snapshot(candle=candle, instrument_info=info)
