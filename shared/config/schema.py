"""配置架构定义（Pydantic Schema）。

目标：
- 让配置成为“强类型 + 不可变”的边界协议；
- 构造时即校验所有阈值为正，失败统一抛 InvalidConfig(field, reason)；
- 价格/百分比字段一律 Decimal，YAML 里的 float 先转 str 再转 Decimal。
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shared.config.validation import describe_validation_error


class InvalidConfig(ValueError):
    """配置非法（构造期致命错误）。"""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid config {field}: {reason}")
        self.field = field
        self.reason = reason


def _float_to_str(value: Any) -> Any:
    if isinstance(value, float):
        return str(value)
    return value


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            field, reason = describe_validation_error(exc, type(self))
            raise InvalidConfig(field, reason) from exc


class CandleInterval(str, Enum):
    """K 线周期。"""

    ONE_MIN = "1min"
    TWO_MIN = "2min"
    THREE_MIN = "3min"
    FIVE_MIN = "5min"
    TEN_MIN = "10min"
    QUARTER_HOUR = "15min"
    HALF_HOUR = "30min"
    HOUR = "hour"
    TWO_HOURS = "2hour"
    FOUR_HOURS = "4hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class Instrument(_StrictModel):
    """交易品种（figi + 每手数量）。"""

    figi: str = Field(min_length=1)
    lot: int = Field(gt=0)
    ticker: Optional[str] = None
    currency: Optional[str] = None


class StopLossConfig(_StrictModel):
    """跟踪止损/止盈策略参数。

    百分比字段按“百分点”解释：1.5 表示 1.5%。
    """

    instrument: Instrument
    max_operation_value: Decimal = Field(gt=0)
    orderbook_depth: int = Field(gt=0)
    candle_interval: CandleInterval = CandleInterval.ONE_MIN
    grow_to_fall_pct: Decimal = Field(gt=0)
    fall_to_grow_pct: Decimal = Field(gt=0)
    profit_pct: Decimal = Field(gt=0)
    stop_loss_pct: Decimal = Field(gt=0)

    @field_validator(
        "max_operation_value",
        "grow_to_fall_pct",
        "fall_to_grow_pct",
        "profit_pct",
        "stop_loss_pct",
        mode="before",
    )
    @classmethod
    def _decimal_from_float(cls, value: Any) -> Any:
        return _float_to_str(value)


class LoggingConfig(_StrictModel):
    """日志配置。"""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class ReplayConfig(_StrictModel):
    """历史 K 线回放（纸面撮合）配置。"""

    candles_path: Optional[str] = None
    can_trade: bool = True
    trade_status: str = "normal_trading"
    # 现金上限由下单方（paper broker）负责，引擎只看 max_operation_value
    cash_balance: Optional[Decimal] = Field(default=None, gt=0)
    cancel_after_candles: int = Field(default=3, gt=0)
    max_snapshots: Optional[int] = Field(default=None, gt=0)

    @field_validator("cash_balance", mode="before")
    @classmethod
    def _cash_from_float(cls, value: Any) -> Any:
        return _float_to_str(value)


class AppConfig(_StrictModel):
    """应用总配置。"""

    strategy: StopLossConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    replay: ReplayConfig = Field(default_factory=ReplayConfig)
