"""跟踪止损/止盈策略（单品种）。

核心是纯函数 `decide(state, snapshot, cfg) -> (state', decision)`，
`StopLossStrategy` 只是把状态挂在实例上，供宿主逐个快照推进。

决策按以下互斥分支依次判断（p = K 线中间价，e = 极值，i = 持仓成本价）：

- ORDER_PENDING：存在未完成挂单 → 不动作；
- COLD_START：无持仓且从未卖出 → 可交易则按 p 挂买单；
- REENTRY_WATCH：无持仓但已卖出过 → 跟踪新低，反弹超过 fall_to_grow 后重新买入；
- IN_POSITION：有持仓，按 e 与 i 的关系分三个区：
    - ABOVE_ENTRY (e > i)：跟踪新高；极值涨幅达到 profit 后，回撤达到 grow_to_fall 即止盈卖出；
    - BELOW_ENTRY (e < i)：相对成本价跌幅达到 stop_loss 即止损卖出；
    - AT_ENTRY (e == i)：只更新极值。

每次下单都把极值重置为下单价。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum

from shared.config.schema import CandleInterval, Instrument, StopLossConfig
from shared.models.models import (
    PASS,
    Decision,
    InstrumentInfo,
    LimitOrder,
    OperationType,
    PlaceLimitOrder,
    Snapshot,
)
from shared.utils.logging import setup_logger
from shared.utils.precision import floor_lots, percent_between, percent_of
from strategy.base import Strategy

_log = logging.getLogger("stop-loss")


class LastOrderOutcome(Enum):
    """最近一次卖出的结果；启动时为 NONE，之后不会被重置。"""

    NONE = "none"
    PROFIT = "profit"
    LOSS = "loss"


class Regime(Enum):
    ORDER_PENDING = "order_pending"
    COLD_START = "cold_start"
    REENTRY_WATCH = "reentry_watch"
    IN_POSITION = "in_position"


class EntryZone(Enum):
    ABOVE_ENTRY = "above_entry"
    BELOW_ENTRY = "below_entry"
    AT_ENTRY = "at_entry"


class StrategyInternalError(RuntimeError):
    """决策过程中的算术失败（输入已校验，出现即为 bug）。"""


@dataclass(frozen=True)
class StrategyState:
    """策略可变状态的不可变快照。"""

    can_trade: bool = False
    last_outcome: LastOrderOutcome = LastOrderOutcome.NONE
    extremum: Decimal | None = None


def classify(state: StrategyState, snapshot: Snapshot) -> Regime:
    if snapshot.outstanding_order is not None:
        return Regime.ORDER_PENDING
    if snapshot.position is None:
        if state.last_outcome is LastOrderOutcome.NONE:
            return Regime.COLD_START
        return Regime.REENTRY_WATCH
    return Regime.IN_POSITION


def entry_zone(extremum: Decimal, enter_price: Decimal) -> EntryZone:
    if extremum > enter_price:
        return EntryZone.ABOVE_ENTRY
    if extremum < enter_price:
        return EntryZone.BELOW_ENTRY
    return EntryZone.AT_ENTRY


def _apply_instrument_info(
    state: StrategyState, info: InstrumentInfo | None, log: logging.Logger
) -> StrategyState:
    if info is None:
        return state
    can_trade = bool(info.can_trade)
    if can_trade == state.can_trade:
        return state
    log.debug("Trade status changed: %s (can_trade=%s)", info.trade_status, can_trade)
    return replace(state, can_trade=can_trade)


def _place_limit(
    state: StrategyState, price: Decimal, operation: OperationType, cfg: StopLossConfig
) -> tuple[StrategyState, Decision]:
    # lots 可能为 0：照样下单，由下单方拒绝
    lots = floor_lots(cfg.max_operation_value, price, cfg.instrument.lot)
    order = LimitOrder(
        figi=cfg.instrument.figi,
        lots=lots,
        operation=operation,
        price=price,
    )
    return replace(state, extremum=price), PlaceLimitOrder(order)


def _on_cold_start(
    state: StrategyState, price: Decimal, cfg: StopLossConfig, log: logging.Logger
) -> tuple[StrategyState, Decision]:
    if not state.can_trade:
        log.debug("No position yet, trading disabled. price=%s", price)
        return state, PASS
    log.debug("No position yet, trading enabled. Buy limit at %s", price)
    return _place_limit(state, price, OperationType.BUY, cfg)


def _on_reentry_watch(
    state: StrategyState, price: Decimal, cfg: StopLossConfig, log: logging.Logger
) -> tuple[StrategyState, Decision]:
    extremum = state.extremum
    if extremum is None:
        raise StrategyInternalError("extremum is undefined after an exit")

    if price <= extremum:
        log.debug("Flat after exit, new low %s (was %s)", price, extremum)
        return replace(state, extremum=price), PASS

    rise = percent_of(price - extremum, extremum)
    if rise > cfg.fall_to_grow_pct:
        if state.can_trade:
            log.debug("Flat after exit, rise %s%% from %s. Buy limit at %s", rise, extremum, price)
            return _place_limit(state, price, OperationType.BUY, cfg)
        log.debug("Flat after exit, rise %s%% from %s but trading disabled", rise, extremum)
        return state, PASS

    log.debug("Flat after exit, rise %s%% from %s too small", rise, extremum)
    return state, PASS


def _on_position(
    state: StrategyState,
    price: Decimal,
    enter_price: Decimal,
    cfg: StopLossConfig,
    log: logging.Logger,
) -> tuple[StrategyState, Decision]:
    extremum = state.extremum
    if extremum is None:
        # 启动时已有持仓：以成本价作为初始极值
        log.debug("Holding a position without extremum, seeding with entry %s", enter_price)
        extremum = enter_price

    zone = entry_zone(extremum, enter_price)

    if zone is EntryZone.ABOVE_ENTRY:
        if price >= extremum:
            log.debug("Holding above entry %s, new high %s", enter_price, price)
            return replace(state, extremum=price), PASS

        gain = percent_of(extremum - enter_price, enter_price)
        if gain >= cfg.profit_pct:
            drop = percent_of(extremum - price, extremum)
            if drop >= cfg.grow_to_fall_pct:
                log.debug(
                    "Take profit: high %s is %s%% over entry %s, price %s dropped %s%%. Sell limit",
                    extremum, gain, enter_price, price, drop,
                )
                state = replace(state, last_outcome=LastOrderOutcome.PROFIT)
                return _place_limit(state, price, OperationType.SELL, cfg)
            log.debug("Holding in profit zone, drop %s%% from high %s too small", drop, extremum)
            return state, PASS

        # 极值还没进入止盈区：用当前（更低的）价格覆盖极值
        log.debug("Holding, high %s only %s%% over entry %s, reset extremum to %s", extremum, gain, enter_price, price)
        return replace(state, extremum=price), PASS

    if zone is EntryZone.BELOW_ENTRY:
        if price >= extremum:
            log.debug("Holding below entry %s, price %s recovered from %s", enter_price, price, extremum)
            return replace(state, extremum=price), PASS

        loss = percent_between(price, enter_price)
        if loss >= cfg.stop_loss_pct:
            log.debug("Stop loss: price %s is %s%% below entry %s. Sell limit", price, loss, enter_price)
            state = replace(state, last_outcome=LastOrderOutcome.LOSS)
            return _place_limit(state, price, OperationType.SELL, cfg)

        log.debug("Holding below entry %s, loss %s%% within limit, extremum %s", enter_price, loss, price)
        return replace(state, extremum=price), PASS

    log.debug("Holding at entry %s, extremum %s", enter_price, price)
    return replace(state, extremum=price), PASS


def decide(
    state: StrategyState,
    snapshot: Snapshot,
    cfg: StopLossConfig,
    logger: logging.Logger | None = None,
) -> tuple[StrategyState, Decision]:
    """对一个快照做出决策，返回新状态与决策。

    除 can_trade/extremum/last_outcome 外不修改任何东西；同样的输入必得同样的输出。
    """
    log = logger or _log
    state = _apply_instrument_info(state, snapshot.instrument_info, log)

    candle = snapshot.candle
    if candle is None:
        return state, PASS

    price = candle.midpoint
    regime = classify(state, snapshot)

    if regime is Regime.ORDER_PENDING:
        log.debug("Order outstanding, price=%s extremum=%s. Waiting", price, state.extremum)
        return state, PASS
    if regime is Regime.COLD_START:
        return _on_cold_start(state, price, cfg, log)
    if regime is Regime.REENTRY_WATCH:
        return _on_reentry_watch(state, price, cfg, log)

    position = snapshot.position
    if position is None:
        raise StrategyInternalError("in-position regime without a position")
    return _on_position(state, price, position.enter_price, cfg, log)


class StopLossStrategy(Strategy):
    """跟踪止损/止盈策略实例（单品种、单线程）。

    Parameters
    ----------
    cfg:
        已校验的策略配置，生命周期内不可变。
    logger:
        可插拔日志；默认 `stop-loss`。
    """

    def __init__(self, cfg: StopLossConfig, logger: logging.Logger | None = None):
        self.cfg = cfg
        self.logger = logger or setup_logger("stop-loss")
        self.state = StrategyState()
        self.current_snapshot = Snapshot()
        self.halted = False
        self.closed = False

    @property
    def instrument(self) -> Instrument:
        return self.cfg.instrument

    @property
    def candle_interval(self) -> CandleInterval:
        return self.cfg.candle_interval

    @property
    def orderbook_depth(self) -> int:
        return self.cfg.orderbook_depth

    def init(self) -> None:
        self.state = StrategyState()
        self.current_snapshot = Snapshot()
        self.halted = False
        self.closed = False

    def on_snapshot(self, snapshot: Snapshot) -> Decision:
        self.current_snapshot = snapshot
        try:
            self.state, decision = decide(self.state, snapshot, self.cfg, logger=self.logger)
        except ArithmeticError as exc:
            raise StrategyInternalError(f"Arithmetic failure while deciding: {exc}") from exc
        return decision

    def on_error(self, exc: BaseException) -> None:
        self.logger.error("Snapshot stream failed, strategy goes idle: %s", exc)
        self.halted = True

    def cleanup(self) -> None:
        self.closed = True
