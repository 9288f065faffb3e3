from decimal import Decimal

import pytest

from broker.abstract_broker import BrokerMode
from broker.paper_broker import PaperBroker
from shared.config.schema import Instrument
from shared.models.models import (
    PASS,
    Candle,
    LimitOrder,
    OperationType,
    PlaceLimitOrder,
)

D = Decimal
FIGI = "BBG000TEST01"


def _order(op: OperationType, price: str, lots: int = 10, figi: str = FIGI) -> PlaceLimitOrder:
    return PlaceLimitOrder(LimitOrder(figi=figi, lots=lots, operation=op, price=D(price)))


def _candle(high: str, low: str) -> Candle:
    return Candle(high=D(high), low=D(low))


@pytest.fixture
def broker() -> PaperBroker:
    return PaperBroker(instrument=Instrument(figi=FIGI, lot=1))


def test_paper_buy_fills_when_low_touches_limit(broker):
    assert broker.mode is BrokerMode.PAPER
    broker.publish(_order(OperationType.BUY, "100"))
    snap = broker.snapshot(_candle("101", "100.5"))
    assert snap.outstanding_order is not None
    assert snap.outstanding_order.operation is OperationType.BUY
    assert snap.position is None

    assert broker.on_candle(_candle("101", "100.5")) is None
    fill = broker.on_candle(_candle("100.2", "99.8"))
    assert fill is not None
    assert fill.lots == 10
    assert fill.price == D("100")

    snap = broker.snapshot(_candle("100.2", "99.8"))
    assert snap.outstanding_order is None
    assert snap.position.enter_price == D("100")
    assert snap.position.lots == 10


def test_paper_sell_closes_whole_position_and_books_pnl(broker):
    broker.publish(_order(OperationType.BUY, "100"))
    broker.on_candle(_candle("100", "100"))
    broker.publish(_order(OperationType.SELL, "101.9", lots=9))
    fill = broker.on_candle(_candle("102", "101.5"))

    assert fill.operation is OperationType.SELL
    assert fill.lots == 10
    assert fill.realized_pnl == D("19.0")
    assert broker.position is None
    assert broker.summary()["realized_pnl"] == "19.0"
    assert broker.summary()["fills"] == 2


def test_paper_unfilled_order_is_cancelled(broker):
    broker.publish(_order(OperationType.BUY, "90"))
    for _ in range(3):
        assert broker.on_candle(_candle("101", "100")) is None
    assert broker.pending is None
    assert broker.summary()["cancelled"] == 1
    assert broker.snapshot(_candle("101", "100")).outstanding_order is None


@pytest.mark.parametrize(
    "decision, reason",
    [
        (_order(OperationType.SELL, "100"), "no position to sell"),
        (_order(OperationType.BUY, "100", lots=0), "lots must be positive"),
        (_order(OperationType.BUY, "100", figi="OTHER"), "unknown instrument OTHER"),
    ],
)
def test_paper_rejections(broker, decision, reason):
    broker.publish(decision)
    assert broker.pending is None
    assert broker.rejections[-1][1] == reason


def test_paper_rejects_second_order_while_pending(broker):
    broker.publish(_order(OperationType.BUY, "100"))
    broker.publish(_order(OperationType.BUY, "99"))
    assert broker.pending.price == D("100")
    assert broker.rejections[-1][1] == "order already outstanding"


def test_paper_rejects_buy_while_holding(broker):
    broker.publish(_order(OperationType.BUY, "100"))
    broker.on_candle(_candle("100", "100"))
    broker.publish(_order(OperationType.BUY, "100"))
    assert broker.rejections[-1][1] == "position already open"


def test_paper_ignores_pass(broker):
    broker.publish(PASS)
    assert broker.pending is None
    assert broker.rejections == []


def test_paper_cash_balance_clips_and_rejects():
    broker = PaperBroker(instrument=Instrument(figi=FIGI, lot=1), cash_balance=D("250"))
    broker.publish(_order(OperationType.BUY, "100"))
    assert broker.pending.lots == 2

    broker.on_candle(_candle("100", "100"))
    assert broker.cash_balance == D("50")
    assert broker.summary()["position_lots"] == 2

    poor = PaperBroker(instrument=Instrument(figi=FIGI, lot=1), cash_balance=D("50"))
    poor.publish(_order(OperationType.BUY, "100"))
    assert poor.pending is None
    assert poor.rejections[-1][1] == "insufficient cash"


def test_paper_closed_broker_refuses_decisions(broker):
    broker.close()
    with pytest.raises(RuntimeError):
        broker.publish(PASS)


def test_paper_cancel_after_must_be_positive():
    with pytest.raises(ValueError):
        PaperBroker(instrument=Instrument(figi=FIGI, lot=1), cancel_after_candles=0)


def test_paper_sell_fill_without_position_raises(broker):
    # 绕过下单校验，直接挂一张卖单
    broker.pending = LimitOrder(figi=FIGI, lots=1, operation=OperationType.SELL, price=D("100"))
    broker.pending_id = "paper-x"
    with pytest.raises(RuntimeError, match="without a position"):
        broker.on_candle(_candle("101", "99"))
