from decimal import Decimal, DivisionByZero
from pathlib import Path

import pandas as pd
import pytest

import strategy.stop_loss as stop_loss_mod
from broker.mock import MockBroker
from broker.paper_broker import PaperBroker
from engine.decision_engine import DecisionEngine
from engine.sources.event_source import (
    CandleFrameEventSource,
    IteratorEventSource,
    load_candles_csv,
)
from engine.sources.paper_source import PaperSnapshotSource
from shared.models.models import Candle, InstrumentInfo, OperationType, Snapshot
from strategy.stop_loss import StopLossStrategy, StrategyInternalError

ROOT = Path(__file__).resolve().parents[1]
CANDLES = ROOT / "dataset" / "candles.csv"
TRADABLE = InstrumentInfo(can_trade=True, trade_status="normal_trading")


def _snap(price: str, info: InstrumentInfo | None = None) -> Snapshot:
    return Snapshot(candle=Candle(high=Decimal(price), low=Decimal(price)), instrument_info=info)


def test_engine_publishes_one_decision_per_snapshot(cfg):
    sink = MockBroker()
    strat = StopLossStrategy(cfg)
    engine = DecisionEngine(
        strategy=strat,
        source=IteratorEventSource([_snap("100", TRADABLE), _snap("99"), Snapshot()]),
        sink=sink,
    )
    res = engine.run()

    assert res.summary["status"] == "completed"
    assert res.summary["snapshots"] == 3
    # 没有持仓回馈：每根 K 线都是冷启动
    assert res.summary["buys"] == 2
    assert len(sink.decisions) == 3
    assert sink.orders[0].operation is OperationType.BUY
    assert sink.closed is True
    assert strat.closed is True
    assert res.artifacts is None


def test_engine_stops_on_upstream_error(cfg):
    def feed():
        yield _snap("100", TRADABLE)
        raise ConnectionError("stream reset")

    sink = MockBroker()
    strat = StopLossStrategy(cfg)
    res = DecisionEngine(strategy=strat, source=IteratorEventSource(feed()), sink=sink).run()

    assert res.summary["status"] == "upstream_error"
    assert res.summary["error"] == "stream reset"
    assert res.summary["snapshots"] == 1
    assert strat.halted is True
    assert sink.closed is True


def test_engine_reraises_internal_error(cfg, monkeypatch: pytest.MonkeyPatch):
    def _boom(*_args, **_kwargs):
        raise DivisionByZero("division by zero")

    monkeypatch.setattr(stop_loss_mod, "decide", _boom)
    sink = MockBroker()
    engine = DecisionEngine(
        strategy=StopLossStrategy(cfg),
        source=IteratorEventSource([_snap("100", TRADABLE)]),
        sink=sink,
    )
    with pytest.raises(StrategyInternalError):
        engine.run()
    assert engine.status == "internal_error"
    assert sink.closed is True


def test_engine_respects_max_snapshots(cfg):
    source = IteratorEventSource([_snap("100", TRADABLE), _snap("101"), _snap("102"), _snap("103")])
    res = DecisionEngine(
        strategy=StopLossStrategy(cfg), source=source, sink=MockBroker(), max_snapshots=2
    ).run()
    assert res.summary["snapshots"] == 2


def test_load_candles_csv_keeps_decimal_prices():
    df = load_candles_csv(CANDLES)
    assert len(df) == 15
    source = CandleFrameEventSource(df, instrument_info=TRADABLE, interval="1min")
    snaps = list(source.events())
    assert snaps[0].instrument_info == TRADABLE
    assert all(s.instrument_info is None for s in snaps[1:])
    assert snaps[1].candle.low == Decimal("99.5")
    assert snaps[1].candle.volume == 340
    assert snaps[1].candle.interval == "1min"
    assert snaps[1].candle.time.minute == 1


def test_load_candles_csv_errors(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_candles_csv(tmp_path / "missing.csv")
    bad = tmp_path / "bad.csv"
    bad.write_text("time,high\n2024-01-01,1\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_candles_csv(bad)


def test_invalid_candle_row_is_upstream_error(cfg):
    df = pd.DataFrame({"high": ["100", "99"], "low": ["100", "101"]})
    source = CandleFrameEventSource(df, instrument_info=TRADABLE)
    res = DecisionEngine(strategy=StopLossStrategy(cfg), source=source, sink=MockBroker()).run()
    assert res.summary["status"] == "upstream_error"
    assert res.summary["snapshots"] == 1


def test_paper_replay_end_to_end(cfg):
    broker = PaperBroker(instrument=cfg.instrument)
    source = PaperSnapshotSource(load_candles_csv(CANDLES), broker, instrument_info=TRADABLE)
    res = DecisionEngine(strategy=StopLossStrategy(cfg), source=source, sink=broker).run()

    summary = res.summary
    assert summary["status"] == "completed"
    assert summary["snapshots"] == 15
    assert summary["buys"] == 2
    assert summary["sells"] == 2
    assert summary["last_outcome"] == "loss"
    assert summary["extremum"] == "95.5"

    fills = [(f.operation, f.price, f.lots) for f in broker.fills]
    assert fills == [
        (OperationType.BUY, Decimal("100"), 10),
        (OperationType.SELL, Decimal("101.9"), 10),
        (OperationType.BUY, Decimal("98.1"), 10),
        (OperationType.SELL, Decimal("95.9"), 10),
    ]
    assert res.artifacts["broker"]["realized_pnl"] == "-3.0"
    assert res.artifacts["broker"]["position_lots"] == 0
