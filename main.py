"""跟踪止损引擎统一命令行入口。

该模块提供单一入口 `main.py`，通过子命令驱动不同任务：

- `replay`：历史 K 线纸面回放。PaperBroker 撮合挂单并把持仓/挂单回馈给策略。
- `dry-run`：只把 K 线喂给策略，决策交给 MockBroker 记录（没有持仓回馈）。
- `check-config`：只加载并校验配置。
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any

from rich import box
from rich.console import Console
from rich.table import Table

from broker.mock import MockBroker
from broker.paper_broker import PaperBroker
from engine.decision_engine import DecisionEngine
from engine.sources.event_source import CandleFrameEventSource, load_candles_csv
from engine.sources.paper_source import PaperSnapshotSource
from shared.config.config_loader import load_config
from shared.config.schema import AppConfig
from shared.models.models import InstrumentInfo
from shared.utils.logging import setup_logger
from strategy.stop_loss import StopLossStrategy

LOGGER_NAMES = ("stop-loss", "engine", "paper-broker", "mock-broker")

console = Console()


@dataclass
class CliArgs:
    """定义命令行参数结构。

    config: 配置文件路径
    task: 要运行的任务类型 (replay/dry-run/check-config)
    """
    config: str
    task: str
    candles: str | None = None        # 覆盖 replay.candles_path
    max_snapshots: int | None = None  # 仅用于 debug，限制处理多少个快照就停止


def build_parser() -> argparse.ArgumentParser:
    """构建 CLI 参数解析器。"""
    parser = argparse.ArgumentParser(prog="zenith-stoploss", description="跟踪止损/止盈决策引擎")

    def _add_config_arg(p: argparse.ArgumentParser, *, default: Any) -> None:
        p.add_argument(
            "--config",
            default=default,
            help="配置文件路径 (默认: config/config.yml)",
        )

    def _add_feed_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--candles", default=None, help="K 线 CSV 路径（覆盖配置 replay.candles_path）")
        p.add_argument("--max-snapshots", type=int, default=None, help="处理多少个快照后退出")

    # 允许 `python main.py --config ... replay`（全局）与 `python main.py replay --config ...`（子命令）
    _add_config_arg(parser, default="config/config.yml")

    sub = parser.add_subparsers(dest="task")

    p_replay = sub.add_parser("replay", help="历史 K 线纸面回放")
    _add_config_arg(p_replay, default=argparse.SUPPRESS)
    _add_feed_args(p_replay)

    p_dry = sub.add_parser("dry-run", help="只输出决策，不撮合")
    _add_config_arg(p_dry, default=argparse.SUPPRESS)
    _add_feed_args(p_dry)

    p_check = sub.add_parser("check-config", help="校验配置文件")
    _add_config_arg(p_check, default=argparse.SUPPRESS)

    return parser


def parse_args(argv: list[str] | None = None) -> CliArgs:
    """解析命令行参数；argv 为 None 时读取 sys.argv。"""
    parser = build_parser()
    ns = parser.parse_args(argv)
    task = ns.task or "replay"
    config = getattr(ns, "config", "config/config.yml")
    return CliArgs(
        config=str(config),
        task=task,
        candles=getattr(ns, "candles", None),
        max_snapshots=getattr(ns, "max_snapshots", None),
    )


def _configure_logging(cfg: AppConfig) -> None:
    for name in LOGGER_NAMES:
        setup_logger(name, cfg.logging.level)


def _candles_path(cfg: AppConfig, override: str | None) -> str:
    path = override or cfg.replay.candles_path
    if not path:
        raise ValueError("No candles file: pass --candles or set replay.candles_path")
    return path


def _instrument_info(cfg: AppConfig) -> InstrumentInfo:
    return InstrumentInfo(can_trade=cfg.replay.can_trade, trade_status=cfg.replay.trade_status)


def run_replay(cfg: AppConfig, *, candles: str | None = None, max_snapshots: int | None = None) -> dict[str, Any]:
    """纸面回放：K 线 → PaperSnapshotSource → 策略 → PaperBroker。"""
    df = load_candles_csv(_candles_path(cfg, candles))
    strat_cfg = cfg.strategy
    broker = PaperBroker(
        instrument=strat_cfg.instrument,
        cash_balance=cfg.replay.cash_balance,
        cancel_after_candles=cfg.replay.cancel_after_candles,
    )
    source = PaperSnapshotSource(
        df,
        broker,
        instrument_info=_instrument_info(cfg),
        interval=strat_cfg.candle_interval.value,
    )
    engine = DecisionEngine(
        strategy=StopLossStrategy(strat_cfg),
        source=source,
        sink=broker,
        max_snapshots=max_snapshots or cfg.replay.max_snapshots,
    )
    res = engine.run()
    summary = dict(res.summary)
    if res.artifacts:
        summary.update(res.artifacts)
    return summary


def run_dry_run(cfg: AppConfig, *, candles: str | None = None, max_snapshots: int | None = None) -> dict[str, Any]:
    """干跑：K 线 → 策略 → MockBroker（无持仓回馈，只能观察开仓信号）。"""
    df = load_candles_csv(_candles_path(cfg, candles))
    source = CandleFrameEventSource(
        df,
        instrument_info=_instrument_info(cfg),
        interval=cfg.strategy.candle_interval.value,
    )
    engine = DecisionEngine(
        strategy=StopLossStrategy(cfg.strategy),
        source=source,
        sink=MockBroker(),
        max_snapshots=max_snapshots or cfg.replay.max_snapshots,
    )
    return dict(engine.run().summary)


def render_summary(summary: dict[str, Any], *, title: str) -> Table:
    """把 summary 渲染成表格（嵌套 dict 展开为 a.b 形式）。"""
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="green")
    for key, value in summary.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                table.add_row(f"{key}.{sub_key}", str(sub_value))
        else:
            table.add_row(key, str(value))
    return table


def main(argv: list[str] | None = None) -> Any:
    """程序主入口，返回对应子命令的 summary dict。"""
    args = parse_args(argv)
    cfg = load_config(args.config)

    if args.task == "check-config":
        return cfg.model_dump(mode="json")

    _configure_logging(cfg)

    if args.task == "replay":
        summary = run_replay(cfg, candles=args.candles, max_snapshots=args.max_snapshots)
        console.print(render_summary(summary, title="Paper replay"))
        return summary

    if args.task == "dry-run":
        summary = run_dry_run(cfg, candles=args.candles, max_snapshots=args.max_snapshots)
        console.print(render_summary(summary, title="Dry run"))
        return summary

    raise ValueError(f"Unknown task: {args.task}")


if __name__ == "__main__":
    main()
