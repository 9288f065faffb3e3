import sys
from pathlib import Path

import pytest

# 确保项目根目录在 sys.path，便于测试内直接以顶层包名导入
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from shared.config.schema import StopLossConfig  # noqa: E402


def make_config(**overrides) -> StopLossConfig:
    """端到端场景的标准参数：lot=1, maxOp=1000, 四个阈值 1/1/2/2。"""
    params = {
        "instrument": {"figi": "BBG000TEST01", "lot": 1},
        "max_operation_value": "1000",
        "orderbook_depth": 1,
        "candle_interval": "1min",
        "grow_to_fall_pct": "1",
        "fall_to_grow_pct": "1",
        "profit_pct": "2",
        "stop_loss_pct": "2",
    }
    params.update(overrides)
    return StopLossConfig(**params)


@pytest.fixture
def cfg() -> StopLossConfig:
    return make_config()


@pytest.fixture
def make_cfg():
    return make_config
