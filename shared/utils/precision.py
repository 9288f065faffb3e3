"""精度与定点运算工具（价格一律使用 Decimal，禁止 float 参与决策）。

约定：
- 除法统一 ROUND_HALF_EVEN（银行家舍入）；
- 手数计算向零截断；
- 百分比结果固定保留 PERCENT_PLACES 位小数。
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_EVEN, Decimal, localcontext
from typing import Any

PERCENT_PLACES = 8
_PERCENT_QUANTUM = Decimal(1).scaleb(-PERCENT_PLACES)
_HUNDRED = Decimal(100)
_TWO = Decimal(2)


def to_decimal(value: Any) -> Decimal:
    """把 int/str/float/Decimal 转成 Decimal。

    float 先经过 str()，避免把二进制误差（101.9 -> 101.900000000000005...）带进来。
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a price")
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, (int, str)):
        return Decimal(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")


def decimals_from_step(step: Decimal) -> int:
    """根据 step（或任意价格）推导小数位数，整数返回 0。"""
    exp = step.as_tuple().exponent
    if not isinstance(exp, int):
        return 0
    return max(0, -exp)


def midpoint(high: Decimal, low: Decimal) -> Decimal:
    """K 线中间价：(high + low) / 2，按两者中更细的精度做半偶舍入。"""
    places = max(decimals_from_step(high), decimals_from_step(low))
    with localcontext() as ctx:
        ctx.rounding = ROUND_HALF_EVEN
        mid = (high + low) / _TWO
        return mid.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN)


def _q(value: Decimal) -> Decimal:
    with localcontext() as ctx:
        # 结果整数位很多时，定点到 PERCENT_PLACES 位需要更高精度
        ctx.prec = max(ctx.prec, value.adjusted() + PERCENT_PLACES + 2)
        return value.quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_EVEN)


def percent_of(delta: Decimal, base: Decimal) -> Decimal:
    """|delta| 占 base 的百分比：|delta| / (base / 100)，商按半偶舍入到 PERCENT_PLACES 位。

    base / 100 只移动指数，结果精确，不做定点；否则极小价格的 1% 会被舍成 0。
    """
    with localcontext() as ctx:
        ctx.rounding = ROUND_HALF_EVEN
        one_percent = base.scaleb(-2)
        return _q(abs(delta) / one_percent)


def percent_between(a: Decimal, b: Decimal) -> Decimal:
    """%(a, b) := |a - b| / (b / 100)。"""
    return percent_of(a - b, b)


def floor_lots(cap: Decimal, price: Decimal, lot: int) -> int:
    """cap 能买多少手：⌊cap / (price * lot)⌋，向零截断。"""
    per_lot = price * Decimal(lot)
    # Decimal 的 // 本身就是向零截断，不受 context 舍入影响
    lots = cap // per_lot
    return int(lots.to_integral_value(rounding=ROUND_DOWN))
