"""配置校验辅助（Schema Enforcement）。

目标：
- 在启动阶段尽早失败，避免 typo/非正阈值在实盘中“隐蔽爆炸”；
- 把 pydantic 的 ValidationError 压成一条 (field, reason)，并对拼错的 key 给出建议。
"""

from __future__ import annotations

import difflib
from typing import Any, Iterable

from pydantic import BaseModel, ValidationError


def _suggest_key(key: str, allowed: Iterable[str]) -> str | None:
    matches = difflib.get_close_matches(key, list(allowed), n=1, cutoff=0.75)
    return matches[0] if matches else None


def _model_at(model_cls: type[BaseModel], path: tuple[Any, ...]) -> type[BaseModel] | None:
    """沿 loc 路径找到出错字段所属的子模型。"""
    cls: type[BaseModel] | None = model_cls
    for part in path:
        if cls is None:
            return None
        info = cls.model_fields.get(str(part))
        ann = info.annotation if info is not None else None
        if isinstance(ann, type) and issubclass(ann, BaseModel):
            cls = ann
        else:
            return None
    return cls


def describe_validation_error(exc: ValidationError, model_cls: type[BaseModel]) -> tuple[str, str]:
    """取第一条错误，返回 (点分字段路径, 原因)。"""
    errors = exc.errors()
    if not errors:
        return model_cls.__name__, str(exc)
    err = errors[0]
    loc = tuple(err.get("loc") or ())
    field = ".".join(str(p) for p in loc) or model_cls.__name__
    reason = str(err.get("msg") or "invalid value")

    if err.get("type") == "extra_forbidden" and loc:
        owner = _model_at(model_cls, loc[:-1])
        if owner is not None:
            suggestion = _suggest_key(str(loc[-1]), owner.model_fields.keys())
            if suggestion:
                reason = f"unknown key (did you mean '{suggestion}'?)"
            else:
                reason = "unknown key"
    return field, reason
