"""
Finding source 注册表。

为什么需要 registry：
- 把“配置里的名字”映射到具体的 finding source（agent / 各种静态分析器）
- 启动时构建一次，之后只读；通过参数传给 pipeline，而不是模块级全局变量
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from mr_review.review.models import ReviewUnit
from mr_review.review.normalizer import OutputKind

logger = logging.getLogger(__name__)


class FindingSource(Protocol):
    """任何能对一个 ReviewUnit 产出原始输出的东西（agent、linter、编译器……）。"""

    name: str
    kind: OutputKind
    timeout_seconds: float

    def should_run(self, unit: ReviewUnit) -> bool: ...

    async def run(self, unit: ReviewUnit) -> str: ...


def supports_language(supported: Sequence[str], language: str | None) -> bool:
    """supported 为空表示不限语言；否则语言未知时不执行。"""
    if not supported:
        return True
    return language is not None and language in supported


@dataclass(frozen=True)
class FindingSourceRegistry:
    """启用的 finding sources（只读，保持配置顺序）。"""

    sources: tuple[FindingSource, ...]

    def names(self) -> list[str]:
        return [s.name for s in self.sources]

    def applicable(self, unit: ReviewUnit) -> list[FindingSource]:
        return [s for s in self.sources if s.should_run(unit)]


def build_registry(available: Iterable[FindingSource], enabled: Sequence[str] | None) -> FindingSourceRegistry:
    """
    按配置挑出启用的 source。

    - enabled 为 None：全部启用
    - enabled 里出现未知名字：直接报错（启动失败好过静默忽略）
    """
    by_name: dict[str, FindingSource] = {}
    for source in available:
        if source.name in by_name:
            raise ValueError(f"Duplicate finding source name: {source.name}")
        by_name[source.name] = source

    if enabled is None:
        selected = list(by_name.values())
    else:
        unknown = [name for name in enabled if name not in by_name]
        if unknown:
            raise ValueError(f"Unknown finding sources: {', '.join(unknown)}")
        selected = [by_name[name] for name in enabled]

    for source in selected:
        logger.info(f"Registered finding source: {source.name} ({source.kind})")
    return FindingSourceRegistry(sources=tuple(selected))
