"""
单个 ReviewUnit 的执行器。

- agent 和所有适用的静态分析器并发执行（同一个 unit 内）
- 每个 source 有自己的超时；失败/超时只影响它自己，结果替换成空列表
- 输出按 registry 顺序拼接，保证确定性
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import anyio

from mr_review.review.errors import UnitExecutionError
from mr_review.review.models import Comment
from mr_review.review.models import ReviewUnit
from mr_review.review.normalizer import normalize
from mr_review.review.registry import FindingSource
from mr_review.review.registry import FindingSourceRegistry

logger = logging.getLogger(__name__)


async def execute_source(source: FindingSource, unit: ReviewUnit) -> str:
    """带超时执行一个 source；任何失败都统一包装成 `UnitExecutionError`。"""
    try:
        with anyio.fail_after(source.timeout_seconds):
            return await source.run(unit)
    except TimeoutError as exc:
        raise UnitExecutionError(source.name, unit.file_path, f"timed out after {source.timeout_seconds}s") from exc
    except Exception as exc:
        raise UnitExecutionError(source.name, unit.file_path, str(exc)) from exc


@dataclass(frozen=True)
class ReviewBackend:
    """把 registry 里的 finding sources 应用到一个 unit 上。"""

    registry: FindingSourceRegistry

    async def review(self, unit: ReviewUnit) -> list[Comment]:
        sources = self.registry.applicable(unit)
        if not sources:
            return []

        results: list[list[Comment]] = [[] for _ in sources]

        async def run_one(index: int, source: FindingSource) -> None:
            results[index] = await self._run_source(source=source, unit=unit)

        async with anyio.create_task_group() as tg:
            for index, source in enumerate(sources):
                tg.start_soon(run_one, index, source)

        return [comment for comments in results for comment in comments]

    async def _run_source(self, source: FindingSource, unit: ReviewUnit) -> list[Comment]:
        try:
            raw = await execute_source(source=source, unit=unit)
        except UnitExecutionError as exc:
            logger.error(f"{exc}")
            return []
        comments = normalize(raw_output=raw, kind=source.kind, unit=unit, source=source.name)
        logger.debug(f"{source.name} produced {len(comments)} finding(s) for {unit.file_path}")
        return comments
