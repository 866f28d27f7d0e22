"""
Review Orchestrator（核心流程编排）。

关键思想：
- **流程由工程代码控制**：fetch changes -> build units -> 分批 review -> 汇总 -> 去重写回
- **Agent / 静态分析器只负责产出 finding**：失败就是空结果，不影响整次 run

失败语义：
- 只有“拿不到 MR changes”是整次 run 的失败（`RetrievalError`）
- 其余任何一步降级都只记日志，run 正常结束
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

import anyio

from mr_review.review.backend import ReviewBackend
from mr_review.review.context import DEFAULT_CONTEXT_LINES
from mr_review.review.context import build_review_units
from mr_review.review.errors import RetrievalError
from mr_review.review.models import Comment
from mr_review.review.models import DiffRefs
from mr_review.review.models import FileChange
from mr_review.review.models import MergeRequestInfo
from mr_review.review.models import ReviewUnit
from mr_review.review.publisher import CommentPublisher

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_FILES_PER_MR = 50
DEFAULT_MAX_CONCURRENT_REQUESTS = 3


class ChangeSource(Protocol):
    """拉取 MR 变更 / diff refs / 文件内容的外部依赖（GitLab）。"""

    async def fetch_changes(self, project_id: int, mr_iid: int) -> list[FileChange]: ...

    async def fetch_refs(self, project_id: int, mr_iid: int) -> DiffRefs: ...

    async def fetch_file_body(self, project_id: int, path: str, ref: str) -> str: ...


@dataclass(frozen=True)
class PipelineSettings:
    """pipeline 的限额参数（来自配置）。"""

    context_lines: int = DEFAULT_CONTEXT_LINES
    max_files_per_mr: int = DEFAULT_MAX_FILES_PER_MR
    max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS


@dataclass
class PipelineReport:
    """一次 run 的统计（只用于日志和测试，不是对外状态）。"""

    files_total: int = 0
    files_processed: int = 0
    units_built: int = 0
    units_failed: int = 0
    comments: list[Comment] | None = None
    published: int = 0


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """按固定大小切批（最后一批可能不满）。"""
    if size <= 0:
        raise ValueError("size must be > 0")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


@dataclass(frozen=True)
class ReviewPipeline:
    """Orchestrator 运行时依赖集合。"""

    changes: ChangeSource
    backend: ReviewBackend
    publisher: CommentPublisher
    settings: PipelineSettings = field(default_factory=PipelineSettings)

    async def run(self, mr_info: MergeRequestInfo) -> PipelineReport:
        """
        跑一次完整 review。

        - Step 1: 拉取 changes（失败 -> RetrievalError）
        - Step 2: 每个 hunk 构建一个 ReviewUnit（非 AI）
        - Step 3: 分批并发 review（批与批之间串行）
        - Step 4: 汇总 findings（保持 unit 顺序）
        - Step 5: 去重写回
        """
        logger.info(f"Starting review pipeline for MR !{mr_info.mr_iid} in project {mr_info.project_id}")
        report = PipelineReport()

        file_changes = await self._fetch_changes(mr_info=mr_info)
        report.files_total = len(file_changes)
        if len(file_changes) > self.settings.max_files_per_mr:
            logger.warning(
                f"MR !{mr_info.mr_iid} has {len(file_changes)} files, "
                f"exceeding limit of {self.settings.max_files_per_mr}; reviewing the first {self.settings.max_files_per_mr}"
            )
            file_changes = file_changes[: self.settings.max_files_per_mr]
        report.files_processed = len(file_changes)

        units = await self._build_units(file_changes=file_changes, mr_info=mr_info)
        report.units_built = len(units)
        logger.info(f"Built {len(units)} review unit(s)")

        comments, failed = await self._review_units(units=units)
        report.comments = comments
        report.units_failed = failed
        logger.info(f"Generated {len(comments)} total comment(s)")

        if comments:
            report.published = await self._publish(
                comments=comments,
                file_changes=file_changes,
                mr_info=mr_info,
            )
        else:
            logger.info("No comments to post")

        logger.info(f"Review pipeline completed for MR !{mr_info.mr_iid}")
        return report

    async def _fetch_changes(self, mr_info: MergeRequestInfo) -> list[FileChange]:
        try:
            file_changes = await self.changes.fetch_changes(project_id=mr_info.project_id, mr_iid=mr_info.mr_iid)
        except Exception as exc:
            logger.error(f"Failed to get changes for MR !{mr_info.mr_iid}: {exc}")
            raise RetrievalError(f"Cannot retrieve changes for MR !{mr_info.mr_iid}: {exc}") from exc
        logger.info(f"Retrieved {len(file_changes)} file change(s) for MR !{mr_info.mr_iid}")
        return file_changes

    async def _build_units(self, file_changes: Sequence[FileChange], mr_info: MergeRequestInfo) -> list[ReviewUnit]:
        units: list[ReviewUnit] = []
        for file_change in file_changes:
            if file_change.is_deleted:
                logger.debug(f"Skipping deleted file: {file_change.file_path}")
                continue
            file_body = await self._fetch_file_body(file_change=file_change, mr_info=mr_info)
            units.extend(
                build_review_units(
                    file_change=file_change,
                    file_body=file_body,
                    mr_info=mr_info,
                    window_size=self.settings.context_lines,
                )
            )
        return units

    async def _fetch_file_body(self, file_change: FileChange, mr_info: MergeRequestInfo) -> str:
        if not file_change.hunks:
            return ""
        try:
            return await self.changes.fetch_file_body(
                project_id=mr_info.project_id,
                path=file_change.file_path,
                ref=mr_info.source_branch,
            )
        except Exception as exc:
            # 拿不到文件内容只降级为空上下文，不影响整次 run
            logger.debug(f"Could not get file content for {file_change.file_path}: {exc}")
            return ""

    async def _review_units(self, units: Sequence[ReviewUnit]) -> tuple[list[Comment], int]:
        """每批最多 max_concurrent_requests 个 unit；整批结束才开始下一批。"""
        all_comments: list[Comment] = []
        failed = 0
        for batch in chunk(units, self.settings.max_concurrent_requests):
            results: list[list[Comment] | None] = [None] * len(batch)

            async def review_one(index: int, unit: ReviewUnit) -> None:
                try:
                    results[index] = await self.backend.review(unit)
                except Exception as exc:
                    logger.error(f"Review failed for {unit.file_path} (new line {unit.new_line_start}): {exc}")

            async with anyio.create_task_group() as tg:
                for index, unit in enumerate(batch):
                    tg.start_soon(review_one, index, unit)

            for result in results:
                if result is None:
                    failed += 1
                    continue
                all_comments.extend(result)
        return all_comments, failed

    async def _publish(
        self,
        comments: list[Comment],
        file_changes: Sequence[FileChange],
        mr_info: MergeRequestInfo,
    ) -> int:
        diff_refs = await self._resolve_diff_refs(mr_info=mr_info)
        if diff_refs is None:
            logger.error(f"No diff refs for MR !{mr_info.mr_iid}; skipping publication of {len(comments)} comment(s)")
            return 0
        rename_map = build_rename_map(file_changes)
        return await self.publisher.publish(
            comments=comments,
            mr_info=mr_info,
            diff_refs=diff_refs,
            rename_map=rename_map,
        )

    async def _resolve_diff_refs(self, mr_info: MergeRequestInfo) -> DiffRefs | None:
        try:
            return await self.changes.fetch_refs(project_id=mr_info.project_id, mr_iid=mr_info.mr_iid)
        except Exception as exc:
            logger.error(f"Failed to get diff refs for MR !{mr_info.mr_iid}: {exc}")
            return mr_info.diff_refs


def build_rename_map(file_changes: Sequence[FileChange]) -> dict[str, str]:
    """new_path -> old_path，只收录真的改了路径的文件。"""
    return {
        c.file_path: c.old_path
        for c in file_changes
        if c.old_path is not None and c.old_path != c.file_path
    }


def build_review_handler(pipeline: ReviewPipeline) -> Callable[[MergeRequestInfo], Awaitable[None]]:
    """
    webhook 后台任务入口。

    后台任务里抛出的异常没人接，所以这里把 run 级失败收敛为日志。
    """

    async def handle(mr_info: MergeRequestInfo) -> None:
        try:
            report = await pipeline.run(mr_info)
        except RetrievalError as exc:
            logger.error(f"Review aborted for MR !{mr_info.mr_iid}: {exc}")
            return
        except Exception:
            logger.exception(f"Unexpected failure reviewing MR !{mr_info.mr_iid}")
            return
        logger.info(
            f"MR !{mr_info.mr_iid}: {report.units_built} unit(s), {report.units_failed} failed, "
            f"{report.published} comment(s) published"
        )

    return handle
