"""
去重 + 写回 GitLab（行内 discussion）。

设计点：
- 指纹 = (file, line, text 前 50 个字符)，按 (project_id, mr_iid) 分组，只存在内存里
- 写回是串行的：GitLab 对同一个 MR 并发创建 discussion 不稳定
- 单条失败只记日志，不记录指纹（下次 run 还会重试）
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

import anyio

from mr_review.review.errors import PublicationError
from mr_review.review.models import Comment
from mr_review.review.models import DiffRefs
from mr_review.review.models import DiscussionPosition
from mr_review.review.models import MergeRequestInfo

logger = logging.getLogger(__name__)

FINGERPRINT_PREFIX_CHARS = 50

Fingerprint = tuple[str, int, str]
ScopeKey = tuple[int, int]

_SEVERITY_MARKERS: dict[str, str] = {
    "error": "🔴",
    "warning": "🟡",
    "info": "🔵",
    "suggestion": "💡",
}


class DiscussionSink(Protocol):
    """创建行内 discussion 的外部依赖（失败抛 TransportError）。"""

    async def create_discussion(
        self,
        project_id: int,
        mr_iid: int,
        position: DiscussionPosition,
        body: str,
    ) -> None: ...


def fingerprint(comment: Comment) -> Fingerprint:
    return (comment.file, comment.line, comment.text[:FINGERPRINT_PREFIX_CHARS])


def format_comment_body(comment: Comment) -> str:
    """`🟡 **WARNING**: [eslint] ...`；agent 自己的评论不加来源前缀。"""
    marker = _SEVERITY_MARKERS.get(comment.severity, "💬")
    prefix = "" if comment.source == "agent" else f"[{comment.source}] "
    return f"{marker} **{comment.severity.upper()}**: {prefix}{comment.text}"


def group_comments_by_file(comments: Sequence[Comment]) -> dict[str, list[Comment]]:
    grouped: dict[str, list[Comment]] = {}
    for comment in comments:
        grouped.setdefault(comment.file, []).append(comment)
    return grouped


class CommentPublisher:
    """进程内的发布闸门：同一个 MR 的同一条评论只发一次。"""

    def __init__(self, sink: DiscussionSink) -> None:
        self._sink = sink
        self._published: dict[ScopeKey, set[Fingerprint]] = {}
        self._locks: dict[ScopeKey, anyio.Lock] = {}

    def is_published(self, project_id: int, mr_iid: int, comment: Comment) -> bool:
        return fingerprint(comment) in self._published.get((project_id, mr_iid), set())

    async def publish(
        self,
        comments: Sequence[Comment],
        mr_info: MergeRequestInfo,
        diff_refs: DiffRefs,
        rename_map: dict[str, str],
    ) -> int:
        """
        逐条写回评论，返回本次实际发布的数量。

        - rename_map: new_path -> old_path（只包含重命名的文件）
        - 同一个 (project_id, mr_iid) 的 publish 互斥，避免两次 run 同时发同一条评论
        """
        if not comments:
            logger.info("No comments to post")
            return 0

        key: ScopeKey = (mr_info.project_id, mr_info.mr_iid)
        lock = self._locks.setdefault(key, anyio.Lock())
        logger.info(f"Posting up to {len(comments)} comments to MR !{mr_info.mr_iid}")

        posted = 0
        failures: list[PublicationError] = []
        async with lock:
            seen = self._published.setdefault(key, set())
            for file_path, file_comments in group_comments_by_file(comments).items():
                for comment in file_comments:
                    if self.is_published(mr_info.project_id, mr_info.mr_iid, comment):
                        logger.debug(f"Skipping duplicate comment: {fingerprint(comment)}")
                        continue

                    position = self._build_position(
                        file_path=file_path,
                        line=comment.line,
                        diff_refs=diff_refs,
                        rename_map=rename_map,
                    )
                    try:
                        await self._sink.create_discussion(
                            project_id=mr_info.project_id,
                            mr_iid=mr_info.mr_iid,
                            position=position,
                            body=format_comment_body(comment),
                        )
                    except Exception as exc:
                        failure = PublicationError(f"Failed to post comment at {file_path}:{comment.line}: {exc}")
                        failures.append(failure)
                        logger.error(f"{failure}")
                        continue

                    seen.add(fingerprint(comment))
                    posted += 1
                    logger.debug(f"Posted comment at line {comment.line} in {file_path}")

        if failures:
            logger.warning(f"{len(failures)} comment(s) failed to post to MR !{mr_info.mr_iid}")
        logger.info(f"Posted {posted} comment(s) to MR !{mr_info.mr_iid}")
        return posted

    @staticmethod
    def _build_position(
        file_path: str,
        line: int,
        diff_refs: DiffRefs,
        rename_map: dict[str, str],
    ) -> DiscussionPosition:
        old_path = rename_map.get(file_path)
        return DiscussionPosition(
            base_sha=diff_refs.base_sha,
            start_sha=diff_refs.start_sha,
            head_sha=diff_refs.head_sha,
            old_path=old_path if old_path and old_path != file_path else None,
            new_path=file_path,
            new_line=line,
        )
