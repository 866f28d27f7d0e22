"""
Context Builder（非 AI）。

职责：
- 通过扩展名推断语言
- 给每个 hunk 截取源分支文件里的 ±N 行上下文，生成 `ReviewUnit`
"""

from __future__ import annotations

import logging
import os

from mr_review.review.models import DiffHunk
from mr_review.review.models import FileChange
from mr_review.review.models import MergeRequestInfo
from mr_review.review.models import ReviewUnit

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LINES = 100

_LANGUAGE_BY_EXTENSION: dict[str, str] = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".py": "python",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".cpp": "cpp",
    ".c": "c",
    ".cs": "csharp",
    ".php": "php",
    ".rb": "ruby",
    ".swift": "swift",
    ".kt": "kotlin",
    ".vue": "vue",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".md": "markdown",
    ".sql": "sql",
}


def infer_language_from_path(path: str) -> str | None:
    """
    通过文件扩展名推断语言。

    这是一个非常“工程”的步骤：不需要 LLM，且必须确定性。
    未知扩展名返回 None（限定语言的 analyzer 不会处理这类文件）。
    """
    ext = os.path.splitext(path)[1].lower()
    return _LANGUAGE_BY_EXTENSION.get(ext)


def build_context(file_body: str, hunk: DiffHunk, window_size: int) -> str:
    """
    截取 hunk 周边的代码。

    - 范围：hunk 新文件行前后各 window 行（0-based 切片 [new_start-1-window, new_start-1+count+window)）
    - 结果最多 2*window + new_line_count 行，并夹到文件边界内
    - 文件内容为空（新文件/拉取失败）返回空字符串，下游当作“上下文降级”
    """
    if window_size < 0:
        raise ValueError("window_size must be >= 0")
    if not file_body:
        return ""
    lines = file_body.split("\n")
    start = max(0, hunk.new_start - window_size - 1)
    end = max(start, min(len(lines), hunk.new_start - 1 + hunk.new_line_count + window_size))
    return "\n".join(lines[start:end])


def build_review_units(
    file_change: FileChange,
    file_body: str,
    mr_info: MergeRequestInfo,
    window_size: int = DEFAULT_CONTEXT_LINES,
) -> list[ReviewUnit]:
    """一个 hunk 一个 unit；删除的文件不产生 unit；单个 hunk 构建失败只跳过它。"""
    if file_change.is_deleted:
        logger.debug(f"Skipping deleted file: {file_change.file_path}")
        return []

    units: list[ReviewUnit] = []
    for hunk in file_change.hunks:
        try:
            context_code = build_context(file_body=file_body, hunk=hunk, window_size=window_size)
        except ValueError as exc:
            logger.error(f"Failed to build context for hunk in {file_change.file_path}: {exc}")
            continue
        units.append(
            ReviewUnit(
                file_path=file_change.file_path,
                diff_text=hunk.content,
                context_code=context_code,
                language=file_change.language,
                old_line_start=hunk.old_start,
                new_line_start=hunk.new_start,
                mr_info=mr_info,
            )
        )
    return units
