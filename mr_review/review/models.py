"""
Review 领域模型（Pydantic）。

用途：
- 明确 pipeline 各阶段输入/输出的数据结构（FileChange -> ReviewUnit -> Comment）
- 作为 Finding 校验的 schema（normalizer 的最后一道关卡）
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt

Severity = Literal["error", "warning", "info", "suggestion"]
SEVERITIES: tuple[str, ...] = ("error", "warning", "info", "suggestion")


class DiffHunk(BaseModel):
    """unified diff 里的一个 hunk（header + body）。"""

    model_config = ConfigDict(frozen=True)

    old_start: int = Field(ge=0)
    old_line_count: int = Field(default=1, ge=0)
    new_start: int = Field(ge=0)
    new_line_count: int = Field(default=1, ge=0)
    content: str


class FileChange(BaseModel):
    """单个文件的变更（从 GitLab changes/diff 归一化而来，创建后只读）。"""

    model_config = ConfigDict(frozen=True)

    file_path: str
    old_path: str | None = None
    is_new: bool = False
    is_deleted: bool = False
    is_renamed: bool = False
    diff_text: str
    hunks: list[DiffHunk] = Field(default_factory=list)
    language: str | None = None


class DiffRefs(BaseModel):
    """行内评论 position 需要的三个 SHA。"""

    base_sha: str
    start_sha: str
    head_sha: str


class MergeRequestInfo(BaseModel):
    """一次 MR 的基本信息（webhook / 手动触发映射而来）。"""

    model_config = ConfigDict(frozen=True)

    project_id: int
    mr_iid: int
    source_branch: str
    target_branch: str
    author: str
    title: str
    description: str | None = None
    head_sha: str | None = None
    diff_refs: DiffRefs | None = None


class ReviewUnit(BaseModel):
    """一个 hunk + 周边代码，作为一次 review 派发的最小单元。"""

    file_path: str
    diff_text: str
    context_code: str
    language: str | None = None
    old_line_start: int = 0
    new_line_start: int = 0
    mr_info: MergeRequestInfo


class Comment(BaseModel):
    """归一化后的 finding（可以直接写回 GitLab 的行内评论）。"""

    file: str = Field(min_length=1)
    line: StrictInt = Field(ge=1)
    severity: Severity
    text: str = Field(min_length=1)
    source: str = "agent"


class DiscussionPosition(BaseModel):
    """GitLab discussion 的 position 结构（text 类型，只锚定新文件行号）。"""

    base_sha: str
    start_sha: str
    head_sha: str
    old_path: str | None = None
    new_path: str
    position_type: Literal["text"] = "text"
    new_line: int
