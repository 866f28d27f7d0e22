"""
GitLab Webhook / API response schemas（Pydantic）。

为什么要单独放 schema：
- GitLab 的 payload 结构复杂，直接用 dict 容易写错 key
- schema 校验失败会立刻暴露问题（比“默默 None”安全）

说明：
- 这里的字段只覆盖 review pipeline 所需子集，后续可按需补充
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class GitLabUser(BaseModel):
    """Webhook / MR 里的 user 子结构。"""

    username: str
    name: str | None = None


class GitLabProject(BaseModel):
    """Webhook 里的 project 子结构（id/web_url）。"""

    id: int
    web_url: str | None = None


class GitLabMergeRequestObjectAttributes(BaseModel):
    """Merge request webhook 的 object_attributes 子结构。"""

    iid: int
    action: str | None = None
    title: str = ""
    description: str | None = None
    target_branch: str
    source_branch: str
    last_commit: dict[str, object] = Field(default_factory=dict)


class GitLabMergeRequestWebhookEvent(BaseModel):
    """Merge request webhook 的最小结构。"""

    object_kind: str
    user: GitLabUser
    project: GitLabProject
    object_attributes: GitLabMergeRequestObjectAttributes


class GitLabDiffRef(BaseModel):
    """GitLab 返回的 diff refs（行内评论 position 必需）。"""

    base_sha: str
    head_sha: str
    start_sha: str


class GitLabMRChange(BaseModel):
    """单个文件变更（包含 diff 字符串）。"""

    old_path: str
    new_path: str
    a_mode: str | None = None
    b_mode: str | None = None
    new_file: bool = False
    renamed_file: bool = False
    deleted_file: bool = False
    diff: str = ""


class GitLabMergeRequestChanges(BaseModel):
    """MR changes API 返回结构（changes + diff_refs）。"""

    changes: list[GitLabMRChange]
    diff_refs: GitLabDiffRef | None = None


class GitLabMergeRequest(BaseModel):
    """GET /merge_requests/:iid 的子集（手动触发 + diff refs）。"""

    iid: int
    title: str = ""
    description: str | None = None
    source_branch: str
    target_branch: str
    sha: str | None = None
    author: GitLabUser | None = None
    diff_refs: GitLabDiffRef | None = None


class GitLabDiscussion(BaseModel):
    """discussion 返回结构（只取 id）。"""

    id: str
