"""
GitLab -> Review domain adapter。

职责：
- 将 GitLab API 的 changes/diff schema 转换为平台无关的 `FileChange`
- 把 `GitLabClient` 包装成 pipeline 需要的 `ChangeSource` / `DiscussionSink`
- 只做数据归一化，不做业务决策
"""

from __future__ import annotations

from mr_review.gitlab.client import GitLabClient
from mr_review.gitlab.schemas import GitLabDiffRef
from mr_review.gitlab.schemas import GitLabMergeRequest
from mr_review.gitlab.schemas import GitLabMergeRequestChanges
from mr_review.gitlab.schemas import GitLabMergeRequestWebhookEvent
from mr_review.review.context import infer_language_from_path
from mr_review.review.diff_parser import parse_hunks
from mr_review.review.models import DiffRefs
from mr_review.review.models import DiscussionPosition
from mr_review.review.models import FileChange
from mr_review.review.models import MergeRequestInfo


def build_file_changes(changes: GitLabMergeRequestChanges) -> list[FileChange]:
    """按 GitLab 返回顺序转换（顺序决定超限截断时保留哪些文件）。"""
    file_changes: list[FileChange] = []
    for c in changes.changes:
        path = c.new_path or c.old_path
        file_changes.append(
            FileChange(
                file_path=path,
                old_path=c.old_path,
                is_new=c.new_file,
                is_deleted=c.deleted_file,
                is_renamed=c.renamed_file,
                diff_text=c.diff,
                hunks=parse_hunks(c.diff),
                language=infer_language_from_path(path=path),
            )
        )
    return file_changes


def to_diff_refs(diff_refs: GitLabDiffRef) -> DiffRefs:
    return DiffRefs(base_sha=diff_refs.base_sha, start_sha=diff_refs.start_sha, head_sha=diff_refs.head_sha)


def build_merge_request_info(project_id: int, mr: GitLabMergeRequest) -> MergeRequestInfo:
    """GET /merge_requests/:iid 的结果 -> MergeRequestInfo（手动触发用）。"""
    author = ""
    if mr.author is not None:
        author = mr.author.username or mr.author.name or ""
    return MergeRequestInfo(
        project_id=project_id,
        mr_iid=mr.iid,
        source_branch=mr.source_branch,
        target_branch=mr.target_branch,
        author=author,
        title=mr.title,
        description=mr.description,
        head_sha=mr.sha or (mr.diff_refs.head_sha if mr.diff_refs else None),
        diff_refs=to_diff_refs(mr.diff_refs) if mr.diff_refs else None,
    )


class GitLabGateway:
    """`ChangeSource` + `DiscussionSink` 的 GitLab 实现。"""

    def __init__(self, client: GitLabClient) -> None:
        self._client = client

    async def fetch_changes(self, project_id: int, mr_iid: int) -> list[FileChange]:
        changes = await self._client.get_merge_request_changes(project_id=project_id, mr_iid=mr_iid)
        return build_file_changes(changes)

    async def fetch_refs(self, project_id: int, mr_iid: int) -> DiffRefs:
        mr = await self._client.get_merge_request(project_id=project_id, mr_iid=mr_iid)
        if mr.diff_refs is None:
            raise ValueError(f"MR !{mr_iid} has no diff_refs yet")
        return to_diff_refs(mr.diff_refs)

    async def fetch_file_body(self, project_id: int, path: str, ref: str) -> str:
        return await self._client.get_file_raw(project_id=project_id, path=path, ref=ref)

    async def fetch_merge_request_info(self, project_id: int, mr_iid: int) -> MergeRequestInfo:
        mr = await self._client.get_merge_request(project_id=project_id, mr_iid=mr_iid)
        return build_merge_request_info(project_id=project_id, mr=mr)

    async def create_discussion(
        self,
        project_id: int,
        mr_iid: int,
        position: DiscussionPosition,
        body: str,
    ) -> None:
        await self._client.create_discussion(
            project_id=project_id,
            mr_iid=mr_iid,
            body=body,
            position=position.model_dump(exclude_none=True),
        )


def build_merge_request_info_from_event(event: GitLabMergeRequestWebhookEvent) -> MergeRequestInfo:
    """webhook payload -> MergeRequestInfo。"""
    attrs = event.object_attributes
    head_sha = attrs.last_commit.get("id")
    return MergeRequestInfo(
        project_id=event.project.id,
        mr_iid=attrs.iid,
        source_branch=attrs.source_branch,
        target_branch=attrs.target_branch,
        author=event.user.username,
        title=attrs.title,
        description=attrs.description,
        head_sha=head_sha if isinstance(head_sha, str) and head_sha else None,
    )
