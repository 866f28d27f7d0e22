"""
GitLab API 客户端（外部系统连接器）。

约定：
- 这里只做“HTTP 调用 + 错误处理 + schema 校验”，不做业务决策。
- 非 2xx 一律抛 `TransportError`，不要吞异常（便于定位与告警）。
- 唯一例外：读取文件内容遇到 404 返回空字符串（新文件/已删除文件是正常情况）。
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from mr_review.gitlab.schemas import GitLabDiscussion
from mr_review.gitlab.schemas import GitLabMergeRequest
from mr_review.gitlab.schemas import GitLabMergeRequestChanges
from mr_review.review.errors import TransportError

logger = logging.getLogger(__name__)


class GitLabClient:
    """最小 GitLab API client。"""

    def __init__(self, base_url: str, private_token: str, http_client: httpx.AsyncClient) -> None:
        """
        - base_url: GitLab 实例地址（不包含末尾 /）
        - private_token: PRIVATE-TOKEN（建议用专用机器人账号，需要 api scope）
        - http_client: 复用的 httpx.AsyncClient
        """
        self._base_url = base_url.rstrip("/")
        self._private_token = private_token
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        """GitLab API 鉴权头。"""
        return {"PRIVATE-TOKEN": self._private_token}

    def _project_url(self, project_id: int) -> str:
        return f"{self._base_url}/api/v4/projects/{project_id}"

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code >= 400:
            raise TransportError(status_code=response.status_code, message=response.text)

    async def get_merge_request_changes(self, project_id: int, mr_iid: int) -> GitLabMergeRequestChanges:
        """
        获取 MR changes（包含每个文件的 diff）。

        说明：
        - GitLab v4 API: GET /projects/:id/merge_requests/:iid/changes
        - 返回用 Pydantic 校验为 `GitLabMergeRequestChanges`
        """
        url = f"{self._project_url(project_id)}/merge_requests/{mr_iid}/changes"
        response = await self._http_client.get(url, headers=self._headers())
        self._raise_for_status(response)
        return GitLabMergeRequestChanges.model_validate(response.json())

    async def get_merge_request(self, project_id: int, mr_iid: int) -> GitLabMergeRequest:
        """获取 MR 详情（标题/分支/作者/diff_refs）。"""
        url = f"{self._project_url(project_id)}/merge_requests/{mr_iid}"
        response = await self._http_client.get(url, headers=self._headers())
        self._raise_for_status(response)
        return GitLabMergeRequest.model_validate(response.json())

    async def get_file_raw(self, project_id: int, path: str, ref: str) -> str:
        """
        读取某个 ref 上的文件原始内容。

        - 404 返回空字符串（文件在该 ref 上不存在）
        - 其它错误照常抛 `TransportError`
        """
        encoded_path = quote(path, safe="")
        url = f"{self._project_url(project_id)}/repository/files/{encoded_path}/raw"
        response = await self._http_client.get(url, headers=self._headers(), params={"ref": ref})
        if response.status_code == 404:
            logger.debug(f"File {path} not found at ref {ref}")
            return ""
        self._raise_for_status(response)
        return response.text

    async def create_discussion(
        self,
        project_id: int,
        mr_iid: int,
        body: str,
        position: dict[str, object],
    ) -> GitLabDiscussion:
        """
        在 MR 的某一行创建 discussion（行内评论）。

        - GitLab v4 API: POST /projects/:id/merge_requests/:iid/discussions
        - position 需要 diff_refs 的三个 SHA + new_path/new_line
        """
        url = f"{self._project_url(project_id)}/merge_requests/{mr_iid}/discussions"
        payload = {"body": body, "position": position}
        response = await self._http_client.post(url, headers=self._headers(), json=payload)
        self._raise_for_status(response)
        return GitLabDiscussion.model_validate(response.json())
