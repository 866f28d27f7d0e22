"""
GitLab Webhook 接入层。

职责：
- 校验 `X-Gitlab-Token`（防止被随意调用）
- 解析 webhook payload -> Pydantic schema（类型安全）
- 过滤掉不关心的事件（只处理 MR open/update/reopen）
- 把 review 放到后台任务里跑（GitLab 的 webhook 有超时，不能同步等 review 结束）
- 额外提供手动触发入口（例如在 GitLab CI 里调用）
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fastapi import APIRouter
from fastapi import BackgroundTasks
from fastapi import Header
from fastapi import HTTPException
from fastapi import Request
from pydantic import ValidationError

from mr_review.config import GitLabConfig
from mr_review.gitlab.adapter import build_merge_request_info_from_event
from mr_review.gitlab.schemas import GitLabMergeRequestWebhookEvent
from mr_review.review.errors import TransportError
from mr_review.review.models import MergeRequestInfo

logger = logging.getLogger(__name__)

ReviewHandler = Callable[[MergeRequestInfo], Awaitable[None]]
MergeRequestLoader = Callable[[int, int], Awaitable[MergeRequestInfo]]

HANDLED_ACTIONS: tuple[str, ...] = ("open", "update", "reopen")


def build_gitlab_webhook_router(
    config: GitLabConfig,
    handler: ReviewHandler,
    load_merge_request: MergeRequestLoader,
) -> APIRouter:
    """创建 GitLab webhook + 手动触发路由。"""
    router = APIRouter()

    @router.post("/gitlab/webhook")
    async def gitlab_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_gitlab_token: str = Header(alias="X-Gitlab-Token"),
    ) -> dict[str, str]:
        # 1) Webhook secret 校验（GitLab UI 里配置）
        if x_gitlab_token != config.webhook_secret:
            logger.warning("Invalid webhook token")
            raise HTTPException(status_code=401, detail="Invalid webhook token")

        # 2) 非 MR 事件直接忽略（不需要完整解析）
        payload = await request.json()
        if not isinstance(payload, dict) or payload.get("object_kind") != "merge_request":
            logger.debug("Not a merge request event, ignoring")
            return {"status": "ignored"}

        # 3) 解析 payload（结构不对直接 422，便于发现问题）
        try:
            event = GitLabMergeRequestWebhookEvent.model_validate(payload)
        except ValidationError as exc:
            logger.warning(f"Malformed merge request payload: {exc}")
            raise HTTPException(status_code=422, detail="Malformed merge request payload") from exc
        if event.object_attributes.action not in HANDLED_ACTIONS:
            logger.debug(f"MR action {event.object_attributes.action} not handled, ignoring")
            return {"status": "ignored"}

        # 4) 交给后台任务（由 orchestrator 装配的 handler）
        mr_info = build_merge_request_info_from_event(event)
        logger.info(f"Accepted MR !{mr_info.mr_iid} in project {mr_info.project_id}")
        background_tasks.add_task(handler, mr_info)
        return {"status": "ok"}

    @router.post("/api/review")
    async def manual_review(
        project_id: int,
        mr_iid: int,
        background_tasks: BackgroundTasks,
    ) -> dict[str, object]:
        """手动触发：用 CI_PROJECT_ID / CI_MERGE_REQUEST_IID 调用。"""
        if project_id <= 0 or mr_iid <= 0:
            raise HTTPException(status_code=400, detail="project_id and mr_iid must be positive")
        try:
            mr_info = await load_merge_request(project_id, mr_iid)
        except TransportError as exc:
            logger.error(f"Failed to load MR !{mr_iid} in project {project_id}: {exc}")
            status_code = 404 if exc.status_code == 404 else 502
            raise HTTPException(status_code=status_code, detail=f"Cannot load MR !{mr_iid}") from exc

        logger.info(f"Manual review triggered for MR !{mr_info.mr_iid}: {mr_info.title}")
        background_tasks.add_task(handler, mr_info)
        return {
            "status": "ok",
            "project_id": mr_info.project_id,
            "mr_iid": mr_info.mr_iid,
            "title": mr_info.title,
        }

    return router
