"""
FastAPI 服务入口。

这里做三件事：
- 加载配置（严格校验环境变量）
- 组装外部依赖（HTTP Client / GitLab gateway / agent / 静态分析器 / pipeline）
- 装配路由（health + gitlab webhook + 手动触发）

注意：
- 业务流程不写在这里（由 `review/orchestrator.py` 负责）
- `httpx.AsyncClient` 会被复用（避免每个请求新建连接）
"""

from __future__ import annotations

import logging
import os

import httpx
from fastapi import FastAPI

from mr_review.agent.runner import AgentFindingSource
from mr_review.agent.runner import CliReasoningAgent
from mr_review.agent.runner import LLMReasoningAgent
from mr_review.agent.runner import ReasoningAgent
from mr_review.analyzers.eslint import EslintAnalyzer
from mr_review.analyzers.typescript import TypeScriptAnalyzer
from mr_review.config import AppConfig
from mr_review.config import load_config_from_env
from mr_review.gitlab.adapter import GitLabGateway
from mr_review.gitlab.client import GitLabClient
from mr_review.gitlab.webhook import build_gitlab_webhook_router
from mr_review.llm.client import OpenAICompatLLMClient
from mr_review.review.backend import ReviewBackend
from mr_review.review.orchestrator import PipelineSettings
from mr_review.review.orchestrator import ReviewPipeline
from mr_review.review.orchestrator import build_review_handler
from mr_review.review.publisher import CommentPublisher
from mr_review.review.registry import FindingSourceRegistry
from mr_review.review.registry import build_registry

logger = logging.getLogger(__name__)


def build_agent(config: AppConfig, http_client: httpx.AsyncClient) -> ReasoningAgent:
    """按 AGENT_BACKEND 选择推理后端。"""
    if config.agent_backend == "cli":
        return CliReasoningAgent(cli_path=config.cli.cli_path, model=config.cli.model, api_key=config.cli.api_key)

    if config.llm is None:
        raise ValueError("AGENT_BACKEND=llm requires LLM_* configuration")
    llm_client = OpenAICompatLLMClient(
        api_key=config.llm.api_key,
        base_url=str(config.llm.base_url).rstrip("/"),
        http_client=http_client,
        model=config.llm.model,
    )
    return LLMReasoningAgent(llm_client=llm_client)


def build_finding_registry(config: AppConfig, agent: ReasoningAgent) -> FindingSourceRegistry:
    """agent 总是启用；静态分析器按 ENABLED_ANALYZERS 挑选。"""
    review = config.review
    available = [
        AgentFindingSource(agent=agent, timeout_seconds=review.agent_timeout_seconds),
        EslintAnalyzer(timeout_seconds=review.analyzer_timeout_seconds),
        TypeScriptAnalyzer(timeout_seconds=review.analyzer_timeout_seconds),
    ]
    return build_registry(available=available, enabled=("agent", *review.enabled_analyzers))


def build_app() -> FastAPI:
    """创建并返回 FastAPI app（便于测试/复用）。"""

    # 1) 配置：缺失会直接抛错，启动失败（这是期望行为）
    config = load_config_from_env(os.environ)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # 2) 可复用的 HTTP client：供 GitLab API 与 LLM 调用使用
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0))

    # 3) GitLab：client + gateway（既是 ChangeSource 也是 DiscussionSink）
    gitlab_client = GitLabClient(
        base_url=str(config.gitlab.base_url),
        private_token=config.gitlab.token,
        http_client=http_client,
    )
    gateway = GitLabGateway(client=gitlab_client)

    # 4) finding sources：启动时构建一次，之后只读
    agent = build_agent(config=config, http_client=http_client)
    registry = build_finding_registry(config=config, agent=agent)

    pipeline = ReviewPipeline(
        changes=gateway,
        backend=ReviewBackend(registry=registry),
        publisher=CommentPublisher(sink=gateway),
        settings=PipelineSettings(
            context_lines=config.review.context_lines,
            max_files_per_mr=config.review.max_files_per_mr,
            max_concurrent_requests=config.review.max_concurrent_requests,
        ),
    )
    logger.info(f"Review pipeline ready: backend={config.agent_backend}, sources={registry.names()}")

    app = FastAPI(title="MR Review Bot", version="0.1.0")

    @app.get("/health")
    async def health() -> dict[str, str]:
        """健康检查：用于 k8s / LB 探活。"""
        return {"status": "ok"}

    app.include_router(
        build_gitlab_webhook_router(
            config=config.gitlab,
            handler=build_review_handler(pipeline),
            load_merge_request=gateway.fetch_merge_request_info,
        )
    )
    return app


# Uvicorn 默认会从模块级变量 `app` 读取 ASGI 应用
app = build_app()
