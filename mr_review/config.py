"""
应用配置加载。

设计目标：
- **严格**：缺少必要环境变量就直接报错（避免“看起来跑了其实没配置好”）
- **类型安全**：使用 Pydantic 校验 URL/数字范围等，减少运行时踩坑
- **可测试**：核心加载函数接收 `environ` 显式输入，便于单元测试
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, Field, HttpUrl, ValidationError

DEFAULT_ENABLED_ANALYZERS: tuple[str, ...] = ("eslint", "typescript")


class GitLabConfig(BaseModel):
    """GitLab 连接配置（全部必填）。"""

    base_url: HttpUrl
    token: str
    webhook_secret: str


class LLMConfig(BaseModel):
    """OpenAI-compatible 网关（LiteLLM Proxy）配置。"""

    base_url: HttpUrl
    api_key: str
    model: str


class CliAgentConfig(BaseModel):
    """Cursor CLI agent 配置。"""

    cli_path: str = "cursor"
    model: str = "sonnet-4.5"
    api_key: str | None = None


class ReviewConfig(BaseModel):
    """pipeline 限额与 finding source 开关。"""

    context_lines: int = Field(default=100, ge=0)
    max_files_per_mr: int = Field(default=50, gt=0)
    max_concurrent_requests: int = Field(default=3, gt=0)
    agent_timeout_seconds: float = Field(default=180.0, gt=0)
    analyzer_timeout_seconds: float = Field(default=10.0, gt=0)
    enabled_analyzers: tuple[str, ...] = DEFAULT_ENABLED_ANALYZERS


class AppConfig(BaseModel):
    """应用运行所需的配置集合。"""

    gitlab: GitLabConfig
    agent_backend: Literal["llm", "cli"] = "llm"
    llm: LLMConfig | None = None
    cli: CliAgentConfig = Field(default_factory=CliAgentConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    log_level: str = "INFO"


def _missing(environ: Mapping[str, str], keys: tuple[str, ...]) -> list[str]:
    return [key for key in keys if key not in environ or not environ[key]]


def _parse_analyzers(raw: str | None) -> tuple[str, ...]:
    """逗号分隔；未设置用默认值，空串表示关闭所有分析器。"""
    if raw is None:
        return DEFAULT_ENABLED_ANALYZERS
    return tuple(name.strip() for name in raw.split(",") if name.strip())


def load_config_from_env(environ: Mapping[str, str]) -> AppConfig:
    """
    从环境变量加载并校验配置。

    - **输入**：`environ`（例如 `os.environ`）
    - **输出**：`AppConfig`
    - **失败**：缺失/为空/取值非法则抛 `ValueError`
    """

    backend = environ.get("AGENT_BACKEND") or "llm"
    if backend not in ("llm", "cli"):
        raise ValueError(f"Unsupported AGENT_BACKEND: {backend} (expected llm or cli)")

    required_keys: tuple[str, ...] = ("GITLAB_BASE_URL", "GITLAB_TOKEN", "GITLAB_WEBHOOK_SECRET")
    if backend == "llm":
        required_keys += ("LLM_BASE_URL", "LLM_API_KEY", "LLM_MODEL")

    missing = _missing(environ, required_keys)
    if missing:
        raise ValueError(f"Missing required env vars: {', '.join(missing)}")

    review_overrides: dict[str, object] = {}
    for env_key, field_name in (
        ("CONTEXT_LINES", "context_lines"),
        ("MAX_FILES_PER_MR", "max_files_per_mr"),
        ("MAX_CONCURRENT_REQUESTS", "max_concurrent_requests"),
        ("AGENT_TIMEOUT_SECONDS", "agent_timeout_seconds"),
        ("ANALYZER_TIMEOUT_SECONDS", "analyzer_timeout_seconds"),
    ):
        if environ.get(env_key):
            review_overrides[field_name] = environ[env_key]
    review_overrides["enabled_analyzers"] = _parse_analyzers(environ.get("ENABLED_ANALYZERS"))

    llm: LLMConfig | None = None
    if backend == "llm":
        llm = LLMConfig(
            base_url=environ["LLM_BASE_URL"],
            api_key=environ["LLM_API_KEY"],
            model=environ["LLM_MODEL"],
        )

    # 交给 Pydantic 做类型校验（例如 URL 合法性、数值范围）
    try:
        return AppConfig(
            gitlab=GitLabConfig(
                base_url=environ["GITLAB_BASE_URL"],
                token=environ["GITLAB_TOKEN"],
                webhook_secret=environ["GITLAB_WEBHOOK_SECRET"],
            ),
            agent_backend=backend,
            llm=llm,
            cli=CliAgentConfig(
                cli_path=environ.get("CURSOR_CLI_PATH") or "cursor",
                model=environ.get("CURSOR_MODEL") or "sonnet-4.5",
                api_key=environ.get("CURSOR_API_KEY") or None,
            ),
            review=ReviewConfig(**review_overrides),
            log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
        )
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
