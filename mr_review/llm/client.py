"""
LLM Client（基于 OpenAI SDK，对接 LiteLLM Proxy）。

目标：
- **尽量薄**：只做协议适配与错误处理
- **统一接口**：通过 OpenAI-compatible API 访问 LiteLLM Proxy
- 输出解析不在这里做（交给 finding normalizer，模型输出格式不可信）
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """OpenAI chat message 的最小结构。"""

    role: str
    content: str


def _normalize_base_url(base_url: str) -> str:
    normalized = base_url.rstrip("/")
    if normalized.endswith("/v1"):
        return normalized
    return f"{normalized}/v1"


class OpenAICompatLLMClient:
    """通过 LiteLLM 调用 LLM（模型路由 / retry 由 proxy 负责）。"""

    def __init__(self, api_key: str, base_url: str, http_client: httpx.AsyncClient, model: str) -> None:
        """
        - api_key: LLM API key
        - base_url: OpenAI-compatible base URL（LiteLLM Proxy 的地址）
        - http_client: 复用 httpx.AsyncClient 连接池
        - model: 模型名（由 LiteLLM Proxy 路由）
        """
        self._base_url = _normalize_base_url(base_url=base_url)
        self._model = model
        self._client = AsyncOpenAI(api_key=api_key, base_url=self._base_url, http_client=http_client)

    @property
    def model(self) -> str:
        return self._model

    async def complete_text(self, messages: Sequence[ChatMessage]) -> str:
        """
        调用 completion 并返回纯文本 content。

        出错直接抛异常，由 reasoning agent 统一转成 `ProcessError`。
        """
        try:
            logger.info(f"LLM request: model={self._model}, messages={len(messages)} msg(s)")
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[m.model_dump() for m in messages],
            )
        except OpenAIError as exc:
            logger.error(f"LLM API error: {exc}")
            raise
        except httpx.HTTPError as exc:
            logger.error(f"LLM HTTP error: {exc}")
            raise

        content = response.choices[0].message.content
        if content is None:
            logger.error("LLM returned None content")
            raise RuntimeError("LLM returned None content")

        logger.info(f"LLM response: {len(content)} chars")
        return str(content)
