"""
推理 Agent（finding source 之一）。

两种后端：
- `LLMReasoningAgent`：OpenAI-compatible 网关（LiteLLM Proxy）
- `CliReasoningAgent`：本地 Cursor CLI，prompt 通过 stdin 传入

两者都只返回原始文本；解析交给 normalizer（`agent_text`）。
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Protocol

import anyio
import httpx
from openai import OpenAIError

from mr_review.llm.client import ChatMessage
from mr_review.llm.client import OpenAICompatLLMClient
from mr_review.review.errors import ProcessError
from mr_review.review.models import ReviewUnit
from mr_review.review.normalizer import OutputKind
from mr_review.review.prompt import build_review_messages

logger = logging.getLogger(__name__)


class ReasoningAgent(Protocol):
    async def run(self, messages: Sequence[ChatMessage]) -> str: ...


class LLMReasoningAgent:
    """走 LLM 网关的 agent。"""

    def __init__(self, llm_client: OpenAICompatLLMClient) -> None:
        self._llm_client = llm_client

    async def run(self, messages: Sequence[ChatMessage]) -> str:
        try:
            return await self._llm_client.complete_text(messages=messages)
        except (OpenAIError, httpx.HTTPError, RuntimeError) as exc:
            raise ProcessError(command=f"llm:{self._llm_client.model}", returncode=None, stderr=str(exc)) from exc


def render_prompt(messages: Sequence[ChatMessage]) -> str:
    """CLI 只接受一段文本：按顺序拼接所有 message。"""
    return "\n\n".join(m.content for m in messages)


class CliReasoningAgent:
    """
    调用 Cursor CLI（只读 ask 模式）。

    命令：`<cli> agent --print --output-format text --mode ask --model <model>`
    """

    def __init__(self, cli_path: str, model: str, api_key: str | None = None) -> None:
        self._cli_path = cli_path
        self._model = model
        self._api_key = api_key

    def command(self) -> list[str]:
        return [
            self._cli_path,
            "agent",
            "--print",
            "--output-format",
            "text",
            "--mode",
            "ask",
            "--model",
            self._model,
        ]

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self._api_key:
            env["CURSOR_API_KEY"] = self._api_key
        return env

    async def run(self, messages: Sequence[ChatMessage]) -> str:
        cmd = self.command()
        prompt = render_prompt(messages)
        logger.debug(f"Running agent CLI: {' '.join(cmd)} ({len(prompt)} chars on stdin)")
        try:
            result = await anyio.run_process(cmd, input=prompt.encode("utf-8"), check=False, env=self._env())
        except OSError as exc:
            raise ProcessError(command=" ".join(cmd), returncode=None, stderr=str(exc)) from exc

        stdout = result.stdout.decode("utf-8", errors="replace")
        stderr = result.stderr.decode("utf-8", errors="replace")
        if result.returncode != 0:
            logger.error(f"Agent CLI failed: {' '.join(cmd)}\nstderr={stderr}")
            raise ProcessError(command=" ".join(cmd), returncode=result.returncode, stderr=stderr)
        return stdout


class AgentFindingSource:
    """把 ReasoningAgent 包装成 FindingSource：每个 unit 都跑。"""

    name = "agent"
    kind: OutputKind = "agent_text"

    def __init__(self, agent: ReasoningAgent, timeout_seconds: float) -> None:
        self._agent = agent
        self.timeout_seconds = timeout_seconds

    def should_run(self, unit: ReviewUnit) -> bool:
        return True

    async def run(self, unit: ReviewUnit) -> str:
        return await self._agent.run(build_review_messages(unit=unit))
