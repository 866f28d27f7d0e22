from __future__ import annotations

import stat
from collections.abc import Sequence
from pathlib import Path

import pytest
from openai import OpenAIError

from mr_review.agent.runner import AgentFindingSource
from mr_review.agent.runner import CliReasoningAgent
from mr_review.agent.runner import LLMReasoningAgent
from mr_review.agent.runner import render_prompt
from mr_review.llm.client import ChatMessage
from mr_review.review.errors import ProcessError
from mr_review.review.models import MergeRequestInfo
from mr_review.review.models import ReviewUnit


def _script(tmp_path: Path, body: str) -> str:
    path = tmp_path / "fake-cli"
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return str(path)


def _unit() -> ReviewUnit:
    return ReviewUnit(
        file_path="src/a.ts",
        diff_text="@@ -1 +1 @@\n+const x = 1",
        context_code="const x = 1",
        language="typescript",
        new_line_start=1,
        mr_info=MergeRequestInfo(
            project_id=1,
            mr_iid=1,
            source_branch="f",
            target_branch="main",
            author="a",
            title="Add x",
        ),
    )


class FakeLLMClient:
    model = "fake-model"

    def __init__(self, reply: str | None = None, error: Exception | None = None) -> None:
        self._reply = reply
        self._error = error
        self.messages: list[ChatMessage] = []

    async def complete_text(self, messages: Sequence[ChatMessage]) -> str:
        self.messages = list(messages)
        if self._error is not None:
            raise self._error
        assert self._reply is not None
        return self._reply


def test_cli_command_shape() -> None:
    agent = CliReasoningAgent(cli_path="cursor", model="sonnet-4.5")
    assert agent.command() == [
        "cursor",
        "agent",
        "--print",
        "--output-format",
        "text",
        "--mode",
        "ask",
        "--model",
        "sonnet-4.5",
    ]


def test_render_prompt_joins_messages() -> None:
    messages = [ChatMessage(role="system", content="rules"), ChatMessage(role="user", content="code")]
    assert render_prompt(messages) == "rules\n\ncode"


@pytest.mark.anyio
async def test_cli_agent_pipes_prompt_and_passes_api_key(tmp_path: Path) -> None:
    cli = _script(tmp_path, 'echo "key=$CURSOR_API_KEY"\ncat')
    agent = CliReasoningAgent(cli_path=cli, model="m", api_key="secret")
    output = await agent.run([ChatMessage(role="user", content="review me")])
    assert output.startswith("key=secret\n")
    assert "review me" in output


@pytest.mark.anyio
async def test_cli_agent_non_zero_exit(tmp_path: Path) -> None:
    cli = _script(tmp_path, "echo 'not logged in' >&2\nexit 3")
    with pytest.raises(ProcessError) as exc_info:
        await CliReasoningAgent(cli_path=cli, model="m").run([ChatMessage(role="user", content="x")])
    assert exc_info.value.returncode == 3
    assert "not logged in" in exc_info.value.stderr


@pytest.mark.anyio
async def test_cli_agent_missing_binary(tmp_path: Path) -> None:
    with pytest.raises(ProcessError):
        await CliReasoningAgent(cli_path=str(tmp_path / "missing"), model="m").run([ChatMessage(role="user", content="x")])


@pytest.mark.anyio
async def test_llm_agent_wraps_gateway_errors() -> None:
    agent = LLMReasoningAgent(llm_client=FakeLLMClient(error=OpenAIError("quota")))
    with pytest.raises(ProcessError):
        await agent.run([ChatMessage(role="user", content="x")])


@pytest.mark.anyio
async def test_agent_finding_source_sends_review_prompt() -> None:
    client = FakeLLMClient(reply='{"comments": []}')
    source = AgentFindingSource(agent=LLMReasoningAgent(llm_client=client), timeout_seconds=5)

    assert source.should_run(_unit())
    assert await source.run(_unit()) == '{"comments": []}'
    assert [m.role for m in client.messages] == ["system", "user"]
    assert "src/a.ts" in client.messages[1].content
    assert "Add x" in client.messages[1].content
