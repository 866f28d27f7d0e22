from __future__ import annotations

import anyio
import pytest

from mr_review.review.backend import ReviewBackend
from mr_review.review.models import MergeRequestInfo
from mr_review.review.models import ReviewUnit
from mr_review.review.normalizer import OutputKind
from mr_review.review.registry import build_registry
from mr_review.review.registry import supports_language


class FakeSource:
    def __init__(
        self,
        name: str,
        output: str = "",
        kind: OutputKind = "agent_text",
        languages: tuple[str, ...] = (),
        fail: bool = False,
        delay: float = 0.0,
        timeout_seconds: float = 5.0,
    ) -> None:
        self.name = name
        self.kind = kind
        self.timeout_seconds = timeout_seconds
        self._output = output
        self._languages = languages
        self._fail = fail
        self._delay = delay

    def should_run(self, unit: ReviewUnit) -> bool:
        return supports_language(self._languages, unit.language)

    async def run(self, unit: ReviewUnit) -> str:
        if self._delay:
            await anyio.sleep(self._delay)
        if self._fail:
            raise RuntimeError("exit code 2")
        return self._output


def _unit(language: str | None = "typescript") -> ReviewUnit:
    return ReviewUnit(
        file_path="a.ts",
        diff_text="@@ -1 +1 @@\n+x",
        context_code="",
        language=language,
        new_line_start=1,
        mr_info=MergeRequestInfo(
            project_id=1,
            mr_iid=1,
            source_branch="f",
            target_branch="main",
            author="a",
            title="t",
        ),
    )


def _agent_json(text: str) -> str:
    return '{"comments":[{"file":"a.ts","line":1,"severity":"info","comment":"%s"}]}' % text


def test_build_registry_selects_enabled_in_order() -> None:
    registry = build_registry([FakeSource("agent"), FakeSource("eslint"), FakeSource("typescript")], enabled=["typescript", "agent"])
    assert registry.names() == ["typescript", "agent"]


def test_build_registry_rejects_unknown_and_duplicates() -> None:
    with pytest.raises(ValueError):
        build_registry([FakeSource("agent")], enabled=["pylint"])
    with pytest.raises(ValueError):
        build_registry([FakeSource("agent"), FakeSource("agent")], enabled=None)


def test_supports_language() -> None:
    assert supports_language((), None)
    assert supports_language(("typescript",), "typescript")
    assert not supports_language(("typescript",), "python")
    assert not supports_language(("typescript",), None)


@pytest.mark.anyio
async def test_backend_merges_sources_in_registry_order() -> None:
    registry = build_registry(
        [
            FakeSource("agent", output=_agent_json("slow"), delay=0.05),
            FakeSource("other", output=_agent_json("fast")),
        ],
        enabled=None,
    )
    comments = await ReviewBackend(registry=registry).review(_unit())
    assert [(c.text, c.source) for c in comments] == [("slow", "agent"), ("fast", "other")]


@pytest.mark.anyio
async def test_backend_failed_or_slow_source_yields_nothing() -> None:
    registry = build_registry(
        [
            FakeSource("agent", output=_agent_json("kept")),
            FakeSource("broken", fail=True),
            FakeSource("slow", output=_agent_json("late"), delay=1.0, timeout_seconds=0.05),
        ],
        enabled=None,
    )
    comments = await ReviewBackend(registry=registry).review(_unit())
    assert [c.text for c in comments] == ["kept"]


@pytest.mark.anyio
async def test_backend_skips_sources_for_other_languages() -> None:
    registry = build_registry(
        [FakeSource("agent", output=_agent_json("a")), FakeSource("ts-only", output=_agent_json("b"), languages=("typescript",))],
        enabled=None,
    )
    comments = await ReviewBackend(registry=registry).review(_unit(language="python"))
    assert [c.text for c in comments] == ["a"]
