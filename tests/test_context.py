from __future__ import annotations

import pytest

from mr_review.review.context import build_context
from mr_review.review.context import build_review_units
from mr_review.review.context import infer_language_from_path
from mr_review.review.models import DiffHunk
from mr_review.review.models import FileChange
from mr_review.review.models import MergeRequestInfo


def _mr_info() -> MergeRequestInfo:
    return MergeRequestInfo(
        project_id=1,
        mr_iid=2,
        source_branch="feature",
        target_branch="main",
        author="alice",
        title="t",
    )


def _body(n: int) -> str:
    return "\n".join(f"line{i}" for i in range(1, n + 1))


def test_infer_language_from_path() -> None:
    assert infer_language_from_path("src/a.TS") == "typescript"
    assert infer_language_from_path("src/a.tsx") == "typescript"
    assert infer_language_from_path("lib/b.js") == "javascript"
    assert infer_language_from_path("Makefile") is None


def test_build_context_window_bounds() -> None:
    body = _body(300)
    hunk = DiffHunk(old_start=150, old_line_count=3, new_start=150, new_line_count=3, content="@@ -150,3 +150,3 @@")
    context = build_context(file_body=body, hunk=hunk, window_size=10)
    lines = context.split("\n")
    assert lines[0] == "line140"
    assert lines[-1] == "line162"
    assert len(lines) <= 2 * 10 + 3


def test_build_context_clamped_to_file() -> None:
    body = _body(5)
    hunk = DiffHunk(old_start=1, new_start=1, new_line_count=2, content="@@ -1 +1,2 @@")
    context = build_context(file_body=body, hunk=hunk, window_size=100)
    assert context == body


def test_build_context_property_holds_for_many_inputs() -> None:
    body = _body(40)
    for new_start in (0, 1, 5, 20, 39, 40, 60):
        for count in (0, 1, 7):
            for window in (0, 1, 3, 100):
                hunk = DiffHunk(old_start=1, new_start=new_start, new_line_count=count, content="@@")
                context = build_context(file_body=body, hunk=hunk, window_size=window)
                if not context:
                    continue
                lines = context.split("\n")
                assert len(lines) <= 2 * window + count
                assert all(line.startswith("line") for line in lines)


def test_build_context_empty_body_and_negative_window() -> None:
    hunk = DiffHunk(old_start=1, new_start=1, content="@@ -1 +1 @@")
    assert build_context(file_body="", hunk=hunk, window_size=3) == ""
    with pytest.raises(ValueError):
        build_context(file_body="a", hunk=hunk, window_size=-1)


def test_build_review_units_one_per_hunk() -> None:
    change = FileChange(
        file_path="src/a.ts",
        diff_text="",
        hunks=[
            DiffHunk(old_start=1, new_start=1, content="@@ -1 +1 @@\n-a\n+b"),
            DiffHunk(old_start=30, new_start=31, new_line_count=2, content="@@ -30 +31,2 @@\n+c\n+d"),
        ],
        language="typescript",
    )
    units = build_review_units(file_change=change, file_body=_body(50), mr_info=_mr_info(), window_size=2)
    assert [u.new_line_start for u in units] == [1, 31]
    assert units[1].old_line_start == 30
    assert units[1].diff_text == "@@ -30 +31,2 @@\n+c\n+d"
    assert units[1].context_code.split("\n")[0] == "line29"
    assert all(u.language == "typescript" for u in units)


def test_build_review_units_skips_deleted_file() -> None:
    change = FileChange(
        file_path="src/gone.ts",
        diff_text="",
        is_deleted=True,
        hunks=[DiffHunk(old_start=1, new_start=0, new_line_count=0, content="@@ -1 +0,0 @@\n-x")],
    )
    assert build_review_units(file_change=change, file_body="", mr_info=_mr_info()) == []
