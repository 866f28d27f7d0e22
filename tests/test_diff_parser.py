from __future__ import annotations

from mr_review.review.diff_parser import extract_changed_line_numbers
from mr_review.review.diff_parser import parse_hunks


def test_extract_changed_line_numbers() -> None:
    diff = "\n".join(
        [
            "@@ -1,3 +1,4 @@",
            " line1",
            "-line2",
            "+line2_new",
            "+line3_new",
            " line4",
        ]
    )
    lines = extract_changed_line_numbers(diff=diff)
    assert lines == [2, 3]


def test_parse_hunks_empty_and_headerless_input() -> None:
    assert parse_hunks("") == []
    assert parse_hunks("no headers here") == []


def test_parse_hunks_missing_counts_default_to_one() -> None:
    hunks = parse_hunks("@@ -10 +10 @@\n-old\n+new")
    assert len(hunks) == 1
    assert hunks[0].old_start == 10
    assert hunks[0].old_line_count == 1
    assert hunks[0].new_start == 10
    assert hunks[0].new_line_count == 1


def test_parse_hunks_splits_multiple_hunks_and_keeps_header() -> None:
    diff = "\n".join(
        [
            "diff --git a/a.ts b/a.ts",
            "--- a/a.ts",
            "+++ b/a.ts",
            "@@ -1,2 +1,3 @@ function a() {",
            " a",
            "+b",
            " c",
            "@@ -20,3 +21,2 @@",
            " x",
            "-y",
            " z",
        ]
    )
    hunks = parse_hunks(diff)
    assert [(h.old_start, h.old_line_count, h.new_start, h.new_line_count) for h in hunks] == [
        (1, 2, 1, 3),
        (20, 3, 21, 2),
    ]
    assert hunks[0].content == "@@ -1,2 +1,3 @@ function a() {\n a\n+b\n c"
    assert hunks[1].content.startswith("@@ -20,3 +21,2 @@")
    assert "diff --git" not in hunks[0].content


def test_parse_hunks_new_file_header() -> None:
    hunks = parse_hunks("@@ -0,0 +1,2 @@\n+one\n+two\n")
    assert hunks[0].old_start == 0
    assert hunks[0].old_line_count == 0
    assert hunks[0].new_line_count == 2
    for hunk in hunks:
        assert hunk.content.startswith("@@")
        assert min(hunk.old_start, hunk.new_start, hunk.old_line_count, hunk.new_line_count) >= 0


def test_parse_hunks_malformed_header_is_body_line() -> None:
    hunks = parse_hunks("@@ -1 +1 @@\n+a\n@@ not a header\n+b")
    assert len(hunks) == 1
    assert hunks[0].content.endswith("@@ not a header\n+b")


def test_parse_hunks_keeps_unicode_line_separators_inside_lines() -> None:
    diff = "@@ -1 +1,2 @@\n-const s = 'a';\n+const s = 'a\u2028b';\n+const f = '\x0c';\n"
    hunks = parse_hunks(diff)
    assert len(hunks) == 1
    assert hunks[0].content == diff[:-1]
    assert extract_changed_line_numbers(diff=diff) == [1, 2]
