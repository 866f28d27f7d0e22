from __future__ import annotations

import re

from mr_review.review.models import DiffHunk

# @@ -a[,b] +c[,d] @@
_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


def _split_lines(text: str) -> list[str]:
    # 只按 \n 切；\u2028 等字符属于行内容
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def parse_hunks(diff_text: str) -> list[DiffHunk]:
    """
    把 unified diff 拆成 hunk 列表。

    - header 之前的行直接丢弃（还没有打开的 hunk）
    - 缺省的 `,count` 当作 1
    - 不抛错：空 diff / 不合法 diff 返回空列表
    """
    hunks: list[DiffHunk] = []
    header: re.Match[str] | None = None
    body: list[str] = []

    for line in _split_lines(diff_text):
        match = _HUNK_HEADER.match(line)
        if match is not None:
            if header is not None:
                hunks.append(_build_hunk(header=header, body=body))
            header = match
            body = [line]
            continue
        if header is not None:
            body.append(line)

    if header is not None:
        hunks.append(_build_hunk(header=header, body=body))
    return hunks


def _build_hunk(header: re.Match[str], body: list[str]) -> DiffHunk:
    old_start, old_count, new_start, new_count = header.groups()
    return DiffHunk(
        old_start=int(old_start),
        old_line_count=int(old_count) if old_count is not None else 1,
        new_start=int(new_start),
        new_line_count=int(new_count) if new_count is not None else 1,
        content="\n".join(body),
    )


def extract_changed_line_numbers(diff: str) -> list[int]:
    lines = _split_lines(diff)
    changed: list[int] = []
    new_line = 0
    for line in lines:
        if line.startswith("@@"):
            match = _HUNK_HEADER.match(line)
            if match is None:
                continue
            new_line = int(match.group(3))
            continue
        if line.startswith("+") and not line.startswith("+++"):
            changed.append(new_line)
            new_line += 1
            continue
        if line.startswith("-") and not line.startswith("---"):
            continue
        if line.startswith(" "):
            new_line += 1
            continue
    return changed
