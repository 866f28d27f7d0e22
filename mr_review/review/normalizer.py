"""
Finding Normalizer：把各种来源的原始输出统一成 `Comment` 列表。

三种输入：
- `lint_report`：ESLint 风格的 JSON 报告（按 severity 序数映射，行号需要回推）
- `compiler_text`：tsc 的文本输出（`file(line,col): error TSxxxx: message`）
- `agent_text`：推理 Agent 的自由文本，约定是 `{"comments":[...]}`，但不保证

约定：
- `normalize` 永远不抛异常；解析不出来就返回空列表（由调用方记 warning）
- 所有候选记录最后都要过 `Comment` 的 schema 校验，不合格的直接丢弃
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from typing import Literal

from pydantic import ValidationError

from mr_review.review.errors import ParseError
from mr_review.review.models import Comment
from mr_review.review.models import ReviewUnit
from mr_review.review.models import Severity

logger = logging.getLogger(__name__)

OutputKind = Literal["lint_report", "compiler_text", "agent_text"]

UNKNOWN_FILE = "unknown"

_LINT_SEVERITY: dict[int, Severity] = {2: "error", 1: "warning"}

_FENCE_OPEN = re.compile(r"^\s*```[\w+-]*[ \t]*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?[ \t]*```\s*$")
_COMMENTS_OBJECT = re.compile(r'\{[\s\S]*"comments"[\s\S]*\}')
_NUMBERED_ITEM = re.compile(
    r"^[ \t]*\d+\.[ \t]+\*\*(?P<label>(?:(?!\n[ \t]*\d+\.[ \t]).)+?)[ \t]*\((?P<severity>[^()\n]+)\)\*\*:[ \t]*"
    r"(?P<body>.*?)(?=^[ \t]*\d+\.[ \t]|\Z)",
    re.MULTILINE | re.DOTALL,
)
_FILE_TOKEN = re.compile(r"\bfile:[*\s`]*([^\s`*,]+)", re.IGNORECASE)
_LINE_TOKEN = re.compile(r"\bline:[*\s`]*(\d+)", re.IGNORECASE)
_TSC_ERROR = re.compile(r"\((\d+),(\d+)\):\s+error\s+(TS\d+):\s+(.+)")


def normalize(
    raw_output: str,
    kind: OutputKind,
    unit: ReviewUnit | None = None,
    source: str = "agent",
) -> list[Comment]:
    """
    按 kind 选择解析策略，输出校验过的 `Comment`。

    - unit：静态分析器的行号是相对临时片段的，需要 unit 的上下文信息来回推
    - source：写进 `Comment.source`，用于后续标注来源
    """
    try:
        if kind == "agent_text":
            candidates = _parse_agent_text(raw_output)
        elif kind == "lint_report":
            candidates = _parse_lint_report(raw_output, unit=unit)
        elif kind == "compiler_text":
            candidates = _parse_compiler_text(raw_output, unit=unit)
        else:
            logger.warning(f"Unknown output kind: {kind}")
            return []
        return _validate(candidates, source=source)
    except ParseError as exc:
        logger.warning(f"Could not parse {kind} output from {source}: {exc}")
        return []
    except Exception as exc:
        # 契约：normalizer 不抛错，任何意外都降级为空结果
        logger.warning(f"Unexpected error normalizing {kind} output from {source}: {exc}")
        return []


def strip_code_fence(text: str) -> str:
    """去掉首尾的 ``` 代码块标记（可带语言标签，大小写不敏感）。"""
    stripped = _FENCE_OPEN.sub("", text, count=1)
    stripped = _FENCE_CLOSE.sub("", stripped, count=1)
    return stripped.strip()


def rebase_line(reported_line: int, unit: ReviewUnit) -> int:
    """
    把“相对临时片段”的行号回推到 MR 的真实行号。

    actual = new_line_start - floor(context_line_count / 2) + reported
    没有上下文（或起始行未知）时直接用 reported。
    """
    if unit.context_code and unit.new_line_start > 0:
        context_line_count = len(unit.context_code.split("\n"))
        return unit.new_line_start - context_line_count // 2 + reported_line
    return reported_line


def _validate(candidates: Iterable[dict[str, object]], source: str) -> list[Comment]:
    comments: list[Comment] = []
    for candidate in candidates:
        try:
            comments.append(Comment.model_validate({**candidate, "source": source}))
        except ValidationError:
            continue
    return comments


def _parse_agent_text(raw_output: str) -> list[dict[str, object]]:
    text = strip_code_fence(raw_output)
    if not text:
        raise ParseError("empty agent output")

    payload = _load_comments_object(text)
    if payload is not None:
        return _comments_from_payload(payload["comments"])

    return _parse_numbered_items(text)


def _load_comments_object(text: str) -> dict[str, list[object]] | None:
    # 1) 整段就是 JSON
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if _is_comments_object(parsed):
        return parsed

    # 2) 第一个 `{` 到最后一个 `}`，且中间出现 "comments"
    match = _COMMENTS_OBJECT.search(text)
    if match is not None:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            parsed = None
        if _is_comments_object(parsed):
            return parsed

    # 3) 逐个 `{` 尝试 raw_decode（JSON 后面跟了解释性文字的情况）
    decoder = json.JSONDecoder()
    last_token = text.rfind('"comments"')
    for index, char in enumerate(text):
        if index > last_token:
            break
        if char != "{":
            continue
        try:
            parsed, _ = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            continue
        if _is_comments_object(parsed):
            return parsed
    return None


def _is_comments_object(value: object) -> bool:
    return isinstance(value, dict) and isinstance(value.get("comments"), list)


def _comments_from_payload(items: list[object]) -> list[dict[str, object]]:
    candidates: list[dict[str, object]] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        candidates.append(
            {
                "file": item.get("file"),
                "line": item.get("line"),
                "severity": item.get("severity"),
                "text": item.get("comment", item.get("text")),
            }
        )
    return candidates


def _parse_numbered_items(text: str) -> list[dict[str, object]]:
    """兜底：`1. **标题 (severity)**: 正文` 形式的列表。"""
    candidates: list[dict[str, object]] = []
    for match in _NUMBERED_ITEM.finditer(text):
        preceding = text[: match.start()]
        label = " ".join(match.group("label").split())
        body = match.group("body").strip()
        candidates.append(
            {
                "file": _last_token(_FILE_TOKEN, preceding) or UNKNOWN_FILE,
                "line": int(_last_token(_LINE_TOKEN, preceding) or 1),
                "severity": _severity_from_word(match.group("severity")),
                "text": f"{label}: {body}" if body else label,
            }
        )
    if not candidates:
        raise ParseError("no JSON object and no numbered findings in agent output")
    return candidates


def _last_token(pattern: re.Pattern[str], text: str) -> str | None:
    found = pattern.findall(text)
    if not found:
        return None
    return found[-1]


def _severity_from_word(word: str) -> Severity:
    lowered = word.lower()
    if "error" in lowered or "critical" in lowered:
        return "error"
    if "warning" in lowered:
        return "warning"
    if "suggestion" in lowered:
        return "suggestion"
    return "info"


def _parse_lint_report(raw_output: str, unit: ReviewUnit | None) -> list[dict[str, object]]:
    if unit is None:
        raise ParseError("lint report needs a review unit for file/line mapping")
    try:
        results = json.loads(raw_output)
    except json.JSONDecodeError as exc:
        raise ParseError(f"lint report is not JSON: {exc}") from exc
    if not isinstance(results, list):
        raise ParseError("lint report must be a list of file results")

    candidates: list[dict[str, object]] = []
    for file_result in results:
        if not isinstance(file_result, dict) or not isinstance(file_result.get("messages"), list):
            continue
        for message in file_result["messages"]:
            if not isinstance(message, dict):
                continue
            severity = _lint_severity(message.get("severity"))
            line = message.get("line")
            if severity is None or not isinstance(line, int) or isinstance(line, bool):
                continue
            rule_id = message.get("ruleId")
            text = str(message.get("message", ""))
            if rule_id:
                text = f"{text} ({rule_id})"
            candidates.append(
                {
                    "file": unit.file_path,
                    "line": rebase_line(reported_line=line, unit=unit),
                    "severity": severity,
                    "text": text,
                }
            )
    return candidates


def _lint_severity(ordinal: object) -> Severity | None:
    # 只接受 2/1，其它（包括 0=off）直接丢弃，不做默认映射
    if not isinstance(ordinal, int) or isinstance(ordinal, bool):
        return None
    return _LINT_SEVERITY.get(ordinal)


def _parse_compiler_text(raw_output: str, unit: ReviewUnit | None) -> list[dict[str, object]]:
    if unit is None:
        raise ParseError("compiler output needs a review unit for file/line mapping")
    candidates: list[dict[str, object]] = []
    for match in _TSC_ERROR.finditer(raw_output):
        line = int(match.group(1))
        code = match.group(3)
        message = match.group(4).strip()
        candidates.append(
            {
                "file": unit.file_path,
                "line": rebase_line(reported_line=line, unit=unit),
                "severity": "error",
                "text": f"TypeScript Error {code}: {message}",
            }
        )
    return candidates
