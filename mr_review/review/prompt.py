"""
推理 Agent 的 prompt 信封。

只有输出契约是固定的：`{"comments":[{"file","line","severity","comment"}]}`。
规则/措辞可以随时调整，不影响 normalizer。
"""

from __future__ import annotations

from mr_review.llm.client import ChatMessage
from mr_review.review.diff_parser import extract_changed_line_numbers
from mr_review.review.models import ReviewUnit

OUTPUT_CONTRACT = (
    '{"comments":[{"file":"path/to/file","line":42,'
    '"severity":"error|warning|info|suggestion","comment":"..."}]}'
)


def _escape_code(code: str) -> str:
    """把代码里的 ``` 转义掉，避免提前闭合 prompt 里的代码块。"""
    return code.replace("```", "\\`\\`\\`")


def build_system_prompt() -> str:
    """system prompt：角色 + 输出必须是纯 JSON。"""
    return (
        "你是资深代码审查工程师。"
        "只指出真实问题（bug、安全漏洞、性能问题、错误处理缺失），不要评论纯风格偏好。"
        "你必须输出严格 JSON（不要 markdown、不要解释），没有问题时输出 {\"comments\": []}。"
    )


def build_user_prompt(unit: ReviewUnit) -> str:
    """user prompt：当前 hunk 的 diff + 周边代码 + MR 信息。"""
    language = unit.language or ""
    changed = extract_changed_line_numbers(diff=unit.diff_text)
    changed_desc = ", ".join(str(n) for n in changed) if changed else "(none)"
    context = _escape_code(unit.context_code) if unit.context_code else "(context unavailable)"
    mr = unit.mr_info
    return (
        f"输出 JSON，必须符合 schema: {OUTPUT_CONTRACT}\n"
        "要求：\n"
        "- file 必须等于当前文件 path\n"
        "- line 使用 diff 中新文件的行号\n"
        "- severity: error=必须修复, warning=应该处理, info=信息, suggestion=可选改进\n\n"
        f"path: {unit.file_path}\n"
        f"language: {language or 'unknown'}\n"
        f"changed lines (new): {changed_desc}\n\n"
        f"diff:\n```diff\n{_escape_code(unit.diff_text)}\n```\n\n"
        f"context:\n```{language}\n{context}\n```\n\n"
        "MR:\n"
        f"- author: {mr.author}\n"
        f"- title: {mr.title}\n"
        f"- source branch: {mr.source_branch}\n"
        f"- target branch: {mr.target_branch}\n"
    )


def build_review_messages(unit: ReviewUnit) -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content=build_system_prompt()),
        ChatMessage(role="user", content=build_user_prompt(unit=unit)),
    ]
