"""tsc 类型检查：纯文本输出，交给 normalizer 的 `compiler_text` 解析。"""

from __future__ import annotations

from mr_review.analyzers.base import run_on_snippet
from mr_review.review.models import ReviewUnit
from mr_review.review.normalizer import OutputKind
from mr_review.review.registry import supports_language

TSC_COMMAND: tuple[str, ...] = ("npx", "tsc", "--noEmit", "--skipLibCheck")


class TypeScriptAnalyzer:
    name = "typescript"
    kind: OutputKind = "compiler_text"
    languages: tuple[str, ...] = ("typescript",)

    def __init__(self, timeout_seconds: float, command: tuple[str, ...] = TSC_COMMAND) -> None:
        self.timeout_seconds = timeout_seconds
        self._command = command

    def should_run(self, unit: ReviewUnit) -> bool:
        return supports_language(self.languages, unit.language)

    async def run(self, unit: ReviewUnit) -> str:
        # 有类型错误时 tsc 非零退出；错误信息在 stdout（个别版本写 stderr）
        result = await run_on_snippet(list(self._command), unit)
        return result.stdout or result.stderr
