"""ESLint 分析器：JSON 报告，交给 normalizer 的 `lint_report` 解析。"""

from __future__ import annotations

from mr_review.analyzers.base import run_on_snippet
from mr_review.review.errors import ProcessError
from mr_review.review.models import ReviewUnit
from mr_review.review.normalizer import OutputKind
from mr_review.review.registry import supports_language

ESLINT_COMMAND: tuple[str, ...] = ("npx", "eslint", "--format", "json", "--no-eslintrc")


class EslintAnalyzer:
    name = "eslint"
    kind: OutputKind = "lint_report"
    languages: tuple[str, ...] = ("javascript", "typescript")

    def __init__(self, timeout_seconds: float, command: tuple[str, ...] = ESLINT_COMMAND) -> None:
        self.timeout_seconds = timeout_seconds
        self._command = command

    def should_run(self, unit: ReviewUnit) -> bool:
        return supports_language(self.languages, unit.language)

    async def run(self, unit: ReviewUnit) -> str:
        # 退出码 1 = 有 lint 问题，报告照样在 stdout；只有没有报告才算失败
        result = await run_on_snippet(list(self._command), unit)
        if not result.stdout.strip():
            raise ProcessError(command=" ".join(self._command), returncode=result.returncode, stderr=result.stderr)
        return result.stdout
