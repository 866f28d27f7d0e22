"""
静态分析器的公共部分。

分析器拿不到完整仓库，只能分析 unit 里的代码片段：
- 把 `context_code`（为空时退回 hunk diff）写到临时目录里的同名文件
- 在临时目录里跑命令，收集 stdout/stderr
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import anyio

from mr_review.review.errors import ProcessError
from mr_review.review.models import ReviewUnit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


def unit_source_text(unit: ReviewUnit) -> str:
    return unit.context_code or unit.diff_text


def snippet_file_name(file_path: str) -> str:
    """保留原文件名（扩展名决定 eslint/tsc 的解析方式）。"""
    return PurePosixPath(file_path).name or "snippet.txt"


async def run_on_snippet(command: list[str], unit: ReviewUnit) -> CommandResult:
    """
    把 unit 的代码写入临时文件，执行 `command + [临时文件路径]`。

    - 退出码不在这里判断（lint/tsc 发现问题时本来就是非零）
    - 命令本身起不来（例如没装 npx）抛 `ProcessError`
    """
    with tempfile.TemporaryDirectory(prefix="mr-review-") as tmp_dir:
        target = Path(tmp_dir) / snippet_file_name(unit.file_path)
        target.write_text(unit_source_text(unit), encoding="utf-8")
        cmd = [*command, str(target)]
        logger.debug(f"Running analyzer: {' '.join(cmd)}")
        try:
            result = await anyio.run_process(cmd, cwd=tmp_dir, check=False)
        except OSError as exc:
            raise ProcessError(command=" ".join(cmd), returncode=None, stderr=str(exc)) from exc

    return CommandResult(
        returncode=result.returncode,
        stdout=result.stdout.decode("utf-8", errors="replace"),
        stderr=result.stderr.decode("utf-8", errors="replace"),
    )
