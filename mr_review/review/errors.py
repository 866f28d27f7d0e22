"""
Review pipeline 的错误类型。

约定：
- 只有 `RetrievalError` 会从 `ReviewPipeline.run` 抛给调用方
- 其余错误都在 unit / comment 粒度被兜住，记日志后继续
"""

from __future__ import annotations


class ReviewError(RuntimeError):
    """所有 review 错误的基类。"""


class RetrievalError(ReviewError):
    """拿不到 MR 的变更列表：整次 run 失败。"""


class UnitExecutionError(ReviewError):
    """单个 review unit 的某个 finding source 执行失败（超时/非零退出/异常）。"""

    def __init__(self, source: str, file_path: str, reason: str) -> None:
        super().__init__(f"{source} failed for {file_path}: {reason}")
        self.source = source
        self.file_path = file_path


class ParseError(ReviewError):
    """原始输出无法解析为结构化 finding（normalizer 内部使用，不外抛）。"""


class PublicationError(ReviewError):
    """单条评论写回失败。"""


class TransportError(ReviewError):
    """GitLab API 返回非 2xx。"""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"GitLab API error {status_code}: {message}")
        self.status_code = status_code


class ProcessError(ReviewError):
    """外部进程（agent CLI / 静态分析器）非零退出或执行失败。"""

    def __init__(self, command: str, returncode: int | None, stderr: str) -> None:
        super().__init__(f"Command failed ({returncode}): {command}\n{stderr}")
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
