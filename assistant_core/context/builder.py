"""把当前文件与项目文件拼装成 system 消息中的代码上下文。"""

from pathlib import PurePosixPath
from typing import List, Optional

from assistant_core.context.file_provider import ContextProvider, normalize_path
from assistant_core.context.sanitizer import sanitize_markdown_text
from assistant_core.infrastructure.logging.logger import logger

# 后缀 -> 代码块语言标记
LANGUAGE_IDS = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".json": "json",
    ".md": "markdown",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".java": "java",
    ".kt": "kotlin",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".sh": "shellscript",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".sql": "sql",
    ".xml": "xml",
}


def language_id(path: str) -> str:
    return LANGUAGE_IDS.get(PurePosixPath(path).suffix.lower(), "plaintext")


def _code_block(label: str, path: str, text: str) -> str:
    return f"{label}: {path}\n```{language_id(path)}\n{text}\n```\n\n"


async def build_code_context(
    current_file: Optional[str],
    project_files: List[str],
    provider: ContextProvider,
) -> str:
    """读取文件并渲染为 Markdown 代码块；读取失败的文件记录日志后跳过。"""

    parts: List[str] = []
    current = normalize_path(current_file) if current_file else None

    if current:
        try:
            text = await provider.read_text(current)
            parts.append(_code_block("Current File", current, text))
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Error reading current file", extra={"extra": {"path": current, "error": str(e)}})

    for raw in project_files:
        path = normalize_path(raw)
        if path == current:
            continue
        try:
            text = await provider.read_text(path)
            parts.append(_code_block("Project File", path, sanitize_markdown_text(text)))
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Error reading project file", extra={"extra": {"path": path, "error": str(e)}})

    return "".join(parts)
