"""Context provider abstraction + local implementation."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Protocol


def normalize_path(file_path: str) -> str:
    """统一为正斜杠并折叠 `.`/`..` 段。"""
    return os.path.normpath(file_path).replace("\\", "/")


class ContextProvider(Protocol):
    """统一的文件读取接口，宿主编辑器可以替换为自己的实现。"""

    async def exists(self, path: str) -> bool:
        ...

    async def read_text(self, path: str) -> str:
        ...


@dataclass
class LocalFileContextProvider:
    """本地文件系统实现，只允许读取 project_root 之内的文件。"""

    project_root: Path

    def __post_init__(self) -> None:
        self.project_root = Path(self.project_root).resolve()

    # ---- helpers -------------------------------------------------

    def _resolve(self, raw: str) -> Path:
        base = Path(raw).expanduser()
        candidate = (self.project_root / base).resolve() if not base.is_absolute() else base.resolve()
        try:
            candidate.relative_to(self.project_root)
        except ValueError as exc:
            raise PermissionError(f"path outside project root: {raw}") from exc
        return candidate

    # ---- read ops ------------------------------------------------

    async def exists(self, path: str) -> bool:
        try:
            resolved = self._resolve(path)
        except PermissionError:
            return False
        return await asyncio.to_thread(resolved.is_file)

    async def read_text(self, path: str) -> str:
        resolved = self._resolve(path)
        if not await asyncio.to_thread(resolved.is_file):
            raise FileNotFoundError(f"file not found: {path}")
        return await asyncio.to_thread(resolved.read_text, encoding="utf-8")


async def filter_existing(paths: List[str], provider: ContextProvider) -> List[str]:
    """逐个等待存在性检查，返回仍然存在的文件（保持原顺序）。"""

    checks = await asyncio.gather(*(provider.exists(p) for p in paths))
    return [p for p, ok in zip(paths, checks) if ok]
