"""会话历史与持久化协议。

ConversationStore 只管理内存中的有序消息列表，落盘由外部的
StateStore 负责（例如 JsonStateStore 或宿主编辑器的 workspaceState）。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol

from .models import ROLES, ChatMessage

DEFAULT_MAX_HISTORY = 200


@dataclass
class WorkspaceContext:
    """编辑器侧上下文：当前文件与用户固定的项目文件。"""

    current_file: Optional[str] = None
    project_files: List[str] = field(default_factory=list)


class ConversationStore:
    """有序的对话历史（旧消息在前）。

    - 最多保留一条 system 消息，始终位于下标 0。
    - 连续提交 user 消息时会替换尚未得到回答的上一条 user 消息。
    - 长度上限由 trim() 执行，保留开头的 system 消息。
    """

    def __init__(
        self,
        max_length: int = DEFAULT_MAX_HISTORY,
        context: Optional[WorkspaceContext] = None,
    ):
        if max_length < 2:
            raise ValueError("max_length must be at least 2")
        self.max_length = max_length
        self.context = context or WorkspaceContext()
        self._messages: List[ChatMessage] = []

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def reset(self) -> None:
        """清空历史与固定的项目文件；当前文件属于编辑器状态，保留。"""
        self._messages.clear()
        self.context.project_files = []

    def append_user(self, text: str) -> None:
        if self._messages and self._messages[-1].role == "user":
            self._messages.pop()
        self._messages.append(ChatMessage(role="user", content=text))

    def append_assistant(self, text: str) -> None:
        # 流没有产出任何内容时不写入空回答
        if not text:
            return
        self._messages.append(ChatMessage(role="assistant", content=text))

    def set_system_message(self, text: str) -> None:
        self._messages = [m for m in self._messages if m.role != "system"]
        self._messages.insert(0, ChatMessage(role="system", content=text))

    def trim(self) -> None:
        n = self.max_length
        if len(self._messages) <= n:
            return
        if self._messages[0].role == "system":
            self._messages = [self._messages[0], *self._messages[-(n - 1):]]
        else:
            self._messages = self._messages[-n:]

    def deduped_view(self) -> Iterator[ChatMessage]:
        """展示用视图：去掉 system 消息，(role, content) 重复项只保留第一次出现。"""
        seen = set()
        for msg in self._messages:
            if msg.role == "system":
                continue
            key = (msg.role, msg.content)
            if key in seen:
                continue
            seen.add(key)
            yield msg

    def to_payload(self) -> List[Dict[str, str]]:
        return [m.to_payload() for m in self._messages]

    @classmethod
    def restore(
        cls,
        entries: Iterable[Dict[str, Any]],
        max_length: int = DEFAULT_MAX_HISTORY,
        context: Optional[WorkspaceContext] = None,
    ) -> "ConversationStore":
        store = cls(max_length=max_length, context=context)
        store.load(entries)
        return store

    def load(self, entries: Iterable[Dict[str, Any]]) -> None:
        """用持久化数据替换当前历史：丢弃空内容和未知角色，重复项只保留第一次出现。"""
        messages: List[ChatMessage] = []
        seen = set()
        for raw in entries or []:
            if not isinstance(raw, dict):
                continue
            role = raw.get("role")
            content = raw.get("content") or ""
            if role not in ROLES or not content:
                continue
            key = (role, content)
            if key in seen:
                continue
            seen.add(key)
            messages.append(ChatMessage(role=role, content=content))
        self._messages = messages


class StateStore(Protocol):
    """小型状态块的键值存储。"""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    def set(self, key: str, blob: Dict[str, Any]) -> None:
        ...
