"""编辑器聊天会话。

把会话历史、流式聚合器、文件上下文与状态持久化组合在一起，
对宿主编辑器暴露 submit / cancel / clear / 文件管理等便捷接口。
原先散落的全局状态（当前文件、项目文件列表）都收拢到 WorkspaceContext。
"""

from typing import Any, Dict, Iterable, List, Optional

from assistant_core.config.settings import settings
from assistant_core.context.builder import build_code_context
from assistant_core.context.file_provider import ContextProvider, filter_existing, normalize_path
from assistant_core.domain.conversation import ConversationStore, StateStore, WorkspaceContext
from assistant_core.domain.exceptions import BusinessError, ValidationError
from assistant_core.domain.models import ChatRequest, StreamEvent, StreamSink
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.prompts import load_system_prompt
from assistant_core.providers.base import StreamTransport
from assistant_core.providers.registry import resolve_model
from assistant_core.streaming.aggregator import StreamAggregator
from assistant_core.streaming.session import StreamSession

STATE_KEY = "chatState"


class ChatSession:
    """单个聊天面板背后的会话。

    生命周期由宿主编辑器管理：激活时 restore()，每轮回答完成后自动
    save_state()，用户清空时 clear()。
    """

    def __init__(
        self,
        transport: StreamTransport,
        state_store: StateStore,
        context_provider: ContextProvider,
        sink: StreamSink,
        cfg=settings,
        model_name: Optional[str] = None,
        context: Optional[WorkspaceContext] = None,
    ):
        """初始化聊天会话。

        Args:
            transport: 流式传输实现（如 DeepSeekClient）
            state_store: 状态持久化实现（如 JsonStateStore）
            context_provider: 文件读取实现
            sink: UI 事件接收者
            cfg: 配置对象
            model_name: 逻辑模型名（可选，默认取配置）
            context: 初始编辑器上下文（可选）
        """
        self._settings = cfg
        self._state_store = state_store
        self._context_provider = context_provider
        self._sink = sink
        self._model_name = model_name or getattr(cfg, "default_model", "reasoner")
        self.context = context or WorkspaceContext()
        self.history = ConversationStore(
            max_length=getattr(cfg, "max_history_length", 200),
            context=self.context,
        )
        self.ui_state: Dict[str, Any] = {}
        self._aggregator = StreamAggregator(
            store=self.history,
            transport=transport,
            cfg=cfg,
            on_commit=self._on_commit,
        )

    @property
    def aggregator(self) -> StreamAggregator:
        return self._aggregator

    # ---- 对话 ----

    async def submit(self, text: str) -> Optional[StreamSession]:
        """提交一轮用户输入并开始流式请求。

        预检失败（缺少密钥、上下文构建出错等）时向 Sink 发出
        end_loading 与 error 事件并返回 None。
        """
        self._sink.emit(StreamEvent(kind="start_loading"))
        try:
            if not getattr(self._settings, "deepseek_api_key", None):
                raise ValidationError(code="MISSING_API_KEY", message="DEEPSEEK_API_KEY not set")
            await self.update_system_context()
            self.history.append_user(text)
            model_cfg = resolve_model(self._model_name)
            request = ChatRequest(
                model=model_cfg.provider_model,
                messages=self.history.messages,
                max_tokens=model_cfg.cap_max_tokens(getattr(self._settings, "max_tokens", None)),
            )
            session = await self._aggregator.start(request, self._sink)
        except BusinessError as e:
            logger.error(f"Submit failed: {e.message}", extra={"extra": {"code": e.code}})
            self._sink.emit(StreamEvent(kind="end_loading"))
            self._sink.emit(StreamEvent(kind="error", error=e))
            await self._persist()
            return None
        await self._persist(session)
        return session

    async def cancel(self) -> None:
        """中止当前回答；已提交的用户消息保留并落盘。"""
        self._aggregator.cancel()
        self._sink.emit(StreamEvent(kind="end_loading"))
        await self._persist()

    async def clear(self) -> None:
        self._aggregator.cancel()
        self.history.reset()
        self._sink.emit(StreamEvent(kind="cleared"))
        await self.update_system_context()
        await self.save_state()

    def history_view(self) -> List[Dict[str, str]]:
        return [m.to_payload() for m in self.history.deduped_view()]

    # ---- 文件上下文 ----

    async def update_system_context(self) -> None:
        """重新读取文件并替换 system 消息。"""
        if self.context.current_file and not await self._context_provider.exists(self.context.current_file):
            self.context.current_file = None
        code_context = await build_code_context(
            self.context.current_file,
            self.context.project_files,
            self._context_provider,
        )
        self.history.set_system_message(load_system_prompt(code_context))

    async def set_current_file(self, path: Optional[str]) -> None:
        self.context.current_file = normalize_path(path) if path else None
        await self.update_system_context()

    async def add_files(self, paths: Iterable[str]) -> List[str]:
        """固定新的项目文件，返回实际新增的路径。"""
        existing = set(self.context.project_files)
        if self.context.current_file:
            existing.add(normalize_path(self.context.current_file))
        candidates: List[str] = []
        for raw in paths:
            path = normalize_path(raw)
            if path in existing or path in candidates:
                continue
            candidates.append(path)
        added = await filter_existing(candidates, self._context_provider)
        self.context.project_files.extend(added)
        await self.update_system_context()
        return added

    async def remove_file(self, path: str) -> None:
        target = normalize_path(path)
        self.context.project_files = [f for f in self.context.project_files if normalize_path(f) != target]
        if self.context.current_file and normalize_path(self.context.current_file) == target:
            self.context.current_file = None
        await self.update_system_context()
        await self.save_state()

    def file_list(self) -> List[str]:
        """当前文件在前，其后为其余项目文件。"""
        current = self.context.current_file
        files = [current] if current else []
        files.extend(f for f in self.context.project_files if f != current)
        return files

    # ---- 持久化 ----

    async def save_state(self) -> None:
        self.history.trim()
        max_files = getattr(self._settings, "max_project_files", 50)
        blob = {
            "conversation_history": self.history.to_payload(),
            "project_files": self.context.project_files[-max_files:],
            "current_file": self.context.current_file,
            "ui": dict(self.ui_state),
        }
        self._state_store.set(STATE_KEY, blob)

    async def restore(self) -> None:
        """从 StateStore 恢复状态；读取失败时记录日志并以空会话开始。"""
        try:
            blob = self._state_store.get(STATE_KEY) or {}
        except BusinessError as e:
            logger.error(f"Failed to restore state: {e.message}", extra={"extra": {"code": e.code}})
            blob = {}

        current = blob.get("current_file")
        if current and await self._context_provider.exists(current):
            self.context.current_file = normalize_path(current)
        else:
            self.context.current_file = None

        files = [normalize_path(f) for f in blob.get("project_files") or [] if isinstance(f, str)]
        self.context.project_files = await filter_existing(files, self._context_provider)
        self.history.load(blob.get("conversation_history") or [])
        self.ui_state = dict(blob.get("ui") or {})

    async def _on_commit(self, session: StreamSession) -> None:
        await self._persist(session)

    async def _persist(self, session: Optional[StreamSession] = None) -> None:
        """保存状态，失败只记录日志。"""
        try:
            await self.save_state()
        except BusinessError as e:
            extra = {"code": e.code}
            if session is not None:
                extra["session_id"] = session.session_id
            logger.error(f"Failed to persist state: {e.message}", extra={"extra": extra})
