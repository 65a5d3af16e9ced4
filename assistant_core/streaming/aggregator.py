"""增量流式响应聚合器。

消费 Provider 返回的分块字节流，按行重组 `data: <JSON>` 事件，
拆出回答正文与 reasoning 旁路增量，并以 StreamEvent 推送给 Sink。

状态机：IDLE -> CONNECTING -> STREAMING -> {COMPLETED | FAILED | CANCELLED}

- 同一时刻最多一个活动会话，start() 会先取消旧会话。
- 所有回调都带会话身份校验，旧会话迟到的字节、结束或错误回调一律丢弃。
- 单行 JSON 解析失败只记录诊断并发出 end_loading，不终止会话。
"""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from assistant_core.config.settings import settings
from assistant_core.domain.conversation import ConversationStore
from assistant_core.domain.exceptions import (
    BusinessError,
    MalformedEventError,
    NetworkError,
    StreamCancelledError,
    StreamTimeoutError,
)
from assistant_core.domain.models import ChatRequest, StreamEvent, StreamSink
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.providers.base import StreamTransport
from assistant_core.streaming.session import StreamSession, StreamState

DATA_PREFIX = "data: "
DONE_LINE = "data: [DONE]"

CommitHook = Callable[[StreamSession], Awaitable[None]]


def extract_delta(event: Any) -> Tuple[str, str]:
    """从一条事件记录中取出 (content, reasoning_content)，缺失时为空串。"""

    if not isinstance(event, dict):
        return "", ""
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return "", ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return "", ""
    content = delta.get("content")
    reasoning = delta.get("reasoning_content")
    return (
        content if isinstance(content, str) else "",
        reasoning if isinstance(reasoning, str) else "",
    )


class StreamAggregator:
    """单会话流式聚合器。

    Args:
        store: 完成时写入助手回答的 ConversationStore。
        transport: 发出流式请求的传输实现。
        cfg: 配置对象，读取 endpoint、api key、看门狗与延迟参数。
        on_commit: 助手回答写入历史后调用的异步钩子（例如持久化）。
    """

    def __init__(
        self,
        store: ConversationStore,
        transport: StreamTransport,
        cfg=settings,
        on_commit: Optional[CommitHook] = None,
    ):
        self._store = store
        self._transport = transport
        self._settings = cfg
        self._on_commit = on_commit
        self._session: Optional[StreamSession] = None

    @property
    def session(self) -> Optional[StreamSession]:
        return self._session

    @property
    def state(self) -> StreamState:
        if self._session is None:
            return StreamState.IDLE
        return self._session.state

    # ---- 生命周期 ----

    def open(self, request: ChatRequest, sink: StreamSink) -> StreamSession:
        """取消旧会话并创建新会话（CONNECTING），不发出网络请求。"""

        previous = self._session
        if previous is not None and not previous.is_terminal:
            self._abort(previous, StreamState.CANCELLED)
            self._log_session(previous, "Cancelled previous stream session")
        session = StreamSession(request=request, sink=sink)
        self._session = session
        return session

    async def start(self, request: ChatRequest, sink: StreamSink) -> StreamSession:
        """打开新会话并在当前事件循环中启动传输泵与看门狗。"""

        session = self.open(request, sink)
        loop = asyncio.get_running_loop()
        session.pump_task = loop.create_task(self._pump(session))
        session.watchdog_task = loop.create_task(self._watchdog(session))
        self._log_session(
            session,
            "Started stream session",
            model=request.model,
            message_count=len(request.messages),
        )
        return session

    def cancel(self) -> None:
        """主动取消：中止传输，丢弃已累积的部分回答。"""

        session = self._session
        if session is None or session.is_terminal:
            return
        self._abort(session, StreamState.CANCELLED)
        self._log_session(session, "Stream cancelled", discarded_chars=len(session.accumulated_content))

    # ---- 传输回调 ----

    def on_bytes_received(self, chunk: Union[bytes, str], session: Optional[StreamSession] = None) -> None:
        session = session or self._session
        if not self._is_live(session):
            return
        if isinstance(chunk, bytes):
            text = session.decoder.decode(chunk)
        else:
            text = chunk
        if session.state == StreamState.CONNECTING:
            session.state = StreamState.STREAMING

        lines = (session.line_buffer + text).split("\n")
        # 最后一段可能不完整，留到下一个块
        session.line_buffer = lines.pop()
        for raw in lines:
            self._process_line(session, raw.strip())
            if not self._is_live(session):
                return

    async def on_stream_end(self, session: Optional[StreamSession] = None) -> None:
        session = session or self._session
        if not self._is_live(session):
            return
        # 未以换行结尾的残留片段不处理
        self._disarm_watchdog(session)
        self._emit(session, StreamEvent(kind="delta", content="", reasoning="", is_final=True))

        # 给 UI 留出渲染最后一个增量的时间
        await asyncio.sleep(getattr(self._settings, "settle_delay", 0.5))
        if not self._is_live(session):
            return
        self._store.append_assistant(session.accumulated_content)
        session.state = StreamState.COMPLETED
        self._log_session(
            session,
            "Stream completed",
            content_chars=len(session.accumulated_content),
            reasoning_chars=len(session.accumulated_reasoning),
            elapsed_seconds=round(time.monotonic() - session.started_at, 2),
        )
        try:
            if self._on_commit is not None:
                await self._on_commit(session)
        finally:
            session.finished.set()

    def on_transport_error(self, error: BaseException, session: Optional[StreamSession] = None) -> None:
        session = session or self._session
        if not self._is_live(session):
            return
        if session.cancel_event.is_set() or isinstance(error, StreamCancelledError):
            self._abort(session, StreamState.CANCELLED)
            return
        if isinstance(error, BusinessError):
            err = error
        else:
            err = NetworkError(code="NETWORK_ERROR", message=str(error) or type(error).__name__)
        self._fail(session, err)

    # ---- 内部实现 ----

    def _process_line(self, session: StreamSession, line: str) -> None:
        if not line:
            return
        if line == DONE_LINE:
            self._mark_data(session)
            if not session.done_seen:
                session.done_seen = True
                self._emit(session, StreamEvent(kind="completed"))
            return
        if not line.startswith(DATA_PREFIX):
            return

        try:
            event = json.loads(line[len(DATA_PREFIX):])
        except json.JSONDecodeError:
            diag = MalformedEventError(line, session_id=session.session_id)
            logger.warning(diag.message, extra={"extra": {"session_id": session.session_id, "code": diag.code}})
            self._emit(session, StreamEvent(kind="end_loading"))
            return

        self._mark_data(session)
        content, reasoning = extract_delta(event)
        if not content and not reasoning:
            return
        session.accumulated_content += content
        session.accumulated_reasoning += reasoning
        self._emit(session, StreamEvent(kind="delta", content=content, reasoning=reasoning, is_final=False))

    def _mark_data(self, session: StreamSession) -> None:
        if not session.has_received_any_data:
            session.has_received_any_data = True
            self._disarm_watchdog(session)

    async def _pump(self, session: StreamSession) -> None:
        request = session.request
        try:
            async for chunk in self._transport.post_streaming_request(
                self._settings.deepseek_endpoint,
                self._build_payload(request),
                self._build_headers(),
                session.cancel_event,
            ):
                self.on_bytes_received(chunk, session=session)
                if not self._is_live(session):
                    return
        except asyncio.CancelledError:
            self.on_transport_error(StreamCancelledError(), session=session)
            raise
        except Exception as exc:
            self.on_transport_error(exc, session=session)
            return
        await self.on_stream_end(session)

    async def _watchdog(self, session: StreamSession) -> None:
        timeout = getattr(self._settings, "watchdog_timeout", 20.0)
        await asyncio.sleep(timeout)
        if self._is_live(session) and not session.has_received_any_data:
            self._fail(session, StreamTimeoutError(timeout, session_id=session.session_id))

    def _fail(self, session: StreamSession, error: BusinessError) -> None:
        session.error = error
        self._abort(session, StreamState.FAILED)
        logger.error(
            f"Stream failed: {error.message}",
            extra={"extra": {"session_id": session.session_id, "code": error.code, "http_status": error.http_status}},
        )
        self._emit(session, StreamEvent(kind="end_loading"))
        self._emit(session, StreamEvent(kind="error", error=error))

    def _abort(self, session: StreamSession, state: StreamState) -> None:
        session.state = state
        session.cancel_event.set()
        current = _current_task()
        for task in (session.pump_task, session.watchdog_task):
            if task is None or task.done() or task is current:
                continue
            task.cancel()
        session.finished.set()

    def _disarm_watchdog(self, session: StreamSession) -> None:
        task = session.watchdog_task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    def _is_live(self, session: Optional[StreamSession]) -> bool:
        return session is not None and session is self._session and not session.is_terminal

    def _emit(self, session: StreamSession, event: StreamEvent) -> None:
        session.sink.emit(event)

    def _build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        return request.to_payload()

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.deepseek_api_key}",
            "Content-Type": "application/json",
        }

    def _log_session(self, session: StreamSession, msg: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"session_id": session.session_id, "state": session.state.value}
        payload.update(fields)
        logger.info(msg, extra={"extra": payload})


def _current_task() -> Optional["asyncio.Task[Any]"]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
