"""单次流式请求的会话状态。"""

import asyncio
import codecs
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from uuid import uuid4

from assistant_core.domain.exceptions import BusinessError
from assistant_core.domain.models import ChatRequest, StreamSink


class StreamState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({StreamState.COMPLETED, StreamState.FAILED, StreamState.CANCELLED})


@dataclass(eq=False)
class StreamSession:
    """一次请求的全部可变状态，由 StreamAggregator 独占。

    比较按对象身份进行，聚合器据此丢弃旧会话迟到的回调。
    """

    request: ChatRequest
    sink: StreamSink
    session_id: str = field(default_factory=lambda: f"s-{uuid4().hex}")
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    finished: asyncio.Event = field(default_factory=asyncio.Event)
    state: StreamState = StreamState.CONNECTING
    accumulated_content: str = ""
    accumulated_reasoning: str = ""
    line_buffer: str = ""
    started_at: float = field(default_factory=time.monotonic)
    has_received_any_data: bool = False
    done_seen: bool = False
    error: Optional[BusinessError] = None
    decoder: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace")
    )
    pump_task: Optional["asyncio.Task[None]"] = None
    watchdog_task: Optional["asyncio.Task[None]"] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    async def wait(self) -> StreamState:
        """等待会话进入终态并返回该状态。"""
        await self.finished.wait()
        return self.state
