"""流式响应处理：会话状态 (session) 与增量聚合器 (aggregator)。"""

from assistant_core.streaming.aggregator import StreamAggregator
from assistant_core.streaming.session import StreamSession, StreamState

__all__ = ["StreamAggregator", "StreamSession", "StreamState"]
