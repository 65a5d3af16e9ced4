"""Provider 传输层抽象接口。

聚合器不直接依赖具体厂商的 HTTP SDK，而是依赖此协议：

- 每个厂商实现一个 StreamTransport（如 DeepSeekClient）。
- 负责：发出流式请求，按到达顺序产出原始字节块；
  传输失败时抛出 domain.exceptions 中的业务异常。

帧解析、缓冲与错误语义都由 streaming.aggregator 负责。
"""

import asyncio
from typing import Any, AsyncIterator, Dict, Mapping, Protocol


class StreamTransport(Protocol):
    """流式传输协议。

    实现者需要提供：
    - name: Provider 名称，用于日志。
    - post_streaming_request(...): 异步迭代原始字节块，直到响应结束。
      cancel_event 被设置后应尽快停止产出。
    """

    name: str

    def post_streaming_request(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Mapping[str, str],
        cancel_event: asyncio.Event,
    ) -> AsyncIterator[bytes]:
        ...
