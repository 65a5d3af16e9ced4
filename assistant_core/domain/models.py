"""统一的对话、请求与流式事件数据模型。

本模块定义了聚合器、会话层与 UI Sink 之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- ChatRequest: 发给 DeepSeek 的完整流式请求。
- StreamEvent: 聚合器推送给 Sink 的事件。
- StreamSink: UI 侧接收事件的协议。
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Protocol

from assistant_core.domain.exceptions import BusinessError


# 消息角色类型（与 DeepSeek / OpenAI 的 role 字段对应）
Role = Literal["system", "user", "assistant"]

ROLES = ("system", "user", "assistant")


@dataclass
class ChatMessage:
    """一条对话消息，既用于请求体，也用于持久化的历史记录。"""

    role: Role
    content: str

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatRequest:
    """一次流式聊天请求。

    model 为厂商实际模型 ID（如 "deepseek-reasoner"），由会话层通过
    registry 从逻辑模型名解析得到。
    """

    model: str
    messages: List[ChatMessage]
    max_tokens: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_payload() for m in self.messages],
        }
        if self.max_tokens:
            payload["max_tokens"] = self.max_tokens
        payload["stream"] = True
        return payload


StreamEventKind = Literal["start_loading", "delta", "completed", "end_loading", "error", "cleared"]

# 事件种类到 webview 消息 command 的映射
_COMMANDS: Dict[str, str] = {
    "start_loading": "startLoading",
    "delta": "streamResponse",
    "completed": "endLoading",
    "end_loading": "endLoading",
    "error": "showError",
    "cleared": "clearHistory",
}


@dataclass
class StreamEvent:
    """推送给 UI Sink 的事件。

    kind:
        - "start_loading": 已提交一轮对话，UI 进入加载状态。
        - "delta": 内容增量；content 为回答正文，reasoning 为思维链旁路。
          is_final=True 的空增量表示传输已经结束。
        - "completed": 收到 `data: [DONE]` 终止行。
        - "end_loading": 流被提前终止（坏行、超时、传输错误），UI 回到就绪状态。
        - "error": 需要展示给用户的错误，error 字段携带具体异常。
        - "cleared": 会话历史已清空。
    """

    kind: StreamEventKind
    content: str = ""
    reasoning: str = ""
    is_final: bool = False
    error: Optional[BusinessError] = None

    def to_message(self) -> Dict[str, Any]:
        """转换为 webview postMessage 使用的消息格式。"""
        msg: Dict[str, Any] = {"command": _COMMANDS[self.kind]}
        if self.kind == "delta":
            msg.update(text=self.content, reasoning=self.reasoning, isFinal=self.is_final)
        elif self.kind == "error" and self.error is not None:
            msg["message"] = self.error.message
        return msg


class StreamSink(Protocol):
    """UI 侧事件接收者。

    实现者可以合并高频更新（例如防抖刷新），但必须按接收顺序处理事件。
    """

    def emit(self, event: StreamEvent) -> None:
        ...
