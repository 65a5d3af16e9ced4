"""领域层模型与协议。

包含：
- models: ChatMessage / ChatRequest / StreamEvent 以及 StreamSink 协议。
- conversation: 会话历史 ConversationStore 与 StateStore 持久化协议。
- exceptions: 业务异常类型定义。
"""
