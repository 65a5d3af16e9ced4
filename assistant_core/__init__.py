"""Assistant Core 顶层包。

该包提供编辑器聊天助手的核心实现：配置加载、领域模型、
会话历史、DeepSeek 流式传输、增量流聚合器、文件上下文构建
以及状态持久化。UI 渲染由宿主编辑器负责，不在本包范围内。
"""

from assistant_core.agents.chat_session import ChatSession, WorkspaceContext

__all__ = ["ChatSession", "WorkspaceContext"]
