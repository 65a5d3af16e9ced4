"""LLM Provider 集成层。

该包下的模块负责：
- 定义流式传输抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供厂商的具体实现 (deepseek_client)。
"""

from typing import Optional

from assistant_core.config.settings import settings
from assistant_core.providers.base import StreamTransport
from assistant_core.providers.deepseek_client import DeepSeekClient


def create_provider(name: Optional[str] = None) -> StreamTransport:
    """根据名称创建传输实例，目前只支持 deepseek。"""

    provider_name = (name or "deepseek").lower()
    if provider_name != "deepseek":
        raise KeyError(f"Unknown provider: {name!r}")
    return DeepSeekClient(settings)

