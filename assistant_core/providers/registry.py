"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "reasoner"。
- provider_model：厂商实际提供的模型 ID，例如 "deepseek-reasoner"。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置。"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int  # 模型单次回答的 token 上限

    def cap_max_tokens(self, requested: Optional[int]) -> int:
        """配置值不超过模型上限；未配置时使用模型上限。"""
        if not requested:
            return self.max_tokens
        return min(requested, self.max_tokens)


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    models: Dict[str, ModelConfig]


DEEPSEEK_CONFIG = ProviderConfig(
    name="deepseek",
    models={
        "reasoner": ModelConfig(
            logical_name="reasoner",
            provider_model="deepseek-reasoner",
            max_tokens=8192,
        ),
        "chat": ModelConfig(
            logical_name="chat",
            provider_model="deepseek-chat",
            max_tokens=8192,
        ),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "deepseek": DEEPSEEK_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")


def resolve_model(logical_name: str, provider: str = "deepseek") -> ModelConfig:
    """逻辑模型名 -> ModelConfig；未登记的名称原样当作厂商模型 ID。"""

    cfg = get_provider_config(provider)
    if logical_name in cfg.models:
        return cfg.models[logical_name]
    return ModelConfig(logical_name=logical_name, provider_model=logical_name, max_tokens=8192)
