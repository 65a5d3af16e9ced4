"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
优先级：显式参数 > 环境变量 > .env > config.yaml。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("ASSISTANT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class AssistantSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- DeepSeek 相关配置 ----
    deepseek_api_key: Optional[str] = Field(default=None, description="DeepSeek API 密钥")
    deepseek_endpoint: str = Field(
        default="https://api.deepseek.com/v1/chat/completions",
        description="流式对话接口地址",
    )
    deepseek_balance_url: str = Field(
        default="https://api.deepseek.com/user/balance",
        description="用于校验 API 密钥的余额查询接口",
    )
    default_model: str = Field(
        default="reasoner",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    max_tokens: Optional[int] = Field(default=2000, ge=1, description="单次回答的最大 token 数")

    # ---- 流式与网络 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 连接超时时间（秒）")
    watchdog_timeout: float = Field(
        default=20.0,
        gt=0,
        description="发出请求后多久仍未收到任何数据即判定超时（秒）",
    )
    settle_delay: float = Field(
        default=0.5,
        ge=0,
        description="流结束后等待 UI 刷新完成再写入历史的延迟（秒）",
    )

    # ---- 会话与上下文 ----
    max_history_length: int = Field(default=200, ge=2, description="会话历史最大保留条数")
    max_project_files: int = Field(default=50, ge=1, description="持久化时保留的项目文件数")
    workspace_root: str = Field(
        default_factory=lambda: str(Path.cwd()),
        description="可读取上下文文件的项目根目录",
    )

    # ---- 存储与日志 ----
    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("deepseek_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = AssistantSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = AssistantSettings
