"""进程级配置模块。

支持从环境变量、.env、config.yaml 加载配置。
这里只放运行环境相关的配置（存储目录、日志、超时、采样参数等）；
用户在界面上保存的 API Key / 模型 / 上下文策略见 store.settings_store。
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
    explicit = os.getenv("CHAT_CONFIG_FILE")
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


class AppConfig(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否截断日志内容")
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    default_model: str = Field(default="grok-4", description="首次启动时的默认模型")
    default_context_policy: str = Field(default="full-history", description="首次启动时的上下文策略")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="生成温度")
    max_tokens: int = Field(default=2000, ge=1, description="单次回复最大 token 数")
    system_prompt: Optional[str] = Field(default=None, description="覆盖内置系统提示词")

    # 用户设置中没有 API Key 时的兜底
    api_key: Optional[str] = Field(default=None, description="通用 API 密钥")
    provider_api_key_env: Dict[str, str] = Field(
        default_factory=lambda: {
            "claude": "ANTHROPIC_API_KEY",
            "openai": "OPENAI_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
            "grok": "XAI_API_KEY",
            "gemini": "GEMINI_API_KEY",
            "deepseek": "DEEPSEEK_API_KEY",
            "kimi": "MOONSHOT_API_KEY",
            "qwen": "DASHSCOPE_API_KEY",
            "minimax": "MINIMAX_API_KEY",
        },
        description="Provider 专用 API Key 的环境变量名",
    )

    model_config = SettingsConfigDict(
        env_prefix="CHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("default_context_policy")
    @classmethod
    def validate_context_policy(cls, v: str) -> str:
        if v not in ("full-history", "last-turn-only"):
            raise ValueError("default_context_policy must be full-history or last-turn-only")
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

    def fallback_api_key(self, provider_key: str) -> Optional[str]:
        """按 Provider 专用环境变量、通用 api_key 的顺序查找兜底密钥。"""

        env_name = self.provider_api_key_env.get(provider_key)
        if env_name and os.getenv(env_name):
            return os.getenv(env_name)
        return self.api_key


settings = AppConfig()
