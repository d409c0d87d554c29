"""LLM Provider 集成层。

该包下的模块负责：
- 定义适配器协议与共享辅助逻辑 (base)。
- 维护 Provider 描述与模型注册表 (registry)。
- 每种线协议变体一个适配器实现 (openai_client、anthropic_client 等)。
- 执行 HTTP 调用 (transport)。
"""

from typing import Dict, Optional, Type

from chat_core.config.settings import AppConfig
from chat_core.providers.anthropic_client import AnthropicAdapter
from chat_core.providers.base import BaseAdapter, ProviderAdapter
from chat_core.providers.gemini_client import GeminiAdapter
from chat_core.providers.minimax_client import MinimaxAdapter
from chat_core.providers.openai_client import OpenAICompatibleAdapter
from chat_core.providers.qwen_client import QwenAdapter
from chat_core.providers.registry import ProviderDescriptor, WireFormat, resolve


ADAPTERS: Dict[WireFormat, Type[BaseAdapter]] = {
    WireFormat.OPENAI_COMPATIBLE: OpenAICompatibleAdapter,
    WireFormat.ANTHROPIC: AnthropicAdapter,
    WireFormat.GEMINI: GeminiAdapter,
    WireFormat.QWEN: QwenAdapter,
    WireFormat.MINIMAX: MinimaxAdapter,
}


def create_adapter(descriptor: ProviderDescriptor, cfg: Optional[AppConfig] = None) -> ProviderAdapter:
    """根据描述中的线协议变体创建适配器实例。"""

    return ADAPTERS[descriptor.wire_format](descriptor, cfg)


def adapter_for_model(model_id: str, cfg: Optional[AppConfig] = None) -> ProviderAdapter:
    return create_adapter(resolve(model_id), cfg)


__all__ = ["ADAPTERS", "ProviderAdapter", "adapter_for_model", "create_adapter"]
