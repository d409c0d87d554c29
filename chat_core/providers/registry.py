"""Provider 描述与模型注册表。

每个 ProviderDescriptor 描述一个厂商：端点（可含 {model} 占位符）、
线协议变体（WireFormat）以及支持的模型 ID 列表。注册表在导入时定义，
运行期间只读。

resolve(model_id) 按注册顺序扫描各 Provider 的模型列表，区分大小写、
精确匹配，返回第一个命中的 Provider。多个 Provider 声明同一模型 ID
属于配置错误，此时以注册顺序靠前者为准（例如 "deepseek-chat" 只由
deepseek 声明，而 OpenRouter 使用带前缀的 "deepseek/deepseek-r1"）。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Tuple

from chat_core.domain.exceptions import UnknownModelError


class WireFormat(str, Enum):
    OPENAI_COMPATIBLE = "openai-compatible"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    QWEN = "qwen"
    MINIMAX = "minimax"


@dataclass(frozen=True)
class ProviderDescriptor:
    """某个 Provider 的只读配置。"""

    key: str
    name: str
    endpoint: str
    wire_format: WireFormat
    models: Tuple[str, ...]

    def url_for(self, model_id: str) -> str:
        return self.endpoint.format(model=model_id)


OPENROUTER = ProviderDescriptor(
    key="openrouter",
    name="OpenRouter",
    endpoint="https://openrouter.ai/api/v1/chat/completions",
    wire_format=WireFormat.OPENAI_COMPATIBLE,
    models=(
        "x-ai/grok-4",
        "x-ai/grok-4-fast",
        "anthropic/claude-sonnet-4.5",
        "anthropic/claude-opus-4.1",
        "google/gemini-2.5-pro",
        "moonshotai/kimi-k2-thinking",
        "minimax/minimax-m2",
        "deepseek/deepseek-r1",
        "deepseek/deepseek-chat-v3",
        "qwen/qwen3-max",
    ),
)

GROK = ProviderDescriptor(
    key="grok",
    name="Grok",
    endpoint="https://api.x.ai/v1/chat/completions",
    wire_format=WireFormat.OPENAI_COMPATIBLE,
    models=("grok-4", "grok-4-fast", "grok-beta", "grok-vision-beta"),
)

OPENAI = ProviderDescriptor(
    key="openai",
    name="OpenAI",
    endpoint="https://api.openai.com/v1/chat/completions",
    wire_format=WireFormat.OPENAI_COMPATIBLE,
    models=("gpt-4o", "gpt-4o-mini", "gpt-4.1"),
)

CLAUDE = ProviderDescriptor(
    key="claude",
    name="Claude",
    endpoint="https://api.anthropic.com/v1/messages",
    wire_format=WireFormat.ANTHROPIC,
    models=(
        "claude-sonnet-4.5",
        "claude-opus-4.1",
        "claude-sonnet-4-20250514",
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
    ),
)

KIMI = ProviderDescriptor(
    key="kimi",
    name="Kimi",
    endpoint="https://api.moonshot.cn/v1/chat/completions",
    wire_format=WireFormat.OPENAI_COMPATIBLE,
    models=("kimi-k2-thinking", "moonshot-v1-8k", "moonshot-v1-32k", "moonshot-v1-128k"),
)

MINIMAX = ProviderDescriptor(
    key="minimax",
    name="Minimax",
    endpoint="https://api.minimax.chat/v1/text/chatcompletion_v2",
    wire_format=WireFormat.MINIMAX,
    models=("minimax-m2", "abab6.5-chat", "abab6.5s-chat", "abab5.5-chat"),
)

QWEN = ProviderDescriptor(
    key="qwen",
    name="Qwen",
    endpoint="https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation",
    wire_format=WireFormat.QWEN,
    models=("qwen-3", "qwen-3-max", "qwen-3-vl", "qwen-turbo", "qwen-plus", "qwen-max"),
)

DEEPSEEK = ProviderDescriptor(
    key="deepseek",
    name="DeepSeek",
    endpoint="https://api.deepseek.com/chat/completions",
    wire_format=WireFormat.OPENAI_COMPATIBLE,
    models=("deepseek-r1", "deepseek-v3", "deepseek-chat", "deepseek-coder"),
)

GEMINI = ProviderDescriptor(
    key="gemini",
    name="Gemini",
    endpoint="https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
    wire_format=WireFormat.GEMINI,
    models=("gemini-2.5-pro", "gemini-1.5-pro", "gemini-1.5-flash", "gemini-1.0-pro"),
)


# 顺序即 resolve 的优先级
PROVIDER_REGISTRY: Mapping[str, ProviderDescriptor] = {
    d.key: d for d in (OPENROUTER, GROK, OPENAI, CLAUDE, KIMI, MINIMAX, QWEN, DEEPSEEK, GEMINI)
}


def resolve(
    model_id: str,
    registry: Mapping[str, ProviderDescriptor] = PROVIDER_REGISTRY,
) -> ProviderDescriptor:
    """返回第一个声明支持 model_id 的 Provider，找不到时抛出 UnknownModelError。"""

    for descriptor in registry.values():
        if model_id in descriptor.models:
            return descriptor
    raise UnknownModelError(model_id)


def all_models(registry: Mapping[str, ProviderDescriptor] = PROVIDER_REGISTRY) -> Tuple[str, ...]:
    """按注册顺序列出全部模型 ID，供设置界面的下拉框使用。"""

    return tuple(m for d in registry.values() for m in d.models)
