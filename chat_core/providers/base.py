"""Provider 适配器接口。

上层 ChatOrchestrator 不直接依赖具体厂商的请求格式，而是依赖此协议：

- 每种线协议变体（WireFormat）实现一个适配器（如 OpenAICompatibleAdapter）。
- encode: 将会话历史 + 系统提示词转成具体 API 的 URL / headers / body。
- decode: 从响应信封中取出助手回复文本。
- decode_error: 从错误信封中取出可读错误信息，取不到时退回 "HTTP status N"，
  且自身永远不抛异常。

HTTP 调用本身由 transport.HttpTransport 完成，适配器保持纯函数。
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence

from chat_core.config.settings import AppConfig, settings as app_config
from chat_core.domain.exceptions import HttpError
from chat_core.domain.models import ChatSettings, Message, WireRequest, WireResponse
from chat_core.providers.registry import ProviderDescriptor, WireFormat


UNEXPECTED_FORMAT = "Unexpected response format"


class ProviderAdapter(Protocol):
    """线协议适配器协议。"""

    wire_format: WireFormat
    descriptor: ProviderDescriptor

    def encode(self, history: Sequence[Message], system_prompt: str, settings: ChatSettings) -> WireRequest:
        ...

    def decode(self, response: WireResponse) -> str:
        ...

    def decode_error(self, response: WireResponse, status: Optional[int] = None) -> HttpError:
        ...


def dig(obj: Any, *path: Any) -> Any:
    """按 key / 下标逐层取值，任何一层不匹配都返回 None 而不是抛异常。"""

    current = obj
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
    return current


class BaseAdapter:
    """各适配器共享的辅助逻辑（采样参数、错误兜底）。"""

    wire_format: WireFormat

    def __init__(self, descriptor: ProviderDescriptor, cfg: Optional[AppConfig] = None):
        self.descriptor = descriptor
        self._config = cfg or app_config

    @property
    def temperature(self) -> float:
        return self._config.temperature

    @property
    def max_tokens(self) -> int:
        return self._config.max_tokens

    def decode_error(self, response: WireResponse, status: Optional[int] = None) -> HttpError:
        status = response.status if status is None else status
        message = self._error_message(response.body)
        if not isinstance(message, str) or not message.strip():
            message = f"HTTP status {status}"
        return HttpError(status=status, provider_message=message, provider=self.descriptor.key)

    def _error_message(self, body: Any) -> Any:
        return dig(body, "error", "message")

    def _unexpected(self, response: WireResponse) -> HttpError:
        return HttpError(status=response.status, provider_message=UNEXPECTED_FORMAT, provider=self.descriptor.key)

    @staticmethod
    def _role_messages(history: Sequence[Message], system_prompt: str) -> List[Dict[str, str]]:
        """system 在前、其余按原顺序的 {role, content} 列表。"""

        msgs: List[Dict[str, str]] = []
        if system_prompt:
            msgs.append({"role": "system", "content": system_prompt})
        msgs.extend({"role": m.role, "content": m.content} for m in history if m.role != "system")
        return msgs

    @staticmethod
    def _json_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(extra or {})
        return headers
