"""OpenAI 兼容协议适配器。

Grok / OpenAI / Kimi / DeepSeek / OpenRouter 均使用 chat/completions 端点：
- 认证: Authorization: Bearer <api_key>
- 请求: {model, messages: [system, ...history], temperature, max_tokens}
- 响应: choices[0].message.content
- 错误: {"error": {"message": ...}}
"""

from typing import Any, Dict, Sequence

from chat_core.domain.models import ChatSettings, Message, WireRequest, WireResponse
from chat_core.providers.base import BaseAdapter, dig
from chat_core.providers.registry import WireFormat


class OpenAICompatibleAdapter(BaseAdapter):
    wire_format = WireFormat.OPENAI_COMPATIBLE

    def encode(self, history: Sequence[Message], system_prompt: str, settings: ChatSettings) -> WireRequest:
        return WireRequest(
            url=self.descriptor.url_for(settings.model_id),
            headers=self._json_headers({"Authorization": f"Bearer {settings.api_key}"}),
            body=self._build_payload(history, system_prompt, settings),
        )

    def decode(self, response: WireResponse) -> str:
        content = dig(response.body, "choices", 0, "message", "content")
        if not isinstance(content, str):
            raise self._unexpected(response)
        return content

    def _build_payload(self, history: Sequence[Message], system_prompt: str, settings: ChatSettings) -> Dict[str, Any]:
        return {
            "model": settings.model_id,
            "messages": self._role_messages(history, system_prompt),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
