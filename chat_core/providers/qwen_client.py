"""DashScope (Qwen) 适配器。

请求把会话包在 input.messages 中，采样参数放在独立的 parameters 对象；
响应文本位于 output.text（result_format=message 时为 output.choices[0].message.content）；
错误信封为顶层的 {"code": ..., "message": ...}。
"""

from typing import Any, Sequence

from chat_core.domain.models import ChatSettings, Message, WireRequest, WireResponse
from chat_core.providers.base import BaseAdapter, dig
from chat_core.providers.registry import WireFormat


class QwenAdapter(BaseAdapter):
    wire_format = WireFormat.QWEN

    def encode(self, history: Sequence[Message], system_prompt: str, settings: ChatSettings) -> WireRequest:
        return WireRequest(
            url=self.descriptor.url_for(settings.model_id),
            headers=self._json_headers({"Authorization": f"Bearer {settings.api_key}"}),
            body={
                "model": settings.model_id,
                "input": {"messages": self._role_messages(history, system_prompt)},
                "parameters": {
                    "temperature": self.temperature,
                    "max_tokens": self.max_tokens,
                },
            },
        )

    def decode(self, response: WireResponse) -> str:
        text = dig(response.body, "output", "text")
        if not isinstance(text, str):
            text = dig(response.body, "output", "choices", 0, "message", "content")
        if not isinstance(text, str):
            raise self._unexpected(response)
        return text

    def _error_message(self, body: Any) -> Any:
        return dig(body, "message")
