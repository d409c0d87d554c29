"""Anthropic Messages API 适配器。

与 OpenAI 协议的区别：
- 系统提示词放在顶层 system 字段，messages 中只保留 user/assistant；
- 认证使用 x-api-key，并且必须带 anthropic-version；
- max_tokens 为必填项；
- 响应为 content 数组，取其中的 text 块。
"""

from typing import Any, Dict, Sequence

from chat_core.domain.models import ChatSettings, Message, WireRequest, WireResponse
from chat_core.providers.base import BaseAdapter, dig
from chat_core.providers.registry import WireFormat


ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(BaseAdapter):
    wire_format = WireFormat.ANTHROPIC

    def encode(self, history: Sequence[Message], system_prompt: str, settings: ChatSettings) -> WireRequest:
        payload: Dict[str, Any] = {
            "model": settings.model_id,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [
                {"role": m.role, "content": m.content} for m in history if m.role in ("user", "assistant")
            ],
        }
        if system_prompt:
            payload["system"] = system_prompt
        return WireRequest(
            url=self.descriptor.url_for(settings.model_id),
            headers=self._json_headers({
                "x-api-key": settings.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            }),
            body=payload,
        )

    def decode(self, response: WireResponse) -> str:
        blocks = dig(response.body, "content")
        if not isinstance(blocks, list):
            raise self._unexpected(response)
        texts = [b["text"] for b in blocks if isinstance(b, dict) and isinstance(b.get("text"), str)]
        if not texts:
            raise self._unexpected(response)
        return "".join(texts)
