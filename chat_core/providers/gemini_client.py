"""Gemini generateContent 适配器。

- role 重映射：assistant -> model，user 保持不变；
- 内容包在 parts: [{text}] 中，系统提示词放到 systemInstruction；
- API Key 通过 URL 查询参数 key 传递，而不是请求头；
- 采样参数位于 generationConfig（temperature / maxOutputTokens）。
"""

from typing import Any, Dict, Sequence

import httpx

from chat_core.domain.models import ChatSettings, Message, WireRequest, WireResponse
from chat_core.providers.base import BaseAdapter, dig
from chat_core.providers.registry import WireFormat


ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiAdapter(BaseAdapter):
    wire_format = WireFormat.GEMINI

    def encode(self, history: Sequence[Message], system_prompt: str, settings: ChatSettings) -> WireRequest:
        payload: Dict[str, Any] = {
            "contents": [
                {"role": ROLE_MAP[m.role], "parts": [{"text": m.content}]}
                for m in history
                if m.role in ROLE_MAP
            ],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        url = httpx.URL(self.descriptor.url_for(settings.model_id), params={"key": settings.api_key})
        return WireRequest(url=str(url), headers=self._json_headers(), body=payload)

    def decode(self, response: WireResponse) -> str:
        parts = dig(response.body, "candidates", 0, "content", "parts")
        if not isinstance(parts, list):
            raise self._unexpected(response)
        texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        if not texts:
            raise self._unexpected(response)
        return "".join(texts)
