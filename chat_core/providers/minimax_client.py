"""Minimax 适配器。

请求体与 OpenAI 兼容协议相同，但响应带有 base_resp 信封：
base_resp.status_code 非 0 时即使 HTTP 200 也视为失败，错误信息位于
base_resp.status_msg。
"""

from typing import Any

from chat_core.domain.exceptions import HttpError
from chat_core.domain.models import WireResponse
from chat_core.providers.base import dig
from chat_core.providers.openai_client import OpenAICompatibleAdapter
from chat_core.providers.registry import WireFormat


class MinimaxAdapter(OpenAICompatibleAdapter):
    wire_format = WireFormat.MINIMAX

    def decode(self, response: WireResponse) -> str:
        code = dig(response.body, "base_resp", "status_code")
        if code not in (None, 0):
            msg = dig(response.body, "base_resp", "status_msg")
            if not isinstance(msg, str) or not msg:
                msg = f"Minimax error {code}"
            raise HttpError(status=response.status, provider_message=msg, provider=self.descriptor.key)
        return super().decode(response)

    def _error_message(self, body: Any) -> Any:
        return dig(body, "base_resp", "status_msg")
