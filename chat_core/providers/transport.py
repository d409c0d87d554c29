"""HTTP 传输层：每次发送对应一次 POST。"""

from typing import Optional

import httpx

from chat_core.config.settings import AppConfig, settings as app_config
from chat_core.domain.exceptions import NetworkError
from chat_core.domain.models import WireRequest, WireResponse


class HttpTransport:
    def __init__(self, cfg: Optional[AppConfig] = None):
        self._config = cfg or app_config

    def post(self, request: WireRequest) -> WireResponse:
        try:
            with httpx.Client(timeout=self._config.http_timeout, trust_env=False) as client:
                resp = client.post(request.url, json=request.body, headers=request.headers)
        except httpx.RequestError as e:
            raise NetworkError(message=str(e) or type(e).__name__)
        try:
            body = resp.json()
        except ValueError:
            body = None
        return WireResponse(status=resp.status_code, body=body, text=resp.text)
