"""统一的消息、设置与线协议数据模型。

本模块定义了 Chat Core 内部在不同 Provider 之间共享的标准数据结构：

- Message: 一条已追加到会话中的消息（system/user/assistant），追加后不可变。
- ChatSettings: 用户可保存的设置（API Key、模型、上下文策略）。
- WireRequest / WireResponse: Provider 适配器与 HTTP 传输层之间交换的原始请求/响应。

所有 Provider 适配器都只依赖这些模型，并负责在各自的 API JSON
和这些模型之间做转换。
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional


# 消息角色（与 OpenAI 等厂商的 role 字段对应）
Role = Literal["system", "user", "assistant"]

ROLES = ("system", "user", "assistant")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def from_iso(value: str) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class ContextPolicy(str, Enum):
    """发送时携带多少历史：全部历史，或只带最新一条用户消息。"""

    FULL_HISTORY = "full-history"
    LAST_TURN_ONLY = "last-turn-only"


@dataclass(frozen=True)
class Message:
    """会话中的一条消息。

    顺序只由追加顺序决定；timestamp 仅用于展示和持久化。
    """

    role: Role
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content, "timestamp": to_iso(self.timestamp)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=data["role"],
            content=data.get("content") or "",
            timestamp=from_iso(data["timestamp"]) if data.get("timestamp") else utc_now(),
        )


@dataclass(frozen=True)
class ChatSettings:
    """用户设置。

    整体保存、整体替换（frozen），不会出现部分字段生效的情况。
    voice_output_enabled 为前端语音播报开关，核心层只负责持久化。
    """

    api_key: str = ""
    model_id: str = "grok-4"
    context_policy: ContextPolicy = ContextPolicy.FULL_HISTORY
    voice_output_enabled: bool = False

    def with_changes(self, **changes: Any) -> "ChatSettings":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "api_key": self.api_key,
            "model_id": self.model_id,
            "context_policy": self.context_policy.value,
            "voice_output_enabled": self.voice_output_enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatSettings":
        return cls(
            api_key=data.get("api_key") or "",
            model_id=data.get("model_id") or cls.model_id,
            context_policy=ContextPolicy(data.get("context_policy") or ContextPolicy.FULL_HISTORY.value),
            voice_output_enabled=bool(data.get("voice_output_enabled", False)),
        )


@dataclass
class WireRequest:
    """适配器 encode 的产物：一次 HTTP POST 的全部内容。"""

    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]


@dataclass
class WireResponse:
    """HTTP 传输层返回的原始响应。

    - status: HTTP 状态码。
    - body: 解析后的 JSON；响应不是 JSON 时为 None。
    - text: 原始响应文本，用于日志与兜底。
    """

    status: int
    body: Optional[Any] = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300
