from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import Message, from_iso, to_iso, utc_now


DEFAULT_TITLE = "New Chat"
TITLE_MAX_CHARS = 50
TITLE_ELLIPSIS = "..."


def derive_title(text: str) -> str:
    """由首条用户消息生成标题：超过 50 个字符时截断并追加省略号。"""

    text = text.strip()
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + TITLE_ELLIPSIS
    return text


@dataclass
class Conversation:
    """一个聊天会话。

    - title_locked: 用户手动重命名后为 True，之后不再自动推导标题。
    - pending: 是否有发送请求正在进行中；仅存在于内存，不持久化。
    """

    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    messages: List[Message] = field(default_factory=list)
    title_locked: bool = False
    pending: bool = False

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    def last_user_message(self) -> Optional[Message]:
        for msg in reversed(self.messages):
            if msg.role == "user":
                return msg
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "title_locked": self.title_locked,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        created = from_iso(data["created_at"]) if data.get("created_at") else utc_now()
        return cls(
            id=data["id"],
            title=data.get("title") or DEFAULT_TITLE,
            created_at=created,
            updated_at=from_iso(data["updated_at"]) if data.get("updated_at") else created,
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            title_locked=bool(data.get("title_locked", False)),
        )
