"""会话存储。

ConversationStore 独占会话与消息的生命周期：

- 维护有序的会话集合与唯一的"当前会话"指针；
- 每次修改操作都同步写入 StoragePort（无写缓冲）；
- 写入失败时内存状态仍然生效，记录日志后以 PersistenceError 抛给调用方。

所有公开方法都在同一把锁内执行，读操作返回副本，调用方不能绕过
Store 修改内部状态。
"""

import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from chat_core.domain.conversation import DEFAULT_TITLE, Conversation, derive_title
from chat_core.domain.exceptions import (
    ConcurrentSendError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from chat_core.domain.models import Message, utc_now
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.json_store import StoragePort


STORAGE_KEY = "conversations"


class ConversationStore:
    def __init__(
        self,
        storage: StoragePort,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._storage = storage
        self._clock = clock
        self._id_factory = id_factory or (lambda: f"c-{uuid4().hex}")
        self._lock = threading.RLock()
        self._conversations: Dict[str, Conversation] = {}
        self._current_id: Optional[str] = None
        self._last_tick: Optional[datetime] = None
        self._load()

    # ---- 读操作 ----

    @property
    def current_id(self) -> Optional[str]:
        with self._lock:
            return self._current_id

    def get(self, conversation_id: str) -> Conversation:
        with self._lock:
            return self._snapshot(self._require(conversation_id))

    def get_active(self) -> Optional[Conversation]:
        with self._lock:
            if self._current_id is None:
                return None
            return self._snapshot(self._conversations[self._current_id])

    def list(self) -> List[Conversation]:
        """按 updated_at 倒序返回全部会话，时间相同时按 id 排序。"""
        with self._lock:
            return [self._snapshot(c) for c in self._ordered()]

    def is_pending(self, conversation_id: str) -> bool:
        with self._lock:
            return self._require(conversation_id).pending

    # ---- 会话管理 ----

    def create(self) -> Conversation:
        with self._lock:
            cid = self._id_factory()
            while cid in self._conversations:
                cid = self._id_factory()
            now = self._tick()
            conv = Conversation(id=cid, title=DEFAULT_TITLE, created_at=now, updated_at=now)
            # 新会话放在集合头部
            self._conversations = {cid: conv, **self._conversations}
            self._current_id = cid
            logger.info("Created conversation", extra={"extra": {"conversation_id": cid}})
            self._persist()
            return self._snapshot(conv)

    def switch_to(self, conversation_id: str) -> Conversation:
        """切换当前会话，不修改 updated_at，返回完整的消息历史。"""
        with self._lock:
            conv = self._require(conversation_id)
            self._current_id = conversation_id
            self._persist()
            return self._snapshot(conv)

    def rename(self, conversation_id: str, new_title: str) -> Conversation:
        title = (new_title or "").strip()
        if not title:
            raise ValidationError(message="Title must not be empty", conversation_id=conversation_id)
        with self._lock:
            conv = self._require(conversation_id)
            conv.title = title
            conv.title_locked = True
            conv.updated_at = self._tick()
            self._persist()
            return self._snapshot(conv)

    def delete(self, conversation_id: str) -> Optional[str]:
        """删除会话并返回新的当前会话 id（集合为空时为 None）。

        删除的是当前会话时，优先指向列表中紧随其后（更旧）的会话，
        没有更旧的会话时指向列表头部。
        """
        with self._lock:
            self._require(conversation_id)
            ordered = [c.id for c in self._ordered()]
            del self._conversations[conversation_id]
            if self._current_id == conversation_id:
                idx = ordered.index(conversation_id)
                remaining = [cid for cid in ordered if cid != conversation_id]
                if not remaining:
                    self._current_id = None
                elif idx < len(remaining):
                    self._current_id = remaining[idx]
                else:
                    self._current_id = remaining[0]
            logger.info(
                "Deleted conversation",
                extra={"extra": {"conversation_id": conversation_id, "current_id": self._current_id}},
            )
            self._persist()
            return self._current_id

    def clear(self, conversation_id: str) -> Conversation:
        """清空消息并把标题恢复为默认值，会话本身和当前指针保持不变。"""
        with self._lock:
            conv = self._require(conversation_id)
            conv.messages = []
            conv.title = DEFAULT_TITLE
            conv.title_locked = False
            conv.updated_at = self._tick()
            self._persist()
            return self._snapshot(conv)

    # ---- 消息 ----

    def append(self, conversation_id: str, message: Message) -> Conversation:
        with self._lock:
            conv = self._require(conversation_id)
            is_first_user = message.role == "user" and conv.last_user_message() is None
            conv.messages.append(message)
            conv.updated_at = self._tick()
            if is_first_user and not conv.title_locked and conv.title == DEFAULT_TITLE:
                conv.title = derive_title(message.content)
            self._persist()
            return self._snapshot(conv)

    def pop_trailing_assistant(self, conversation_id: str) -> Optional[Message]:
        """若最后一条是助手消息（正常回复或错误）则移除并返回，供重试使用。"""
        with self._lock:
            conv = self._require(conversation_id)
            last = conv.last_message
            if last is None or last.role != "assistant":
                return None
            conv.messages.pop()
            self._persist()
            return last

    # ---- pending 状态（仅内存） ----

    def mark_pending(self, conversation_id: str) -> None:
        """原子地检查并设置 pending；已在进行中时抛出 ConcurrentSendError。"""
        with self._lock:
            conv = self._require(conversation_id)
            if conv.pending:
                raise ConcurrentSendError(conversation_id)
            conv.pending = True

    def clear_pending(self, conversation_id: str) -> None:
        with self._lock:
            conv = self._conversations.get(conversation_id)
            if conv is not None:
                conv.pending = False

    # ---- 内部方法 ----

    def _require(self, conversation_id: str) -> Conversation:
        conv = self._conversations.get(conversation_id)
        if conv is None:
            raise NotFoundError(conversation_id)
        return conv

    def _ordered(self) -> List[Conversation]:
        by_id = sorted(self._conversations.values(), key=lambda c: c.id)
        return sorted(by_id, key=lambda c: c.updated_at, reverse=True)

    def _tick(self) -> datetime:
        """单调递增的时间戳，保证同一进程内后写入的会话排在前面。"""
        now = self._clock()
        if self._last_tick is not None and now <= self._last_tick:
            now = self._last_tick + timedelta(microseconds=1)
        self._last_tick = now
        return now

    @staticmethod
    def _snapshot(conv: Conversation) -> Conversation:
        return replace(conv, messages=list(conv.messages))

    def _persist(self) -> None:
        data = {
            "current_id": self._current_id,
            "conversations": [c.to_dict() for c in self._conversations.values()],
        }
        try:
            self._storage.write(STORAGE_KEY, data)
        except PersistenceError as e:
            logger.error(
                "Failed to persist conversations",
                extra={"extra": {"code": e.code, "error": e.message}},
            )
            raise

    def _load(self) -> None:
        try:
            data = self._storage.read(STORAGE_KEY)
        except PersistenceError as e:
            logger.error(
                "Failed to load conversations, starting empty",
                extra={"extra": {"code": e.code, "error": e.message}},
            )
            return
        if not data:
            return
        for raw in data.get("conversations") or []:
            try:
                conv = Conversation.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.error(
                    "Skipping unreadable conversation record",
                    extra={"extra": {"conversation_id": raw.get("id") if isinstance(raw, dict) else None, "error": repr(e)}},
                )
                continue
            self._conversations[conv.id] = conv
            if self._last_tick is None or conv.updated_at > self._last_tick:
                self._last_tick = conv.updated_at
        current = data.get("current_id")
        if current in self._conversations:
            self._current_id = current
        elif self._conversations:
            self._current_id = self._ordered()[0].id
