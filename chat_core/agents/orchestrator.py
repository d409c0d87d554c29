"""Chat 发送流程编排。

一次 send_message 的步骤：

1. 前置检查（按顺序）：空输入 -> 同会话并发 -> 缺少 API Key -> 未知模型，
   任一失败都在修改存储之前直接抛出；
2. 追加用户消息，会话进入 pending；
3. 通过注册表找到适配器，按上下文策略组装历史并 encode；
4. 执行 HTTP 调用并 decode；
5. 成功时追加助手回复，失败时追加 "Error: <message>" 并把同一个错误
   报告给调用方，最后清除 pending。

Orchestrator 不缓存会话，每一步都从 ConversationStore 重新读取；
也不直接写存储，所有修改都经由 Store 的方法完成。
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from chat_core.config.settings import AppConfig, settings as app_config
from chat_core.domain.exceptions import (
    BusinessError,
    ConcurrentSendError,
    EmptyInputError,
    HttpError,
    MissingApiKeyError,
    NetworkError,
    NotFoundError,
    PersistenceError,
    SendCancelledError,
    UnknownModelError,
)
from chat_core.domain.models import ChatSettings, ContextPolicy, Message
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import load_system_prompt
from chat_core.providers import create_adapter
from chat_core.providers.registry import PROVIDER_REGISTRY, ProviderDescriptor, resolve
from chat_core.providers.transport import HttpTransport
from chat_core.store.conversation_store import ConversationStore
from chat_core.store.settings_store import SettingsStore


StatusState = Literal["ready", "loading", "error"]


@dataclass(frozen=True)
class Status:
    """状态栏信息，与会话中最后一条助手消息保持一致。"""

    state: StatusState
    text: str


READY = Status(state="ready", text="Ready")


@dataclass
class SendOutcome:
    """一次发送的结果。

    - reply: 追加到会话中的助手消息（成功回复或错误消息）。
    - error: 网络阶段的规范化错误（NetworkError / HttpError），成功时为 None。
    - persistence_error: 发送过程中某次持久化失败时记录在这里，不影响发送本身。
    """

    conversation_id: str
    reply: Message
    status: Status
    error: Optional[BusinessError] = None
    persistence_error: Optional[PersistenceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def assemble_context(messages: Sequence[Message], policy: ContextPolicy) -> List[Message]:
    """按上下文策略选出要发送的历史（不含系统提示词）。"""

    if policy == ContextPolicy.LAST_TURN_ONLY:
        for msg in reversed(messages):
            if msg.role == "user":
                return [msg]
        return []
    return [m for m in messages if m.role != "system"]


class ChatOrchestrator:
    def __init__(
        self,
        store: ConversationStore,
        settings_store: SettingsStore,
        transport: Optional[HttpTransport] = None,
        registry: Mapping[str, ProviderDescriptor] = PROVIDER_REGISTRY,
        config: Optional[AppConfig] = None,
    ):
        self._store = store
        self._settings = settings_store
        self._config = config or app_config
        self._transport = transport or HttpTransport(self._config)
        self._registry = registry
        self._system_prompt = load_system_prompt(self._config.system_prompt)
        self._lock = threading.RLock()
        self._tickets: Dict[str, str] = {}
        self.status: Status = READY

    # ---- 公开接口 ----

    def send_message(self, conversation_id: str, raw_text: str) -> SendOutcome:
        text = (raw_text or "").strip()
        if not text:
            raise EmptyInputError()

        def append_user(log_ctx: Dict[str, Any]) -> Optional[PersistenceError]:
            return self._guard_persist(
                lambda: self._store.append(conversation_id, Message(role="user", content=text)),
                log_ctx,
            )

        return self._send(conversation_id, append_user)

    def retry(self, conversation_id: str) -> SendOutcome:
        """移除末尾的助手消息（无论成功或错误），用最后一条用户消息重新发送。"""

        conv = self._store.get(conversation_id)
        if conv.pending:
            raise ConcurrentSendError(conversation_id)
        if conv.last_user_message() is None:
            raise EmptyInputError("Nothing to retry")

        def drop_trailing(log_ctx: Dict[str, Any]) -> Optional[PersistenceError]:
            return self._guard_persist(lambda: self._store.pop_trailing_assistant(conversation_id), log_ctx)

        return self._send(conversation_id, drop_trailing)

    def cancel(self, conversation_id: str) -> bool:
        """取消进行中的发送：立即清除 pending，稍后到达的响应会被丢弃。

        已追加的用户消息保留在会话中。没有进行中的请求时返回 False。
        """

        with self._lock:
            if self._tickets.pop(conversation_id, None) is None:
                return False
            self._store.clear_pending(conversation_id)
        self.status = Status(state="ready", text="Cancelled")
        logger.info("Send cancelled", extra={"extra": {"conversation_id": conversation_id}})
        return True

    def is_pending(self, conversation_id: str) -> bool:
        return self._store.is_pending(conversation_id)

    # ---- 发送流程 ----

    def _send(
        self,
        conversation_id: str,
        prepare: Callable[[Dict[str, Any]], Optional[PersistenceError]],
    ) -> SendOutcome:
        start_time = time.time()
        ticket = f"tr-{uuid4().hex}"
        log_ctx: Dict[str, Any] = {"trace_id": ticket, "conversation_id": conversation_id}

        with self._lock:
            self._store.mark_pending(conversation_id)
            self._tickets[conversation_id] = ticket
        try:
            return self._run(conversation_id, ticket, prepare, log_ctx, start_time)
        finally:
            self._release(conversation_id, ticket)

    def _run(
        self,
        conversation_id: str,
        ticket: str,
        prepare: Callable[[Dict[str, Any]], Optional[PersistenceError]],
        log_ctx: Dict[str, Any],
        start_time: float,
    ) -> SendOutcome:
        settings, descriptor = self._check_config()
        log_ctx.update(provider=descriptor.key, model=settings.model_id)
        adapter = create_adapter(descriptor, self._config)

        persistence_error = prepare(log_ctx)
        self._ensure_current(conversation_id, ticket, log_ctx, "Cancelled before the request was built")
        conv = self._store.get(conversation_id)
        history = assemble_context(conv.messages, settings.context_policy)
        request = adapter.encode(history, self._system_prompt, settings)

        self.status = Status(state="loading", text="Thinking...")
        self._log(
            logging.INFO,
            "Calling provider",
            log_ctx,
            message_count=len(history),
            context_policy=settings.context_policy.value,
        )
        self._ensure_current(conversation_id, ticket, log_ctx, "Cancelled before the request was sent")
        error: Optional[BusinessError] = None
        try:
            response = self._transport.post(request)
            if not response.ok:
                raise adapter.decode_error(response)
            content = adapter.decode(response)
        except (NetworkError, HttpError) as e:
            error = e
            content = f"Error: {e.message}"

        reply = Message(role="assistant", content=content)
        # 票据检查与追加回复在同一把锁内完成，cancel 不能插入两者之间
        with self._lock:
            self._ensure_current(conversation_id, ticket, log_ctx, "Discarded response of cancelled send")
            try:
                persistence_error = self._guard_persist(
                    lambda: self._store.append(conversation_id, reply), log_ctx
                ) or persistence_error
            except NotFoundError:
                self._log(logging.WARNING, "Conversation deleted before the reply arrived", log_ctx)

        self.status = Status(state="error", text=content) if error else READY
        self._log(
            logging.ERROR if error else logging.INFO,
            "Completed send",
            log_ctx,
            ok=error is None,
            error_code=error.code if error else None,
            http_status=getattr(error, "status", None),
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return SendOutcome(
            conversation_id=conversation_id,
            reply=reply,
            status=self.status,
            error=error,
            persistence_error=persistence_error,
        )

    def _check_config(self) -> Tuple[ChatSettings, ProviderDescriptor]:
        """API Key 与模型检查。先报告缺少 Key，再报告未知模型。"""

        settings = self._settings.current
        unknown: Optional[UnknownModelError] = None
        descriptor: Optional[ProviderDescriptor] = None
        try:
            descriptor = resolve(settings.model_id, self._registry)
        except UnknownModelError as e:
            unknown = e

        api_key = settings.api_key
        if not api_key:
            api_key = self._config.fallback_api_key(descriptor.key) if descriptor else self._config.api_key
        if not api_key:
            raise MissingApiKeyError()
        if unknown is not None:
            raise unknown
        return settings.with_changes(api_key=api_key), descriptor

    # ---- 辅助方法 ----

    def _is_current(self, conversation_id: str, ticket: str) -> bool:
        with self._lock:
            return self._tickets.get(conversation_id) == ticket

    def _ensure_current(self, conversation_id: str, ticket: str, log_ctx: Dict[str, Any], message: str) -> None:
        if not self._is_current(conversation_id, ticket):
            self._log(logging.INFO, message, log_ctx)
            raise SendCancelledError(conversation_id)

    def _release(self, conversation_id: str, ticket: str) -> None:
        with self._lock:
            if self._tickets.get(conversation_id) != ticket:
                return
            del self._tickets[conversation_id]
            self._store.clear_pending(conversation_id)

    def _guard_persist(self, action: Callable[[], Any], log_ctx: Dict[str, Any]) -> Optional[PersistenceError]:
        try:
            action()
        except PersistenceError as e:
            self._log(logging.WARNING, "Continuing after persistence failure", log_ctx, error=e.message)
            return e
        return None

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
