"""对外 API 服务模块。

ChatService 是 UI 层唯一需要依赖的入口，组合了 ConversationStore、
SettingsStore 与 ChatOrchestrator。模块级函数基于默认单例提供
更简化的字典接口，供上层应用直接调用。
"""

from typing import Any, Dict, List, Optional

from chat_core.agents.orchestrator import ChatOrchestrator, SendOutcome, Status
from chat_core.config.settings import AppConfig, settings as app_config
from chat_core.domain.conversation import Conversation
from chat_core.domain.models import ChatSettings, ContextPolicy, to_iso
from chat_core.infrastructure.storage.json_store import JsonFileStorage, StoragePort
from chat_core.providers.transport import HttpTransport
from chat_core.store.conversation_store import ConversationStore
from chat_core.store.settings_store import SettingsStore


class ChatService:
    def __init__(
        self,
        storage: Optional[StoragePort] = None,
        transport: Optional[HttpTransport] = None,
        config: Optional[AppConfig] = None,
    ):
        self._config = config or app_config
        storage = storage or JsonFileStorage(self._config.storage_root)
        self.store = ConversationStore(storage)
        self.settings = SettingsStore(storage, self._config)
        self.orchestrator = ChatOrchestrator(
            store=self.store,
            settings_store=self.settings,
            transport=transport,
            config=self._config,
        )
        self._status: Optional[Status] = None

    @property
    def status(self) -> Status:
        return self._status or self.orchestrator.status

    def send_message(self, conversation_id: str, text: str) -> SendOutcome:
        self._status = None
        return self.orchestrator.send_message(conversation_id, text)

    def retry(self, conversation_id: str) -> SendOutcome:
        self._status = None
        return self.orchestrator.retry(conversation_id)

    def cancel(self, conversation_id: str) -> bool:
        self._status = None
        return self.orchestrator.cancel(conversation_id)

    def create_conversation(self) -> Conversation:
        return self.store.create()

    def switch_conversation(self, conversation_id: str) -> Conversation:
        return self.store.switch_to(conversation_id)

    def delete_conversation(self, conversation_id: str) -> Optional[str]:
        return self.store.delete(conversation_id)

    def rename_conversation(self, conversation_id: str, title: str) -> Conversation:
        return self.store.rename(conversation_id, title)

    def clear_conversation(self, conversation_id: str) -> Conversation:
        conv = self.store.clear(conversation_id)
        self._status = Status(state="ready", text="Ready")
        return conv

    def list_conversations(self) -> List[Conversation]:
        return self.store.list()

    def get_active_conversation(self) -> Optional[Conversation]:
        return self.store.get_active()

    def save_settings(
        self,
        api_key: str,
        model_id: str,
        context_policy: ContextPolicy | str,
        voice_output_enabled: Optional[bool] = None,
    ) -> ChatSettings:
        """整体保存设置；voice_output_enabled 为 None 时沿用当前值。"""

        current = self.settings.current
        saved = self.settings.save(
            ChatSettings(
                api_key=api_key,
                model_id=model_id,
                context_policy=context_policy,
                voice_output_enabled=(
                    current.voice_output_enabled if voice_output_enabled is None else voice_output_enabled
                ),
            )
        )
        self._status = Status(state="ready", text="Settings saved!")
        return saved


_service: Optional[ChatService] = None


def get_default_service() -> ChatService:
    """获取默认的 ChatService 实例（单例）。"""
    global _service
    if _service is None:
        _service = ChatService()
    return _service


def conversation_to_dict(conv: Conversation, with_messages: bool = True) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": conv.id,
        "title": conv.title,
        "created_at": to_iso(conv.created_at),
        "updated_at": to_iso(conv.updated_at),
        "pending": conv.pending,
    }
    if with_messages:
        data["messages"] = [m.to_dict() for m in conv.messages]
    return data


def run_chat(text: str, conversation_id: Optional[str] = None) -> Dict[str, Any]:
    """发送一条消息。未指定会话时使用当前会话，没有当前会话则新建。

    Returns:
        包含会话ID、助手回复、状态与错误信息的字典

    Raises:
        前置条件类的 domain.exceptions（EmptyInputError 等）
    """
    service = get_default_service()
    if conversation_id is None:
        active = service.get_active_conversation()
        conversation_id = active.id if active else service.create_conversation().id
    outcome = service.send_message(conversation_id, text)
    return {
        "conversation_id": outcome.conversation_id,
        "ok": outcome.ok,
        "reply": outcome.reply.to_dict(),
        "status": {"state": outcome.status.state, "text": outcome.status.text},
        "error": (
            {"code": outcome.error.code, "message": outcome.error.message, "http_status": outcome.error.http_status}
            if outcome.error
            else None
        ),
    }


def list_conversations() -> List[Dict[str, Any]]:
    """列出所有会话（不含消息），按更新时间倒序。"""
    return [conversation_to_dict(c, with_messages=False) for c in get_default_service().list_conversations()]


def get_conversation_messages(conversation_id: str) -> List[Dict[str, Any]]:
    return [m.to_dict() for m in get_default_service().store.get(conversation_id).messages]
