"""会话与用户设置的内存状态及其持久化。"""

from chat_core.store.conversation_store import ConversationStore
from chat_core.store.settings_store import SettingsStore

__all__ = ["ConversationStore", "SettingsStore"]
