import pytest

from chat_core.config.settings import AppConfig
from chat_core.domain.exceptions import PersistenceError, ValidationError
from chat_core.domain.models import ChatSettings, ContextPolicy
from chat_core.infrastructure.storage.json_store import InMemoryStorage
from chat_core.store.settings_store import SettingsStore


class FailingStorage(InMemoryStorage):
    def write(self, key, value):
        raise PersistenceError(message="read-only", key=key)


def test_defaults_come_from_config():
    cfg = AppConfig(default_model="claude-sonnet-4.5", default_context_policy="last-turn-only")
    store = SettingsStore(InMemoryStorage(), cfg)
    assert store.current.model_id == "claude-sonnet-4.5"
    assert store.current.context_policy == ContextPolicy.LAST_TURN_ONLY
    assert store.current.api_key == ""


def test_save_and_reload():
    storage = InMemoryStorage()
    store = SettingsStore(storage, AppConfig())
    store.save(ChatSettings(api_key="  sk-1  ", model_id="gemini-1.5-pro", context_policy="last-turn-only", voice_output_enabled=True))
    reloaded = SettingsStore(storage, AppConfig()).current
    assert reloaded.api_key == "sk-1"
    assert reloaded.model_id == "gemini-1.5-pro"
    assert reloaded.context_policy == ContextPolicy.LAST_TURN_ONLY
    assert reloaded.voice_output_enabled is True


def test_invalid_save_is_not_partially_applied():
    storage = InMemoryStorage()
    store = SettingsStore(storage, AppConfig())
    before = store.save(ChatSettings(api_key="sk-1", model_id="grok-4"))
    with pytest.raises(ValidationError):
        store.save(ChatSettings(api_key="sk-2", model_id="grok-4", context_policy="everything"))
    with pytest.raises(ValidationError):
        store.save(ChatSettings(api_key="sk-3", model_id="  "))
    assert store.current == before
    assert storage.read("settings")["api_key"] == "sk-1"


def test_write_failure_surfaces_but_applies_in_memory():
    store = SettingsStore(FailingStorage(), AppConfig())
    with pytest.raises(PersistenceError):
        store.save(ChatSettings(api_key="sk-9", model_id="deepseek-chat"))
    assert store.current.model_id == "deepseek-chat"
