import threading
from typing import Optional

from chat_core.config.settings import AppConfig, settings as app_config
from chat_core.domain.exceptions import PersistenceError, ValidationError
from chat_core.domain.models import ChatSettings, ContextPolicy
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.json_store import StoragePort


STORAGE_KEY = "settings"


class SettingsStore:
    """用户设置：启动时加载，只在显式 save 时修改。

    save 先校验整个设置元组，校验通过后一次性替换，内存中不会出现
    只更新了一半的设置。
    """

    def __init__(self, storage: StoragePort, config: Optional[AppConfig] = None):
        self._storage = storage
        self._config = config or app_config
        self._lock = threading.Lock()
        self._current = self._load()

    @property
    def current(self) -> ChatSettings:
        return self._current

    def save(self, new_settings: ChatSettings) -> ChatSettings:
        validated = self._validate(new_settings)
        with self._lock:
            self._current = validated
            try:
                self._storage.write(STORAGE_KEY, validated.to_dict())
            except PersistenceError as e:
                logger.error(
                    "Failed to persist settings",
                    extra={"extra": {"code": e.code, "error": e.message}},
                )
                raise
        logger.info(
            "Settings saved",
            extra={"extra": {"model_id": validated.model_id, "context_policy": validated.context_policy.value}},
        )
        return validated

    @staticmethod
    def _validate(candidate: ChatSettings) -> ChatSettings:
        model_id = (candidate.model_id or "").strip()
        if not model_id:
            raise ValidationError(message="Model must not be empty")
        try:
            policy = ContextPolicy(candidate.context_policy)
        except ValueError:
            raise ValidationError(message=f"Unknown context policy: {candidate.context_policy}")
        return candidate.with_changes(
            api_key=(candidate.api_key or "").strip(),
            model_id=model_id,
            context_policy=policy,
        )

    def _load(self) -> ChatSettings:
        defaults = ChatSettings(
            model_id=self._config.default_model,
            context_policy=ContextPolicy(self._config.default_context_policy),
        )
        try:
            data = self._storage.read(STORAGE_KEY)
        except PersistenceError as e:
            logger.error(
                "Failed to load settings, using defaults",
                extra={"extra": {"code": e.code, "error": e.message}},
            )
            return defaults
        if not data:
            return defaults
        try:
            return ChatSettings.from_dict(data)
        except (ValueError, TypeError) as e:
            logger.error("Stored settings are invalid, using defaults", extra={"extra": {"error": str(e)}})
            return defaults
