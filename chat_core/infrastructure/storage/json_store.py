"""持久化端口与 JSON 文件实现。

ConversationStore / SettingsStore 只通过 StoragePort 读写持久化数据，
不直接接触文件系统，方便在测试中替换为内存实现。
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Protocol
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.exceptions import PersistenceError


class StoragePort(Protocol):
    """同步的键值持久化接口。值为可 JSON 序列化的对象。"""

    def read(self, key: str) -> Optional[Any]:
        ...

    def write(self, key: str, value: Any) -> None:
        ...


class JsonFileStorage(StoragePort):
    """每个 key 对应 root 下的一个 JSON 文件，写入采用临时文件 + os.replace。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def read(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(message=f"Failed to read {key}: {e}", key=key)

    def write(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = self._root / f"{key}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(value, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            tmp_path.unlink(missing_ok=True)
            raise PersistenceError(message=f"Failed to write {key}: {e}", key=key)

    def _path(self, key: str) -> Path:
        return self._root / f"{key}.json"


class InMemoryStorage(StoragePort):
    """进程内实现，存取时深拷贝，行为上等价于一次序列化往返。"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    def read(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    def write(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
