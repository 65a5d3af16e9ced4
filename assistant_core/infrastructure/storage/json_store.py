import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from assistant_core.config.settings import settings
from assistant_core.domain.conversation import StateStore
from assistant_core.domain.exceptions import BusinessError

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonStateStore(StateStore):
    """每个 key 一个 JSON 文件，写入时先写临时文件再原子替换。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._state_root = self._root / "state"
        self._state_root.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e), key=key)
        if not isinstance(data, dict):
            raise BusinessError(code="STORE_READ_ERROR", message=f"state {key!r} is not an object", key=key)
        return data

    def set(self, key: str, blob: Dict[str, Any]) -> None:
        path = self._path(key)
        tmp_path = self._state_root / f"{key}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(blob, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            tmp_path.unlink(missing_ok=True)
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e), key=key)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key or ""):
            raise BusinessError(code="INVALID_STATE_KEY", message=key)
        return self._state_root / f"{key}.json"
