"""Client-side persistence.

Two stores mirror the browser's: a session store that dies with the tab
(plan, test, answers) and a local store that survives a reload
(checklist flags, test history). Values cross the boundary only as JSON
produced and parsed by the pydantic models in ``client.state``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from studyplanner.client.state import AppState
from studyplanner.schemas.results import TestHistoryEntry

logger = logging.getLogger(__name__)

APP_STATE_KEY = "appState"
PROGRESS_KEY = "syllabusProgress"
HISTORY_KEY = "testHistory"

_progress_adapter: TypeAdapter = TypeAdapter(Dict[str, bool])
_history_adapter: TypeAdapter = TypeAdapter(List[TestHistoryEntry])


class SessionStore:
    """String key/value store scoped to one session."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class LocalStore(SessionStore):
    """Same interface, backed by one JSON file so values survive a restart."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.warning("Ignoring unreadable local store %s", self.path)
                raw = {}
            if isinstance(raw, dict):
                self._data = {str(k): str(v) for k, v in raw.items()}

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        self._persist()

    def remove(self, key: str) -> None:
        super().remove(key)
        self._persist()


def _load(store: SessionStore, key: str, adapter: TypeAdapter, default: Any) -> Any:
    raw = store.get(key)
    if raw is None:
        return default
    try:
        return adapter.validate_json(raw)
    except ValidationError:
        # Stale or hand-edited value; start over rather than crash the flow.
        logger.warning("Discarding invalid %s value", key)
        store.remove(key)
        return default


def load_app_state(store: SessionStore) -> AppState:
    return _load(store, APP_STATE_KEY, TypeAdapter(AppState), AppState())


def save_app_state(store: SessionStore, state: AppState) -> None:
    store.set(APP_STATE_KEY, state.model_dump_json())


def load_progress(store: SessionStore) -> Dict[str, bool]:
    return _load(store, PROGRESS_KEY, _progress_adapter, {})


def save_progress(store: SessionStore, progress: Dict[str, bool]) -> None:
    store.set(PROGRESS_KEY, _progress_adapter.dump_json(progress).decode("utf-8"))


def clear_progress(store: SessionStore) -> None:
    store.remove(PROGRESS_KEY)


def load_history(store: SessionStore) -> List[TestHistoryEntry]:
    return _load(store, HISTORY_KEY, _history_adapter, [])


def prepend_history(store: SessionStore, entry: TestHistoryEntry) -> List[TestHistoryEntry]:
    history = [entry] + load_history(store)
    store.set(HISTORY_KEY, _history_adapter.dump_json(history).decode("utf-8"))
    return history
