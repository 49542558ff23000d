# src/taperengine/storage.py
"""
Persistence collaborators. The schedule engine never touches storage; the
CLI (or any other caller) loads a plan, applies a pure operation, and saves
the new value back.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple

from .errors import StorageError
from .journal import upsert_entry
from .serialization import journal_from_list, journal_to_list, plan_from_dict, plan_to_dict
from .types import DailyLogEntry, TaperPlan

logger = logging.getLogger(__name__)

PLAN_KEY = "taper_plan"
JOURNAL_KEY = "taper_journal"
DISCLAIMER_KEY = "taper_disclaimer"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; values are kept as strings just like a file or browser store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """
    All keys in one JSON object on disk. Writes go to a temp file in the same
    directory and are renamed over the original.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StorageError(f"Store file {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Store file {self.path} must hold a JSON object.")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


class PlanRepository:
    """load() / save(plan) over any KeyValueStore, plus the symptom journal."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    # -- plan --
    def load(self) -> Optional[TaperPlan]:
        raw = self.store.get(PLAN_KEY)
        if raw is None:
            return None
        plan = plan_from_dict(_decode(raw, "plan"))
        logger.debug("Loaded plan with %d steps", len(plan.steps))
        return plan

    def save(self, plan: TaperPlan) -> None:
        self.store.set(PLAN_KEY, json.dumps(plan_to_dict(plan)))
        logger.debug("Saved plan with %d steps", len(plan.steps))

    def clear(self) -> None:
        self.store.delete(PLAN_KEY)
        logger.info("Cleared saved plan")

    # -- journal --
    def load_journal(self) -> Tuple[DailyLogEntry, ...]:
        raw = self.store.get(JOURNAL_KEY)
        if raw is None:
            return ()
        return journal_from_list(_decode(raw, "journal"))

    def save_entry(self, entry: DailyLogEntry) -> Tuple[DailyLogEntry, ...]:
        entries = upsert_entry(self.load_journal(), entry)
        self.store.set(JOURNAL_KEY, json.dumps(journal_to_list(entries)))
        return entries

    # -- disclaimer --
    def disclaimer_accepted(self) -> bool:
        return self.store.get(DISCLAIMER_KEY) == "true"

    def accept_disclaimer(self) -> None:
        self.store.set(DISCLAIMER_KEY, "true")


def _decode(raw: str, what: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StorageError(f"Stored {what} is not JSON: {exc}") from exc
