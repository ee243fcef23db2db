"""
Replace-per-group persistence for counted items.

Every write replaces the full contents of one (branch, group): existing rows
are deleted, then the whole batch is inserted. Concurrent editors therefore
resolve as last full write wins.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol, Sequence

import pandas as pd

from ..core.errors import PersistenceError
from ..core.lifecycle import AdjustmentRecord
from ..core.models import CyclicItem, InventoryRecord

LOGGER = logging.getLogger(__name__)


class InventoryStore(Protocol):
    async def replace_group(
        self, branch: str, group: str, records: Sequence[InventoryRecord]
    ) -> None: ...

    async def load_group(self, branch: str, group: str) -> list[CyclicItem]: ...

    async def delete_group(self, branch: str, group: str) -> None: ...

    async def record_adjustment(self, branch: str, record: AdjustmentRecord) -> None: ...

    async def adjustment_history(self, branch: str, group: str | None = None) -> list[dict]: ...


def _serialize(record: InventoryRecord) -> dict:
    # Plain records have no lifecycle yet; they are stored as pending items.
    if not isinstance(record, CyclicItem):
        record = CyclicItem.from_record(record)
    return record.to_dict()


def _key(branch: str, group: str) -> str:
    return f"{branch.strip()}::{group.strip()}"


def _rows_frame(groups: dict[str, list[dict]]) -> pd.DataFrame:
    rows = []
    for key, items in groups.items():
        branch, lab = key.split("::", 1)
        for item in items:
            rows.append({**item, "branch": branch, "lab": lab})
    return pd.DataFrame(rows)


class MemoryInventoryStore:
    """In-process store; handy for tests and single-user sessions."""

    def __init__(self):
        self._groups: dict[str, list[dict]] = {}
        self._adjustments: list[dict] = []
        self.write_count = 0

    async def replace_group(self, branch: str, group: str, records: Sequence[InventoryRecord]) -> None:
        key = _key(branch, group)
        self._groups.pop(key, None)
        self._groups[key] = [_serialize(r) for r in records]
        self.write_count += 1

    async def load_group(self, branch: str, group: str) -> list[CyclicItem]:
        return [CyclicItem.from_dict(row) for row in self._groups.get(_key(branch, group), [])]

    async def delete_group(self, branch: str, group: str) -> None:
        self._groups.pop(_key(branch, group), None)

    async def record_adjustment(self, branch: str, record: AdjustmentRecord) -> None:
        self._adjustments.append({"branch": branch.strip(), **record.to_dict()})

    async def adjustment_history(self, branch: str, group: str | None = None) -> list[dict]:
        return [
            dict(entry)
            for entry in self._adjustments
            if entry["branch"].lower() == branch.strip().lower()
            and (group is None or entry["group"] == group)
        ]

    async def rows(self) -> pd.DataFrame:
        """Every stored item as one frame with branch and lab columns."""
        return _rows_frame(self._groups)


class JsonInventoryStore:
    """
    Store persisted as a single JSON document.

    File I/O runs in a worker thread; writes are serialized and go through a
    temp file that replaces the document atomically.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> dict:
        if not self.path.exists():
            return {"groups": {}, "adjustments": []}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Could not read {self.path}: {exc}") from exc
        payload.setdefault("groups", {})
        payload.setdefault("adjustments", [])
        return payload

    def _write(self, payload: dict) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.path.with_suffix(".tmp")
            temp_path.write_text(json.dumps(payload, sort_keys=True, indent=2), encoding="utf-8")
            temp_path.replace(self.path)
        except OSError as exc:
            raise PersistenceError(f"Could not write {self.path}: {exc}") from exc

    async def _update(self, mutate) -> None:
        async with self._lock:
            payload = await asyncio.to_thread(self._read)
            mutate(payload)
            await asyncio.to_thread(self._write, payload)

    async def replace_group(self, branch: str, group: str, records: Sequence[InventoryRecord]) -> None:
        rows = [_serialize(r) for r in records]

        def mutate(payload: dict) -> None:
            payload["groups"].pop(_key(branch, group), None)
            payload["groups"][_key(branch, group)] = rows

        await self._update(mutate)
        LOGGER.debug("Replaced %s/%s with %d row(s)", branch, group, len(rows))

    async def load_group(self, branch: str, group: str) -> list[CyclicItem]:
        payload = await asyncio.to_thread(self._read)
        return [CyclicItem.from_dict(row) for row in payload["groups"].get(_key(branch, group), [])]

    async def delete_group(self, branch: str, group: str) -> None:
        await self._update(lambda payload: payload["groups"].pop(_key(branch, group), None))

    async def record_adjustment(self, branch: str, record: AdjustmentRecord) -> None:
        entry = {"branch": branch.strip(), **record.to_dict()}
        await self._update(lambda payload: payload["adjustments"].append(entry))

    async def adjustment_history(self, branch: str, group: str | None = None) -> list[dict]:
        payload = await asyncio.to_thread(self._read)
        return [
            entry
            for entry in payload["adjustments"]
            if entry["branch"].lower() == branch.strip().lower()
            and (group is None or entry["group"] == group)
        ]

    async def rows(self) -> pd.DataFrame:
        payload = await asyncio.to_thread(self._read)
        return _rows_frame(payload["groups"])
