"""Bellek içi Record Store - testler ve yerel çalışma için.

Her doküman bir versiyon sayacı taşır. Commit, okunan versiyonları
doğrular (optimistic concurrency); commit içinde await yapılmadığı için
event loop üzerinde bölünmeden çalışır.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from stockroom.errors import NotFoundError, TransactionConflict
from stockroom.store.base import RecordStore, Transaction

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MemoryRecordStore(RecordStore):
    """Koleksiyon -> {id: doküman} sözlüğü üzerinde çalışan store."""

    def __init__(
        self,
        before_commit: Optional[Callable[[Transaction], Awaitable[None]]] = None,
    ):
        self._collections: dict[str, dict[str, dict]] = {}
        self._versions: dict[tuple[str, str], int] = {}
        # Test kancası: her commit denemesinden hemen önce çağrılır
        self.before_commit = before_commit
        self.commit_count = 0
        self.conflict_count = 0

    def _docs(self, collection: str) -> dict[str, dict]:
        return self._collections.setdefault(collection, {})

    @staticmethod
    def _with_id(doc_id: str, doc: dict) -> dict:
        return {"id": doc_id, **doc}

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        await asyncio.sleep(0)
        doc = self._docs(collection).get(doc_id)
        return self._with_id(doc_id, doc) if doc is not None else None

    async def query(self, collection: str, filters: Optional[dict[str, Any]] = None) -> list[dict]:
        await asyncio.sleep(0)
        filters = filters or {}
        return [
            self._with_id(doc_id, doc)
            for doc_id, doc in self._docs(collection).items()
            if all(doc.get(k) == v for k, v in filters.items())
        ]

    async def insert(self, collection: str, fields: dict) -> str:
        await asyncio.sleep(0)
        doc_id = self.new_id()
        self._put(collection, doc_id, fields)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: dict) -> None:
        await asyncio.sleep(0)
        if doc_id not in self._docs(collection):
            raise NotFoundError(f"Kayıt bulunamadı: {collection}/{doc_id}")
        self._patch(collection, doc_id, fields)

    async def delete(self, collection: str, doc_id: str) -> None:
        await asyncio.sleep(0)
        if self._docs(collection).pop(doc_id, None) is None:
            raise NotFoundError(f"Kayıt bulunamadı: {collection}/{doc_id}")
        self._versions.pop((collection, doc_id), None)

    async def read_versioned(self, collection: str, doc_id: str) -> tuple[Optional[dict], Optional[int]]:
        await asyncio.sleep(0)
        doc = self._docs(collection).get(doc_id)
        if doc is None:
            return None, None
        return self._with_id(doc_id, doc), self._versions[(collection, doc_id)]

    async def commit(self, tx: Transaction) -> None:
        if self.before_commit is not None:
            await self.before_commit(tx)

        # Okuma seti doğrulaması
        for (collection, doc_id), version in tx.reads.items():
            current = self._versions.get((collection, doc_id))
            if current != version:
                self.conflict_count += 1
                raise TransactionConflict(
                    f"{collection}/{doc_id} okunduktan sonra değişti "
                    f"(okunan={version}, mevcut={current})"
                )

        for (collection, doc_id), (op, _) in tx.writes.items():
            exists = doc_id in self._docs(collection)
            if op == "insert" and exists:
                raise TransactionConflict(f"{collection}/{doc_id} zaten mevcut")
            if op == "update" and not exists:
                raise TransactionConflict(f"{collection}/{doc_id} artık mevcut değil")

        for (collection, doc_id), (op, fields) in tx.writes.items():
            if op == "insert":
                self._put(collection, doc_id, fields)
            else:
                self._patch(collection, doc_id, fields)
        self.commit_count += 1

    def _put(self, collection: str, doc_id: str, fields: dict) -> None:
        ts = _now()
        self._docs(collection)[doc_id] = {**fields, "createdAt": ts, "updatedAt": ts}
        self._versions[(collection, doc_id)] = 1

    def _patch(self, collection: str, doc_id: str, fields: dict) -> None:
        doc = self._docs(collection)[doc_id]
        doc.update(fields)
        doc["updatedAt"] = _now()
        self._versions[(collection, doc_id)] += 1

    def snapshot(self, collection: str) -> dict[str, dict]:
        """Koleksiyonun kopyasını döndürür (testler için)."""
        return {doc_id: dict(doc) for doc_id, doc in self._docs(collection).items()}
