"""Record Store arayüzü ve ortak transaction mantığı.

Defter motoru store'a sadece bu dar arayüz üzerinden erişir:
- get / query / insert / update / delete
- run_atomic: closure'ı çalıştırır, çakışmada baştan tekrar dener

Transaction içinde sorgu (query) yapılamaz; sadece id ile okuma yapılır.
Yazmalar tamponlanır ve commit anında hep birlikte uygulanır.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar

from stockroom.errors import TransactionAbortedError, TransactionConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

DocKey = tuple[str, str]


class Transaction:
    """Tek bir atomik denemenin okuma/yazma kaydı."""

    def __init__(self, store: RecordStore, attempt: int = 1):
        self.store = store
        self.attempt = attempt
        # Okunan dokümanların versiyonları: {(collection, id): version | None}
        self.reads: dict[DocKey, Optional[int]] = {}
        # Tamponlanmış yazmalar: {(collection, id): ("update" | "insert", fields)}
        self.writes: dict[DocKey, tuple[str, dict]] = {}

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """Dokümanı id ile okur ve versiyonunu commit doğrulaması için saklar."""
        if self.writes:
            raise RuntimeError("Transaction içinde tüm okumalar yazmalardan önce yapılmalı")
        doc, version = await self.store.read_versioned(collection, doc_id)
        self.reads[(collection, doc_id)] = version
        return doc

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        self.writes[(collection, doc_id)] = ("update", dict(fields))

    def insert(self, collection: str, fields: dict) -> str:
        doc_id = self.store.new_id()
        self.writes[(collection, doc_id)] = ("insert", dict(fields))
        return doc_id


class RecordStore(ABC):
    """Kalıcı doküman koleksiyonu (point read, eşitlik sorgusu, atomik işlem)."""

    def new_id(self) -> str:
        return uuid.uuid4().hex[:20]

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """Dokümanı id ile döndürür (``id`` alanı dahil), yoksa None."""
        ...

    @abstractmethod
    async def query(self, collection: str, filters: Optional[dict[str, Any]] = None) -> list[dict]:
        """Tüm eşitlik filtrelerini (AND) sağlayan dokümanları döndürür."""
        ...

    @abstractmethod
    async def insert(self, collection: str, fields: dict) -> str:
        """Yeni doküman ekler, createdAt/updatedAt atar ve yeni id'yi döndürür."""
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: dict) -> None:
        """Kısmi alan güncellemesi; doküman yoksa NotFoundError."""
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Dokümanı siler; doküman yoksa NotFoundError."""
        ...

    @abstractmethod
    async def read_versioned(self, collection: str, doc_id: str) -> tuple[Optional[dict], Optional[int]]:
        """Transaction okuması: (doküman, versiyon); doküman yoksa (None, None)."""
        ...

    @abstractmethod
    async def commit(self, tx: Transaction) -> None:
        """Tamponlanmış yazmaları hep birlikte uygular.

        Okunan ya da yazılan herhangi bir doküman okunduğundan beri değiştiyse
        hiçbir şey yazılmaz ve TransactionConflict fırlatılır.
        """
        ...

    async def run_atomic(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: int = 5,
    ) -> T:
        """Closure'ı atomik olarak çalıştırır.

        Çakışmada closure baştan çalıştırılır (güncel değerler yeniden okunur);
        max_attempts aşılırsa TransactionAbortedError fırlatılır.
        Closure'ın kendi hataları (ör. NotFoundError) tekrar denenmeden yukarı iletilir.
        """
        for attempt in range(1, max_attempts + 1):
            tx = Transaction(self, attempt)
            result = await fn(tx)
            try:
                await self.commit(tx)
            except TransactionConflict as e:
                logger.warning("Transaction çakışması (deneme %d/%d): %s", attempt, max_attempts, e)
                continue
            return result

        raise TransactionAbortedError(
            f"Transaction {max_attempts} denemede tamamlanamadı"
        )
