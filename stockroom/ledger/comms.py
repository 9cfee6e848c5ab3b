"""Telsiz seti kayıtları - set numarasına göre upsert, durum güncelleme, silme."""

from __future__ import annotations

import logging
from typing import Any, Optional

from stockroom.errors import NotFoundError, ValidationError
from stockroom.ledger.identity import IdentityResolver
from stockroom.ledger.validation import normalize, validate_comms_payload
from stockroom.models.records import COMMS, CommsRecord, CommsStatus, LedgerConfig
from stockroom.store.base import RecordStore, Transaction

logger = logging.getLogger(__name__)


class CommsRegistry:
    """Set numarası kimlik anahtarıdır: aynı set için ikinci kayıt açılmaz."""

    def __init__(self, store: RecordStore, config: Optional[LedgerConfig] = None):
        self.store = store
        self.config = config or LedgerConfig()
        self.resolver = IdentityResolver(store)

    async def get(self, record_id: str) -> CommsRecord:
        doc = await self.store.get(COMMS, record_id)
        if doc is None:
            raise NotFoundError(f"Telsiz kaydı bulunamadı: {record_id}")
        return CommsRecord.from_document(doc)

    async def list_all(self) -> list[CommsRecord]:
        """Tüm setleri set numarasına göre sıralı döndürür."""
        records = [CommsRecord.from_document(d) for d in await self.store.query(COMMS)]
        records.sort(key=lambda r: r.set_number)
        return records

    async def upsert_radio(self, payload: dict) -> CommsRecord:
        """Set mevcutsa tüm alanlarını günceller, yoksa yeni kayıt açar."""
        fields = validate_comms_payload(payload)
        existing = await self.resolver.find_by_set_number(fields["setNumber"])

        if existing is not None:
            async def overwrite(tx: Transaction) -> bool:
                doc = await tx.get(COMMS, existing.id)
                if doc is None or doc.get("setNumber") != fields["setNumber"]:
                    return False
                tx.update(COMMS, existing.id, fields)
                return True

            if await self.store.run_atomic(overwrite, self.config.max_attempts):
                logger.info("Telsiz seti güncellendi: set %s (%s)", fields["setNumber"], existing.id)
                return await self.get(existing.id)
            logger.warning(
                "Set %s kaydı işlem öncesi silinmiş/değişmiş, yeni kayıt açılıyor", fields["setNumber"]
            )

        new_id = await self.store.insert(COMMS, fields)
        logger.info("Yeni telsiz seti eklendi: set %s (%s)", fields["setNumber"], new_id)
        return await self.get(new_id)

    async def set_status(self, record_id: str, status: Any) -> CommsRecord:
        value = normalize(status)
        if value not in {s.value for s in CommsStatus}:
            raise ValidationError(f"Geçersiz telsiz durumu: {status!r}")
        await self.store.update(COMMS, record_id, {"status": value})
        logger.info("Telsiz durumu değişti: %s -> %s", record_id, value)
        return await self.get(record_id)

    async def remove(self, record_id: str) -> None:
        await self.store.delete(COMMS, record_id)
        logger.info("Telsiz kaydı silindi: %s", record_id)
