"""Kimlik çözümleyici - aynı kimliğe sahip mevcut kaydı bulur."""

from __future__ import annotations

import logging
from typing import Optional

from stockroom.models.records import COMMS, STOCKS, CommsRecord, IdentityTuple, StockRecord
from stockroom.store.base import RecordStore

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Kimlik alanlarında birebir (büyük/küçük harf duyarlı) eşleşme arar."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def find_by_identity(self, identity: IdentityTuple) -> Optional[StockRecord]:
        docs = await self.store.query(STOCKS, identity.as_fields())
        if not docs:
            return None
        if len(docs) > 1:
            # Invariant ihlali: birleştirme yapılmaz, ilki kullanılır
            logger.warning(
                "Aynı kimliğe sahip %d stok kaydı bulundu (%s), ilki kullanılıyor: %s",
                len(docs), ", ".join(d["id"] for d in docs), docs[0]["id"],
            )
        return StockRecord.from_document(docs[0])

    async def find_by_set_number(self, set_number: int) -> Optional[CommsRecord]:
        docs = await self.store.query(COMMS, {"setNumber": set_number})
        if not docs:
            return None
        if len(docs) > 1:
            logger.warning(
                "Set %s için %d telsiz kaydı bulundu (%s), ilki kullanılıyor",
                set_number, len(docs), ", ".join(d["id"] for d in docs),
            )
        return CommsRecord.from_document(docs[0])
