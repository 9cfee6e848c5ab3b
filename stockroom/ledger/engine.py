"""Stok defteri motoru - ekleme/birleştirme, düzenleme, silme ve transfer.

- Aynı kimliğe sahip kayıt varsa miktar eklenir (merge-add), yeni kayıt açılmaz
- Düzenleme tam alan değişimidir, kimlik birleştirmesi yapmaz
- Transfer iki dokümanı tek atomik işlemde günceller, toplam miktar korunur
- Tüm miktar kararları transaction içinde okunan güncel değere göre verilir
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from stockroom.errors import NotFoundError, ValidationError
from stockroom.ledger.identity import IdentityResolver
from stockroom.ledger.validation import (
    find_duplicates,
    normalize,
    parse_kind,
    parse_site_status,
    parse_transfer_quantity,
    resolve_transfer_amount,
    safe_int,
    validate_stock_payload,
)
from stockroom.models.records import (
    STOCKS,
    IdentityTuple,
    LedgerConfig,
    StockRecord,
    TransferResult,
)
from stockroom.store.base import RecordStore, Transaction

logger = logging.getLogger(__name__)


@dataclass
class AuditLogEntry:
    entry_id: str
    operation_type: str
    record_id: str
    quantity_before: int
    quantity_after: int
    change_amount: int
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    transfer_id: Optional[str] = None


def matches_search(record: StockRecord, text: str) -> bool:
    if not text:
        return True
    haystack = " ".join([
        record.kind.value,
        record.name,
        record.category,
        record.status,
        record.loc_main,
        record.loc_exact,
        record.site_status.value,
    ]).lower()
    return text.lower() in haystack


class LedgerEngine:
    """Stok kayıtları üzerindeki tüm yazma işlemlerinin sahibi."""

    def __init__(self, store: RecordStore, config: Optional[LedgerConfig] = None):
        self.store = store
        self.config = config or LedgerConfig()
        self.resolver = IdentityResolver(store)
        self._audit_log: list[AuditLogEntry] = []

    # --- Okuma ---

    async def get_record(self, record_id: str) -> StockRecord:
        doc = await self.store.get(STOCKS, record_id)
        if doc is None:
            raise NotFoundError(f"Stok kaydı bulunamadı: {record_id}")
        return StockRecord.from_document(doc)

    async def list_records(self, kind: Optional[Any] = None) -> list[StockRecord]:
        """Kayıtları son güncellenen önce olacak şekilde döndürür."""
        filters = {"type": parse_kind(kind).value} if kind else {}
        docs = await self.store.query(STOCKS, filters)
        records = [StockRecord.from_document(d) for d in docs]
        records.sort(key=lambda r: r.updated_at or "", reverse=True)
        return records

    async def search_records(self, text: str, kind: Optional[Any] = None) -> list[StockRecord]:
        query = normalize(text)
        return [r for r in await self.list_records(kind) if matches_search(r, query)]

    async def find_duplicate_identities(self) -> list[list[str]]:
        """Aynı kimliği paylaşan kayıt gruplarını döndürür (düzenleme yolu çakışmaları)."""
        return find_duplicates(await self.list_records())

    # --- Ekleme / birleştirme ---

    async def add_or_merge(self, payload: dict) -> StockRecord:
        """Kayıt ekler; aynı kimlikte kayıt varsa miktarı üzerine ekler.

        Her denemede kimlik önce sorgu ile çözülür, eşleşen kayıt transaction
        içinde id ile yeniden okunur. Kayıt bu arada silinmişse yeni kayıt açılır.
        """
        fields = validate_stock_payload(payload)
        identity = IdentityTuple.from_fields(fields)
        add_qty = fields["quantity"]

        async def merge(tx: Transaction) -> tuple[str, int, bool]:
            existing = await self.resolver.find_by_identity(identity)
            doc = await tx.get(STOCKS, existing.id) if existing is not None else None
            if doc is not None:
                current = safe_int(doc.get("quantity"), 0)
                tx.update(STOCKS, existing.id, {"quantity": current + add_qty})
                return existing.id, current, False
            if existing is not None:
                logger.warning(
                    "Eşleşen kayıt %s işlem sırasında silinmiş, yeni kayıt açılıyor", existing.id
                )
            return tx.insert(STOCKS, fields), 0, True

        record_id, before, created = await self.store.run_atomic(merge, self.config.max_attempts)

        if created:
            self._log_change("create", record_id, 0, add_qty)
            logger.info("Yeni stok kaydı oluşturuldu: %s (%s, miktar=%d)", record_id, fields["name"], add_qty)
        else:
            self._log_change("merge", record_id, before, before + add_qty)
            logger.info(
                "Kayıt birleştirildi: %s (%s) %d + %d = %d",
                record_id, fields["name"], before, add_qty, before + add_qty,
            )
        return await self.get_record(record_id)

    # --- Düzenleme ---

    async def update_fields(self, record_id: str, payload: dict) -> StockRecord:
        """Düzenlenebilir tüm alanları payload ile değiştirir.

        Kimlik çözümleyiciye bakılmaz: düzenleme, başka bir kayıtla aynı
        kimliğe sahip ikinci bir kayıt oluşturabilir (find_duplicate_identities
        ile tespit edilebilir).
        """
        current = await self.get_record(record_id)
        fields = validate_stock_payload(payload, prior_quantity=current.quantity)
        await self.store.update(STOCKS, record_id, fields)
        if fields["quantity"] != current.quantity:
            self._log_change("edit", record_id, current.quantity, fields["quantity"])
        logger.info("Stok kaydı güncellendi: %s", record_id)
        return await self.get_record(record_id)

    # --- Silme ---

    async def remove(self, record_id: str) -> None:
        await self.store.delete(STOCKS, record_id)
        logger.info("Stok kaydı silindi: %s", record_id)

    # --- Transfer ---

    async def transfer(
        self,
        source_id: str,
        dest_loc_main: str,
        dest_loc_exact: str,
        dest_site_status: Any,
        quantity: Any = None,
    ) -> TransferResult:
        """Kaynak yığının miktarının bir kısmını ya da tamamını yeni konuma taşır.

        Her deneme iki aşamalıdır:
        1. Hedef kimlik sorgu ile çözülür (transaction içinde sorgu yapılamaz,
           bu okuma commit doğrulamasına girmez).
        2. Kaynak ve hedef transaction içinde id ile yeniden okunur; hedef bu
           arada silinmiş ya da kimliği değişmişse yeni hedef kaydı açılır.
        Çakışmada iki aşama birlikte tekrarlanır.

        Kaynak miktarı 0'a düşse de kayıt silinmez.
        """
        loc_main = normalize(dest_loc_main)
        loc_exact = normalize(dest_loc_exact)
        if not loc_main or not loc_exact:
            raise ValidationError("Hedef konum (ana ve detay) boş olamaz")
        site_status = parse_site_status(dest_site_status)
        requested = parse_transfer_quantity(quantity)

        source = await self.get_record(source_id)
        # Erken kontrol; kesin kontrol transaction içinde güncel değerle yapılır
        resolve_transfer_amount(requested, source.quantity)
        if source.identity.relocated(loc_main, loc_exact, site_status) == source.identity:
            raise ValidationError("Kaynak ve hedef konum aynı olamaz")

        async def move(tx: Transaction) -> tuple[TransferResult, int, int]:
            src_doc = await tx.get(STOCKS, source_id)
            if src_doc is None:
                raise NotFoundError(f"Kaynak kayıt bulunamadı: {source_id}")
            src_identity = IdentityTuple.from_fields(src_doc)
            if src_identity is None:
                raise ValidationError(f"Kaynak kayıt bozuk: {source_id}")
            dest_identity = src_identity.relocated(loc_main, loc_exact, site_status)
            if dest_identity == src_identity:
                raise ValidationError("Kaynak ve hedef konum aynı olamaz")

            dest = await self.resolver.find_by_identity(dest_identity)
            dest_id = dest.id if dest is not None else None
            dest_doc = await tx.get(STOCKS, dest_id) if dest_id else None

            src_qty = safe_int(src_doc.get("quantity"), 0)
            amount = resolve_transfer_amount(requested, src_qty)
            tx.update(STOCKS, source_id, {"quantity": src_qty - amount})

            if dest_doc is not None and IdentityTuple.from_fields(dest_doc) == dest_identity:
                dest_before = safe_int(dest_doc.get("quantity"), 0)
                tx.update(STOCKS, dest_id, {"quantity": dest_before + amount})
                target_id, created = dest_id, False
            else:
                if dest_id is not None:
                    logger.warning(
                        "Hedef kayıt %s artık geçerli değil, yeni hedef kaydı açılıyor", dest_id
                    )
                dest_before = 0
                target_id = tx.insert(STOCKS, {**dest_identity.as_fields(), "quantity": amount})
                created = True

            result = TransferResult(
                source_id=source_id,
                destination_id=target_id,
                quantity=amount,
                destination_created=created,
                source_quantity_after=src_qty - amount,
                destination_quantity_after=dest_before + amount,
            )
            return result, src_qty, dest_before

        result, src_before, dest_before = await self.store.run_atomic(
            move, self.config.max_attempts
        )

        transfer_id = str(uuid.uuid4())
        self._log_change(
            "transfer_out", source_id, src_before, result.source_quantity_after, transfer_id
        )
        self._log_change(
            "transfer_in", result.destination_id, dest_before,
            result.destination_quantity_after, transfer_id,
        )
        logger.info(
            "Transfer tamamlandı: %s -> %s (%s / %s), miktar=%d",
            source_id, result.destination_id, loc_main, loc_exact, result.quantity,
        )
        return result

    # --- Audit log ---

    def _log_change(
        self,
        operation_type: str,
        record_id: str,
        quantity_before: int,
        quantity_after: int,
        transfer_id: Optional[str] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            entry_id=str(uuid.uuid4()),
            operation_type=operation_type,
            record_id=record_id,
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            change_amount=quantity_after - quantity_before,
            transfer_id=transfer_id,
        )
        self._audit_log.append(entry)
        return entry

    def get_audit_log(self, record_id: Optional[str] = None) -> list[AuditLogEntry]:
        """Bu motor örneğinin yaptığı miktar değişikliklerini döndürür."""
        if record_id:
            return [e for e in self._audit_log if e.record_id == record_id]
        return list(self._audit_log)
