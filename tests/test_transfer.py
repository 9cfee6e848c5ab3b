"""Transfer unit testleri: atomiklik, stok korunumu ve eşzamanlılık."""

import asyncio

import pytest

from stockroom.errors import (
    InsufficientQuantityError,
    InvalidQuantityError,
    NotFoundError,
    TransactionAbortedError,
    ValidationError,
)
from stockroom.ledger import LedgerEngine
from stockroom.ledger.validation import check_no_negative_stock, verify_conservation
from stockroom.models.records import STOCKS, LedgerConfig, StockRecord
from stockroom.store.memory import MemoryRecordStore


BANDAGES = {
    "kind": "consumable",
    "name": "Bandages",
    "category": "Wound Care",
    "status": "Sustainable",
    "loc_main": "Storeroom",
    "loc_exact": "ShelfA",
    "site_status": "on_site",
}


def _create_engine(store=None, max_attempts=5) -> LedgerEngine:
    return LedgerEngine(store or MemoryRecordStore(), LedgerConfig(max_attempts=max_attempts))


def _run(coro):
    return asyncio.run(coro)


def _quantities(store: MemoryRecordStore) -> dict:
    return {doc_id: doc["quantity"] for doc_id, doc in store.snapshot(STOCKS).items()}


async def _seed(engine: LedgerEngine, quantity: int, **overrides) -> StockRecord:
    return await engine.add_or_merge({**BANDAGES, **overrides, "quantity": quantity})


class TestTransferScenarios:
    """Kısmi, tam ve yetersiz miktarlı transfer."""

    def test_partial_transfer_creates_destination(self):
        engine = _create_engine()

        async def scenario():
            source = await _seed(engine, 15)
            result = await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 4)
            return result, await engine.get_record(source.id), await engine.get_record(result.destination_id)

        result, source, dest = _run(scenario())
        assert result.quantity == 4
        assert result.destination_created is True
        assert source.quantity == 11
        assert dest.quantity == 4
        assert (dest.loc_main, dest.loc_exact) == ("Ward1", "Cabinet2")
        assert (dest.name, dest.category, dest.status) == ("Bandages", "Wound Care", "Sustainable")

    def test_transfer_all_keeps_empty_source(self):
        engine = _create_engine()

        async def scenario():
            source = await _seed(engine, 15)
            await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 4)
            result = await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site")
            return result, await engine.get_record(source.id), await engine.get_record(result.destination_id)

        result, source, dest = _run(scenario())
        assert result.quantity == 11
        assert result.destination_created is False
        assert source.quantity == 0
        assert dest.quantity == 15

    def test_blank_quantity_means_all(self):
        engine = _create_engine()

        async def scenario():
            source = await _seed(engine, 6)
            return await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", "  ")

        assert _run(scenario()).quantity == 6

    def test_insufficient_quantity_mutates_nothing(self):
        store = MemoryRecordStore()
        engine = _create_engine(store)

        async def scenario():
            source = await _seed(engine, 11)
            before = store.snapshot(STOCKS)
            with pytest.raises(InsufficientQuantityError):
                await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 20)
            return before

        before = _run(scenario())
        assert store.snapshot(STOCKS) == before

    def test_merges_into_existing_destination(self):
        engine = _create_engine()

        async def scenario():
            source = await _seed(engine, 10)
            dest = await _seed(engine, 3, loc_main="Ward1", loc_exact="Cabinet2")
            result = await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 5)
            return dest, result, await engine.list_records()

        dest, result, records = _run(scenario())
        assert result.destination_id == dest.id
        assert result.destination_quantity_after == 8
        assert len(records) == 2

    def test_site_status_is_part_of_destination(self):
        engine = _create_engine()

        async def scenario():
            source = await _seed(engine, 10)
            return await engine.transfer(source.id, "Storeroom", "ShelfA", "off_site", 2)

        result = _run(scenario())
        assert result.destination_created is True
        assert result.source_quantity_after == 8


class TestTransferValidation:

    @pytest.mark.parametrize("quantity", [0, "0", -3, "abc"])
    def test_non_positive_quantity_raises(self, quantity):
        store = MemoryRecordStore()
        engine = _create_engine(store)

        async def scenario():
            source = await _seed(engine, 10)
            with pytest.raises(InvalidQuantityError):
                await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", quantity)
            return source

        source = _run(scenario())
        assert _quantities(store) == {source.id: 10}

    def test_all_from_empty_source_raises(self):
        engine = _create_engine()

        async def scenario():
            source = await _seed(engine, 0)
            await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site")

        with pytest.raises(InvalidQuantityError) as exc:
            _run(scenario())
        assert not isinstance(exc.value, InsufficientQuantityError)

    def test_missing_source_raises(self):
        engine = _create_engine()
        with pytest.raises(NotFoundError):
            _run(engine.transfer("missing", "Ward1", "Cabinet2", "on_site", 1))

    def test_same_location_raises(self):
        engine = _create_engine()

        async def scenario():
            source = await _seed(engine, 10)
            await engine.transfer(source.id, " Storeroom ", "ShelfA", "on_site", 1)

        with pytest.raises(ValidationError):
            _run(scenario())

    @pytest.mark.parametrize("loc_main,loc_exact,site_status", [
        ("", "Cabinet2", "on_site"),
        ("Ward1", "  ", "on_site"),
        ("Ward1", "Cabinet2", "moon"),
    ])
    def test_invalid_destination_raises(self, loc_main, loc_exact, site_status):
        engine = _create_engine()

        async def scenario():
            source = await _seed(engine, 10)
            await engine.transfer(source.id, loc_main, loc_exact, site_status, 1)

        with pytest.raises(ValidationError):
            _run(scenario())


class TestTransferInvariants:
    """Toplam miktar korunur, negatif stok oluşmaz."""

    def test_conservation(self):
        store = MemoryRecordStore()
        engine = _create_engine(store)

        async def scenario():
            source = await _seed(engine, 10)
            await _seed(engine, 7, loc_main="Ward1", loc_exact="Cabinet2")
            before = _quantities(store)
            await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 6)
            await engine.transfer(source.id, "Ward2", "Bin1", "off_site")
            return before, _quantities(store), await engine.list_records()

        before, after, records = _run(scenario())
        assert verify_conservation(before, after).is_valid is True
        assert check_no_negative_stock(records).is_valid is True
        assert len(after) == 3

    def test_audit_entries_share_transfer_id(self):
        engine = _create_engine()

        async def scenario():
            source = await _seed(engine, 10)
            return await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 4)

        result = _run(scenario())
        out_entry = engine.get_audit_log(result.source_id)[-1]
        in_entry = engine.get_audit_log(result.destination_id)[-1]
        assert out_entry.operation_type == "transfer_out"
        assert in_entry.operation_type == "transfer_in"
        assert out_entry.transfer_id == in_entry.transfer_id
        assert out_entry.change_amount == -4
        assert in_entry.change_amount == 4


class TestTransferConcurrency:
    """Çakışan transferler güncel değerle yeniden denenir."""

    def test_competing_transfers_never_oversell(self):
        store = MemoryRecordStore()
        engine = _create_engine(store)

        async def scenario():
            source = await _seed(engine, 10)
            results = await asyncio.gather(
                engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 8),
                engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 8),
                return_exceptions=True,
            )
            return source, results

        source, results = _run(scenario())
        succeeded = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, Exception)]
        assert len(succeeded) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], InsufficientQuantityError)
        assert _quantities(store) == {source.id: 2, succeeded[0].destination_id: 8}

    def test_retry_uses_fresh_source_quantity(self):
        changed = []

        async def restock(tx):
            if not changed:
                changed.append(True)
                await store.update(STOCKS, source_id[0], {"quantity": 20})

        store = MemoryRecordStore()
        engine = _create_engine(store)
        source_id = []

        async def scenario():
            source = await _seed(engine, 10)
            source_id.append(source.id)
            store.before_commit = restock
            return await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 8)

        result = _run(scenario())
        assert result.source_quantity_after == 12
        assert _quantities(store)[source_id[0]] == 12

    def test_destination_deleted_before_commit_is_recreated(self):
        deleted = []

        async def delete_destination(tx):
            if not deleted:
                deleted.append(dest_id[0])
                await store.delete(STOCKS, dest_id[0])

        store = MemoryRecordStore()
        engine = _create_engine(store)
        dest_id = []

        async def scenario():
            source = await _seed(engine, 10)
            dest = await _seed(engine, 3, loc_main="Ward1", loc_exact="Cabinet2")
            dest_id.append(dest.id)
            store.before_commit = delete_destination
            return source, await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 4)

        source, result = _run(scenario())
        assert result.destination_created is True
        assert result.destination_id != dest_id[0]
        assert _quantities(store) == {source.id: 6, result.destination_id: 4}

    def test_stale_destination_id_gets_fresh_record(self):

        class DeletingStore(MemoryRecordStore):
            """Hedef çözüldükten hemen sonra hedefi siler."""

            target = None

            async def query(self, collection, filters=None):
                docs = await super().query(collection, filters)
                if self.target and any(d["id"] == self.target for d in docs):
                    await self.delete(collection, self.target)
                    self.target = None
                return docs

        store = DeletingStore()
        engine = _create_engine(store)

        async def scenario():
            source = await _seed(engine, 10)
            dest = await _seed(engine, 3, loc_main="Ward1", loc_exact="Cabinet2")
            store.target = dest.id
            return source, dest, await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 4)

        source, dest, result = _run(scenario())
        assert result.destination_created is True
        assert result.destination_id != dest.id
        assert result.destination_quantity_after == 4
        assert _quantities(store) == {source.id: 6, result.destination_id: 4}

    def test_persistent_conflict_aborts(self):

        async def always_conflict(tx):
            for (collection, doc_id) in list(tx.reads):
                await store.update(collection, doc_id, {})

        store = MemoryRecordStore()
        engine = _create_engine(store, max_attempts=3)

        async def scenario():
            source = await _seed(engine, 10)
            store.before_commit = always_conflict
            with pytest.raises(TransactionAbortedError):
                await engine.transfer(source.id, "Ward1", "Cabinet2", "on_site", 4)
            return source

        source = _run(scenario())
        assert _quantities(store) == {source.id: 10}
        assert store.conflict_count == 3
