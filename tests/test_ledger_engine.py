"""Ledger Engine unit testleri (ekleme/birleştirme, düzenleme, silme, listeleme)."""

import asyncio

import pytest

from stockroom.errors import NotFoundError, ValidationError
from stockroom.ledger import LedgerEngine
from stockroom.models.records import STOCKS, SiteStatus, StockKind
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


def _create_engine(store=None) -> LedgerEngine:
    return LedgerEngine(store or MemoryRecordStore())


def _run(coro):
    return asyncio.run(coro)


class TestAddOrMerge:
    """Aynı kimlikte ikinci ekleme miktarı birleştirir."""

    def test_scenario_merge_same_identity(self):
        engine = _create_engine()

        async def scenario():
            first = await engine.add_or_merge({**BANDAGES, "quantity": 10})
            second = await engine.add_or_merge({**BANDAGES, "quantity": 5})
            return first, second, await engine.list_records()

        first, second, records = _run(scenario())
        assert second.id == first.id
        assert second.quantity == 15
        assert len(records) == 1

    def test_new_record_fields(self):
        engine = _create_engine()
        record = _run(engine.add_or_merge({**BANDAGES, "quantity": 10}))
        assert record.kind == StockKind.CONSUMABLE
        assert record.site_status == SiteStatus.ON_SITE
        assert record.location == "Storeroom / ShelfA"
        assert record.created_at is not None
        assert record.updated_at is not None

    def test_different_status_creates_second_record(self):
        engine = _create_engine()

        async def scenario():
            await engine.add_or_merge({**BANDAGES, "quantity": 10})
            await engine.add_or_merge({**BANDAGES, "status": "Low", "quantity": 2})
            return await engine.list_records()

        assert len(_run(scenario())) == 2

    def test_identity_is_case_sensitive(self):
        engine = _create_engine()

        async def scenario():
            await engine.add_or_merge({**BANDAGES, "quantity": 1})
            await engine.add_or_merge({**BANDAGES, "name": "bandages", "quantity": 1})
            return await engine.list_records()

        assert len(_run(scenario())) == 2

    def test_whitespace_is_trimmed_before_matching(self):
        engine = _create_engine()

        async def scenario():
            await engine.add_or_merge({**BANDAGES, "quantity": 3})
            return await engine.add_or_merge({**BANDAGES, "name": "  Bandages ", "quantity": 4})

        assert _run(scenario()).quantity == 7

    def test_kind_is_lowercased(self):
        engine = _create_engine()
        record = _run(engine.add_or_merge({**BANDAGES, "kind": "Consumable", "quantity": 1}))
        assert record.kind == StockKind.CONSUMABLE

    def test_non_numeric_quantity_becomes_zero(self):
        engine = _create_engine()
        record = _run(engine.add_or_merge({**BANDAGES, "quantity": "abc"}))
        assert record.quantity == 0

    def test_negative_quantity_becomes_zero(self):
        engine = _create_engine()
        record = _run(engine.add_or_merge({**BANDAGES, "quantity": -4}))
        assert record.quantity == 0

    def test_leading_integer_is_parsed(self):
        engine = _create_engine()
        record = _run(engine.add_or_merge({**BANDAGES, "quantity": "12 boxes"}))
        assert record.quantity == 12

    def test_concurrent_merges_are_not_lost(self):
        engine = _create_engine()

        async def scenario():
            await engine.add_or_merge({**BANDAGES, "quantity": 10})
            await asyncio.gather(
                engine.add_or_merge({**BANDAGES, "quantity": 5}),
                engine.add_or_merge({**BANDAGES, "quantity": 3}),
            )
            return await engine.list_records()

        records = _run(scenario())
        assert len(records) == 1
        assert records[0].quantity == 18

    def test_merge_target_deleted_during_attempt_creates_record(self):
        deleted = []

        async def delete_target(tx):
            if not deleted:
                target_id = next(doc_id for (_, doc_id) in tx.reads)
                await store.delete(STOCKS, target_id)
                deleted.append(target_id)

        store = MemoryRecordStore()
        engine = _create_engine(store)

        async def scenario():
            first = await engine.add_or_merge({**BANDAGES, "quantity": 10})
            store.before_commit = delete_target
            second = await engine.add_or_merge({**BANDAGES, "quantity": 5})
            return first, second

        first, second = _run(scenario())
        assert deleted == [first.id]
        assert second.id != first.id
        assert second.quantity == 5
        assert list(store.snapshot(STOCKS)) == [second.id]


class TestAddValidation:
    """Geçersiz girdi store'a dokunmadan reddedilir."""

    @pytest.mark.parametrize("payload", [
        {**BANDAGES, "kind": "tool"},
        {**BANDAGES, "status": "Usable"},
        {**BANDAGES, "kind": "fixture", "status": "Low"},
        {**BANDAGES, "name": "   "},
        {**BANDAGES, "loc_exact": ""},
        {**BANDAGES, "site_status": "elsewhere"},
    ])
    def test_invalid_payload_rejected(self, payload):
        store = MemoryRecordStore()
        engine = _create_engine(store)
        with pytest.raises(ValidationError):
            _run(engine.add_or_merge(payload))
        assert store.snapshot(STOCKS) == {}
        assert store.commit_count == 0

    def test_all_problems_reported(self):
        engine = _create_engine()
        with pytest.raises(ValidationError) as exc:
            _run(engine.add_or_merge({"kind": "consumable", "status": "Nope", "site_status": "on_site"}))
        assert len(exc.value.errors) == 2


class TestUpdateFields:
    """Düzenleme tam alan değişimidir, kimlik birleştirmesi yapmaz."""

    def test_replaces_all_fields(self):
        engine = _create_engine()

        async def scenario():
            record = await engine.add_or_merge({**BANDAGES, "quantity": 10})
            return await engine.update_fields(record.id, {
                **BANDAGES, "name": "Gauze", "status": "Low", "quantity": 3,
            })

        updated = _run(scenario())
        assert updated.name == "Gauze"
        assert updated.status == "Low"
        assert updated.quantity == 3

    def test_invalid_quantity_keeps_prior_value(self):
        engine = _create_engine()

        async def scenario():
            record = await engine.add_or_merge({**BANDAGES, "quantity": 10})
            return await engine.update_fields(record.id, {**BANDAGES, "quantity": "n/a"})

        assert _run(scenario()).quantity == 10

    def test_missing_record_raises(self):
        engine = _create_engine()
        with pytest.raises(NotFoundError):
            _run(engine.update_fields("missing", {**BANDAGES, "quantity": 1}))

    def test_invalid_payload_does_not_write(self):
        store = MemoryRecordStore()
        engine = _create_engine(store)

        async def scenario():
            record = await engine.add_or_merge({**BANDAGES, "quantity": 10})
            with pytest.raises(ValidationError):
                await engine.update_fields(record.id, {**BANDAGES, "loc_main": ""})
            return await engine.get_record(record.id)

        assert _run(scenario()).loc_main == "Storeroom"

    def test_edit_collision_is_detectable(self):
        engine = _create_engine()

        async def scenario():
            a = await engine.add_or_merge({**BANDAGES, "quantity": 10})
            b = await engine.add_or_merge({**BANDAGES, "loc_exact": "ShelfB", "quantity": 2})
            await engine.update_fields(b.id, {**BANDAGES, "quantity": 2})
            return a, b, await engine.list_records(), await engine.find_duplicate_identities()

        a, b, records, duplicates = _run(scenario())
        assert len(records) == 2
        assert len(duplicates) == 1
        assert sorted(duplicates[0]) == sorted([a.id, b.id])


class TestRemove:

    def test_remove_deletes_record(self):
        engine = _create_engine()

        async def scenario():
            record = await engine.add_or_merge({**BANDAGES, "quantity": 10})
            await engine.remove(record.id)
            return await engine.list_records()

        assert _run(scenario()) == []

    def test_remove_missing_raises(self):
        engine = _create_engine()
        with pytest.raises(NotFoundError):
            _run(engine.remove("missing"))


class TestListAndSearch:

    def test_newest_first(self):
        store = MemoryRecordStore()
        engine = _create_engine(store)

        async def scenario():
            older = await engine.add_or_merge({**BANDAGES, "quantity": 1})
            newer = await engine.add_or_merge({**BANDAGES, "loc_exact": "ShelfB", "quantity": 1})
            docs = store._docs(STOCKS)
            docs[older.id]["updatedAt"] = "2024-01-01T10:00:00+00:00"
            docs[newer.id]["updatedAt"] = "2024-01-02T10:00:00+00:00"
            return older, newer, await engine.list_records()

        older, newer, records = _run(scenario())
        assert [r.id for r in records] == [newer.id, older.id]

    def test_filter_by_kind(self):
        engine = _create_engine()

        async def scenario():
            await engine.add_or_merge({**BANDAGES, "quantity": 1})
            await engine.add_or_merge({
                **BANDAGES, "kind": "fixture", "name": "Stretcher",
                "category": "Transport", "status": "Usable", "quantity": 2,
            })
            return await engine.list_records("fixture")

        records = _run(scenario())
        assert [r.name for r in records] == ["Stretcher"]

    def test_search_is_case_insensitive(self):
        engine = _create_engine()

        async def scenario():
            await engine.add_or_merge({**BANDAGES, "quantity": 1})
            await engine.add_or_merge({**BANDAGES, "name": "Gloves", "category": "PPE", "quantity": 1})
            return await engine.search_records("wound")

        assert [r.name for r in _run(scenario())] == ["Bandages"]

    def test_empty_search_returns_all(self):
        engine = _create_engine()

        async def scenario():
            await engine.add_or_merge({**BANDAGES, "quantity": 1})
            return await engine.search_records("  ")

        assert len(_run(scenario())) == 1


class TestAuditLog:

    def test_create_and_merge_entries(self):
        engine = _create_engine()

        async def scenario():
            await engine.add_or_merge({**BANDAGES, "quantity": 10})
            return await engine.add_or_merge({**BANDAGES, "quantity": 5})

        record = _run(scenario())
        entries = engine.get_audit_log(record.id)
        assert [e.operation_type for e in entries] == ["create", "merge"]
        assert entries[1].quantity_before == 10
        assert entries[1].quantity_after == 15
        assert entries[1].change_amount == 5

    def test_edit_without_quantity_change_not_logged(self):
        engine = _create_engine()

        async def scenario():
            record = await engine.add_or_merge({**BANDAGES, "quantity": 10})
            await engine.update_fields(record.id, {**BANDAGES, "status": "Low", "quantity": 10})
            return record

        record = _run(scenario())
        assert [e.operation_type for e in engine.get_audit_log(record.id)] == ["create"]
