"""
Stok defteri demo script'i - ekleme/birleştirme, transfer ve uyarı akışı.

Kullanım:
    python demo.py            # Bellek içi store ile
    python demo.py --aws      # DynamoDB ile (önce: python -m stockroom.store.dynamodb_setup)
"""

import asyncio
import logging
import sys

import env_loader

from stockroom.dashboard import load_dashboard
from stockroom.errors import InsufficientQuantityError
from stockroom.ledger import CommsRegistry, LedgerEngine
from stockroom.models.records import LedgerConfig
from stockroom.store.memory import MemoryRecordStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")

BANDAGES = {
    "kind": "consumable",
    "name": "Bandages",
    "category": "Wound Care",
    "status": "Sustainable",
    "loc_main": "Storeroom",
    "loc_exact": "ShelfA",
    "site_status": "on_site",
}


def build_store(use_aws: bool):
    if not use_aws:
        return MemoryRecordStore()
    from stockroom.store.dynamodb import DynamoDBRecordStore
    return DynamoDBRecordStore(LedgerConfig.from_env())


async def run(use_aws: bool = False):
    store = build_store(use_aws)
    ledger = LedgerEngine(store)
    comms = CommsRegistry(store)

    print("\n--- Ekleme ve birleştirme ---")
    await ledger.add_or_merge({**BANDAGES, "quantity": 10})
    record = await ledger.add_or_merge({**BANDAGES, "quantity": 5})
    print(f"✅ {record.name}: {record.quantity} adet ({record.location})")

    print("\n--- Transfer ---")
    result = await ledger.transfer(record.id, "Ward1", "Cabinet2", "on_site", 4)
    print(f"✅ {result.quantity} adet taşındı: kaynak={result.source_quantity_after}, "
          f"hedef={result.destination_quantity_after}")

    try:
        await ledger.transfer(record.id, "Ward1", "Cabinet2", "on_site", 20)
    except InsufficientQuantityError as e:
        print(f"⏭️  Beklenen hata: {e}")

    result = await ledger.transfer(record.id, "Ward1", "Cabinet2", "on_site")
    print(f"✅ Tamamı taşındı: kaynak={result.source_quantity_after}, "
          f"hedef={result.destination_quantity_after}")

    print("\n--- Telsiz ve uyarılar ---")
    radio = await comms.upsert_radio({
        "set_number": 7, "role": "Team Lead", "location": "Gate B",
        "call_sign": "ALPHA", "status": "Online",
    })
    await comms.set_status(radio.id, "Spoilt / Decommissioned")
    await ledger.add_or_merge({**BANDAGES, "status": "Low", "quantity": 2})

    view = await load_dashboard(store)
    print(f"📊 {view.summary.to_dict()}")
    print(f"🚨 {view.headline}")
    for alert in view.alerts:
        print(f"   [{alert.severity.value}] {alert.module}: {alert.title} - {alert.status} ({alert.location})")


if __name__ == "__main__":
    asyncio.run(run(use_aws="--aws" in sys.argv[1:]))
