"""Gösterge paneli okuma modeli: stok özeti ve güncel uyarılar."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from stockroom.alerts import alerts_headline, derive_alerts
from stockroom.models.records import (
    COMMS,
    STOCKS,
    AlertDescriptor,
    CommsRecord,
    StockKind,
    StockRecord,
)
from stockroom.store.base import RecordStore


@dataclass
class StockSummary:
    total_records: int = 0
    consumable_records: int = 0
    consumable_quantity: int = 0
    fixture_records: int = 0
    fixture_quantity: int = 0

    def to_dict(self) -> dict:
        return {
            "total_records": self.total_records,
            "consumable_records": self.consumable_records,
            "consumable_quantity": self.consumable_quantity,
            "fixture_records": self.fixture_records,
            "fixture_quantity": self.fixture_quantity,
        }


@dataclass
class DashboardView:
    summary: StockSummary
    alerts: list[AlertDescriptor] = field(default_factory=list)

    @property
    def headline(self) -> str:
        return alerts_headline(self.alerts)

    def to_dict(self) -> dict:
        return {
            "summary": self.summary.to_dict(),
            "headline": self.headline,
            "alerts": [a.to_dict() for a in self.alerts],
        }


def summarize_stock(records: Iterable[StockRecord]) -> StockSummary:
    summary = StockSummary()
    for r in records:
        summary.total_records += 1
        if r.kind == StockKind.CONSUMABLE:
            summary.consumable_records += 1
            summary.consumable_quantity += r.quantity
        elif r.kind == StockKind.FIXTURE:
            summary.fixture_records += 1
            summary.fixture_quantity += r.quantity
    return summary


async def load_dashboard(store: RecordStore) -> DashboardView:
    """Her iki koleksiyonu yeniden okur ve uyarıları baştan hesaplar."""
    stocks = [StockRecord.from_document(d) for d in await store.query(STOCKS)]
    comms = [CommsRecord.from_document(d) for d in await store.query(COMMS)]
    return DashboardView(summary=summarize_stock(stocks), alerts=derive_alerts(stocks, comms))
