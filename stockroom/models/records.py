"""Stok, iletişim cihazı ve uyarı veri modelleri."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple, Optional

# Koleksiyon adları
STOCKS = "stocks"
COMMS = "communications"


class StockKind(str, Enum):
    CONSUMABLE = "consumable"
    FIXTURE = "fixture"


class SiteStatus(str, Enum):
    ON_SITE = "on_site"
    OFF_SITE = "off_site"


class CommsStatus(str, Enum):
    ONLINE = "Online"
    OFFLINE = "Offline"
    NOT_IN_USE = "Not in Use"
    SPOILT = "Spoilt / Decommissioned"


class AlertSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "med"


# Her stok türü için geçerli durumlar
STATUS_BY_KIND: dict[StockKind, tuple[str, ...]] = {
    StockKind.CONSUMABLE: ("Sustainable", "Low", "Critical", "Damaged", "Missing"),
    StockKind.FIXTURE: ("Usable", "Damaged", "Missing"),
}


class IdentityTuple(NamedTuple):
    """Aynı mantıksal stok yığınını tanımlayan alan kombinasyonu."""

    kind: StockKind
    name: str
    category: str
    status: str
    loc_main: str
    loc_exact: str
    site_status: SiteStatus

    def as_fields(self) -> dict[str, Any]:
        """Store'daki alan adlarıyla eşitlik filtresi döndürür."""
        return {
            "type": self.kind.value,
            "name": self.name,
            "category": self.category,
            "status": self.status,
            "locMain": self.loc_main,
            "locExact": self.loc_exact,
            "siteStatus": self.site_status.value,
        }

    def relocated(self, loc_main: str, loc_exact: str, site_status: SiteStatus) -> IdentityTuple:
        return self._replace(loc_main=loc_main, loc_exact=loc_exact, site_status=site_status)

    @classmethod
    def from_fields(cls, data: dict) -> Optional[IdentityTuple]:
        """Store dokümanından kimlik üretir; bozuk dokümanlar için None döner."""
        try:
            return cls(
                kind=StockKind(data.get("type")),
                name=data.get("name", ""),
                category=data.get("category", ""),
                status=data.get("status", ""),
                loc_main=data.get("locMain", ""),
                loc_exact=data.get("locExact", ""),
                site_status=SiteStatus(data.get("siteStatus")),
            )
        except ValueError:
            return None


@dataclass
class StockRecord:
    id: str
    kind: StockKind
    name: str
    category: str
    status: str
    quantity: int
    loc_main: str
    loc_exact: str
    site_status: SiteStatus
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def identity(self) -> IdentityTuple:
        return IdentityTuple(
            self.kind,
            self.name,
            self.category,
            self.status,
            self.loc_main,
            self.loc_exact,
            self.site_status,
        )

    @property
    def location(self) -> str:
        return f"{self.loc_main} / {self.loc_exact}".strip()

    @classmethod
    def from_document(cls, doc: dict) -> StockRecord:
        return cls(
            id=doc["id"],
            kind=StockKind(doc.get("type")),
            name=doc.get("name", ""),
            category=doc.get("category", ""),
            status=doc.get("status", ""),
            quantity=int(doc.get("quantity") or 0),
            loc_main=doc.get("locMain", ""),
            loc_exact=doc.get("locExact", ""),
            site_status=SiteStatus(doc.get("siteStatus", SiteStatus.ON_SITE.value)),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "category": self.category,
            "status": self.status,
            "quantity": self.quantity,
            "loc_main": self.loc_main,
            "loc_exact": self.loc_exact,
            "site_status": self.site_status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class CommsRecord:
    id: str
    set_number: int
    role: str
    location: str
    call_sign: str
    status: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_document(cls, doc: dict) -> CommsRecord:
        return cls(
            id=doc["id"],
            set_number=int(doc.get("setNumber") or 0),
            role=doc.get("volunteerRole", ""),
            location=doc.get("locationOfUse", ""),
            call_sign=doc.get("callSign", ""),
            status=doc.get("status", ""),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "set_number": self.set_number,
            "role": self.role,
            "location": self.location,
            "call_sign": self.call_sign,
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class AlertDescriptor:
    module: str
    title: str
    status: str
    location: str
    severity: AlertSeverity
    link: str

    def to_dict(self) -> dict:
        return {
            "module": self.module,
            "title": self.title,
            "status": self.status,
            "location": self.location,
            "severity": self.severity.value,
            "link": self.link,
        }


@dataclass
class TransferResult:
    source_id: str
    destination_id: str
    quantity: int
    destination_created: bool
    source_quantity_after: int
    destination_quantity_after: int

    def to_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "destination_id": self.destination_id,
            "quantity": self.quantity,
            "destination_created": self.destination_created,
            "source_quantity_after": self.source_quantity_after,
            "destination_quantity_after": self.destination_quantity_after,
        }


@dataclass
class LedgerConfig:
    max_attempts: int = 5
    region: str = "us-west-2"
    stocks_table: str = "Stocks"
    comms_table: str = "Communications"

    @classmethod
    def from_env(cls) -> LedgerConfig:
        """Ortam değişkenlerinden konfigürasyon oluşturur."""
        return cls(
            max_attempts=int(os.environ.get("STOCKROOM_MAX_ATTEMPTS", "5")),
            region=os.environ.get("AWS_DEFAULT_REGION", "us-west-2"),
            stocks_table=os.environ.get("STOCKROOM_STOCKS_TABLE", "Stocks"),
            comms_table=os.environ.get("STOCKROOM_COMMS_TABLE", "Communications"),
        )
