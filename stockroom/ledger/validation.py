"""Girdi validasyonu ve stok tutarlılık kontrolleri.

- Stok ve telsiz payload'larının normalize edilmesi/doğrulanması
- Transfer miktarı çözümleme
- Negatif stok ve stok korunumu kontrolleri
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from stockroom.errors import (
    InsufficientQuantityError,
    InvalidQuantityError,
    ValidationError,
)
from stockroom.models.records import (
    STATUS_BY_KIND,
    CommsStatus,
    IdentityTuple,
    SiteStatus,
    StockKind,
    StockRecord,
)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def normalize(value: Any) -> str:
    """None'ı boş string yapar ve baştaki/sondaki boşlukları temizler."""
    return "" if value is None else str(value).strip()


def safe_int(value: Any, fallback: int = 0) -> int:
    """Baştaki tamsayıyı okur; sayı değilse ya da negatifse fallback döner."""
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value if value >= 0 else fallback
    match = _LEADING_INT.match("" if value is None else str(value))
    if not match:
        return fallback
    n = int(match.group(1))
    return n if n >= 0 else fallback


def parse_kind(value: Any) -> StockKind:
    try:
        return StockKind(normalize(value).lower())
    except ValueError:
        raise ValidationError(f"Geçersiz stok türü: {value!r}")


def parse_site_status(value: Any) -> SiteStatus:
    try:
        return SiteStatus(normalize(value))
    except ValueError:
        raise ValidationError(f"Geçersiz saha durumu: {value!r}")


def validate_stock_payload(payload: dict, prior_quantity: int = 0) -> dict:
    """Stok payload'ını doğrular ve store alanlarına çevirir.

    Kontroller:
    - Tür/durum eşleşmesi STATUS_BY_KIND tablosuna uymalı
    - name, category, loc_main, loc_exact boş olmamalı (trim sonrası)
    - Miktar sayı değilse ya da negatifse prior_quantity kullanılır
    """
    errors: list[str] = []

    kind: Optional[StockKind] = None
    try:
        kind = parse_kind(payload.get("kind"))
    except ValidationError as e:
        errors.append(str(e))

    status = normalize(payload.get("status"))
    if kind is not None and status not in STATUS_BY_KIND[kind]:
        errors.append(f"{kind.value} için geçersiz durum: {status!r}")

    site_status: Optional[SiteStatus] = None
    try:
        site_status = parse_site_status(payload.get("site_status"))
    except ValidationError as e:
        errors.append(str(e))

    text = {
        key: normalize(payload.get(key))
        for key in ("name", "category", "loc_main", "loc_exact")
    }
    missing = [key for key, value in text.items() if not value]
    if missing:
        errors.append(f"Zorunlu alanlar boş: {', '.join(missing)}")

    if errors:
        raise ValidationError("; ".join(errors), errors)

    return {
        "type": kind.value,
        "name": text["name"],
        "category": text["category"],
        "status": status,
        "quantity": safe_int(payload.get("quantity"), prior_quantity),
        "locMain": text["loc_main"],
        "locExact": text["loc_exact"],
        "siteStatus": site_status.value,
    }


def is_valid_set_number(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_comms_payload(payload: dict) -> dict:
    """Telsiz seti payload'ını doğrular ve store alanlarına çevirir."""
    errors: list[str] = []

    raw_set = payload.get("set_number")
    set_number: Any = raw_set
    if isinstance(raw_set, str) and raw_set.strip().isdigit():
        set_number = int(raw_set.strip())
    if not is_valid_set_number(set_number):
        errors.append(f"Set numarası pozitif tamsayı olmalı: {raw_set!r}")

    text = {
        key: normalize(payload.get(key))
        for key in ("role", "location", "call_sign")
    }
    missing = [key for key, value in text.items() if not value]
    if missing:
        errors.append(f"Zorunlu alanlar boş: {', '.join(missing)}")

    status = normalize(payload.get("status"))
    if status not in {s.value for s in CommsStatus}:
        errors.append(f"Geçersiz telsiz durumu: {status!r}")

    if errors:
        raise ValidationError("; ".join(errors), errors)

    return {
        "setNumber": set_number,
        "volunteerRole": text["role"],
        "locationOfUse": text["location"],
        "callSign": text["call_sign"],
        "status": status,
    }


# --- Transfer miktarı ---

def parse_transfer_quantity(raw: Any) -> Optional[int]:
    """Transfer miktarını çözer; boş/None "hepsi" anlamına gelir ve None döner."""
    if raw is None or (isinstance(raw, str) and normalize(raw) == ""):
        return None
    quantity = safe_int(raw, 0)
    if quantity <= 0:
        raise InvalidQuantityError(f"Transfer miktarı pozitif olmalıdır: {raw!r}")
    return quantity


def resolve_transfer_amount(requested: Optional[int], available: int) -> int:
    """Transaction içinde okunan güncel miktara göre transfer miktarını belirler."""
    if requested is None:
        if available <= 0:
            raise InvalidQuantityError("Transfer edilecek stok yok (kaynak miktarı 0)")
        return available
    if requested > available:
        raise InsufficientQuantityError(
            f"Yetersiz stok: mevcut={available}, istenen={requested}"
        )
    return requested


# --- Tutarlılık kontrolleri ---

def check_no_negative_stock(records: Iterable[StockRecord]) -> ValidationResult:
    """Hiçbir kaydın negatif miktar taşımadığını doğrular."""
    errors = [
        f"Negatif stok tespit edildi: {r.id} ({r.name}) = {r.quantity}"
        for r in records
        if r.quantity < 0
    ]
    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def verify_conservation(
    before: dict[str, int],
    after: dict[str, int],
) -> ValidationResult:
    """Transfer öncesi ve sonrası toplam miktarın korunduğunu doğrular.

    before/after: {record_id: quantity}; önceden olmayan kayıt 0 sayılır.
    """
    total_before = sum(before.values())
    total_after = sum(after.values())
    errors = []
    if total_before != total_after:
        errors.append(
            f"Stok korunumu ihlali: önceki toplam={total_before}, sonraki toplam={total_after}"
        )
    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def find_duplicates(records: Iterable[StockRecord]) -> list[list[str]]:
    """Aynı kimliği paylaşan kayıtların id gruplarını döndürür."""
    groups: dict[IdentityTuple, list[str]] = {}
    for r in records:
        groups.setdefault(r.identity, []).append(r.id)
    return [ids for ids in groups.values() if len(ids) > 1]
