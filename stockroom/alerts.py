"""Uyarı motoru - kayıt durumlarından önceliklendirilmiş uyarılar türetir.

- Sarf malzemesi: Critical/Missing yüksek, Damaged/Low orta
- Demirbaş: Missing yüksek, Damaged orta
- Telsiz: Spoilt / Decommissioned yüksek
Saf fonksiyondur; store'a erişmez, hiçbir kaydı değiştirmez.
"""

from __future__ import annotations

from typing import Iterable, Optional

from stockroom.models.records import (
    AlertDescriptor,
    AlertSeverity,
    CommsRecord,
    CommsStatus,
    StockKind,
    StockRecord,
)

CONSUMABLE_ALERTS = frozenset({"Low", "Critical", "Damaged", "Missing"})
FIXTURE_ALERTS = frozenset({"Damaged", "Missing"})
COMMS_ALERTS = frozenset({CommsStatus.SPOILT.value})

SEVERITY_RANK = {AlertSeverity.HIGH: 0, AlertSeverity.MEDIUM: 1}

LINKS = {
    "Consumable": "consumable-records.html",
    "Fixture": "fixture-records.html",
    "Comms": "communications.html",
}


def severity_for(module: str, status: str) -> Optional[AlertSeverity]:
    """Modül ve duruma göre uyarı şiddetini döndürür; uyarı yoksa None."""
    if module == "Consumable":
        if status in ("Critical", "Missing"):
            return AlertSeverity.HIGH
        if status in ("Damaged", "Low"):
            return AlertSeverity.MEDIUM
    if module == "Fixture":
        if status == "Missing":
            return AlertSeverity.HIGH
        if status == "Damaged":
            return AlertSeverity.MEDIUM
    if module == "Comms" and status in COMMS_ALERTS:
        return AlertSeverity.HIGH
    return None


def _stock_alert(record: StockRecord) -> Optional[AlertDescriptor]:
    if record.kind == StockKind.CONSUMABLE and record.status in CONSUMABLE_ALERTS:
        module = "Consumable"
    elif record.kind == StockKind.FIXTURE and record.status in FIXTURE_ALERTS:
        module = "Fixture"
    else:
        return None
    return AlertDescriptor(
        module=module,
        title=record.name or "Unnamed",
        status=record.status,
        location=record.location,
        severity=severity_for(module, record.status),
        link=LINKS[module],
    )


def _comms_alert(record: CommsRecord) -> Optional[AlertDescriptor]:
    if record.status not in COMMS_ALERTS:
        return None
    call_sign = f" ({record.call_sign})" if record.call_sign else ""
    return AlertDescriptor(
        module="Comms",
        title=f"Set {record.set_number}{call_sign}".strip(),
        status=record.status,
        location=(record.location or "").strip(),
        severity=severity_for("Comms", record.status),
        link=LINKS["Comms"],
    )


def derive_alerts(
    stock_records: Iterable[StockRecord],
    comms_records: Iterable[CommsRecord],
) -> list[AlertDescriptor]:
    """Önce stok, sonra telsiz kayıtlarını tarar ve şiddete göre sıralar.

    sorted() kararlıdır: aynı şiddetteki uyarılar giriş sırasını korur.
    """
    alerts: list[AlertDescriptor] = []
    for record in stock_records:
        alert = _stock_alert(record)
        if alert is not None:
            alerts.append(alert)
    for record in comms_records:
        alert = _comms_alert(record)
        if alert is not None:
            alerts.append(alert)
    return sorted(alerts, key=lambda a: SEVERITY_RANK.get(a.severity, 9))


def alerts_headline(alerts: list[AlertDescriptor]) -> str:
    if not alerts:
        return "No active alerts"
    return f"{len(alerts)} alert(s) require attention"
