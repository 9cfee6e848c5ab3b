"""Stok defteri hata sınıfları."""

from __future__ import annotations

from typing import Optional


class StockroomError(Exception):
    """Tüm defter hatalarının temel sınıfı."""
    pass


class ValidationError(StockroomError):
    """Geçersiz girdi; store'a hiç erişilmez."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class NotFoundError(StockroomError):
    """Referans verilen kayıt bulunamadı."""
    pass


class InvalidQuantityError(StockroomError):
    """Transfer miktarı pozitif değil ya da bozuk."""
    pass


class InsufficientQuantityError(InvalidQuantityError):
    """Transfer miktarı kaynak stoktan fazla."""
    pass


class TransactionAbortedError(StockroomError):
    """Çakışma nedeniyle işlem tekrar denemelere rağmen tamamlanamadı."""
    pass


class StoreUnavailableError(StockroomError):
    """Store'a ağ/yetki hatası nedeniyle erişilemedi."""
    pass


class TransactionConflict(Exception):
    """Commit sırasında eşzamanlı yazma tespit edildi, işlem yeniden çalıştırılmalı."""
    pass
