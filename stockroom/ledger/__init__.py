from stockroom.ledger.comms import CommsRegistry
from stockroom.ledger.engine import LedgerEngine
from stockroom.ledger.identity import IdentityResolver

__all__ = [
    "CommsRegistry",
    "IdentityResolver",
    "LedgerEngine",
]
