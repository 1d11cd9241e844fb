
from .ledger_oracle import LedgerOracle

__all__ = ["LedgerOracle"]
