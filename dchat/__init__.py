__version__ = "0.1.0"

from .config import Config, get_config, set_config, load_config, reset_config
from .exceptions import (
    DChatError, LedgerError, InsufficientFunds, InsufficientReserve, Unauthorized,
    NotYetEligible, ValidationError, ChainError, StorageError, NodeError,
)
from .ledger import RESERVE, Context
from .contract import ChatContract, Receipt

__all__ = [
    "Config",
    "get_config",
    "set_config",
    "load_config",
    "reset_config",
    "DChatError",
    "LedgerError",
    "InsufficientFunds",
    "InsufficientReserve",
    "Unauthorized",
    "NotYetEligible",
    "ValidationError",
    "ChainError",
    "StorageError",
    "NodeError",
    "RESERVE",
    "Context",
    "ChatContract",
    "Receipt",
]
