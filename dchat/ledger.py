"""Account balances and the reserve.

``AccountLedger`` is the only owner of balances. Other components hold a
reference to it and go through ``balance_of`` and ``transfer``; value only
ever moves between an account and the reserve.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

from .exceptions import InsufficientFunds, InsufficientReserve, LedgerError, ValidationError
from .logging_config import get_ledger_logger

logger = get_ledger_logger()


RESERVE = "__RESERVE__"

# Maximum token value to prevent integer overflow (safe int64 limit)
MAX_TOKEN_VALUE = 2**63 - 1


@dataclass(frozen=True)
class Context:
    """Invoking context of an operation: block height and authenticated caller."""

    height: int
    caller: str = ""


def require_uint(name: str, v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValidationError(name, "must be an integer")
    if v < 0:
        raise ValidationError(name, "must not be negative")
    if v > MAX_TOKEN_VALUE:
        raise ValidationError(name, "too large")
    return v


class AccountLedger:
    def __init__(self, total_supply: int, balances: Optional[Dict[str, int]] = None):
        self.total_supply = require_uint("total_supply", total_supply)
        if balances is None:
            balances = {RESERVE: self.total_supply}
        self._balances: Dict[str, int] = {k: int(v) for k, v in balances.items()}
        self._balances.setdefault(RESERVE, 0)

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    @property
    def reserve_balance(self) -> int:
        return self._balances[RESERVE]

    def accounts(self) -> Iterator[Tuple[str, int]]:
        """Known non-reserve accounts and their balances."""
        for k, v in self._balances.items():
            if k != RESERVE:
                yield k, v

    def transfer(self, src: str, dst: str, amount: int) -> None:
        """Move ``amount`` from ``src`` to ``dst``; one side must be the reserve."""
        require_uint("amount", amount)
        if RESERVE not in (src, dst) or src == dst:
            raise LedgerError("transfers must be between an account and the reserve")
        bal = self.balance_of(src)
        if bal < amount:
            if src == RESERVE:
                raise InsufficientReserve(f"reserve cannot cover {amount} (has {bal})")
            raise InsufficientFunds(f"insufficient balance (need {amount}, have {bal})")
        self._balances[src] = bal - amount
        self._balances[dst] = self.balance_of(dst) + amount
        logger.debug(f"transfer {amount} {src[:16]} -> {dst[:16]}")

    def circulating(self) -> int:
        return sum(v for _, v in self.accounts())

    def check_invariant(self) -> bool:
        """Balances plus reserve must always add up to the fixed supply."""
        return self.circulating() + self.reserve_balance == self.total_supply

    def snapshot(self) -> Dict[str, Any]:
        return {"total_supply": self.total_supply, "balances": dict(self._balances)}

    @staticmethod
    def from_snapshot(s: Dict[str, Any]) -> "AccountLedger":
        return AccountLedger(
            int(s["total_supply"]),
            {str(k): int(v) for k, v in (s.get("balances", {}) or {}).items()},
        )
