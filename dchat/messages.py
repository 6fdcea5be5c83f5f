"""Metered message log.

Only content pointers are stored; message bodies live in an external
content-addressed store. ``send_hash`` writes the room pointer with no fee
and no caller check.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from .admin import AdminConfig
from .exceptions import InsufficientFunds, ValidationError
from .ledger import RESERVE, AccountLedger, Context
from .logging_config import get_ledger_logger

logger = get_ledger_logger()


def _require_pointer(name: str, pointer: Any, max_length: Optional[int]) -> str:
    if not isinstance(pointer, str):
        raise ValidationError(name, "must be a string")
    if max_length is not None and len(pointer) > max_length:
        raise ValidationError(name, f"too long (max {max_length})")
    return pointer


class MessageLog:
    def __init__(
        self,
        ledger: AccountLedger,
        admin: AdminConfig,
        *,
        histories: Optional[Dict[str, List[int]]] = None,
        latest_message: str = "",
        room_hash: str = "",
    ):
        self._ledger = ledger
        self._admin = admin
        self._histories: Dict[str, List[int]] = {k: list(v) for k, v in (histories or {}).items()}
        self.latest_message = latest_message
        self.room_hash = room_hash

    def send_message(self, ctx: Context, pointer: str) -> None:
        pointer = _require_pointer("pointer", pointer, self._admin.max_pointer_length)
        fee = self._admin.tokens_per_message
        bal = self._ledger.balance_of(ctx.caller)
        if bal < fee:
            raise InsufficientFunds(f"sending a message costs {fee} tokens (have {bal})")
        self._histories.setdefault(ctx.caller, []).append(ctx.height - 1)
        self._ledger.transfer(ctx.caller, RESERVE, fee)
        self.latest_message = pointer
        logger.debug(f"message {pointer[:16]} from {ctx.caller[:16]} at height {ctx.height}")

    def get_message(self) -> str:
        return self.latest_message

    def send_hash(self, ctx: Context, pointer: str) -> None:
        self.room_hash = _require_pointer("pointer", pointer, self._admin.max_pointer_length)
        logger.debug(f"room hash set to {self.room_hash[:16]} by {ctx.caller[:16]}")

    def get_hash(self) -> str:
        return self.room_hash

    def get_message_history(self, account: str) -> List[int]:
        return list(self._histories.get(account, []))

    def snapshot(self) -> Dict[str, Any]:
        return {
            "histories": {k: list(v) for k, v in self._histories.items()},
            "latest_message": self.latest_message,
            "room_hash": self.room_hash,
        }

    @staticmethod
    def from_snapshot(s: Dict[str, Any], ledger: AccountLedger, admin: AdminConfig) -> "MessageLog":
        return MessageLog(
            ledger,
            admin,
            histories={str(k): [int(h) for h in v] for k, v in (s.get("histories", {}) or {}).items()},
            latest_message=str(s.get("latest_message", "")),
            room_hash=str(s.get("room_hash", "")),
        )
