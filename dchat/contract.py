"""The chat ledger contract.

``LedgerState`` composes the four capabilities (balances, claim schedule,
message log, admin tunables) into one object. ``ChatContract`` is the
operation surface: every state-changing call runs against a copy of the
state and is committed only if it completes.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .admin import AdminConfig
from .claims import ClaimScheduler
from .config import get_config
from .exceptions import LedgerError, NotYetEligible, UnknownOperation, ValidationError
from .ledger import RESERVE, AccountLedger, Context
from .logging_config import get_ledger_logger
from .messages import MessageLog

logger = get_ledger_logger()


@dataclass
class Account:
    """Read-only view of one account across all components."""

    account: str
    balance: int
    last_claimed_height: int
    send_history: List[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "balance": int(self.balance),
            "last_claimed_height": int(self.last_claimed_height),
            "send_history": list(self.send_history),
        }


class LedgerState:
    def __init__(self, ledger: AccountLedger, admin: AdminConfig, claims: ClaimScheduler, messages: MessageLog):
        self.ledger = ledger
        self.admin = admin
        self.claims = claims
        self.messages = messages

    @staticmethod
    def create(
        owner: str,
        *,
        total_supply: int,
        daily_tokens: int,
        tokens_per_message: int,
        blocks_per_claim: int,
        max_pointer_length: Optional[int] = None,
    ) -> "LedgerState":
        ledger = AccountLedger(total_supply)
        admin = AdminConfig(
            owner,
            daily_tokens=daily_tokens,
            tokens_per_message=tokens_per_message,
            blocks_per_claim=blocks_per_claim,
            max_pointer_length=max_pointer_length,
        )
        return LedgerState(
            ledger,
            admin,
            ClaimScheduler(ledger, admin),
            MessageLog(ledger, admin),
        )

    def snapshot(self) -> Dict[str, Any]:
        return {
            "ledger": self.ledger.snapshot(),
            "admin": self.admin.snapshot(),
            "claims": self.claims.snapshot(),
            "messages": self.messages.snapshot(),
        }

    @staticmethod
    def from_snapshot(s: Dict[str, Any]) -> "LedgerState":
        ledger = AccountLedger.from_snapshot(s["ledger"])
        admin = AdminConfig.from_snapshot(s["admin"])
        return LedgerState(
            ledger,
            admin,
            ClaimScheduler.from_snapshot(s.get("claims", {}) or {}, ledger, admin),
            MessageLog.from_snapshot(s.get("messages", {}) or {}, ledger, admin),
        )


@dataclass
class Receipt:
    """Outcome of one executed operation."""

    op: str
    height: int
    caller: str
    ok: bool
    result: Any = None
    reason: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "op": self.op,
            "height": int(self.height),
            "caller": self.caller,
            "ok": bool(self.ok),
            "result": self.result,
            "reason": self.reason,
            "error": self.error,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Receipt":
        return Receipt(
            op=str(d["op"]),
            height=int(d.get("height", 0)),
            caller=str(d.get("caller", "")),
            ok=bool(d.get("ok", False)),
            result=d.get("result"),
            reason=d.get("reason"),
            error=d.get("error"),
        )


@dataclass(frozen=True)
class Operation:
    method: str
    mutates: bool
    needs_ctx: bool


# Wire name -> ChatContract method
OPERATIONS: Dict[str, Operation] = {
    "balanceOf": Operation("balance_of", False, False),
    "getBlocksTillClaimable": Operation("get_blocks_till_claimable", False, True),
    "getClaimableTokens": Operation("get_claimable_tokens", False, True),
    "getBlocksPerClaim": Operation("get_blocks_per_claim", False, False),
    "getTokensPerMessage": Operation("get_tokens_per_message", False, False),
    "getDailyTokensNo": Operation("get_daily_tokens_no", False, False),
    "getMessageHistory": Operation("get_message_history", False, False),
    "getMessage": Operation("get_message", False, False),
    "getHash": Operation("get_hash", False, False),
    "claim": Operation("claim", True, True),
    "sendMessage": Operation("send_message", True, True),
    "sendHash": Operation("send_hash", True, True),
    "changeBlocksPerClaim": Operation("change_blocks_per_claim", True, True),
}


class ChatContract:
    def __init__(self, state: LedgerState):
        self.state = state

    @staticmethod
    def deploy(
        owner: str,
        *,
        total_supply: Optional[int] = None,
        daily_tokens: Optional[int] = None,
        tokens_per_message: Optional[int] = None,
        blocks_per_claim: Optional[int] = None,
        max_pointer_length: Optional[int] = None,
    ) -> "ChatContract":
        """Create a contract owned by ``owner``; unset parameters come from config."""
        cfg = get_config().ledger
        if max_pointer_length is None:
            max_pointer_length = get_config().chain.max_pointer_length
        state = LedgerState.create(
            owner,
            total_supply=cfg.total_supply if total_supply is None else total_supply,
            daily_tokens=cfg.daily_tokens if daily_tokens is None else daily_tokens,
            tokens_per_message=cfg.tokens_per_message if tokens_per_message is None else tokens_per_message,
            blocks_per_claim=cfg.blocks_per_claim if blocks_per_claim is None else blocks_per_claim,
            max_pointer_length=max_pointer_length,
        )
        logger.info(f"deployed contract owned by {owner[:16]} with supply {state.ledger.total_supply}")
        return ChatContract(state)

    @property
    def owner(self) -> str:
        return self.state.admin.owner

    @property
    def reserve_balance(self) -> int:
        return self.state.ledger.reserve_balance

    @property
    def total_supply(self) -> int:
        return self.state.ledger.total_supply

    def check_invariant(self) -> bool:
        return self.state.ledger.check_invariant()

    def account(self, account: str) -> Account:
        return Account(
            account=account,
            balance=self.balance_of(account),
            last_claimed_height=self.state.claims.last_claimed_height(account),
            send_history=self.get_message_history(account),
        )

    # ---------- atomic execution ----------

    def _atomic(self, fn: Callable[[LedgerState], Any]) -> Any:
        """Run ``fn`` on a copy of the state; commit only if it returns."""
        st = LedgerState.from_snapshot(self.state.snapshot())
        result = fn(st)
        self.state = st
        return result

    def execute(self, ctx: Context, name: str, *args: Any) -> Receipt:
        """Run one named operation and report its outcome.

        Contract failures never propagate from here: they are returned as a
        failed receipt and the state is left exactly as it was.
        """
        try:
            result = self.call(name, ctx, *args)
        except (LedgerError, ValidationError) as e:
            logger.info(f"{name} by {ctx.caller[:16]} at height {ctx.height} failed: {e.reason}: {e}")
            return Receipt(op=name, height=ctx.height, caller=ctx.caller, ok=False, reason=e.reason, error=str(e))
        if name == "claim" and result is False:
            return Receipt(op=name, height=ctx.height, caller=ctx.caller, ok=False, result=False,
                           reason=NotYetEligible.reason)
        return Receipt(op=name, height=ctx.height, caller=ctx.caller, ok=True, result=result)

    def call(self, name: str, ctx: Context, *args: Any) -> Any:
        """Dispatch a wire-named operation; contract errors are raised."""
        op = OPERATIONS.get(name)
        if op is None:
            raise UnknownOperation(f"unknown operation {name}")
        fn = getattr(self, op.method)
        call_args = (ctx, *args) if op.needs_ctx else args
        try:
            inspect.signature(fn).bind(*call_args)
        except TypeError as e:
            raise ValidationError("args", f"bad arguments for {name}: {e}") from e
        return fn(*call_args)

    # ---------- read-only accessors ----------

    def balance_of(self, account: str) -> int:
        return self.state.ledger.balance_of(account)

    def get_blocks_till_claimable(self, ctx: Context, account: str) -> int:
        return self.state.claims.get_blocks_till_claimable(ctx, account)

    def get_claimable_tokens(self, ctx: Context, account: str) -> int:
        return self.state.claims.get_claimable_tokens(ctx, account)

    def get_blocks_per_claim(self) -> int:
        return self.state.admin.get_blocks_per_claim()

    def get_tokens_per_message(self) -> int:
        return self.state.admin.get_tokens_per_message()

    def get_daily_tokens_no(self) -> int:
        return self.state.admin.get_daily_tokens_no()

    def get_message_history(self, account: str) -> List[int]:
        return self.state.messages.get_message_history(account)

    def get_message(self) -> str:
        return self.state.messages.get_message()

    def get_hash(self) -> str:
        return self.state.messages.get_hash()

    # ---------- state-changing operations ----------

    def claim(self, ctx: Context) -> bool:
        return self._atomic(lambda st: st.claims.claim(ctx))

    def send_message(self, ctx: Context, pointer: str) -> None:
        self._atomic(lambda st: st.messages.send_message(ctx, pointer))

    def send_hash(self, ctx: Context, pointer: str) -> None:
        self._atomic(lambda st: st.messages.send_hash(ctx, pointer))

    def change_blocks_per_claim(self, ctx: Context, new_value: int) -> None:
        self._atomic(lambda st: st.admin.change_blocks_per_claim(ctx, new_value))


__all__ = ["RESERVE", "Account", "ChatContract", "Context", "LedgerState", "OPERATIONS", "Receipt"]
