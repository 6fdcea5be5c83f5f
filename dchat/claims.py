"""Cooldown-gated token grants.

Heights recorded by a successful claim are ``ctx.height - 1``; the cooldown
arithmetic below depends on that convention, so it is kept as is. An account
with no recorded claim is always eligible and receives a single
``daily_tokens`` grant.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from .admin import AdminConfig
from .exceptions import InsufficientReserve
from .ledger import RESERVE, AccountLedger, Context
from .logging_config import get_ledger_logger

logger = get_ledger_logger()


class ClaimScheduler:
    def __init__(self, ledger: AccountLedger, admin: AdminConfig, last_claimed: Optional[Dict[str, int]] = None):
        self._ledger = ledger
        self._admin = admin
        # account -> height recorded by its last successful claim
        self._last_claimed: Dict[str, int] = dict(last_claimed or {})

    def has_claimed(self, account: str) -> bool:
        return account in self._last_claimed

    def last_claimed_height(self, account: str) -> int:
        """Recorded claim height; 0 when the account never claimed."""
        return self._last_claimed.get(account, 0)

    def _elapsed(self, ctx: Context, account: str) -> int:
        return ctx.height - self._last_claimed[account] - 1

    def get_blocks_till_claimable(self, ctx: Context, account: str) -> int:
        if not self.has_claimed(account):
            return 0
        return max(0, self._admin.blocks_per_claim - self._elapsed(ctx, account))

    def get_claimable_tokens(self, ctx: Context, account: str) -> int:
        daily = self._admin.daily_tokens
        if not self.has_claimed(account):
            return daily
        per = self._admin.blocks_per_claim
        if per == 0:
            # no cooldown: every claim is worth one grant
            return daily
        elapsed = self._elapsed(ctx, account)
        if elapsed < 0:
            return 0
        return (elapsed // per) * daily

    def is_eligible(self, ctx: Context, account: str) -> bool:
        if not self.has_claimed(account):
            return True
        return self._elapsed(ctx, account) >= self._admin.blocks_per_claim

    def claim(self, ctx: Context) -> bool:
        """Pay out the caller's accumulated grants from the reserve.

        Returns False, with no state change, while the caller is cooling
        down. Raises ``InsufficientReserve`` when the reserve cannot cover
        the payout; the caller must discard the state in that case.
        """
        caller = ctx.caller
        if not self.is_eligible(ctx, caller):
            logger.debug(f"claim not yet eligible for {caller[:16]} at height {ctx.height}")
            return False
        value = self.get_claimable_tokens(ctx, caller)
        # the payout is uncapped and may exceed any representable amount
        reserve = self._ledger.reserve_balance
        if value > reserve:
            raise InsufficientReserve(f"reserve cannot cover {value} (has {reserve})")
        self._last_claimed[caller] = ctx.height - 1
        self._ledger.transfer(RESERVE, caller, value)
        logger.info(f"claimed {value} tokens for {caller[:16]} at height {ctx.height}")
        return True

    def snapshot(self) -> Dict[str, Any]:
        return {"last_claimed": dict(self._last_claimed)}

    @staticmethod
    def from_snapshot(s: Dict[str, Any], ledger: AccountLedger, admin: AdminConfig) -> "ClaimScheduler":
        return ClaimScheduler(
            ledger,
            admin,
            {str(k): int(v) for k, v in (s.get("last_claimed", {}) or {}).items()},
        )
