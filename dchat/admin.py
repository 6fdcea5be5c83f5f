"""Owner-controlled tunables of the ledger contract."""
from __future__ import annotations

from typing import Any, Dict, Optional

from .exceptions import Unauthorized
from .ledger import Context, require_uint
from .logging_config import get_ledger_logger

logger = get_ledger_logger()


class AdminConfig:
    """Owner identity plus the three tunable parameters.

    The owner and the pointer length limit are fixed when the contract is
    deployed. Only ``blocks_per_claim`` has a mutator, and it performs no
    bounds check: 0 is accepted and makes every account claimable at every
    height.
    """

    def __init__(
        self,
        owner: str,
        *,
        daily_tokens: int,
        tokens_per_message: int,
        blocks_per_claim: int,
        max_pointer_length: Optional[int] = None,
    ):
        self.owner = str(owner)
        self.daily_tokens = require_uint("daily_tokens", daily_tokens)
        self.tokens_per_message = require_uint("tokens_per_message", tokens_per_message)
        self.blocks_per_claim = require_uint("blocks_per_claim", blocks_per_claim)
        # set once at deploy; part of the replicated state
        self.max_pointer_length = None if max_pointer_length is None else require_uint("max_pointer_length", max_pointer_length)

    def is_owner(self, account: str) -> bool:
        return account == self.owner

    def change_blocks_per_claim(self, ctx: Context, new_value: int) -> None:
        if not self.is_owner(ctx.caller):
            raise Unauthorized("changeBlocksPerClaim requires owner")
        new_value = require_uint("blocks_per_claim", new_value)
        logger.info(f"blocks_per_claim {self.blocks_per_claim} -> {new_value} at height {ctx.height}")
        self.blocks_per_claim = new_value

    def get_blocks_per_claim(self) -> int:
        return self.blocks_per_claim

    def get_tokens_per_message(self) -> int:
        return self.tokens_per_message

    def get_daily_tokens_no(self) -> int:
        return self.daily_tokens

    def snapshot(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "daily_tokens": self.daily_tokens,
            "tokens_per_message": self.tokens_per_message,
            "blocks_per_claim": self.blocks_per_claim,
            "max_pointer_length": self.max_pointer_length,
        }

    @staticmethod
    def from_snapshot(s: Dict[str, Any]) -> "AdminConfig":
        return AdminConfig(
            str(s["owner"]),
            daily_tokens=int(s.get("daily_tokens", 0)),
            tokens_per_message=int(s.get("tokens_per_message", 0)),
            blocks_per_claim=int(s.get("blocks_per_claim", 0)),
            max_pointer_length=None if s.get("max_pointer_length") is None else int(s["max_pointer_length"]),
        )
