from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from .canonical import canonical_json, sha256_hex
from .config import get_config
from .contract import OPERATIONS, ChatContract, LedgerState, Receipt
from .exceptions import ChainError, ValidationError
from .keys import AccountKeys, b64d, b64e, load_sign_pub_raw, sign_detached, verify_detached
from .ledger import Context
from .logging_config import get_chain_logger

logger = get_chain_logger()


def _get_max_clock_drift_ms() -> int:
    """Get max clock drift from config."""
    return get_config().chain.max_clock_drift_ms


def _get_max_ops_per_block() -> int:
    """Get maximum operations per block from config."""
    return get_config().chain.max_ops_per_block


def _sig_verification_required() -> bool:
    return get_config().crypto.require_signature_verification


NONCE_HEX_LENGTH = 32


@dataclass
class Block:
    height: int
    prev: Optional[str]
    ts_ms: int
    author: str  # author account (signing pub b64)
    ops: List[Dict[str, Any]]
    block_id: str
    sig: str

    def header_dict(self) -> Dict[str, Any]:
        return {
            "height": int(self.height),
            "prev": self.prev,
            "ts_ms": int(self.ts_ms),
            "author": self.author,
            "ops": self.ops,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {**self.header_dict(), "block_id": self.block_id, "sig": self.sig}

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Block":
        return Block(
            height=int(d["height"]),
            prev=d.get("prev"),
            ts_ms=int(d.get("ts_ms", 0)),
            author=str(d.get("author", "")),
            ops=list(d.get("ops", [])),
            block_id=str(d.get("block_id", "")),
            sig=str(d.get("sig", "")),
        )

    @staticmethod
    def make(height: int, prev: Optional[str], *, author: AccountKeys, ops: List[Dict[str, Any]], ts_ms: Optional[int] = None) -> "Block":
        if ts_ms is None:
            ts_ms = int(time.time() * 1000)
        header = {
            "height": int(height),
            "prev": prev,
            "ts_ms": int(ts_ms),
            "author": author.pub_b64,
            "ops": ops,
        }
        header_bytes = canonical_json(header).encode("utf-8")
        block_id = sha256_hex(header_bytes)
        sig = b64e(sign_detached(author.sign_priv, header_bytes))
        return Block(height=int(height), prev=prev, ts_ms=int(ts_ms), author=author.pub_b64, ops=ops, block_id=block_id, sig=sig)

    def verify_sig(self) -> None:
        header_bytes = canonical_json(self.header_dict()).encode("utf-8")
        if sha256_hex(header_bytes) != self.block_id:
            raise ChainError("block_id mismatch")
        if not _sig_verification_required():
            return
        try:
            pub = load_sign_pub_raw(b64d(self.author))
            ok = verify_detached(pub, header_bytes, b64d(self.sig))
        except Exception as e:
            raise ChainError(f"bad block author pub or sig: {e}")
        if not ok:
            raise ChainError("bad block signature")


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ChainError(msg)


def make_op(keys: AccountKeys, name: str, *args: Any, nonce: Optional[str] = None) -> Dict[str, Any]:
    """Build an operation signed by ``keys``; the signer becomes the caller."""
    body = {
        "op": name,
        "args": list(args),
        "caller": keys.pub_b64,
        "nonce": nonce or secrets.token_hex(NONCE_HEX_LENGTH // 2),
    }
    msg = canonical_json(body).encode("utf-8")
    return {**body, "sig": b64e(sign_detached(keys.sign_priv, msg))}


def _verify_op_sig(op: Dict[str, Any]) -> None:
    sig = op.get("sig")
    _require(isinstance(sig, str), "missing op sig")
    if not _sig_verification_required():
        return
    body = dict(op)
    body.pop("sig", None)
    msg = canonical_json(body).encode("utf-8")
    try:
        pub = load_sign_pub_raw(b64d(op["caller"]))
        ok = verify_detached(pub, msg, b64d(sig))
    except Exception as e:
        raise ChainError(f"bad op caller key: {e}")
    _require(ok, "bad op signature")


class Chain:
    """Sequential execution environment for one chat contract.

    Blocks are applied in height order. Each operation in a block runs
    atomically with ``Context(height=block.height, caller=op caller)``; a
    failing operation yields a failed receipt and leaves state untouched.
    A block is only rejected as a whole for envelope errors.
    """

    def __init__(self, genesis: Block):
        genesis.verify_sig()
        if genesis.height != 0 or genesis.prev is not None:
            raise ChainError("invalid genesis header")
        self.blocks: List[Block] = [genesis]
        self.contract = self._deploy(genesis)
        self.receipts: Dict[int, List[Receipt]] = {0: []}
        self.nonces: Set[str] = set()

    @property
    def head(self) -> Block:
        return self.blocks[-1]

    @property
    def height(self) -> int:
        return self.head.height

    @staticmethod
    def _deploy(genesis: Block) -> ChatContract:
        gops = genesis.ops
        if len(gops) != 1 or gops[0].get("op") != "deploy":
            raise ChainError("genesis must have one deploy op")
        d = gops[0]
        _require(d.get("owner") == genesis.author, "deploy owner must author genesis")
        try:
            return ChatContract.deploy(
                str(d["owner"]),
                total_supply=int(d["total_supply"]),
                daily_tokens=int(d["daily_tokens"]),
                tokens_per_message=int(d["tokens_per_message"]),
                blocks_per_claim=int(d["blocks_per_claim"]),
                max_pointer_length=int(d["max_pointer_length"]),
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise ChainError(f"bad deploy op: {e}")

    @staticmethod
    def make_genesis(
        owner: AccountKeys,
        *,
        total_supply: Optional[int] = None,
        daily_tokens: Optional[int] = None,
        tokens_per_message: Optional[int] = None,
        blocks_per_claim: Optional[int] = None,
        max_pointer_length: Optional[int] = None,
        ts_ms: Optional[int] = None,
    ) -> Block:
        cfg = get_config()
        op = {
            "op": "deploy",
            "owner": owner.pub_b64,
            "total_supply": cfg.ledger.total_supply if total_supply is None else int(total_supply),
            "daily_tokens": cfg.ledger.daily_tokens if daily_tokens is None else int(daily_tokens),
            "tokens_per_message": cfg.ledger.tokens_per_message if tokens_per_message is None else int(tokens_per_message),
            "blocks_per_claim": cfg.ledger.blocks_per_claim if blocks_per_claim is None else int(blocks_per_claim),
            "max_pointer_length": cfg.chain.max_pointer_length if max_pointer_length is None else int(max_pointer_length),
        }
        return Block.make(0, None, author=owner, ops=[op], ts_ms=ts_ms)

    def next_block(self, author: AccountKeys, ops: List[Dict[str, Any]], *, ts_ms: Optional[int] = None) -> Block:
        if ts_ms is None:
            ts_ms = max(int(time.time() * 1000), self.head.ts_ms)
        return Block.make(self.head.height + 1, self.head.block_id, author=author, ops=ops, ts_ms=ts_ms)

    def _validate_op(self, op: Dict[str, Any], seen: Set[str]) -> None:
        name = op.get("op")
        _require(isinstance(name, str), "op missing name")
        _require(name in OPERATIONS and OPERATIONS[name].mutates, f"op {name} is not a state-changing operation")
        _require(isinstance(op.get("args"), list), "op missing args")
        _require(isinstance(op.get("caller"), str) and op["caller"], "op missing caller")
        nonce = op.get("nonce")
        _require(isinstance(nonce, str) and len(nonce) >= NONCE_HEX_LENGTH,
                 f"op nonce must be at least {NONCE_HEX_LENGTH} characters")
        nonce_key = f"{op['caller']}:{nonce}"
        _require(nonce_key not in self.nonces and nonce_key not in seen,
                 "duplicate nonce for caller (replay blocked)")
        seen.add(nonce_key)
        _verify_op_sig(op)

    def append(self, b: Block) -> List[Receipt]:
        b.verify_sig()
        _require(b.height == self.head.height + 1, "wrong height")
        _require(b.prev == self.head.block_id, "wrong prev")

        max_ops = _get_max_ops_per_block()
        _require(len(b.ops) <= max_ops, f"block has too many operations ({len(b.ops)} > {max_ops})")

        now_ms = int(time.time() * 1000)
        max_drift = _get_max_clock_drift_ms()
        _require(b.ts_ms <= now_ms + max_drift,
                 f"block timestamp too far in future (max drift {max_drift}ms)")
        _require(b.ts_ms >= self.head.ts_ms,
                 "block timestamp must not be before previous block")

        seen: Set[str] = set()
        for op in b.ops:
            self._validate_op(op, seen)

        # execute against a copy, commit once every op has run
        contract = ChatContract(LedgerState.from_snapshot(self.contract.state.snapshot()))
        receipts = []
        for op in b.ops:
            ctx = Context(height=b.height, caller=op["caller"])
            receipts.append(contract.execute(ctx, op["op"], *op["args"]))

        self.blocks.append(b)
        self.contract = contract
        self.receipts[b.height] = receipts
        self.nonces.update(seen)
        failed = sum(1 for r in receipts if not r.ok)
        logger.debug(f"applied block {b.height} with {len(receipts)} ops ({failed} failed)")
        return receipts

    def query(self, name: str, *args: Any) -> Any:
        """Evaluate a read-only operation at the head height."""
        op = OPERATIONS.get(name)
        if op is None or op.mutates:
            raise ChainError(f"{name} is not a read-only operation")
        return self.contract.call(name, Context(height=self.head.height), *args)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.contract.state.snapshot(),
            "blocks": [b.to_dict() for b in self.blocks],
        }

    @staticmethod
    def from_snapshot(s: Dict[str, Any]) -> "Chain":
        blocks = [Block.from_dict(b) for b in s.get("blocks", [])]
        if not blocks:
            raise ChainError("empty chain snapshot")
        ch = Chain(blocks[0])
        for b in blocks[1:]:
            ch.append(b)
        stored = s.get("state")
        if stored is not None and stored != ch.contract.state.snapshot():
            raise ChainError("stored state differs from replayed state")
        return ch
