from __future__ import annotations

import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .cas import CAS
from .chain import Chain, make_op
from .contract import Receipt
from .exceptions import ChainError, NodeError, StorageError
from .fs import atomic_write_bytes, atomic_write_json, ensure_dir, read_json
from .keys import AccountKeys, b64d, b64e, dump_sign_priv_raw, ensure_mode_600, gen_keys, keys_from_priv_raw
from .logging_config import get_node_logger, log_operation

logger = get_node_logger()


def _now_ms() -> int:
    return int(time.time() * 1000)


def compose_message(text: str, previous: str = "", *, now: Optional[datetime] = None) -> str:
    """Prefix ``text`` with a local ISO timestamp and thread the previous blob below it."""
    ts = (now or datetime.now().astimezone()).isoformat(timespec="seconds")
    message = f"{ts}|{text}\n"
    if previous:
        message = f"{message}{previous}"
    return message


class ChatNode:
    """Local account holder: keys, a persisted chain and a content store."""

    def __init__(self, data_dir: Path, keys: AccountKeys, chain: Chain):
        self.data_dir = Path(data_dir)
        self.keys = keys
        self.chain = chain
        self.cas = CAS(self.data_dir / "cas")
        self._lock = threading.RLock()

    # ---------- paths ----------

    @property
    def account(self) -> str:
        return self.keys.pub_b64

    @property
    def keys_path(self) -> Path:
        return self.data_dir / "keys" / "sign.key"

    @property
    def node_meta_path(self) -> Path:
        return self.data_dir / "node.json"

    @property
    def chain_path(self) -> Path:
        return self.data_dir / "chain.json"

    # ---------- initialization ----------

    @staticmethod
    def init(data_dir: Path, *, chain_snapshot: Optional[Dict[str, Any]] = None, **genesis_params: Any) -> "ChatNode":
        """Create a node; without ``chain_snapshot`` it deploys a new ledger it owns."""
        data_dir = Path(data_dir)
        if (data_dir / "node.json").exists():
            raise NodeError(f"node already initialized at {data_dir}")
        logger.info(f"Initializing new node at {data_dir}")

        ensure_dir(data_dir)
        ensure_dir(data_dir / "keys")
        keys = gen_keys()
        if chain_snapshot is None:
            chain = Chain(Chain.make_genesis(keys, **genesis_params))
        else:
            chain = Chain.from_snapshot(chain_snapshot)

        node = ChatNode(data_dir, keys, chain)
        atomic_write_bytes(node.keys_path, b64e(dump_sign_priv_raw(keys.sign_priv)).encode("ascii"))
        ensure_mode_600(node.keys_path)
        atomic_write_json(node.node_meta_path, {"account": keys.pub_b64, "created_ms": _now_ms()})
        node._save_chain()
        logger.info(f"Node initialized: account={keys.pub_b64[:16]}..., owner={node.is_owner}")
        return node

    @staticmethod
    def load(data_dir: Path) -> "ChatNode":
        data_dir = Path(data_dir)
        if not (data_dir / "node.json").exists():
            raise NodeError("node not initialized (missing node.json). Run `dchat init`.")
        try:
            keys = keys_from_priv_raw(b64d((data_dir / "keys" / "sign.key").read_text("ascii").strip()))
        except FileNotFoundError:
            raise NodeError("missing key file")
        except ValueError as e:
            raise NodeError(f"failed to load keys: {e}") from e
        try:
            chain = Chain.from_snapshot(read_json(data_dir / "chain.json"))
        except FileNotFoundError:
            raise NodeError("missing chain.json")
        except ChainError as e:
            raise NodeError(f"stored chain is invalid: {e}") from e
        return ChatNode(data_dir, keys, chain)

    def _save_chain(self) -> None:
        atomic_write_json(self.chain_path, self.chain.snapshot())

    def export_chain(self) -> Dict[str, Any]:
        with self._lock:
            return self.chain.snapshot()

    @property
    def is_owner(self) -> bool:
        return self.chain.contract.owner == self.account

    # ---------- submission ----------

    def _submit(self, ops: List[Dict[str, Any]]) -> List[Receipt]:
        with self._lock:
            block = self.chain.next_block(self.keys, ops)
            receipts = self.chain.append(block)
            self._save_chain()
            return receipts

    def _submit_one(self, name: str, *args: Any) -> Receipt:
        r = self._submit([make_op(self.keys, name, *args)])[0]
        if not r.ok:
            logger.info(f"{name} rejected at height {r.height}: {r.reason}")
        return r

    def mine(self, count: int = 1) -> int:
        """Append empty blocks to advance the height; returns the new height."""
        for _ in range(count):
            self._submit([])
        return self.chain.height

    @log_operation("claim")
    def claim(self) -> Receipt:
        return self._submit_one("claim")

    @log_operation("send_message")
    def send_message(self, text: str) -> Tuple[str, Receipt]:
        """Store the threaded message blob and publish its pointer."""
        body = compose_message(text, self.read_latest_message())
        pointer = self.cas.put(body.encode("utf-8"))
        return pointer, self._submit_one("sendMessage", pointer)

    def set_room_hash(self, pointer: str) -> Receipt:
        return self._submit_one("sendHash", pointer)

    def change_blocks_per_claim(self, value: int) -> Receipt:
        return self._submit_one("changeBlocksPerClaim", int(value))

    # ---------- reads ----------

    def balance(self, account: Optional[str] = None) -> int:
        return self.chain.query("balanceOf", account or self.account)

    def message_history(self, account: Optional[str] = None) -> List[int]:
        return self.chain.query("getMessageHistory", account or self.account)

    def room_hash(self) -> str:
        return self.chain.query("getHash")

    def read_latest_message(self) -> str:
        """Contents of the blob the latest message points to, or '' when unavailable."""
        pointer = self.chain.query("getMessage")
        if not pointer:
            return ""
        try:
            return self.cas.get(pointer).decode("utf-8")
        except StorageError as e:
            logger.warning(f"cannot read latest message: {e}")
            return ""

    def status(self, account: Optional[str] = None) -> Dict[str, Any]:
        """Every read-only accessor for one account, evaluated at the head."""
        who = account or self.account
        q = self.chain.query
        return {
            "account": who,
            "height": self.chain.height,
            "balance": q("balanceOf", who),
            "message_history": q("getMessageHistory", who),
            "blocks_till_claimable": q("getBlocksTillClaimable", who),
            "claimable_tokens": q("getClaimableTokens", who),
            "blocks_per_claim": q("getBlocksPerClaim"),
            "tokens_per_message": q("getTokensPerMessage"),
            "daily_tokens": q("getDailyTokensNo"),
            "room_hash": q("getHash"),
            "latest_message_pointer": q("getMessage"),
            "latest_message": self.read_latest_message(),
        }
