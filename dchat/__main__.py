from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

from . import __version__
from .config import load_config
from .contract import Receipt
from .exceptions import DChatError
from .fs import read_json
from .logging_config import configure_logging
from .node import ChatNode
from .poller import StatusPoller


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=False))


def _report(r: Receipt) -> None:
    if r.ok:
        print("ok")
        return
    print(f"rejected: {r.reason}" + (f" ({r.error})" if r.error else ""), file=sys.stderr)
    sys.exit(1)


def _cmd_init(args: argparse.Namespace) -> None:
    snapshot = read_json(Path(args.join)) if args.join else None
    params: Dict[str, int] = {}
    for key in ("total_supply", "daily_tokens", "tokens_per_message", "blocks_per_claim", "max_pointer_length"):
        v = getattr(args, key)
        if v is not None:
            params[key] = v
    if snapshot is not None and params:
        print("ledger parameters cannot be set when joining an existing chain", file=sys.stderr)
        sys.exit(2)
    n = ChatNode.init(Path(args.data), chain_snapshot=snapshot, **params)
    print(n.account)


def _cmd_info(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    c = n.chain.contract
    _print_json({
        "account": n.account,
        "owner": c.owner,
        "is_owner": n.is_owner,
        "height": n.chain.height,
        "total_supply": c.total_supply,
        "reserve": c.reserve_balance,
    })


def _cmd_export(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    _print_json(n.export_chain())


def _cmd_status(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    _print_json(n.status(args.account))


def _cmd_balance(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    print(n.balance(args.account))


def _cmd_claim(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    _report(n.claim())


def _cmd_send(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    pointer, r = n.send_message(args.text)
    if r.ok:
        print(pointer)
        return
    _report(r)


def _cmd_read(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    sys.stdout.write(n.read_latest_message())


def _cmd_history(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    print(json.dumps(n.message_history(args.account)))


def _cmd_set_hash(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    _report(n.set_room_hash(args.pointer))


def _cmd_get_hash(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    print(n.room_hash())


def _cmd_set_blocks_per_claim(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    _report(n.change_blocks_per_claim(args.value))


def _cmd_mine(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))
    print(n.mine(args.count))


def _cmd_watch(args: argparse.Namespace) -> None:
    n = ChatNode.load(Path(args.data))

    def show(status: Dict[str, Any]) -> None:
        print(json.dumps({k: v for k, v in status.items() if k != "latest_message"}, sort_keys=True), flush=True)

    async def run() -> None:
        poller = StatusPoller(n, show, account=args.account)
        await poller.start()
        try:
            if args.seconds:
                await asyncio.sleep(args.seconds)
            else:
                while poller.running:
                    await asyncio.sleep(1)
        finally:
            await poller.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dchat", description="token-metered chat ledger")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--data", default=".dchat", help="node data directory")
    p.add_argument("--config", help="JSON config file")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("init", help="initialize a node (deploys a new ledger unless --join is given)")
    s.add_argument("--join", help="chain snapshot JSON to join instead of deploying")
    s.add_argument("--total-supply", type=int)
    s.add_argument("--daily-tokens", type=int)
    s.add_argument("--tokens-per-message", type=int)
    s.add_argument("--blocks-per-claim", type=int)
    s.add_argument("--max-pointer-length", type=int)
    s.set_defaults(func=_cmd_init)

    s = sub.add_parser("info", help="print node and ledger info as JSON")
    s.set_defaults(func=_cmd_info)

    s = sub.add_parser("export", help="print the chain snapshot as JSON")
    s.set_defaults(func=_cmd_export)

    s = sub.add_parser("status", help="print all read-only accessors for an account")
    s.add_argument("--account")
    s.set_defaults(func=_cmd_status)

    s = sub.add_parser("balance", help="get balance for an account")
    s.add_argument("--account")
    s.set_defaults(func=_cmd_balance)

    s = sub.add_parser("claim", help="claim accumulated tokens")
    s.set_defaults(func=_cmd_claim)

    s = sub.add_parser("send", help="send a message (costs tokens)")
    s.add_argument("text")
    s.set_defaults(func=_cmd_send)

    s = sub.add_parser("read", help="print the latest message thread")
    s.set_defaults(func=_cmd_read)

    s = sub.add_parser("history", help="list heights at which an account sent messages")
    s.add_argument("--account")
    s.set_defaults(func=_cmd_history)

    s = sub.add_parser("set-hash", help="set the room content pointer")
    s.add_argument("pointer")
    s.set_defaults(func=_cmd_set_hash)

    s = sub.add_parser("get-hash", help="print the room content pointer")
    s.set_defaults(func=_cmd_get_hash)

    s = sub.add_parser("set-blocks-per-claim", help="change the claim cooldown (owner only)")
    s.add_argument("value", type=int)
    s.set_defaults(func=_cmd_set_blocks_per_claim)

    s = sub.add_parser("mine", help="append empty blocks to advance the height")
    s.add_argument("--count", type=int, default=1)
    s.set_defaults(func=_cmd_mine)

    s = sub.add_parser("watch", help="poll and print status until interrupted")
    s.add_argument("--account")
    s.add_argument("--seconds", type=float, help="stop after this many seconds")
    s.set_defaults(func=_cmd_watch)

    return p


def main(argv: List[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.config:
        load_config(args.config)
    configure_logging(force=True)
    try:
        args.func(args)
    except DChatError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
