"""Tests for the local node: persistence, message threading, content store and polling."""
import asyncio
import json
import threading
from datetime import datetime, timezone

import pytest

from dchat.__main__ import main
from dchat.cas import CAS
from dchat.config import Config, PollConfig, set_config
from dchat.exceptions import NodeError, StorageError
from dchat.node import ChatNode, compose_message
from dchat.poller import StatusPoller


GENESIS = dict(total_supply=1000, daily_tokens=12, tokens_per_message=3, blocks_per_claim=100)


@pytest.fixture
def node(tmp_path):
    return ChatNode.init(tmp_path / "alice", **GENESIS)


# =============================================================================
# Content store
# =============================================================================

class TestCAS:
    def test_put_get(self, tmp_path):
        cas = CAS(tmp_path / "cas")
        p = cas.put(b"hello")
        assert len(p) == 64
        assert cas.has(p)
        assert cas.get(p) == b"hello"
        assert cas.put(b"hello") == p

    def test_missing_object(self, tmp_path):
        cas = CAS(tmp_path / "cas")
        with pytest.raises(StorageError, match="not found"):
            cas.get("a" * 64)

    def test_corrupted_object(self, tmp_path):
        cas = CAS(tmp_path / "cas")
        p = cas.put(b"hello")
        (tmp_path / "cas" / p[:2] / p).write_bytes(b"tampered")
        with pytest.raises(StorageError, match="integrity"):
            cas.get(p)

    def test_bad_pointer(self, tmp_path):
        cas = CAS(tmp_path / "cas")
        assert not cas.has("../etc/passwd")
        with pytest.raises(StorageError):
            cas.get("../etc/passwd")


# =============================================================================
# Message composition
# =============================================================================

class TestComposeMessage:
    def test_timestamp_prefix(self):
        now = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert compose_message("hi", now=now) == "2024-01-02T03:04:05+00:00|hi\n"

    def test_previous_thread_follows(self):
        now = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        msg = compose_message("second", "t0|first\n", now=now)
        assert msg == "2024-01-02T03:04:05+00:00|second\nt0|first\n"


# =============================================================================
# Node
# =============================================================================

class TestChatNode:
    def test_init_deploys_owned_ledger(self, node):
        assert node.is_owner
        assert node.chain.height == 0
        assert node.balance() == 0

    def test_init_twice_fails(self, node):
        with pytest.raises(NodeError, match="already initialized"):
            ChatNode.init(node.data_dir)

    def test_load_missing(self, tmp_path):
        with pytest.raises(NodeError, match="not initialized"):
            ChatNode.load(tmp_path / "nope")

    def test_claim_and_send(self, node):
        assert node.claim().ok
        assert node.balance() == 12

        pointer, r = node.send_message("hello")
        assert r.ok
        assert node.balance() == 9
        assert node.chain.query("getMessage") == pointer
        assert node.message_history() == [1]
        assert node.read_latest_message().endswith("|hello\n")

    def test_messages_thread_previous_blob(self, node):
        node.claim()
        node.send_message("first")
        node.send_message("second")
        lines = node.read_latest_message().splitlines()
        assert [l.split("|", 1)[1] for l in lines] == ["second", "first"]

    def test_send_without_tokens_is_rejected(self, node):
        pointer, r = node.send_message("hello")
        assert not r.ok
        assert r.reason == "insufficient_funds"
        assert node.chain.query("getMessage") == ""

    def test_claim_cooldown(self, node):
        assert node.claim().ok
        r = node.claim()
        assert not r.ok
        assert r.reason == "not_yet_eligible"

    def test_change_blocks_per_claim_then_reclaim(self, node):
        node.claim()
        assert node.change_blocks_per_claim(0).ok
        assert node.claim().ok
        assert node.balance() == 24

    def test_state_persists(self, node):
        node.claim()
        node.set_room_hash("QmRoom")
        loaded = ChatNode.load(node.data_dir)
        assert loaded.account == node.account
        assert loaded.balance() == 12
        assert loaded.room_hash() == "QmRoom"
        assert loaded.chain.height == node.chain.height

    def test_joined_node_is_not_owner(self, node, tmp_path):
        node.mine(3)
        bob = ChatNode.init(tmp_path / "bob", chain_snapshot=node.export_chain())
        assert not bob.is_owner
        assert bob.chain.height == 3
        assert bob.change_blocks_per_claim(0).reason == "unauthorized"
        assert bob.claim().ok
        assert bob.balance() == 12

    def test_unresolvable_latest_message_reads_empty(self, node, tmp_path):
        node.claim()
        node.send_message("only on alice")
        bob = ChatNode.init(tmp_path / "bob", chain_snapshot=node.export_chain())
        assert bob.chain.query("getMessage") != ""
        assert bob.read_latest_message() == ""

    def test_status(self, node):
        node.claim()
        node.mine(40)
        st = node.status()
        assert st["account"] == node.account
        assert st["height"] == 41
        assert st["balance"] == 12
        assert st["claimable_tokens"] == 0
        assert st["blocks_till_claimable"] == 60
        assert st["blocks_per_claim"] == 100
        assert st["tokens_per_message"] == 3
        assert st["daily_tokens"] == 12
        assert st["message_history"] == []
        assert st["latest_message"] == ""


# =============================================================================
# Poller
# =============================================================================

class _BrokenNode:
    def status(self, account=None):
        raise RuntimeError("ledger unreachable")


class _ThreadRecordingNode:
    def __init__(self, node):
        self.node = node
        self.threads = []

    def status(self, account=None):
        self.threads.append(threading.get_ident())
        return self.node.status(account)


class TestStatusPoller:
    def test_poll_once_delivers_status(self, node):
        seen = []
        poller = StatusPoller(node, seen.append)
        assert poller.poll_once()
        assert seen[0]["account"] == node.account
        assert poller.get_status()["polls"] == 1

    def test_failing_callback_counts_as_failure(self, node):
        def boom(_status):
            raise ValueError("render failed")

        poller = StatusPoller(node, boom)
        assert not poller.poll_once()
        assert poller.get_status()["consecutive_failures"] == 1
        assert "render failed" in poller.last_error

    def test_loop_stops_after_max_failures(self):
        set_config(Config(poll=PollConfig(interval_s=0.01, max_failures=2)))

        async def run():
            poller = StatusPoller(_BrokenNode())
            await poller.start()
            await asyncio.sleep(0.3)
            status = poller.get_status()
            await poller.stop()
            return status

        status = asyncio.run(run())
        assert status["running"] is False
        assert status["consecutive_failures"] == 2

    def test_loop_polls_repeatedly(self, node):
        set_config(Config(poll=PollConfig(interval_s=0.01, max_failures=2)))
        seen = []

        async def run():
            poller = StatusPoller(node, seen.append)
            await poller.start()
            await asyncio.sleep(0.2)
            await poller.stop()
            return poller

        poller = asyncio.run(run())
        assert not poller.running
        assert len(seen) >= 2

    def test_loop_reads_status_off_event_loop(self, node):
        set_config(Config(poll=PollConfig(interval_s=0.01, max_failures=2)))
        recording = _ThreadRecordingNode(node)
        callback_threads = []

        async def run():
            poller = StatusPoller(recording, lambda _s: callback_threads.append(threading.get_ident()))
            await poller.start()
            await asyncio.sleep(0.2)
            await poller.stop()

        loop_thread = threading.get_ident()
        asyncio.run(run())
        assert recording.threads
        assert all(t != loop_thread for t in recording.threads)
        assert callback_threads and all(t == loop_thread for t in callback_threads)


# =============================================================================
# CLI
# =============================================================================

class TestCLI:
    def test_init_claim_send_read(self, tmp_path, capsys):
        data = str(tmp_path / "cli")
        main(["--data", data, "init", "--total-supply", "100", "--daily-tokens", "12",
              "--tokens-per-message", "3", "--blocks-per-claim", "100"])
        account = capsys.readouterr().out.strip()

        main(["--data", data, "claim"])
        assert capsys.readouterr().out.strip() == "ok"

        main(["--data", data, "send", "hi there"])
        pointer = capsys.readouterr().out.strip()
        assert len(pointer) == 64

        main(["--data", data, "read"])
        assert capsys.readouterr().out.endswith("|hi there\n")

        main(["--data", data, "status"])
        st = json.loads(capsys.readouterr().out)
        assert st["account"] == account
        assert st["balance"] == 9
        assert st["latest_message_pointer"] == pointer

    def test_rejected_claim_exits_nonzero(self, tmp_path, capsys):
        data = str(tmp_path / "cli")
        main(["--data", data, "init"])
        main(["--data", data, "claim"])
        capsys.readouterr()
        with pytest.raises(SystemExit) as ei:
            main(["--data", data, "claim"])
        assert ei.value.code == 1
        assert "not_yet_eligible" in capsys.readouterr().err

    def test_uninitialized_node_errors(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as ei:
            main(["--data", str(tmp_path / "missing"), "balance"])
        assert ei.value.code == 1
        assert "not initialized" in capsys.readouterr().err

    def test_mine_and_hash(self, tmp_path, capsys):
        data = str(tmp_path / "cli")
        main(["--data", data, "init"])
        main(["--data", data, "mine", "--count", "3"])
        main(["--data", data, "set-hash", "QmRoom"])
        main(["--data", data, "get-hash"])
        out = capsys.readouterr().out.split()
        assert out[1] == "3"
        assert out[-1] == "QmRoom"
