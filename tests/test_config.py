"""Tests for configuration loading and logging setup."""
import json
import logging

import pytest

from dchat.config import Config, LedgerConfig, get_config, load_config, reset_config, set_config
from dchat.contract import ChatContract
from dchat.logging_config import configure_logging, get_logger, log_operation


class TestConfig:
    def test_defaults(self):
        cfg = Config()
        assert cfg.ledger.daily_tokens == 12
        assert cfg.ledger.tokens_per_message == 3
        assert cfg.ledger.blocks_per_claim == 100
        assert cfg.poll.interval_s == 0.1

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("DCHAT_DAILY_TOKENS", "7")
        monkeypatch.setenv("DCHAT_LOG_JSON", "yes")
        assert LedgerConfig().daily_tokens == 7
        assert Config().logging.json_format is True

    def test_bad_env_value_falls_back(self, monkeypatch):
        monkeypatch.setenv("DCHAT_BLOCKS_PER_CLAIM", "soon")
        assert LedgerConfig().blocks_per_claim == 100

    def test_json_roundtrip(self, tmp_path):
        cfg = Config()
        cfg.ledger.total_supply = 42
        path = tmp_path / "cfg.json"
        cfg.save(str(path))
        loaded = load_config(str(path))
        assert loaded.ledger.total_supply == 42
        assert get_config() is loaded
        assert Config.from_json(cfg.to_json()).to_dict() == cfg.to_dict()

    def test_partial_dict(self):
        cfg = Config.from_dict({"ledger": {"daily_tokens": 5}})
        assert cfg.ledger.daily_tokens == 5
        assert cfg.ledger.tokens_per_message == 3
        assert cfg.chain.max_ops_per_block == 100

    def test_singleton_reset(self):
        a = get_config()
        assert get_config() is a
        reset_config()
        assert get_config() is not a

    def test_deploy_uses_configured_defaults(self):
        set_config(Config(ledger=LedgerConfig(total_supply=50, daily_tokens=5, tokens_per_message=1, blocks_per_claim=2)))
        c = ChatContract.deploy("owner")
        assert c.total_supply == 50
        assert c.get_daily_tokens_no() == 5
        assert c.get_tokens_per_message() == 1
        assert c.get_blocks_per_claim() == 2


class TestLogging:
    def test_loggers_are_namespaced(self):
        assert get_logger("poller").name == "dchat.poller"
        assert get_logger("dchat.chain").name == "dchat.chain"

    def test_json_log_file(self, tmp_path):
        cfg = Config()
        cfg.logging.json_format = True
        cfg.logging.console_output = False
        cfg.logging.log_dir = str(tmp_path)
        set_config(cfg)
        configure_logging(force=True)
        get_logger("test").warning("hello %s", "world")
        for h in logging.getLogger("dchat").handlers:
            h.flush()
        line = (tmp_path / "dchat.log").read_text(encoding="utf-8").strip().splitlines()[-1]
        rec = json.loads(line)
        assert rec["msg"] == "hello world"
        assert rec["level"] == "WARNING"
        assert rec["logger"] == "dchat.test"

    def test_log_operation_reraises(self):
        @log_operation("explode")
        def explode():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            explode()
