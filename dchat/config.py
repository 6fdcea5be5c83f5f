"""Configuration management for dchat.

Centralizes all configurable parameters with environment variable support
and runtime overrides.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import json


def _env_int(key: str, default: int) -> int:
    """Get integer from environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    """Get float from environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes", "on")


def _env_str(key: str, default: str) -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default)


@dataclass
class LedgerConfig:
    """Genesis parameters for a new ledger contract."""

    # Entire supply starts in the reserve
    total_supply: int = field(default_factory=lambda: _env_int("DCHAT_TOTAL_SUPPLY", 1_000_000))

    # Claim schedule
    daily_tokens: int = field(default_factory=lambda: _env_int("DCHAT_DAILY_TOKENS", 12))
    blocks_per_claim: int = field(default_factory=lambda: _env_int("DCHAT_BLOCKS_PER_CLAIM", 100))

    # Message fee
    tokens_per_message: int = field(default_factory=lambda: _env_int("DCHAT_TOKENS_PER_MESSAGE", 3))


@dataclass
class ChainConfig:
    """Configuration for block and operation envelopes."""

    max_ops_per_block: int = field(default_factory=lambda: _env_int("DCHAT_MAX_OPS_PER_BLOCK", 100))
    max_pointer_length: int = field(default_factory=lambda: _env_int("DCHAT_MAX_POINTER_LENGTH", 256))

    # Timestamp validation
    max_clock_drift_ms: int = field(default_factory=lambda: _env_int("DCHAT_MAX_CLOCK_DRIFT_MS", 5 * 60 * 1000))  # 5 minutes


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = field(default_factory=lambda: _env_str("DCHAT_LOG_LEVEL", "INFO"))
    json_format: bool = field(default_factory=lambda: _env_bool("DCHAT_LOG_JSON", False))
    log_dir: str = field(default_factory=lambda: _env_str("DCHAT_LOG_DIR", ""))
    console_output: bool = field(default_factory=lambda: _env_bool("DCHAT_LOG_CONSOLE", True))


@dataclass
class CryptoConfig:
    """Configuration for cryptographic operations."""

    # Signature verification on blocks and operations
    require_signature_verification: bool = field(default_factory=lambda: _env_bool("DCHAT_REQUIRE_SIG_VERIFY", True))


@dataclass
class PollConfig:
    """Configuration for the status polling loop."""

    # The browser client refreshed every 100ms
    interval_s: float = field(default_factory=lambda: _env_float("DCHAT_POLL_INTERVAL_S", 0.1))

    # Consecutive failures before the poller stops itself
    max_failures: int = field(default_factory=lambda: _env_int("DCHAT_POLL_MAX_FAILURES", 5))


@dataclass
class Config:
    """Main configuration container for dchat."""

    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    crypto: CryptoConfig = field(default_factory=CryptoConfig)
    poll: PollConfig = field(default_factory=PollConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        from dataclasses import asdict
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        """Convert configuration to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Create configuration from dictionary."""
        return cls(
            ledger=LedgerConfig(**d.get("ledger", {})) if d.get("ledger") else LedgerConfig(),
            chain=ChainConfig(**d.get("chain", {})) if d.get("chain") else ChainConfig(),
            logging=LoggingConfig(**d.get("logging", {})) if d.get("logging") else LoggingConfig(),
            crypto=CryptoConfig(**d.get("crypto", {})) if d.get("crypto") else CryptoConfig(),
            poll=PollConfig(**d.get("poll", {})) if d.get("poll") else PollConfig(),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Config":
        """Create configuration from JSON string."""
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def from_file(cls, path: str) -> "Config":
        """Load configuration from JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_json(f.read())

    def save(self, path: str) -> None:
        """Save configuration to JSON file."""
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.to_json())


# Global configuration instance (singleton pattern)
_global_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.

    Creates a default configuration if one doesn't exist.
    """
    global _global_config
    if _global_config is None:
        _global_config = Config()
    return _global_config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def load_config(path: str) -> Config:
    """Load configuration from file and set as global."""
    config = Config.from_file(path)
    set_config(config)
    return config


def reset_config() -> None:
    """Reset global configuration to default."""
    global _global_config
    _global_config = None
