"""Account keys and detached signatures.

An account identifier is the base64 encoding of the raw Ed25519 public key.
The ledger trusts whatever identifier a verified signature yields.
"""
from __future__ import annotations

import base64
import os
import stat
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"), validate=True)


@dataclass
class AccountKeys:
    sign_priv: Ed25519PrivateKey
    sign_pub: Ed25519PublicKey

    @property
    def pub_b64(self) -> str:
        return b64e(dump_sign_pub_raw(self.sign_pub))


def gen_keys() -> AccountKeys:
    priv = Ed25519PrivateKey.generate()
    return AccountKeys(sign_priv=priv, sign_pub=priv.public_key())


def dump_sign_priv_raw(priv: Ed25519PrivateKey) -> bytes:
    return priv.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def dump_sign_pub_raw(pub: Ed25519PublicKey) -> bytes:
    return pub.public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)


def load_sign_priv_raw(raw: bytes) -> Ed25519PrivateKey:
    return Ed25519PrivateKey.from_private_bytes(raw)


def load_sign_pub_raw(raw: bytes) -> Ed25519PublicKey:
    return Ed25519PublicKey.from_public_bytes(raw)


def keys_from_priv_raw(raw: bytes) -> AccountKeys:
    priv = load_sign_priv_raw(raw)
    return AccountKeys(sign_priv=priv, sign_pub=priv.public_key())


def sign_detached(priv: Ed25519PrivateKey, msg: bytes) -> bytes:
    return priv.sign(msg)


def verify_detached(pub: Ed25519PublicKey, msg: bytes, sig: bytes) -> bool:
    try:
        pub.verify(sig, msg)
        return True
    except InvalidSignature:
        return False


def ensure_mode_600(path: Path) -> None:
    """Restrict a key file to owner read/write (no-op where unsupported)."""
    try:
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
    except (NotImplementedError, PermissionError):
        pass
