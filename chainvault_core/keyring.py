"""
Keyring providers for ChainVault.

``KeyringProvider`` is the contract the vault session drives: it creates a
keyring from a mnemonic, derives further accounts, exports raw keys and
signs.  The session treats it as a volatile in-memory handle that is rebuilt
from the durable vault blob on every process start.

``HDKeyringProvider`` is the in-process reference implementation:
  - BIP-39 mnemonic generation / validation / seed (``mnemonic`` package)
  - BIP-32 secp256k1 derivation (HMAC-SHA512, ``ecdsa`` for point maths)
  - BIP-44 Ethereum path m/44'/60'/0'/0/index
  - Ethereum-style addresses (Keccak-256 of the uncompressed public key)
  - EIP-191 personal message signing and canonical-JSON transaction digests
"""

from __future__ import annotations

import hashlib
import hmac
import struct
from dataclasses import dataclass, field
from typing import Any, Optional

from Crypto.Hash import keccak
from ecdsa import SECP256k1, SigningKey
from ecdsa.util import sigencode_string_canonize
from mnemonic import Mnemonic

from chainvault_core.cipher import canonical_json, zero_fill
from chainvault_core.errors import InvalidMnemonicError, NonexistentKeyringAccountError

HD_KEYRING_TYPE = "HD Key Tree"
ETH_ACCOUNT_PATH = "m/44'/60'/0'/0"

_MNEMONIC = Mnemonic("english")


# ===================================================================
#  BIP-39 Mnemonic Support
# ===================================================================

def generate_mnemonic(entropy: bytes | None = None, strength: int = 128) -> str:
    """Generate a BIP-39 mnemonic, optionally from caller-supplied entropy."""
    if entropy is not None:
        if len(entropy) not in (16, 20, 24, 28, 32):
            raise ValueError("Entropy must be 16/20/24/28/32 bytes")
        return _MNEMONIC.to_mnemonic(entropy)
    if strength not in (128, 160, 192, 224, 256):
        raise ValueError("Strength must be 128/160/192/224/256")
    return _MNEMONIC.generate(strength=strength)


def validate_mnemonic(mnemonic: str) -> bool:
    """Word count, wordlist membership and checksum."""
    if not isinstance(mnemonic, str) or not mnemonic.strip():
        return False
    try:
        return _MNEMONIC.check(mnemonic.strip())
    except (ValueError, LookupError):
        return False


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Convert a mnemonic phrase to a 64-byte seed (BIP-39)."""
    return Mnemonic.to_seed(mnemonic.strip(), passphrase)


# ===================================================================
#  Hashing / signing helpers
# ===================================================================

def keccak256(data: bytes) -> bytes:
    h = keccak.new(digest_bits=256)
    h.update(data)
    return h.digest()


def sha256d(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def public_key_bytes(private_key: bytes) -> bytes:
    """Uncompressed (65-byte) secp256k1 public key."""
    sk = SigningKey.from_string(private_key, curve=SECP256k1)
    return b"\x04" + sk.get_verifying_key().to_string()


def address_from_private_key(private_key: bytes) -> str:
    return "0x" + keccak256(public_key_bytes(private_key)[1:])[-20:].hex()


def personal_message_digest(data: bytes | str) -> bytes:
    """EIP-191 ``personal_sign`` digest."""
    if isinstance(data, str):
        if data.startswith("0x"):
            try:
                data = bytes.fromhex(data[2:])
            except ValueError:
                data = data.encode("utf-8")
        else:
            data = data.encode("utf-8")
    prefix = f"\x19Ethereum Signed Message:\n{len(data)}".encode("utf-8")
    return keccak256(prefix + data)


def transaction_digest(raw_tx: dict, algorithm: str = "keccak256") -> bytes:
    """Digest of a transaction's canonical JSON form."""
    payload = canonical_json(raw_tx).encode("utf-8")
    if algorithm == "keccak256":
        return keccak256(payload)
    if algorithm == "sha256d":
        return sha256d(payload)
    raise ValueError(f"Unknown digest algorithm: {algorithm}")


def sign_digest(private_key: bytes, digest: bytes) -> str:
    """Deterministic (RFC 6979) low-s secp256k1 signature, hex r||s."""
    sk = SigningKey.from_string(private_key, curve=SECP256k1)
    sig = sk.sign_digest_deterministic(
        digest, hashfunc=hashlib.sha256, sigencode=sigencode_string_canonize,
    )
    return "0x" + sig.hex()


def parse_private_key(value: str | bytes | bytearray) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        text = value[2:] if value.startswith("0x") else value
        raw = bytes.fromhex(text)
    if len(raw) != 32:
        raise ValueError("Private key must be 32 bytes")
    return raw


# ===================================================================
#  HD Key Derivation (BIP-32 / BIP-44)
# ===================================================================

class HDNode:
    """
    Hierarchical Deterministic key derivation node.

    Implements BIP-32 private derivation with HMAC-SHA512.
    Path notation: m/44'/60'/0'/0/index
    """

    HARDENED = 0x80000000

    def __init__(self, private_key: bytes, chain_code: bytes, depth: int = 0,
                 index: int = 0):
        self.private_key = private_key
        self.chain_code = chain_code
        self.depth = depth
        self.index = index
        self._compressed_pub: bytes | None = None

    @classmethod
    def from_seed(cls, seed: bytes) -> HDNode:
        """Create master node from a 64-byte seed."""
        I = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        return cls(private_key=I[:32], chain_code=I[32:])

    def _get_compressed_pub(self) -> bytes:
        """Get compressed (33-byte) public key."""
        if self._compressed_pub is None:
            sk = SigningKey.from_string(self.private_key, curve=SECP256k1)
            raw = sk.get_verifying_key().to_string()
            x = raw[:32]
            y = raw[32:]
            prefix = b"\x02" if y[-1] % 2 == 0 else b"\x03"
            self._compressed_pub = prefix + x
        return self._compressed_pub

    def derive_child(self, index: int) -> HDNode:
        """Derive a child node at the given index."""
        if index >= self.HARDENED:
            data = b"\x00" + self.private_key + struct.pack(">I", index)
        else:
            data = self._get_compressed_pub() + struct.pack(">I", index)

        I = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        il = int.from_bytes(I[:32], "big")
        if il >= SECP256k1.order:
            return self.derive_child(index + 1)
        child_key_int = (il + int.from_bytes(self.private_key, "big")) % SECP256k1.order
        if child_key_int == 0:
            return self.derive_child(index + 1)

        return HDNode(
            private_key=child_key_int.to_bytes(32, "big"),
            chain_code=I[32:],
            depth=self.depth + 1,
            index=index,
        )

    def derive_path(self, path: str) -> HDNode:
        """
        Derive from a BIP-44 path string like "m/44'/60'/0'/0/0".
        """
        if path == "m":
            return self
        if path.startswith("m/"):
            path = path[2:]

        node = self
        for component in path.split("/"):
            if component.endswith("'"):
                index = int(component[:-1]) + self.HARDENED
            else:
                index = int(component)
            node = node.derive_child(index)
        return node


# ===================================================================
#  KeyringProvider contract
# ===================================================================

@dataclass
class KeyringInfo:
    """Public view of one keyring inside a provider."""
    type: str
    accounts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"type": self.type, "accounts": list(self.accounts)}


@dataclass
class KeyringState:
    """Snapshot returned by restore / add-account calls."""
    keyrings: list[KeyringInfo] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"keyrings": [k.to_dict() for k in self.keyrings]}


class KeyringProvider:
    """
    Contract for keyring collaborators.

    All methods are coroutines so that remote (HSM / MPC / RPC backed)
    providers fit the same interface as the in-process one.
    """

    async def create_new_vault_and_restore(self, password: str, mnemonic: str) -> KeyringState:
        raise NotImplementedError

    async def get_accounts(self) -> list[str]:
        raise NotImplementedError

    async def get_keyring_for_account(self, address: str) -> Any:
        raise NotImplementedError

    async def get_keyrings_by_type(self, keyring_type: str) -> list[Any]:
        raise NotImplementedError

    async def add_new_account(self, handle: Any) -> KeyringState:
        raise NotImplementedError

    async def export_account(self, address: str) -> str:
        raise NotImplementedError

    async def sign_message(self, msg_params: dict) -> str:
        raise NotImplementedError

    async def sign_transaction(self, raw_tx: dict, context: Any = None) -> dict:
        raise NotImplementedError


# ===================================================================
#  In-process HD keyring
# ===================================================================

class HDKeyring:
    """A single BIP-44 account chain and the accounts derived from it."""

    type = HD_KEYRING_TYPE

    def __init__(self, mnemonic: str, path: str = ETH_ACCOUNT_PATH):
        seed = bytearray(mnemonic_to_seed(mnemonic))
        try:
            self._root = HDNode.from_seed(bytes(seed)).derive_path(path)
        finally:
            zero_fill(seed)
        self.path = path
        self._keys: dict[str, bytes] = {}
        self._order: list[str] = []

    @property
    def accounts(self) -> list[str]:
        return list(self._order)

    def add_accounts(self, count: int = 1) -> list[str]:
        added = []
        for _ in range(count):
            node = self._root.derive_child(len(self._order))
            address = address_from_private_key(node.private_key)
            self._keys[address] = node.private_key
            self._order.append(address)
            added.append(address)
        return added

    def has_account(self, address: str) -> bool:
        return address.lower() in self._keys

    def private_key_for(self, address: str) -> bytes:
        key = self._keys.get(address.lower())
        if key is None:
            raise NonexistentKeyringAccountError()
        return key

    def wipe(self) -> None:
        self._keys.clear()
        self._order.clear()

    def __repr__(self) -> str:
        return f"HDKeyring({self.path}, accounts={len(self._order)})"


class HDKeyringProvider(KeyringProvider):
    """In-process keyring provider backed by ``HDKeyring``."""

    def __init__(self):
        self.keyrings: list[HDKeyring] = []

    def _state(self) -> KeyringState:
        return KeyringState([KeyringInfo(k.type, k.accounts) for k in self.keyrings])

    def _keyring_for(self, address: str) -> HDKeyring:
        for kr in self.keyrings:
            if kr.has_account(address):
                return kr
        raise NonexistentKeyringAccountError()

    async def create_new_vault_and_restore(self, password: str, mnemonic: str) -> KeyringState:
        """Replace all keyrings with one HD keyring holding its first account.

        ``password`` guards the provider's own store in remote providers;
        the in-process provider keeps nothing at rest.
        """
        if not validate_mnemonic(mnemonic):
            raise InvalidMnemonicError()
        for kr in self.keyrings:
            kr.wipe()
        keyring = HDKeyring(mnemonic)
        keyring.add_accounts(1)
        self.keyrings = [keyring]
        return self._state()

    async def get_accounts(self) -> list[str]:
        return [addr for kr in self.keyrings for addr in kr.accounts]

    async def get_keyring_for_account(self, address: str) -> HDKeyring:
        return self._keyring_for(address)

    async def get_keyrings_by_type(self, keyring_type: str) -> list[HDKeyring]:
        return [kr for kr in self.keyrings if kr.type == keyring_type]

    async def add_new_account(self, handle: HDKeyring) -> KeyringState:
        if handle not in self.keyrings:
            raise NonexistentKeyringAccountError("Keyring handle is not managed by this provider")
        handle.add_accounts(1)
        return self._state()

    async def export_account(self, address: str) -> str:
        return self._keyring_for(address).private_key_for(address).hex()

    async def sign_message(self, msg_params: dict) -> str:
        address = msg_params["from"]
        key = self._keyring_for(address).private_key_for(address)
        return sign_digest(key, personal_message_digest(msg_params["data"]))

    async def sign_transaction(self, raw_tx: dict, context: Any = None) -> dict:
        address = raw_tx["from"]
        key = self._keyring_for(address).private_key_for(address)
        digest = transaction_digest(raw_tx, "keccak256")
        return {
            "rawTransaction": raw_tx,
            "hash": "0x" + digest.hex(),
            "signature": sign_digest(key, digest),
        }

    def __repr__(self) -> str:
        return f"HDKeyringProvider(keyrings={len(self.keyrings)})"
