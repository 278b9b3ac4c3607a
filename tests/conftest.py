"""
Shared pytest fixtures for the ChainVault test suite.
"""

import hashlib

import pytest

from chainvault_core.cipher import CipherBox
from chainvault_core.config import ChainVaultConfig
from chainvault_core.keyring import HDKeyringProvider, KeyringInfo, KeyringProvider, KeyringState
from chainvault_core.oracles import ActivityOracle
from chainvault_core.session import VaultSession

FAST_ITERATIONS = 1_000

ABANDON_MNEMONIC = "abandon " * 11 + "about"
LEGAL_MNEMONIC = "legal winner thank year wave sausage worth useful legal winner thank yellow"

ENCRYPTION_KEY = {"salt": "fixture-salt", "key": "fixture-key"}
PIN = 1234


def fake_address(mnemonic: str, index: int) -> str:
    """Address the fake keyring assigns to account *index* (0 = seed)."""
    return "0x" + hashlib.sha256(f"{mnemonic}/{index}".encode()).hexdigest()[:40]


class FakeKeyring:
    type = "Fake HD"

    def __init__(self, mnemonic: str):
        self.mnemonic = mnemonic
        self.accounts: list[str] = []

    def derive(self) -> str:
        address = fake_address(self.mnemonic, len(self.accounts))
        self.accounts.append(address)
        return address


class FakeKeyringProvider(KeyringProvider):
    """Deterministic keyring whose addresses encode the derivation index."""

    def __init__(self):
        self.keyrings: list[FakeKeyring] = []
        self.derive_calls = 0

    def _state(self) -> KeyringState:
        return KeyringState([KeyringInfo(k.type, list(k.accounts)) for k in self.keyrings])

    async def create_new_vault_and_restore(self, password, mnemonic):
        keyring = FakeKeyring(mnemonic)
        keyring.derive()
        self.keyrings = [keyring]
        return self._state()

    async def get_accounts(self):
        return [a for k in self.keyrings for a in k.accounts]

    async def get_keyring_for_account(self, address):
        return self.keyrings[0]

    async def get_keyrings_by_type(self, keyring_type):
        return [k for k in self.keyrings if k.type == keyring_type]

    async def add_new_account(self, handle):
        self.derive_calls += 1
        handle.derive()
        return self._state()


class ScriptedActivityOracle(ActivityOracle):
    """Reports activity for a fixed set of (address, network) pairs."""

    def __init__(self, active: dict[str, set[str]] | None = None):
        # network -> active addresses
        self.active = active or {}
        self.calls: list[tuple[str, str]] = []

    async def has_activity(self, address, network):
        self.calls.append((address, network))
        return address in self.active.get(network, set())


@pytest.fixture
def cipher():
    """CipherBox with a low work factor so the suite stays fast."""
    return CipherBox(kdf_iterations=FAST_ITERATIONS)


@pytest.fixture
def config():
    cfg = ChainVaultConfig()
    cfg.cipher.kdf_iterations = FAST_ITERATIONS
    cfg.discovery.networks = ["mainnet", "polygon-mainnet"]
    cfg.oracle.timeout_seconds = 5.0
    cfg.oracle.max_retries = 2
    cfg.oracle.backoff_base = 0.0
    cfg.oracle.backoff_max = 0.0
    return cfg


@pytest.fixture
def session(config):
    """Empty session backed by the in-process HD keyring."""
    return VaultSession(HDKeyringProvider, config=config)


@pytest.fixture
def fake_session(config):
    """Empty session backed by the deterministic fake keyring."""
    return VaultSession(FakeKeyringProvider, config=config)
