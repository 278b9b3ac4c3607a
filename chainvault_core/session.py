"""
Vault session: the unit of synchronisation for one wallet.

A session owns:
  - the live vault blob (the only durable artefact),
  - the decrypted vault from the last unlock (public data plus the
    PIN-sealed mnemonic; never plaintext secrets),
  - a volatile keyring handle, rebuilt from the blob with
    ``restore_keyring_state`` after every process start,
  - the active chain for signing.

Every operation runs under the session's ``asyncio.Lock``.  Mutating
operations follow one read-modify-write cycle:

    unlock live blob with the caller's key  ->  PIN check
    ->  keyring / ledger work on new values ->  seal
    ->  swap blob + vault together

Nothing is swapped in until every step has succeeded, so a failure leaves
the pre-operation blob live.  The ledger is the durable history; the
keyring reflects what can be signed for right now.  Deletion and signing
check membership against the keyring, export checks the ledger first.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Iterable, Optional

from chainvault_core.chains import ChainRegistry
from chainvault_core.cipher import CipherBox, canonical_passphrase
from chainvault_core.config import ChainVaultConfig
from chainvault_core.discovery import AccountDiscovery
from chainvault_core.errors import (
    AddressNotPresentError,
    EnterCredsError,
    NonexistentKeyringAccountError,
    OracleUnavailableError,
    VaultLockedError,
)
from chainvault_core.keyring import HDKeyringProvider, KeyringProvider, generate_mnemonic
from chainvault_core.ledger import (
    Account,
    AccountLedger,
    DecryptedVault,
    add_account,
    lookup,
    new_vault,
    set_label,
    soft_delete,
)
from chainvault_core.oracles import ActivityOracle, AssetOracle, collect_asset_details
from chainvault_core.pin import PinGate, check_pin_type
from chainvault_core.retry import call_with_retry, call_with_timeout
from chainvault_core.signing import SigningDispatcher

logger = logging.getLogger("chainvault_session")

FIRST_ACCOUNT_LABEL = "Wallet 1"


def _check_credentials(encryption_key: Any, pin: Any) -> None:
    if encryption_key is None or encryption_key == "" or pin is None:
        raise EnterCredsError()
    check_pin_type(pin)


class VaultSession:
    """Coordinates CipherBox, PinGate, AccountLedger and a KeyringProvider."""

    def __init__(
        self,
        keyring_factory: Callable[[], KeyringProvider] = HDKeyringProvider,
        *,
        blob: Optional[str] = None,
        cipher: Optional[CipherBox] = None,
        registry: Optional[ChainRegistry] = None,
        activity_oracle: Optional[ActivityOracle] = None,
        config: Optional[ChainVaultConfig] = None,
    ):
        self.config = config or ChainVaultConfig()
        self.cipher = cipher or CipherBox(self.config.cipher.kdf_iterations)
        self.pin_gate = PinGate(self.cipher)
        self.ledger = AccountLedger(self.cipher)
        self.registry = registry or ChainRegistry()
        self.dispatcher = SigningDispatcher(self.registry)
        self.activity_oracle = activity_oracle
        self.policy = self.config.oracle.retry_policy()

        self._keyring_factory = keyring_factory
        self.keyring: KeyringProvider = keyring_factory()
        self.chain: str = self.registry.validate(self.config.session.default_chain)

        self._blob: Optional[str] = blob
        self._vault: Optional[DecryptedVault] = None
        self._lock = asyncio.Lock()
        self.logs: list[dict] = []

    # ---- state ----

    @property
    def blob(self) -> Optional[str]:
        return self._blob

    @property
    def vault(self) -> Optional[DecryptedVault]:
        return self._vault

    @property
    def number_of_accounts(self) -> int:
        return self._require_vault().number_of_accounts

    @property
    def visible_count(self) -> int:
        return self._require_vault().visible_count

    def _require_blob(self) -> str:
        if self._blob is None:
            raise VaultLockedError("No vault blob in this session")
        return self._blob

    def _require_vault(self) -> DecryptedVault:
        if self._vault is None:
            raise VaultLockedError("Vault is locked; unlock it with the encryption key first")
        return self._vault

    def _commit(self, blob: str, vault: DecryptedVault, action: str) -> None:
        self._blob = blob
        self._vault = vault
        self.logs.append({"timestamp": time.time(), "action": action})

    async def _live_accounts(self) -> list[str]:
        return await call_with_retry(self.keyring.get_accounts, self.policy,
                                     what="keyring accounts")

    # ---- creation ----

    @staticmethod
    def generate_mnemonic(entropy: bytes | None = None) -> str:
        return generate_mnemonic(entropy)

    async def _fresh_keyring(self, encryption_key: Any, mnemonic: str):
        keyring = self._keyring_factory()
        password = canonical_passphrase(encryption_key)
        state = await call_with_timeout(
            lambda: keyring.create_new_vault_and_restore(password, mnemonic), self.policy)
        return keyring, state

    async def generate(self, encryption_key: Any, pin: int, mnemonic: str) -> str:
        """Create a one-account vault from *mnemonic* and make it live."""
        _check_credentials(encryption_key, pin)
        async with self._lock:
            keyring, _ = await self._fresh_keyring(encryption_key, mnemonic)
            accounts = await keyring.get_accounts()
            vault = new_vault(
                [Account(address=accounts[0], label=FIRST_ACCOUNT_LABEL)],
                self.pin_gate.encrypt_mnemonic(mnemonic, pin),
            )
            blob = self.ledger.seal(vault, encryption_key)
            self.keyring = keyring
            self._commit(blob, vault, "vault-generation")
            logger.info(f"Vault generated with account {accounts[0]}")
            return blob

    async def recover(self, mnemonic: str, encryption_key: Any, pin: int) -> str:
        """Rebuild a vault from *mnemonic*, discovering used accounts."""
        _check_credentials(encryption_key, pin)
        if self.activity_oracle is None:
            raise OracleUnavailableError("No activity oracle configured for discovery")
        async with self._lock:
            keyring, state = await self._fresh_keyring(encryption_key, mnemonic)
            primary = state.keyrings[0]
            handles = await keyring.get_keyrings_by_type(primary.type)
            discovery = AccountDiscovery(
                self.activity_oracle,
                self.config.discovery.networks,
                self.config.discovery.gap_limit,
                self.policy,
            )
            accounts = await discovery.discover(primary.accounts[0], keyring, handles[0])
            vault = new_vault(accounts, self.pin_gate.encrypt_mnemonic(mnemonic, pin))
            blob = self.ledger.seal(vault, encryption_key)
            self.keyring = keyring
            self._commit(blob, vault, "vault-recovery")
            logger.info(
                f"Vault recovered: {vault.number_of_accounts} accounts, "
                f"{vault.visible_count} active"
            )
            return blob

    # ---- unlock / read ----

    async def unlock(self, encryption_key: Any) -> DecryptedVault:
        async with self._lock:
            vault = self.ledger.unlock(self._require_blob(), encryption_key)
            self._vault = vault
            return vault

    async def get_accounts(self, encryption_key: Any) -> list[Account]:
        vault = await self.unlock(encryption_key)
        return list(vault.accounts)

    def get_supported_chains(self) -> dict:
        return self.registry.supported()

    async def get_asset_details(self, asset_oracle: AssetOracle,
                                networks: Iterable[str] | None = None) -> dict[str, dict]:
        async with self._lock:
            vault = self._require_vault()
        return await collect_asset_details(
            vault.accounts, asset_oracle,
            networks if networks is not None else self.config.discovery.networks,
            self.policy,
        )

    # ---- PIN-gated reads ----

    async def validate_pin(self, pin: Any) -> bool:
        async with self._lock:
            return self.pin_gate.validate_pin(pin, self._require_vault().encrypted_mnemonic)

    async def export_mnemonic(self, pin: Any) -> str:
        async with self._lock:
            return self.pin_gate.export_mnemonic(pin, self._require_vault().encrypted_mnemonic)

    async def _export_private_key(self, address: str, pin: Any) -> str:
        vault = self._require_vault()
        self.pin_gate.require_pin(pin, vault.encrypted_mnemonic)
        if not lookup(vault, address):
            raise AddressNotPresentError()
        if address not in await self._live_accounts():
            raise NonexistentKeyringAccountError()
        return await call_with_timeout(lambda: self.keyring.export_account(address), self.policy)

    async def export_private_key(self, address: str, pin: Any) -> str:
        async with self._lock:
            return await self._export_private_key(address, pin)

    # ---- mutations ----

    async def _require_live_accounts(self) -> list[str]:
        accounts = await self._live_accounts()
        if not accounts:
            raise VaultLockedError("Keyring is empty; restore the keyring state first")
        return accounts

    def _discard_keyring(self, reason: str) -> None:
        logger.warning(f"Discarding live keyring: {reason}; restore the keyring state")
        self.keyring = self._keyring_factory()

    async def add_account(self, encryption_key: Any, pin: Any) -> str:
        async with self._lock:
            vault = self.ledger.unlock(self._require_blob(), encryption_key)
            self.pin_gate.require_pin(pin, vault.encrypted_mnemonic)

            live = await self._require_live_accounts()
            recorded = [a.address for a in vault.accounts if not a.is_imported]
            if any(address not in live for address in recorded):
                raise VaultLockedError("Keyring does not hold the ledger's accounts; "
                                       "restore the keyring state first")
            handle = await self.keyring.get_keyring_for_account(recorded[0])
            try:
                state = await call_with_timeout(
                    lambda: self.keyring.add_new_account(handle), self.policy)
            except BaseException:
                self._discard_keyring("derivation did not complete")
                raise

            derived = next((k.accounts for k in state.keyrings if recorded[0] in k.accounts), [])
            if derived[:-1] != recorded:
                self._discard_keyring(
                    f"derived keyring holds {len(derived)} accounts, "
                    f"ledger expects {len(recorded) + 1}")
                raise VaultLockedError("Keyring drifted from the ledger; "
                                       "restore the keyring state first")
            new_address = derived[-1]

            updated = add_account(vault, new_address)
            blob = self.ledger.seal(updated, encryption_key)
            self._commit(blob, updated, "add-account")
            logger.info(f"Account {new_address} added (#{updated.number_of_accounts})")
            return blob

    async def delete_account(self, encryption_key: Any, address: str, pin: Any) -> str:
        async with self._lock:
            current_blob = self._require_blob()
            vault = self.ledger.unlock(current_blob, encryption_key)
            self.pin_gate.require_pin(pin, vault.encrypted_mnemonic)

            if address not in await self._require_live_accounts():
                raise AddressNotPresentError()
            updated = soft_delete(vault, address)
            if updated is vault:
                self._vault = vault
                return current_blob

            blob = self.ledger.seal(updated, encryption_key)
            self._commit(blob, updated, "delete-account")
            logger.info(f"Account {address} soft-deleted")
            return blob

    async def update_label(self, encryption_key: Any, address: str, label: Optional[str]) -> str:
        async with self._lock:
            current_blob = self._require_blob()
            vault = self.ledger.unlock(current_blob, encryption_key)
            updated = set_label(vault, address, label)
            if updated is vault:
                self._vault = vault
                return current_blob
            blob = self.ledger.seal(updated, encryption_key)
            self._commit(blob, updated, "update-label")
            return blob

    async def restore_keyring_state(self, blob: str, pin: Any, encryption_key: Any) -> None:
        """
        Rebuild the volatile keyring from a durable blob.

        Replays ``numberOfAccounts - 1`` derivations after the seed account so
        the live keyring covers every account the ledger has ever recorded.
        """
        async with self._lock:
            vault = self.ledger.unlock(blob, encryption_key)
            mnemonic = self.pin_gate.export_mnemonic(pin, vault.encrypted_mnemonic)
            try:
                keyring, state = await self._fresh_keyring(encryption_key, mnemonic)
            finally:
                del mnemonic
            handles = await keyring.get_keyrings_by_type(state.keyrings[0].type)
            for _ in range(vault.number_of_accounts - 1):
                await call_with_timeout(lambda: keyring.add_new_account(handles[0]), self.policy)

            derived = await keyring.get_accounts()
            recorded = [a.address for a in vault.accounts if not a.is_imported]
            if derived != recorded:
                logger.warning(
                    f"Restored keyring ({len(derived)} accounts) does not match the "
                    f"{len(recorded)} derived accounts recorded in the ledger"
                )
            self.keyring = keyring
            self._commit(blob, vault, "restore-keyring")
            logger.info(f"Keyring restored with {len(derived)} accounts")

    # ---- network / signing ----

    async def change_network(self, chain: str) -> str:
        self.registry.validate(chain)
        async with self._lock:
            self.chain = chain
            return chain

    async def sign_message(self, address: str, data: Any, pin: Any) -> str:
        async with self._lock:
            self.pin_gate.require_pin(pin, self._require_vault().encrypted_mnemonic)
            return await self.dispatcher.sign_message(self.keyring, address, data)

    async def sign_transaction(self, raw_tx: dict, pin: Any, chain: Optional[str] = None) -> dict:
        target = self.registry.validate(chain or self.chain)
        async with self._lock:
            self.pin_gate.require_pin(pin, self._require_vault().encrypted_mnemonic)
            return await self.dispatcher.sign_transaction(
                self.keyring, raw_tx, target,
                lambda address: self._export_private_key(address, pin),
            )

    def __repr__(self) -> str:
        state = "unlocked" if self._vault is not None else "locked"
        return f"VaultSession(chain={self.chain}, {state})"
