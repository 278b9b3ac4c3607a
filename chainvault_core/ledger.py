"""
Account ledger for ChainVault.

The decrypted vault is an append-only list of accounts plus the
PIN-sealed mnemonic and a provenance counter.  All ledger operations are
pure: they take a ``DecryptedVault`` and return a new one, leaving the input
untouched, so a failed multi-step operation never exposes a half-applied
state.

Wire shape (canonical JSON inside the vault blob):

    {"numberOfAccounts": 2,
     "private": {"encryptedMnemonic": "cvb1$..."},
     "public": [{"address": "0x..", "isDeleted": false,
                 "isImported": false, "label": "Wallet 1"}, ...],
     "version": 1}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

from chainvault_core.cipher import CipherBox, canonical_json, canonical_passphrase
from chainvault_core.errors import (
    AddressNotPresentError,
    DecryptionError,
    DuplicateAccountError,
    IncorrectEncryptionKeyError,
)

VAULT_FORMAT_VERSION = 1


@dataclass(frozen=True)
class Account:
    """One derived (or imported) address recorded in the vault."""
    address: str
    is_deleted: bool = False
    is_imported: bool = False
    label: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "address": self.address,
            "isDeleted": self.is_deleted,
            "isImported": self.is_imported,
        }
        if self.label is not None:
            d["label"] = self.label
        return d

    @classmethod
    def from_dict(cls, data: dict) -> Account:
        return cls(
            address=data["address"],
            is_deleted=bool(data.get("isDeleted", False)),
            is_imported=bool(data.get("isImported", False)),
            label=data.get("label"),
        )


@dataclass(frozen=True)
class DecryptedVault:
    """In-memory plaintext view of a vault blob.  Never persisted as-is."""
    accounts: tuple[Account, ...] = field(default_factory=tuple)
    encrypted_mnemonic: str = ""
    number_of_accounts: int = 0

    def to_dict(self) -> dict:
        return {
            "version": VAULT_FORMAT_VERSION,
            "public": [a.to_dict() for a in self.accounts],
            "private": {"encryptedMnemonic": self.encrypted_mnemonic},
            "numberOfAccounts": self.number_of_accounts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DecryptedVault:
        accounts = tuple(Account.from_dict(a) for a in data["public"])
        encrypted_mnemonic = data["private"]["encryptedMnemonic"]
        number_of_accounts = data["numberOfAccounts"]
        if not isinstance(encrypted_mnemonic, str) or not isinstance(number_of_accounts, int):
            raise ValueError("Malformed vault record")
        return cls(accounts, encrypted_mnemonic, number_of_accounts)

    def serialize(self) -> str:
        return canonical_json(self.to_dict())

    @property
    def addresses(self) -> list[str]:
        return [a.address for a in self.accounts]

    @property
    def visible_count(self) -> int:
        """Number of non-deleted accounts (distinct from the provenance counter)."""
        return sum(1 for a in self.accounts if not a.is_deleted)


# ---- pure ledger operations ----

def new_vault(accounts: Iterable[Account], encrypted_mnemonic: str) -> DecryptedVault:
    """Build a vault whose counter matches the number of seeded accounts."""
    seeded = tuple(accounts)
    seen: set[str] = set()
    for acc in seeded:
        if acc.address in seen:
            raise DuplicateAccountError(f"Duplicate address {acc.address}")
        seen.add(acc.address)
    return DecryptedVault(seeded, encrypted_mnemonic, len(seeded))


def lookup(vault: DecryptedVault, address: str) -> bool:
    return any(a.address == address for a in vault.accounts)


def visible_accounts(vault: DecryptedVault) -> list[Account]:
    return [a for a in vault.accounts if not a.is_deleted]


def add_account(vault: DecryptedVault, address: str,
                label: Optional[str] = None) -> DecryptedVault:
    """Append a fresh active account and bump the provenance counter."""
    if lookup(vault, address):
        raise DuplicateAccountError(f"Address {address} already recorded")
    return replace(
        vault,
        accounts=vault.accounts + (Account(address=address, label=label),),
        number_of_accounts=vault.number_of_accounts + 1,
    )


def _index_of(vault: DecryptedVault, address: str) -> int:
    for i, acc in enumerate(vault.accounts):
        if acc.address == address:
            return i
    raise AddressNotPresentError()


def soft_delete(vault: DecryptedVault, address: str) -> DecryptedVault:
    """Flag the first matching account as deleted.  Deleting twice is a no-op."""
    idx = _index_of(vault, address)
    current = vault.accounts[idx]
    if current.is_deleted:
        return vault
    accounts = list(vault.accounts)
    accounts[idx] = replace(current, is_deleted=True)
    return replace(vault, accounts=tuple(accounts))


def set_label(vault: DecryptedVault, address: str, label: Optional[str]) -> DecryptedVault:
    idx = _index_of(vault, address)
    current = vault.accounts[idx]
    if current.label == label:
        return vault
    accounts = list(vault.accounts)
    accounts[idx] = replace(current, label=label)
    return replace(vault, accounts=tuple(accounts))


class AccountLedger:
    """Unlocks and seals vault blobs with a CipherBox."""

    def __init__(self, cipher: CipherBox):
        self.cipher = cipher

    def unlock(self, blob: str, encryption_key: Any) -> DecryptedVault:
        """Decrypt and parse *blob*; any failure is an incorrect key."""
        passphrase = canonical_passphrase(encryption_key)
        try:
            raw = self.cipher.decrypt(blob, passphrase)
        except DecryptionError as exc:
            raise IncorrectEncryptionKeyError() from exc
        try:
            return DecryptedVault.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            raise IncorrectEncryptionKeyError() from exc

    def seal(self, vault: DecryptedVault, encryption_key: Any) -> str:
        return self.cipher.encrypt(vault.serialize(), canonical_passphrase(encryption_key))
