"""
Signing dispatch for ChainVault.

Two paths:

  - **native** (``ethereum``): the live keyring signs in-process; the raw
    key never leaves the provider.
  - **export-and-sign** (every other registered chain): the raw private key
    is exported through the PIN-gated session, handed to a chain-specific
    signer, and the local copy is wiped as soon as the signature exists.
    The key is plaintext in process memory for the duration of that call.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from chainvault_core.cipher import zero_fill
from chainvault_core.errors import NonexistentKeyringAccountError
from chainvault_core.keyring import (
    address_from_private_key,
    parse_private_key,
    sign_digest,
    transaction_digest,
)

if TYPE_CHECKING:
    from chainvault_core.chains import ChainRegistry
    from chainvault_core.keyring import KeyringProvider

logger = logging.getLogger("chainvault_signing")

NATIVE_CHAIN = "ethereum"


class ExportedKeySigner:
    """Stateless secp256k1 signer keyed per call with an exported raw key."""

    def __init__(self, digest: str = "keccak256"):
        self.digest = digest

    def sign_transaction(self, raw_tx: dict, private_key: str | bytes) -> dict:
        key = bytearray(parse_private_key(private_key))
        try:
            if self.digest == "keccak256" and raw_tx.get("from"):
                if address_from_private_key(bytes(key)) != str(raw_tx["from"]).lower():
                    raise NonexistentKeyringAccountError("Exported key does not match sender")
            digest = transaction_digest(raw_tx, self.digest)
            signature = sign_digest(bytes(key), digest)
        finally:
            zero_fill(key)
        return {
            "rawTransaction": raw_tx,
            "hash": "0x" + digest.hex(),
            "signature": signature,
        }


class SigningDispatcher:
    """Routes sign requests; callers have already cleared the PIN gate."""

    def __init__(self, registry: ChainRegistry):
        self.registry = registry

    async def sign_message(self, keyring: KeyringProvider, address: str, data: Any) -> str:
        accounts = await keyring.get_accounts()
        if address not in accounts:
            raise NonexistentKeyringAccountError()
        return await keyring.sign_message({"from": address, "data": data})

    async def sign_transaction(
        self,
        keyring: KeyringProvider,
        raw_tx: dict,
        chain: str,
        export_key: Callable[[str], Awaitable[str]],
    ) -> dict:
        """
        Sign *raw_tx* for *chain*.

        ``export_key(address)`` must perform its own PIN check; it is only
        awaited on the export-and-sign path.
        """
        self.registry.validate(chain)
        sender = raw_tx.get("from")
        if chain == NATIVE_CHAIN:
            accounts = await keyring.get_accounts()
            if sender not in accounts:
                raise NonexistentKeyringAccountError()
            return await keyring.sign_transaction(raw_tx, {"chain": chain})

        descriptor = self.registry.get(chain)
        private_key = await export_key(sender)
        try:
            signer = descriptor.signer_factory()
            logger.info(f"Signing {chain} transaction for {sender} via exported key")
            return signer.sign_transaction(raw_tx, private_key)
        finally:
            del private_key
