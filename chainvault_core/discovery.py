"""
Gap-limit account discovery (BIP-44 "unused gap" heuristic).

Starting from the seed account of a freshly restored keyring, accounts are
derived one by one and checked for on-chain activity on every configured
network.  The scan stops once ``gap_limit`` consecutive accounts show no
activity; every account derived along the way is kept, inactive ones
flagged as deleted.

Derivation mutates the keyring and is therefore sequential.  Activity
lookups for one batch run concurrently.  Each batch is sized to exactly
close the current inactive run (``gap_limit - zero_counter``), so the scan
halts on the account completing the gap and never derives past it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from chainvault_core.keyring import KeyringProvider
from chainvault_core.ledger import Account
from chainvault_core.oracles import ActivityOracle, address_is_active
from chainvault_core.retry import RetryPolicy, call_with_timeout

logger = logging.getLogger("chainvault_discovery")

DEFAULT_GAP_LIMIT = 5


class AccountDiscovery:
    """Populates a new ledger from a restored keyring."""

    def __init__(self, oracle: ActivityOracle, networks: Iterable[str],
                 gap_limit: int = DEFAULT_GAP_LIMIT,
                 policy: RetryPolicy | None = None):
        if gap_limit < 1:
            raise ValueError("gap_limit must be at least 1")
        self.oracle = oracle
        self.networks = list(networks)
        self.gap_limit = gap_limit
        self.policy = policy or RetryPolicy()

    async def _derive_next(self, keyring: KeyringProvider, handle: Any) -> str:
        state = await call_with_timeout(lambda: keyring.add_new_account(handle), self.policy)
        return state.keyrings[0].accounts[-1]

    async def discover(self, seed_address: str, keyring: KeyringProvider,
                       handle: Any) -> list[Account]:
        accounts = [Account(address=seed_address, is_deleted=False)]
        zero_counter = 0
        batches = 0

        while zero_counter < self.gap_limit:
            batch_size = self.gap_limit - zero_counter
            batch = [await self._derive_next(keyring, handle) for _ in range(batch_size)]
            activity = await asyncio.gather(*[
                address_is_active(self.oracle, address, self.networks, self.policy)
                for address in batch
            ])
            for address, active in zip(batch, activity):
                zero_counter = 0 if active else zero_counter + 1
                accounts.append(Account(address=address, is_deleted=not active))
            batches += 1

        active_count = sum(1 for a in accounts if not a.is_deleted)
        logger.info(
            f"Discovery finished after {batches} batches: "
            f"{len(accounts)} accounts derived, {active_count} active"
        )
        return accounts
