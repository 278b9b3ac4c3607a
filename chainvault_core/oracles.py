"""
On-chain data oracles for ChainVault.

  - ``ActivityOracle``: does an address have any transaction history on a
    network?  Used by gap-limit account discovery.
  - ``AssetOracle``: token balances of an address on a network.
  - ``ExplorerActivityOracle``: aiohttp client for Etherscan-compatible
    explorer APIs (``module=account&action=txlist``).
  - ``collect_asset_details``: per-address, per-network asset map for the
    visible accounts of a vault.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import aiohttp

from chainvault_core.errors import ChainNotSupportedError, OracleUnavailableError
from chainvault_core.ledger import Account
from chainvault_core.retry import RetryPolicy, call_with_retry

logger = logging.getLogger("chainvault_oracles")

# Explorer "status 0" messages that mean "try again later" rather than "no data".
_TRANSIENT_EXPLORER_MESSAGES = ("rate limit", "notok", "timeout", "busy")


class ActivityOracle:
    """Contract: ``await has_activity(address, network) -> bool``."""

    async def has_activity(self, address: str, network: str) -> bool:
        raise NotImplementedError


class AssetOracle:
    """Contract: ``await get_assets(address, network) -> dict``."""

    async def get_assets(self, address: str, network: str) -> dict:
        raise NotImplementedError


@dataclass
class ExplorerEndpoint:
    """One Etherscan-compatible API base URL and its key."""
    url: str
    api_key: str = ""


class ExplorerActivityOracle(ActivityOracle):
    """
    Activity lookups against Etherscan-style explorers (etherscan,
    polygonscan, bscscan, ...), one endpoint per network name.
    """

    def __init__(self, endpoints: dict[str, ExplorerEndpoint],
                 session: Optional[aiohttp.ClientSession] = None,
                 request_timeout: float = 10.0):
        self.endpoints = dict(endpoints)
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> ExplorerActivityOracle:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def has_activity(self, address: str, network: str) -> bool:
        endpoint = self.endpoints.get(network)
        if endpoint is None:
            raise ChainNotSupportedError(f"No explorer configured for network {network}")
        params = {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": "0",
            "endblock": "99999999",
            "page": "1",
            "offset": "1",
            "sort": "asc",
        }
        if endpoint.api_key:
            params["apikey"] = endpoint.api_key

        async with self._get_session().get(endpoint.url, params=params) as response:
            if response.status != 200:
                raise OracleUnavailableError(f"{network} explorer returned HTTP {response.status}")
            payload = await response.json(content_type=None)

        return self._parse_txlist(payload, network)

    @staticmethod
    def _parse_txlist(payload: Any, network: str) -> bool:
        if not isinstance(payload, dict):
            raise OracleUnavailableError(f"{network} explorer returned a non-object payload")
        result = payload.get("result")
        if isinstance(result, list):
            return len(result) > 0
        message = f"{payload.get('message', '')} {result or ''}".lower()
        if any(marker in message for marker in _TRANSIENT_EXPLORER_MESSAGES):
            raise OracleUnavailableError(f"{network} explorer: {message.strip()}")
        return False


async def address_is_active(oracle: ActivityOracle, address: str,
                            networks: Iterable[str],
                            policy: RetryPolicy | None = None) -> bool:
    """True when any network reports history for *address*."""
    checks = [
        call_with_retry(lambda n=network: oracle.has_activity(address, n), policy,
                        what=f"activity {address}@{network}")
        for network in networks
    ]
    results = await asyncio.gather(*checks)
    return any(results)


async def collect_asset_details(accounts: Iterable[Account], oracle: AssetOracle,
                                networks: Iterable[str],
                                policy: RetryPolicy | None = None) -> dict[str, dict]:
    """
    Return ``{address: {network: assets}}`` for every non-deleted account.
    """
    networks = list(networks)
    output: dict[str, dict] = {}
    for account in accounts:
        if account.is_deleted:
            continue
        per_network = await asyncio.gather(*[
            call_with_retry(lambda n=network: oracle.get_assets(account.address, n), policy,
                            what=f"assets {account.address}@{network}")
            for network in networks
        ])
        output[account.address] = {n: dict(a or {}) for n, a in zip(networks, per_network)}
    return output
