"""
Static chain registry for ChainVault.

Two immutable tables, EVM and non-EVM chains, each entry carrying the
factory for the signer used on the export-and-sign path.  ``ethereum`` is
the native chain: it is always valid and never appears in either table,
because its transactions are signed by the live keyring directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from chainvault_core.errors import ChainNotSupportedError
from chainvault_core.signing import NATIVE_CHAIN, ExportedKeySigner


class ChainFamily(Enum):
    EVM = "evm"
    NON_EVM = "non-evm"


@dataclass(frozen=True)
class ChainDescriptor:
    id: str
    family: ChainFamily
    signer_factory: Callable[[], Any]
    name: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "family": self.family.value, "name": self.name or self.id}


def _evm(chain_id: str, name: str) -> ChainDescriptor:
    return ChainDescriptor(chain_id, ChainFamily.EVM,
                           lambda: ExportedKeySigner(digest="keccak256"), name)


def _non_evm(chain_id: str, name: str) -> ChainDescriptor:
    return ChainDescriptor(chain_id, ChainFamily.NON_EVM,
                           lambda: ExportedKeySigner(digest="sha256d"), name)


EVM_CHAINS: Mapping[str, ChainDescriptor] = MappingProxyType({
    "bsc": _evm("bsc", "BNB Smart Chain"),
    "polygon": _evm("polygon", "Polygon"),
    "optimism": _evm("optimism", "Optimism"),
    "arbitrum": _evm("arbitrum", "Arbitrum One"),
    "avalanche": _evm("avalanche", "Avalanche C-Chain"),
    "mantle": _evm("mantle", "Mantle"),
    "velas": _evm("velas", "Velas EVM"),
})

NON_EVM_CHAINS: Mapping[str, ChainDescriptor] = MappingProxyType({
    "bitcoin": _non_evm("bitcoin", "Bitcoin"),
})


class ChainRegistry:
    """Membership checks and descriptor lookup over the two chain tables."""

    def __init__(self, evm_chains: Optional[Mapping[str, ChainDescriptor]] = None,
                 non_evm_chains: Optional[Mapping[str, ChainDescriptor]] = None):
        self.evm_chains = MappingProxyType(dict(EVM_CHAINS if evm_chains is None else evm_chains))
        self.non_evm_chains = MappingProxyType(
            dict(NON_EVM_CHAINS if non_evm_chains is None else non_evm_chains))

    def is_supported(self, chain: str) -> bool:
        return chain == NATIVE_CHAIN or chain in self.evm_chains or chain in self.non_evm_chains

    def validate(self, chain: str) -> str:
        if not isinstance(chain, str) or not self.is_supported(chain):
            raise ChainNotSupportedError(f"Chain not supported: {chain}")
        return chain

    def get(self, chain: str) -> ChainDescriptor:
        """Descriptor for an export-and-sign chain (not the native chain)."""
        descriptor = self.evm_chains.get(chain) or self.non_evm_chains.get(chain)
        if descriptor is None:
            raise ChainNotSupportedError(f"No signer registered for chain: {chain}")
        return descriptor

    def supported(self) -> dict:
        return {
            "evm_chains": sorted(self.evm_chains),
            "non_evm_chains": sorted(self.non_evm_chains),
        }
