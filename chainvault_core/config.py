"""
TOML-based configuration for ChainVault.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from chainvault_core.config import load_config
    cfg = load_config("chainvault.toml")

Example file:

    [cipher]
    kdf_iterations = 600000

    [discovery]
    gap_limit = 5
    networks = ["mainnet", "polygon-mainnet", "bsc-mainnet"]

    [explorers.mainnet]
    url = "https://api.etherscan.io/api"
    api_key = "..."
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]

from chainvault_core.cipher import DEFAULT_KDF_ITERATIONS
from chainvault_core.discovery import DEFAULT_GAP_LIMIT
from chainvault_core.oracles import ExplorerEndpoint
from chainvault_core.retry import RetryPolicy


@dataclass
class CipherConfig:
    """Work factor for PBKDF2 key derivation on newly sealed envelopes."""
    kdf_iterations: int = DEFAULT_KDF_ITERATIONS


@dataclass
class DiscoveryConfig:
    """Gap-limit discovery settings.

    ``networks`` are the explorer network names queried for activity; an
    address counts as active if any of them reports history.
    """
    gap_limit: int = DEFAULT_GAP_LIMIT
    networks: list[str] = field(
        default_factory=lambda: ["mainnet", "polygon-mainnet", "bsc-mainnet"])


@dataclass
class OracleConfig:
    """Timeout / retry budget for collaborator calls."""
    timeout_seconds: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout=self.timeout_seconds,
            max_retries=self.max_retries,
            backoff_base=self.backoff_base,
            backoff_max=self.backoff_max,
        )


@dataclass
class SessionConfig:
    default_chain: str = "ethereum"


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class ChainVaultConfig:
    """Top-level configuration container."""
    cipher: CipherConfig = field(default_factory=CipherConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    explorers: dict[str, ExplorerEndpoint] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def _env_network_key(network: str) -> str:
    return network.upper().replace("-", "_")


def load_config(path: str | None = None) -> ChainVaultConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        CHAINVAULT_KDF_ITERATIONS   -> cipher.kdf_iterations
        CHAINVAULT_GAP_LIMIT        -> discovery.gap_limit
        CHAINVAULT_NETWORKS         -> discovery.networks  (comma-separated)
        CHAINVAULT_ORACLE_TIMEOUT   -> oracle.timeout_seconds
        CHAINVAULT_ORACLE_RETRIES   -> oracle.max_retries
        CHAINVAULT_DEFAULT_CHAIN    -> session.default_chain
        CHAINVAULT_LOG_LEVEL        -> logging.level
        CHAINVAULT_LOG_FMT          -> logging.format
        CHAINVAULT_EXPLORER_<NET>_URL / _API_KEY -> explorers.<net>
            (<NET> is the network name upper-cased, "-" -> "_")
    """
    cfg = ChainVaultConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("cipher", cfg.cipher),
                ("discovery", cfg.discovery),
                ("oracle", cfg.oracle),
                ("session", cfg.session),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])
            for network, raw in data.get("explorers", {}).items():
                cfg.explorers[network] = ExplorerEndpoint(
                    url=raw.get("url", ""), api_key=raw.get("api_key", ""),
                )

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("CHAINVAULT_KDF_ITERATIONS"):
        cfg.cipher.kdf_iterations = int(v)
    if v := os.environ.get("CHAINVAULT_GAP_LIMIT"):
        cfg.discovery.gap_limit = int(v)
    if v := os.environ.get("CHAINVAULT_NETWORKS"):
        cfg.discovery.networks = [n.strip() for n in v.split(",") if n.strip()]
    if v := os.environ.get("CHAINVAULT_ORACLE_TIMEOUT"):
        cfg.oracle.timeout_seconds = float(v)
    if v := os.environ.get("CHAINVAULT_ORACLE_RETRIES"):
        cfg.oracle.max_retries = int(v)
    if v := os.environ.get("CHAINVAULT_DEFAULT_CHAIN"):
        cfg.session.default_chain = v
    if v := os.environ.get("CHAINVAULT_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("CHAINVAULT_LOG_FMT"):
        cfg.logging.format = v

    for network in cfg.discovery.networks:
        prefix = f"CHAINVAULT_EXPLORER_{_env_network_key(network)}"
        url = os.environ.get(f"{prefix}_URL")
        api_key = os.environ.get(f"{prefix}_API_KEY")
        if url or api_key:
            current = cfg.explorers.get(network, ExplorerEndpoint(url=""))
            cfg.explorers[network] = ExplorerEndpoint(
                url=url or current.url, api_key=api_key or current.api_key,
            )

    return cfg
