"""
ChainVault - encrypted credential state for a multi-chain HD wallet.

Key features:
- Vault blob sealed with AES-256-GCM under a canonical encryption key
- Mnemonic sealed a second time under a PIN, checked on every sensitive call
- Append-only account ledger with soft deletion and a provenance counter
- Gap-limit account discovery against on-chain activity oracles
- Signing dispatch: native keyring signer or PIN-gated export-and-sign
- Static EVM / non-EVM chain registry
"""

__version__ = "1.0.0"
__all__ = [
    "cipher",
    "pin",
    "ledger",
    "discovery",
    "session",
    "signing",
    "chains",
    "keyring",
    "oracles",
    "retry",
    "errors",
    "config",
    "logging_config",
]
