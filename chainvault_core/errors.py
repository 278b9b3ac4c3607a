"""
Error hierarchy for ChainVault.

Every failure the core reports is raised as a ``VaultError`` subclass that
carries a stable ``code`` string.  Validation errors (bad PIN type, missing
credentials, unsupported chain) are raised before any state is touched;
authentication errors (wrong PIN, wrong encryption key, unknown address)
are recoverable by the caller retrying with corrected input.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class for all tagged ChainVault errors."""

    code = "VAULT_ERROR"
    default_message = "Vault operation failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class IncorrectPinError(VaultError):
    code = "INCORRECT_PIN"
    default_message = "Incorrect PIN"


class IncorrectPinTypeError(VaultError):
    code = "INCORRECT_PIN_TYPE"
    default_message = "PIN must be a non-negative integer"


class IncorrectEncryptionKeyError(VaultError):
    code = "INCORRECT_ENCRYPTION_KEY"
    default_message = "Incorrect encryption key"


class EnterCredsError(VaultError):
    code = "ENTER_CREDS"
    default_message = "Encryption key and PIN are required"


class AddressNotPresentError(VaultError):
    code = "ADDRESS_NOT_PRESENT"
    default_message = "Address not present in the vault"


class NonexistentKeyringAccountError(VaultError):
    code = "NONEXISTENT_KEYRING_ACCOUNT"
    default_message = "Account does not exist in the keyring"


class ChainNotSupportedError(VaultError):
    code = "CHAIN_NOT_SUPPORTED"
    default_message = "Chain not supported"


class VaultLockedError(VaultError):
    code = "VAULT_LOCKED"
    default_message = "No unlocked vault in this session"


class DuplicateAccountError(VaultError):
    code = "DUPLICATE_ACCOUNT"
    default_message = "Address already recorded in the vault"


class InvalidMnemonicError(VaultError):
    code = "INVALID_MNEMONIC"
    default_message = "Invalid mnemonic phrase"


class OracleUnavailableError(VaultError):
    """Transient collaborator failure (HTTP 5xx, rate limit, bad payload)."""

    code = "ORACLE_UNAVAILABLE"
    default_message = "Oracle temporarily unavailable"


class DecryptionError(Exception):
    """Raised by CipherBox on a malformed envelope or tag mismatch.

    Never escapes the core: callers translate it into
    ``IncorrectEncryptionKeyError`` or ``IncorrectPinError``.
    """
