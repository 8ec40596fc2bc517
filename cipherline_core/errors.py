"""
cipherline_core.errors
----------------------
Exception taxonomy shared by every Cipherline component.

Crypto errors always reach the caller. Store errors are retried and then
degraded by the component that owns the operation. Notary errors never
leave the notary client.
"""


class CipherlineError(Exception):
    pass


# --------- Crypto ----------
class CryptoError(CipherlineError):
    pass


class KeyGenerationError(CryptoError):
    pass


class MalformedKeyError(CryptoError):
    pass


class EncryptionError(CryptoError):
    pass


class DecryptionError(CryptoError):
    pass


# --------- Messaging ----------
class RecipientKeyNotFoundError(CipherlineError):
    def __init__(self, identity: str):
        super().__init__(f"No public key found for {identity}")
        self.identity = identity


# --------- Storage ----------
class StoreError(CipherlineError):
    pass


class StoreUnavailableError(StoreError):
    """Backend unreachable, timed out, or answered 5xx. Safe to retry."""


class PersistenceError(StoreError):
    """A write that cannot succeed by retrying."""


# --------- Collaborators ----------
class NotaryError(CipherlineError):
    pass


class AuthError(CipherlineError):
    pass
