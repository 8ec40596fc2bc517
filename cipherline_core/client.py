# cipherline_core/client.py
"""
MessengerClient wires the identity provider, key store, vault, message
exchange and session hook together for one device.
"""

from __future__ import annotations
from typing import Optional

from cipherline_core.config import Settings
from cipherline_core.errors import AuthError, DecryptionError, StoreUnavailableError
from cipherline_core.identity import IdentityProvider, LocalIdentityProvider, Session
from cipherline_core.keystore import KeyStore
from cipherline_core.logger import get_logger
from cipherline_core.message import Message
from cipherline_core.messaging import History, MessageExchange
from cipherline_core.notary import notary_factory
from cipherline_core.outbox import load_outbox
from cipherline_core.session import SessionLifecycleHook
from cipherline_core.storage import load_storage_provider
from cipherline_core.vault import LocalKeyVault, load_vault

log = get_logger("cipherline.client")


class MessengerClient:
    def __init__(self, identity: IdentityProvider, keystore: KeyStore, vault: LocalKeyVault,
                 exchange: MessageExchange, hook: SessionLifecycleHook):
        self.identity = identity
        self.keystore = keystore
        self.vault = vault
        self.exchange = exchange
        self.hook = hook
        self._subscription = hook.attach(identity)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None,
                      identity: Optional[IdentityProvider] = None, storage=None) -> "MessengerClient":
        settings = settings or Settings()
        get_logger("cipherline", level=settings.log_level)
        storage = storage or load_storage_provider(settings.storage_config())
        vault = load_vault(settings.vault_path)
        retry = settings.retry_policy()
        keystore = KeyStore(storage, vault, retry=retry, cache_size=settings.key_cache_size,
                            key_size=settings.key_size)
        notary = notary_factory(settings.notary_config())
        if notary is not None:
            notary.connect()
        exchange = MessageExchange(keystore, storage, load_outbox(settings.outbox_path), notary=notary, retry=retry)
        hook = SessionLifecycleHook(keystore, vault, require_verified=settings.require_verified_email)
        return cls(identity or LocalIdentityProvider(), keystore, vault, exchange, hook)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    def sign_up(self, email: str, password: str) -> str:
        return self.identity.sign_up(email, password)

    def sign_in(self, email: str, password: str) -> Session:
        return self.identity.sign_in(email, password)

    def sign_out(self) -> None:
        try:
            self.identity.sign_out()
        finally:
            # the vault goes even if the provider call failed
            self.vault.clear()

    @property
    def current_identity(self) -> Optional[str]:
        session = self.identity.current_session()
        return session.identity if session else None

    def _require_identity(self) -> str:
        identity = self.current_identity
        if not identity:
            raise AuthError("not signed in")
        return identity

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------
    def get_user_public_key(self, email: str) -> Optional[str]:
        try:
            return self.keystore.get_public_key(email)
        except StoreUnavailableError as e:
            log.error(f"[CLIENT] could not fetch public key for {email}: {e}")
            return None

    def private_key(self) -> Optional[str]:
        return self.vault.get()

    def retry_key_generation(self) -> str:
        return self.hook.retry(self._require_identity())

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    def send(self, recipient: str, plaintext: str) -> Message:
        return self.exchange.send(self._require_identity(), recipient, plaintext)

    def history(self) -> History:
        return self.exchange.fetch_history(self._require_identity())

    def decrypt(self, message: Message) -> str:
        private_key = self.vault.get()
        if not private_key:
            raise DecryptionError("no private key on this device")
        return self.exchange.decrypt(message, private_key)

    def close(self) -> None:
        self._subscription.unsubscribe()
        if self.exchange.notary is not None:
            self.exchange.notary.disconnect()
        self.exchange.storage.close()
