# cipherline_core/session.py
"""
SessionLifecycleHook: provisions key material when an identity becomes
authenticated.

Runs at most once per identity per process. Token refreshes re-fire the
session event without a real login and are filtered by comparing against
the last identity seen. Provisioning failures are logged, never raised; a
later sign-in or an explicit retry() tries again.
"""

from __future__ import annotations
from typing import Optional, Set
import threading

from cipherline_core.constants import EVENT_SIGNED_OUT, EVENT_TOKEN_REFRESHED
from cipherline_core.identity import IdentityProvider, SessionEvent, Subscription
from cipherline_core.keystore import KeyStore
from cipherline_core.logger import get_logger
from cipherline_core.utils import require_identity
from cipherline_core.vault import LocalKeyVault


class SessionLifecycleHook:
    def __init__(self, keystore: KeyStore, vault: Optional[LocalKeyVault] = None,
                 require_verified: bool = True, log=None):
        self.keystore = keystore
        self.vault = vault if vault is not None else keystore.vault
        self.require_verified = require_verified
        self.log = log or get_logger("cipherline.session")
        self.last_identity: Optional[str] = None
        self._provisioned: Set[str] = set()
        self._lock = threading.Lock()

    def attach(self, provider: IdentityProvider) -> Subscription:
        return provider.on_session_change(self.handle)

    def provisioned(self, identity: str) -> bool:
        return identity in self._provisioned

    def handle(self, event: SessionEvent) -> None:
        if event.kind == EVENT_SIGNED_OUT:
            self._on_signed_out()
            return
        if event.session is None:
            return

        identity = event.session.identity
        with self._lock:
            if identity in self._provisioned:
                self.last_identity = identity
                return
            if event.kind == EVENT_TOKEN_REFRESHED and identity == self.last_identity:
                self.log.debug(f"[SESSION] token refresh for {identity}; skipping")
                return

        if self.require_verified and not event.session.email_verified:
            # not recorded as seen: the next event carrying a verified session must get through
            self.log.info(f"[SESSION] email not verified for {identity}; key provisioning deferred")
            return

        with self._lock:
            self.last_identity = identity
        try:
            self.keystore.ensure_key_exists(identity)
        except Exception:
            self.log.exception(f"[SESSION] key provisioning failed for {identity}")
            return
        with self._lock:
            self._provisioned.add(identity)
        self.log.info(f"[SESSION] key material ready for {identity}")

    def retry(self, identity: str) -> str:
        """User-triggered retry: no guards, errors reach the caller."""
        identity = require_identity(identity)
        public_key = self.keystore.ensure_key_exists(identity)
        with self._lock:
            self._provisioned.add(identity)
            self.last_identity = identity
        return public_key

    def _on_signed_out(self) -> None:
        self.vault.clear()
        with self._lock:
            self.last_identity = None
        self.log.info("[SESSION] signed out; local private key cleared")
