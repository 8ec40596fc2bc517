# cipherline_core/keystore.py
"""
KeyStore: identity -> public key, backed by the shared store.

- reads go through a bounded LRU cache that lives for the process only
- `ensure_key_exists` provisions a key pair at most once per identity; the
  store's insert-if-absent decides the winner when two devices race
- private halves go to the local vault, never to the store
"""

from __future__ import annotations
from collections import OrderedDict
from typing import Dict, Optional
import threading

from cipherline_core import crypto
from cipherline_core.constants import DEFAULT_KEY_SIZE, KEY_CACHE_SIZE
from cipherline_core.errors import MalformedKeyError, PersistenceError, StoreUnavailableError
from cipherline_core.logger import get_logger
from cipherline_core.retry import RetryPolicy
from cipherline_core.storage.models import KeyRecord
from cipherline_core.storage.provider import StorageProvider
from cipherline_core.utils import now_ts, require_identity
from cipherline_core.vault import LocalKeyVault


class KeyCache:
    """Bounded LRU of identity -> public key PEM. Never persisted."""

    def __init__(self, maxsize: int = KEY_CACHE_SIZE):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self.maxsize = maxsize
        self._data: "OrderedDict[str, str]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, identity: str) -> Optional[str]:
        with self._lock:
            value = self._data.get(identity)
            if value is not None:
                self._data.move_to_end(identity)
            return value

    def put(self, identity: str, public_key: str) -> None:
        with self._lock:
            self._data[identity] = public_key
            self._data.move_to_end(identity)
            while len(self._data) > self.maxsize:
                self._data.popitem(last=False)

    def invalidate(self, identity: str) -> None:
        with self._lock:
            self._data.pop(identity, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, identity: str) -> bool:
        return identity in self._data

    def __len__(self) -> int:
        return len(self._data)


class KeyStore:
    def __init__(self, storage: StorageProvider, vault: LocalKeyVault, retry: Optional[RetryPolicy] = None,
                 cache_size: int = KEY_CACHE_SIZE, key_size: int = DEFAULT_KEY_SIZE, log=None):
        self.storage = storage
        self.vault = vault
        self.retry = retry or RetryPolicy()
        self.cache = KeyCache(cache_size)
        self.key_size = key_size
        self.log = log or get_logger("cipherline.keystore")
        self._provision_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_public_key(self, identity: str) -> Optional[str]:
        """
        Public key for `identity`, or None when the identity has no key yet.
        Raises StoreUnavailableError only when the store stays unreachable
        through every retry.
        """
        identity = require_identity(identity)
        cached = self.cache.get(identity)
        if cached is not None:
            return cached

        rec = self.retry.run(self.storage.get_key, identity, op=f"get_key({identity})")
        if rec is None or not rec.public_key:
            self.log.info(f"[KEYSTORE] no public key for {identity}")
            return None

        try:
            size = crypto.load_public_key(rec.public_key).key_size
        except MalformedKeyError as e:
            self.log.error(f"[KEYSTORE] stored key for {identity} is malformed: {e}")
            return None
        if size != self.key_size:
            self.log.warning(
                f"[KEYSTORE] {identity} has a {size}-bit key; this deployment issues {self.key_size}-bit keys"
            )

        self.cache.put(identity, rec.public_key)
        return rec.public_key

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def ensure_key_exists(self, identity: str) -> str:
        """
        Make sure `identity` has a public key on record and return it.

        When none exists a fresh pair is generated, the private half is put
        in the local vault and the public half is inserted if still absent.
        If another device got there first its key is authoritative: ours is
        discarded from the store's point of view, the winner is cached and
        returned, and this device's vault keeps the private key it generated
        (it cannot decrypt messages sent to the winning key).
        """
        identity = require_identity(identity)
        # one provisioning run per identity in this process; a second caller
        # waits and then finds the key the first one stored
        with self._provision_lock(identity):
            return self._provision(identity)

    def _provision_lock(self, identity: str) -> threading.Lock:
        with self._locks_guard:
            return self._provision_locks.setdefault(identity, threading.Lock())

    def _provision(self, identity: str) -> str:
        existing = self.get_public_key(identity)
        if existing:
            return existing

        self.log.info(f"[KEYSTORE] provisioning key pair for {identity}")
        pair = crypto.generate_keypair(self.key_size)
        self.vault.set(pair.private_key)

        rec = KeyRecord(
            identity=identity,
            public_key=pair.public_key,
            pub_key_fpr=crypto.compute_pubkey_fingerprint(pair.public_key),
        )
        try:
            stored = self.retry.run(self.storage.insert_key_if_absent, rec, op=f"insert_key({identity})")
        except StoreUnavailableError as e:
            raise PersistenceError(f"could not persist public key for {identity}: {e}") from e

        self.cache.put(identity, stored.public_key)
        if stored.public_key != pair.public_key:
            self.log.warning(f"[KEYSTORE] concurrent provisioning for {identity}; keeping the stored key")
            self._audit("key.provision.race_lost", {
                "identity": identity,
                "stored_fpr": stored.pub_key_fpr,
                "discarded_fpr": rec.pub_key_fpr,
            })
        else:
            self.log.info(f"[KEYSTORE] key pair provisioned for {identity} fpr={rec.pub_key_fpr}")
            self._audit("key.provisioned", {"identity": identity, "fpr": rec.pub_key_fpr})
        return stored.public_key

    def store(self, identity: str, public_key_pem: str) -> None:
        """Upsert the identity's public key and verify it reads back unchanged."""
        identity = require_identity(identity)
        crypto.load_public_key(public_key_pem)  # MalformedKeyError for anything else

        rec = KeyRecord(
            identity=identity,
            public_key=public_key_pem,
            pub_key_fpr=crypto.compute_pubkey_fingerprint(public_key_pem),
            updated_at=now_ts(),
        )
        try:
            self.retry.run(self.storage.upsert_key, rec, op=f"upsert_key({identity})")
            stored = self.retry.run(self.storage.get_key, identity, op=f"verify_key({identity})")
        except StoreUnavailableError as e:
            raise PersistenceError(f"could not store public key for {identity}: {e}") from e
        if stored is None or stored.public_key != public_key_pem:
            self.cache.invalidate(identity)
            raise PersistenceError(f"stored key verification failed for {identity}")

        self.cache.put(identity, public_key_pem)
        self._audit("key.stored", {"identity": identity, "fpr": rec.pub_key_fpr})

    # ------------------------------------------------------------------
    def invalidate(self, identity: str) -> None:
        self.cache.invalidate(identity)

    def clear_cache(self) -> None:
        self.cache.clear()

    def _audit(self, event_type: str, payload: dict) -> None:
        try:
            self.storage.log_event(event_type, payload)
        except Exception as e:
            self.log.warning(f"[KEYSTORE] audit write failed for {event_type}: {e}")
