# cipherline_core/messaging.py
"""
MessageExchange: encrypt -> persist -> notarize on send, and
fetch -> merge local fallback -> enrich on retrieval.

Durability degrades instead of failing: if the shared store rejects or
cannot be reached, the message lands in the device-local log with
origin="local". Notarization is advisory and can never change an outcome.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from datetime import datetime, timezone
from typing import Dict, List, Optional

from cipherline_core import crypto
from cipherline_core.constants import (
    NOTARY_ENRICH_DEADLINE_S, NOTARY_ENRICH_WORKERS, ORIGIN_LOCAL, ORIGIN_REMOTE,
)
from cipherline_core.errors import RecipientKeyNotFoundError, StoreError
from cipherline_core.keystore import KeyStore
from cipherline_core.logger import get_logger
from cipherline_core.message import Message
from cipherline_core.notary import NotaryClient
from cipherline_core.outbox import MessageLog
from cipherline_core.retry import RetryPolicy
from cipherline_core.storage.provider import StorageProvider
from cipherline_core.utils import parse_ts, require_identity

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class History:
    received: List[Message] = field(default_factory=list)
    sent: List[Message] = field(default_factory=list)
    remote_available: bool = True

    @property
    def pending(self) -> List[Message]:
        """Messages that only exist on this device."""
        seen: Dict[str, Message] = {}
        for m in self.received + self.sent:
            if m.origin == ORIGIN_LOCAL:
                seen.setdefault(m.id, m)
        return list(seen.values())


def _created_at(message: Message) -> datetime:
    try:
        return parse_ts(message.created_at)
    except ValueError:
        return _EPOCH


class MessageExchange:
    def __init__(self, keystore: KeyStore, storage: StorageProvider, outbox: MessageLog,
                 notary: Optional[NotaryClient] = None, retry: Optional[RetryPolicy] = None, log=None,
                 enrich_workers: int = NOTARY_ENRICH_WORKERS, enrich_deadline: float = NOTARY_ENRICH_DEADLINE_S):
        self.keystore = keystore
        self.storage = storage
        self.outbox = outbox
        self.notary = notary
        self.retry = retry or keystore.retry
        self.log = log or get_logger("cipherline.messaging")
        self.enrich_workers = enrich_workers
        self.enrich_deadline = enrich_deadline

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------
    def send(self, sender: str, recipient: str, plaintext: str) -> Message:
        """
        Encrypt `plaintext` to the recipient's public key and persist it.

        Always returns a Message once encryption succeeded; check `origin`
        to tell whether it reached the shared store.
        """
        sender = require_identity(sender)
        recipient = require_identity(recipient)

        public_key = self.keystore.get_public_key(recipient)
        if not public_key:
            raise RecipientKeyNotFoundError(recipient)

        ciphertext = crypto.encrypt(plaintext, public_key)
        draft = Message(sender=sender, recipient=recipient, ciphertext=ciphertext)

        try:
            message = self.retry.run(self.storage.insert_message, draft, op=f"insert_message({draft.id})")
            message.origin = ORIGIN_REMOTE
            self.log.info(f"[SEND] {message.id} {sender} -> {recipient} stored remotely")
        except StoreError as e:
            # same locally generated id: a write that landed despite a timeout
            # shows up once, as remote, after merging
            message = Message(
                id=draft.id,
                sender=sender,
                recipient=recipient,
                ciphertext=ciphertext,
                created_at=draft.created_at,
                origin=ORIGIN_LOCAL,
            )
            self.log.warning(f"[SEND] remote store failed ({e}); {message.id} kept in local log only")
            try:
                self.outbox.append(message)
            except OSError as oe:
                self.log.error(f"[SEND] local log write failed for {message.id}: {oe}")

        self._notarize(message)
        return message

    def _notarize(self, message: Message) -> None:
        if self.notary is None:
            return
        try:
            self.notary.store(message.id, message.sender, message.recipient, message.created_at)
        except Exception as e:
            self.log.warning(f"[SEND] notarization failed for {message.id}: {e}")

    # ------------------------------------------------------------------
    # Retrieve
    # ------------------------------------------------------------------
    def fetch_history(self, identity: str, enrich: bool = True) -> History:
        """
        Received and sent messages for `identity`, newest first, remote and
        local-only entries merged. Never fails because the store is down.
        """
        identity = require_identity(identity)
        history = History()

        try:
            remote_received = self.retry.run(self.storage.messages_for_recipient, identity, op="messages_for_recipient")
            remote_sent = self.retry.run(self.storage.messages_from_sender, identity, op="messages_from_sender")
        except StoreError as e:
            self.log.warning(f"[HISTORY] remote store unavailable for {identity}: {e}; showing local messages only")
            remote_received, remote_sent = [], []
            history.remote_available = False

        history.received = self._merge(remote_received, self.outbox.for_recipient(identity))
        history.sent = self._merge(remote_sent, self.outbox.from_sender(identity))

        if enrich and self.notary is not None:
            self._enrich(history.received + history.sent)
        return history

    @staticmethod
    def _merge(remote: List[Message], local: List[Message]) -> List[Message]:
        merged: Dict[str, Message] = {m.id: m for m in local}
        merged.update({m.id: m for m in remote})  # remote copy wins
        return sorted(merged.values(), key=_created_at, reverse=True)

    def _enrich(self, messages: List[Message]) -> None:
        """
        Attach notarization records, looked up in parallel. Whatever has not
        answered once `enrich_deadline` seconds are up is left without one.
        """
        if not messages:
            return
        pool = ThreadPoolExecutor(max_workers=min(self.enrich_workers, len(messages)),
                                  thread_name_prefix="cipherline-notary")
        futures = {pool.submit(self.notary.get, m.id): m for m in messages}
        try:
            for fut in as_completed(futures, timeout=self.enrich_deadline):
                message = futures[fut]
                try:
                    message.notarization = fut.result()
                except Exception as e:
                    self.log.debug(f"[HISTORY] notarization lookup failed for {message.id}: {e}")
        except FuturesTimeout:
            pending = sum(1 for f in futures if not f.done())
            self.log.warning(
                f"[HISTORY] {pending} notarization lookups still running after {self.enrich_deadline}s; skipped"
            )
        finally:
            # lookups already in flight finish on their own threads
            pool.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Decrypt and advisory status
    # ------------------------------------------------------------------
    def decrypt(self, message: Message, private_key_pem: str) -> str:
        return crypto.decrypt(message.ciphertext, private_key_pem)

    def update_status(self, message_id: str, status: str) -> bool:
        if self.notary is None:
            return False
        return self.notary.update_status(message_id, status)

    def delete_notarization(self, message_id: str) -> bool:
        if self.notary is None:
            return False
        return self.notary.delete(message_id)
