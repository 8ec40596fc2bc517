# cipherline_core/storage/provider.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

from cipherline_core.message import Message
from cipherline_core.storage.models import KeyRecord


class StorageProvider:
    """
    Interface for the shared backing store (keys + messages).

    Transient failures raise StoreUnavailableError, writes that can never
    succeed raise PersistenceError. Implementations must be safe to share
    between threads.
    """

    # keys
    def insert_key_if_absent(self, rec: KeyRecord) -> KeyRecord:
        """Insert `rec` unless the identity already has a key; return the stored record."""
        raise NotImplementedError

    def upsert_key(self, rec: KeyRecord) -> None: ...
    def get_key(self, identity: str) -> Optional[KeyRecord]: ...
    def list_keys(self) -> List[KeyRecord]: ...

    # messages
    def insert_message(self, msg: Message) -> Message:
        raise NotImplementedError

    def messages_for_recipient(self, identity: str) -> List[Message]: ...
    def messages_from_sender(self, identity: str) -> List[Message]: ...

    # audit
    def log_event(self, event_type: str, payload: Dict[str, Any]) -> None: ...

    def close(self) -> None:
        return
