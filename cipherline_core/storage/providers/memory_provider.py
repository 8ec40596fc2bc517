from typing import Optional, Dict, Any, List
import copy, threading
from cipherline_core.message import Message
from cipherline_core.storage.models import KeyRecord
from cipherline_core.storage.provider import StorageProvider


class InMemoryStorage(StorageProvider):
    def __init__(self):
        self.keys: Dict[str, KeyRecord] = {}
        self.messages: Dict[str, Message] = {}
        self.audit = []
        self._lock = threading.Lock()

    # keys
    def insert_key_if_absent(self, rec: KeyRecord) -> KeyRecord:
        with self._lock:
            current = self.keys.setdefault(rec.identity, copy.copy(rec))
            return copy.copy(current)

    def upsert_key(self, rec: KeyRecord):
        with self._lock:
            existing = self.keys.get(rec.identity)
            stored = copy.copy(rec)
            if existing:
                stored.created_at = existing.created_at
            self.keys[rec.identity] = stored

    def get_key(self, identity: str) -> Optional[KeyRecord]:
        rec = self.keys.get(identity)
        return copy.copy(rec) if rec else None

    def list_keys(self) -> List[KeyRecord]:
        return [copy.copy(rec) for rec in self.keys.values()]

    # messages
    def insert_message(self, msg: Message) -> Message:
        with self._lock:
            stored = Message.from_row(msg.to_row())
            self.messages[stored.id] = stored
            return Message.from_row(stored.to_row())

    def _select(self, column: str, identity: str) -> List[Message]:
        rows = [m.to_row() for m in self.messages.values() if m.to_row()[column] == identity]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return [Message.from_row(r) for r in rows]

    def messages_for_recipient(self, identity: str) -> List[Message]:
        return self._select("recipient_email", identity)

    def messages_from_sender(self, identity: str) -> List[Message]:
        return self._select("sender_email", identity)

    # audit
    def log_event(self, event_type: str, payload: Dict[str, Any]):
        self.audit.append((event_type, payload))
