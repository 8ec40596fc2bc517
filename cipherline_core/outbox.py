"""
cipherline_core.outbox
----------------------
Device-local fallback log for messages the shared store did not accept.

Entries are kept newest first and always carry origin="local". A single
process owns the log; concurrent writers on one device are not coordinated.
"""

from __future__ import annotations
from typing import List, Optional
import json, os

from .constants import ORIGIN_LOCAL
from .logger import get_logger
from .message import Message

log = get_logger("cipherline.outbox")


class MessageLog:
    def append(self, message: Message) -> None:
        raise NotImplementedError

    def all(self) -> List[Message]:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def for_recipient(self, identity: str) -> List[Message]:
        return [m for m in self.all() if m.recipient == identity]

    def from_sender(self, identity: str) -> List[Message]:
        return [m for m in self.all() if m.sender == identity]

    @staticmethod
    def _as_local(message: Message) -> Message:
        return Message.from_dict({**message.to_dict(), "origin": ORIGIN_LOCAL, "notarization": None})


class MemoryMessageLog(MessageLog):
    def __init__(self):
        self._messages: List[Message] = []

    def append(self, message: Message) -> None:
        self._messages.insert(0, self._as_local(message))

    def all(self) -> List[Message]:
        return [Message.from_dict(m.to_dict()) for m in self._messages]

    def clear(self) -> None:
        self._messages = []


class FileMessageLog(MessageLog):
    """JSON array on disk; unreadable content is logged and read as empty."""

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> List[dict]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            log.error(f"[OUTBOX] unreadable log {self.path}: {e}")
            return []
        if not isinstance(data, list):
            log.error(f"[OUTBOX] unexpected log format in {self.path}")
            return []
        return data

    def _save(self, entries: List[dict]) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(entries, f)
        os.replace(tmp, self.path)

    def append(self, message: Message) -> None:
        entries = self._load()
        entries.insert(0, self._as_local(message).to_dict())
        self._save(entries)

    def all(self) -> List[Message]:
        out = []
        for entry in self._load():
            try:
                out.append(Message.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                log.warning(f"[OUTBOX] skipping bad entry: {e}")
        return out

    def clear(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass


def load_outbox(path: Optional[str] = None) -> MessageLog:
    return FileMessageLog(path) if path else MemoryMessageLog()
