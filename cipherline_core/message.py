"""
cipherline_core.message
-----------------------
Defines Message, the record exchanged between two identities.

- `ciphertext` is opaque to everything except the recipient's private key
- `origin` records durability: "remote" once the shared store accepted the
  row, "local" when it only lives in this device's fallback log
- rows for the remote table use the column names of the hosted schema
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

from .constants import ORIGIN_REMOTE, ORIGIN_LOCAL
from .notary.notary_base import NotarizationRecord
from .utils import new_id, now_ts

ORIGINS = (ORIGIN_REMOTE, ORIGIN_LOCAL)


@dataclass
class Message:
    sender: str
    recipient: str
    ciphertext: str
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=now_ts)
    origin: str = ORIGIN_REMOTE
    notarization: Optional[NotarizationRecord] = None

    def __post_init__(self):
        if self.origin not in ORIGINS:
            raise ValueError(f"origin must be one of {ORIGINS}, got {self.origin!r}")

    @property
    def is_local(self) -> bool:
        return self.origin == ORIGIN_LOCAL

    def to_row(self) -> Dict[str, Any]:
        """Remote table row; origin and notarization are not stored remotely."""
        return {
            "id": self.id,
            "sender_email": self.sender,
            "recipient_email": self.recipient,
            "encrypted_content": self.ciphertext,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Message":
        return cls(
            id=str(row["id"]),
            sender=row["sender_email"],
            recipient=row["recipient_email"],
            ciphertext=row["encrypted_content"],
            created_at=row["created_at"],
            origin=ORIGIN_REMOTE,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["notarization"] = self.notarization.to_dict() if self.notarization else None
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        notarization = data.get("notarization")
        return cls(
            id=data["id"],
            sender=data["sender"],
            recipient=data["recipient"],
            ciphertext=data["ciphertext"],
            created_at=data.get("created_at") or now_ts(),
            origin=data.get("origin", ORIGIN_LOCAL),
            notarization=NotarizationRecord.from_dict(notarization) if notarization else None,
        )
