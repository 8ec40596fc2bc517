# cipherline_core/storage/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict

from cipherline_core.utils import now_ts


@dataclass
class KeyRecord:
    """
    Storage-level association of an identity with its public key.

    At most one record exists per identity. Private keys never appear here;
    they stay in the device-local vault.
    """
    identity: str
    public_key: str
    pub_key_fpr: str = ""
    created_at: str = field(default_factory=now_ts)
    updated_at: str = field(default_factory=now_ts)

    def to_row(self) -> Dict[str, Any]:
        return {
            "email": self.identity,
            "public_key": self.public_key,
            "pub_key_fpr": self.pub_key_fpr,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "KeyRecord":
        return cls(
            identity=row["email"],
            public_key=row["public_key"],
            pub_key_fpr=row.get("pub_key_fpr") or "",
            created_at=row.get("created_at") or now_ts(),
            updated_at=row.get("updated_at") or row.get("created_at") or now_ts(),
        )
