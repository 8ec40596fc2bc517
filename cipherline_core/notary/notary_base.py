from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cipherline_core.constants import NOTARY_STATUS_SENT
from cipherline_core.utils import now_ts


@dataclass
class NotarizationRecord:
    """Advisory metadata about a message; never authoritative for delivery."""
    message_id: str
    sender: str
    recipient: str
    timestamp: str
    status: str = NOTARY_STATUS_SENT
    last_updated: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "messageId": self.message_id,
            "sender": self.sender,
            "recipient": self.recipient,
            "timestamp": self.timestamp,
            "status": self.status,
        }
        if self.last_updated:
            d["lastUpdated"] = self.last_updated
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotarizationRecord":
        return cls(
            message_id=data["messageId"],
            sender=data.get("sender", ""),
            recipient=data.get("recipient", ""),
            timestamp=data.get("timestamp") or now_ts(),
            status=data.get("status", NOTARY_STATUS_SENT),
            last_updated=data.get("lastUpdated"),
        )


class ContractGateway:
    """
    Connection to the metadata contract.

    Exactly two operations reach the contract: `submit_transaction` for
    writes and `evaluate_transaction` for reads. Both take the contract
    function name and string arguments and return the raw result bytes.
    Failures raise NotaryError.
    """
    name: str = "base"

    @property
    def connected(self) -> bool:
        raise NotImplementedError

    def connect(self) -> None:
        raise NotImplementedError

    def disconnect(self) -> None:
        raise NotImplementedError

    def submit_transaction(self, fn: str, *args: str) -> bytes:
        raise NotImplementedError

    def evaluate_transaction(self, fn: str, *args: str) -> bytes:
        raise NotImplementedError
