# cipherline_core/notary/notary_client.py
from __future__ import annotations
from typing import Optional
import json
from cipherline_core.constants import NOTARY_STATUS_SENT
from cipherline_core.errors import NotaryError
from cipherline_core.logger import get_logger
from cipherline_core.notary.notary_base import ContractGateway, NotarizationRecord
from cipherline_core.utils import canonical_json, now_ts

log = get_logger("cipherline.notary")


class NotaryClient:
    """
    Best-effort notarization of message metadata.

    Owns one ContractGateway and its lifecycle. No method raises: every
    failure is logged and reported as False / None, so callers can fire and
    forget.
    """

    def __init__(self, gateway: ContractGateway):
        self.gateway = gateway

    def __enter__(self) -> "NotaryClient":
        self.connect()
        return self

    def __exit__(self, *exc) -> None:
        self.disconnect()

    @property
    def connected(self) -> bool:
        return self.gateway.connected

    def connect(self) -> bool:
        try:
            self.gateway.connect()
            return True
        except Exception as e:
            log.warning(f"[NOTARY] connect failed via {self.gateway.name}: {e}")
            return False

    def disconnect(self) -> None:
        try:
            self.gateway.disconnect()
        except Exception as e:
            log.warning(f"[NOTARY] disconnect failed: {e}")

    # ------------------------------------------------------------------
    def store(self, message_id: str, sender: str, recipient: str, timestamp: Optional[str] = None) -> bool:
        rec = NotarizationRecord(
            message_id=message_id,
            sender=sender,
            recipient=recipient,
            timestamp=timestamp or now_ts(),
            status=NOTARY_STATUS_SENT,
        )
        try:
            self.gateway.submit_transaction("storeMetadata", message_id, canonical_json(rec.to_dict()))
            log.info(f"[NOTARY] stored metadata for {message_id}")
            return True
        except Exception as e:
            log.warning(f"[NOTARY] store failed for {message_id}: {e}")
            return False

    def _read(self, message_id: str) -> NotarizationRecord:
        raw = self.gateway.evaluate_transaction("getMetadata", message_id)
        doc = json.loads(raw.decode("utf-8"))
        # ledger entries wrap the metadata JSON in {key, value, owner, timestamp}
        if isinstance(doc, dict) and isinstance(doc.get("value"), str):
            doc = json.loads(doc["value"])
        if not isinstance(doc, dict) or "messageId" not in doc:
            raise NotaryError(f"unexpected metadata shape for {message_id}")
        return NotarizationRecord.from_dict(doc)

    def get(self, message_id: str) -> Optional[NotarizationRecord]:
        try:
            return self._read(message_id)
        except Exception as e:
            log.debug(f"[NOTARY] no metadata for {message_id}: {e}")
            return None

    def update_status(self, message_id: str, status: str) -> bool:
        try:
            rec = self._read(message_id)
            rec.status = status
            rec.last_updated = now_ts()
            self.gateway.submit_transaction("updateMetadata", message_id, canonical_json(rec.to_dict()))
            log.info(f"[NOTARY] {message_id} status -> {status}")
            return True
        except Exception as e:
            log.warning(f"[NOTARY] status update failed for {message_id}: {e}")
            return False

    def delete(self, message_id: str) -> bool:
        try:
            self.gateway.submit_transaction("deleteMetadata", message_id)
            log.info(f"[NOTARY] deleted metadata for {message_id}")
            return True
        except Exception as e:
            log.warning(f"[NOTARY] delete failed for {message_id}: {e}")
            return False
