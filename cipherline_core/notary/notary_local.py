# cipherline_core/notary/notary_local.py
from __future__ import annotations
from typing import Dict
import json, threading
from cipherline_core.errors import NotaryError
from cipherline_core.logger import get_logger
from cipherline_core.notary.notary_base import ContractGateway
from cipherline_core.utils import now_ts

log = get_logger("cipherline.notary.local")


class InMemoryLedger(ContractGateway):
    """
    In-process stand-in for the metadata contract.

    World state maps key -> {key, value, owner, timestamp}. Update, delete
    and get of a key that is not on the ledger fail, as the contract does.
    """

    name = "local"

    def __init__(self, owner: str = "local-client"):
        self.owner = owner
        self.state: Dict[str, bytes] = {}
        self._connected = False
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self._connected = True
        log.info("[LEDGER] connected")

    def disconnect(self) -> None:
        self._connected = False
        log.info("[LEDGER] disconnected")

    # --------- contract functions ----------
    def _put(self, key: str, value: str) -> None:
        entry = {"key": key, "value": value, "owner": self.owner, "timestamp": now_ts()}
        self.state[key] = json.dumps(entry).encode("utf-8")

    def _require(self, key: str) -> bytes:
        raw = self.state.get(key)
        if raw is None:
            raise NotaryError(f"the metadata {key} does not exist")
        return raw

    def _store(self, key: str, value: str) -> bytes:
        self._put(key, value)
        return b""

    def _get(self, key: str) -> bytes:
        return self._require(key)

    def _update(self, key: str, value: str) -> bytes:
        self._require(key)
        self._put(key, value)
        return b""

    def _delete(self, key: str) -> bytes:
        self._require(key)
        del self.state[key]
        return b""

    def _exists(self, key: str) -> bytes:
        return b"true" if key in self.state else b"false"

    _FUNCTIONS = {
        "storeMetadata": ("_store", 2),
        "getMetadata": ("_get", 1),
        "updateMetadata": ("_update", 2),
        "deleteMetadata": ("_delete", 1),
        "metadataExists": ("_exists", 1),
    }

    def _invoke(self, fn: str, args) -> bytes:
        if not self._connected:
            raise NotaryError("ledger not connected")
        spec = self._FUNCTIONS.get(fn)
        if spec is None:
            raise NotaryError(f"unknown contract function {fn}")
        method, arity = spec
        if len(args) != arity:
            raise NotaryError(f"{fn} expects {arity} argument(s), got {len(args)}")
        with self._lock:
            return getattr(self, method)(*args)

    def submit_transaction(self, fn: str, *args: str) -> bytes:
        return self._invoke(fn, args)

    def evaluate_transaction(self, fn: str, *args: str) -> bytes:
        return self._invoke(fn, args)
