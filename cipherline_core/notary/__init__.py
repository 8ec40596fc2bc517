# cipherline_core/notary/__init__.py
import os
from cipherline_core.constants import DEFAULT_TIMEOUT_S, NOTARY_CHANNEL, NOTARY_CHAINCODE
from cipherline_core.notary.notary_base import ContractGateway, NotarizationRecord
from cipherline_core.notary.notary_client import NotaryClient
from cipherline_core.notary.notary_http import HTTPGateway
from cipherline_core.notary.notary_local import InMemoryLedger


def notary_factory(config: dict | None = None):
    """
    mode:
      - "local"    → in-process ledger (default)
      - "http"     → contract reached through the HTTP bridge
      - "disabled" → no notarization (returns None)
    """
    config = config or {}
    mode = (config.get("mode") or os.getenv("CIPHERLINE_NOTARY", "local")).lower()

    if mode == "disabled":
        return None

    if mode == "http":
        return NotaryClient(HTTPGateway(
            config.get("url") or os.getenv("CIPHERLINE_NOTARY_URL", "http://localhost:8080/api/fabric"),
            channel=config.get("channel") or os.getenv("CIPHERLINE_NOTARY_CHANNEL", NOTARY_CHANNEL),
            chaincode=config.get("chaincode") or os.getenv("CIPHERLINE_NOTARY_CHAINCODE", NOTARY_CHAINCODE),
            timeout=float(config.get("timeout") or os.getenv("CIPHERLINE_TIMEOUT_S", DEFAULT_TIMEOUT_S)),
        ))

    if mode == "local":
        return NotaryClient(InMemoryLedger())

    raise ValueError(f"Unknown notary mode: {mode}")


__all__ = [
    "ContractGateway",
    "NotarizationRecord",
    "NotaryClient",
    "HTTPGateway",
    "InMemoryLedger",
    "notary_factory",
]
