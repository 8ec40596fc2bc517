# cipherline_core/notary/notary_http.py
from __future__ import annotations
from typing import Optional
import requests
from cipherline_core.constants import DEFAULT_TIMEOUT_S, NOTARY_CHANNEL, NOTARY_CHAINCODE
from cipherline_core.errors import NotaryError
from cipherline_core.logger import get_logger
from cipherline_core.notary.notary_base import ContractGateway

log = get_logger("cipherline.notary.http")


class HTTPGateway(ContractGateway):
    """
    Contract gateway reached through an HTTP bridge.

    POST <base>/submit and POST <base>/evaluate with
    {"channel", "chaincode", "fcn", "args"}; the bridge answers
    {"success": bool, "result": str, "error": str}.
    """

    name = "http"

    def __init__(self, base_url: str, channel: str = NOTARY_CHANNEL, chaincode: str = NOTARY_CHAINCODE,
                 timeout: float = DEFAULT_TIMEOUT_S, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.channel = channel
        self.chaincode = chaincode
        self.timeout = timeout
        self._session_factory = (lambda: session) if session is not None else requests.Session
        self.session: Optional[requests.Session] = None
        self._grant: Optional[str] = None

    def set_grant(self, grant: str):
        """Bearer token sent with every call."""
        self._grant = grant

    @property
    def connected(self) -> bool:
        return self.session is not None

    def connect(self) -> None:
        if self.session is None:
            self.session = self._session_factory()
            log.info(f"[HTTP GW] connected {self.base_url} channel={self.channel} chaincode={self.chaincode}")

    def disconnect(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None
            log.info("[HTTP GW] disconnected")

    def _call(self, action: str, fn: str, args) -> bytes:
        if self.session is None:
            raise NotaryError("gateway not connected")
        url = f"{self.base_url}/{action}"
        headers = {"Content-Type": "application/json"}
        if self._grant:
            headers["Authorization"] = f"Bearer {self._grant}"
        body = {"channel": self.channel, "chaincode": self.chaincode, "fcn": fn, "args": list(args)}

        log.debug(f"[HTTP GW] {action} {fn} -> {url}")
        try:
            res = self.session.post(url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise NotaryError(f"{action} {fn} failed: {e}") from e
        if not res.ok:
            raise NotaryError(f"{action} {fn} -> {res.status_code}: {res.text}")
        try:
            data = res.json()
        except ValueError as e:
            raise NotaryError(f"{action} {fn} returned invalid JSON") from e
        if not data.get("success"):
            raise NotaryError(data.get("error") or f"{action} {fn} rejected")
        result = data.get("result") or ""
        return result.encode("utf-8")

    def submit_transaction(self, fn: str, *args: str) -> bytes:
        return self._call("submit", fn, args)

    def evaluate_transaction(self, fn: str, *args: str) -> bytes:
        return self._call("evaluate", fn, args)
