# cipherline_core/storage/providers/rest_provider.py
from __future__ import annotations
from typing import Optional, Dict, Any, List
import requests
from cipherline_core.constants import DEFAULT_TIMEOUT_S
from cipherline_core.errors import PersistenceError, StoreUnavailableError
from cipherline_core.logger import get_logger
from cipherline_core.message import Message
from cipherline_core.storage.models import KeyRecord
from cipherline_core.storage.provider import StorageProvider

log = get_logger("cipherline.storage.rest")

KEYS_TABLE = "user_keys"
MESSAGES_TABLE = "messages"


class RestStorage(StorageProvider):
    """
    Storage provider for a hosted PostgREST backend (Supabase-style REST).

    - `user_keys` has a unique constraint on `email`
    - every call carries a timeout; connection errors, timeouts and 5xx map
      to StoreUnavailableError so the caller's retry policy can act on them
    - other 4xx answers are permanent and map to PersistenceError
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT_S, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "X-Client-Info": "cipherline"})
        if api_key:
            self.session.headers.update({"apikey": api_key, "Authorization": f"Bearer {api_key}"})

    def set_access_token(self, token: Optional[str]) -> None:
        """Use the signed-in user's token instead of the anon key."""
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------
    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _request(self, method: str, table: str, params=None, json=None, headers=None):
        url = self._url(table)
        log.debug(f"[REST {method}] {url} params={params}")
        try:
            res = self.session.request(method, url, params=params, json=json,
                                       headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise StoreUnavailableError(f"{method} {table} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise StoreUnavailableError(f"{method} {table} failed: {e}") from e

        if res.status_code >= 500 or res.status_code == 429:
            raise StoreUnavailableError(f"{method} {table} -> {res.status_code}: {res.text}")
        if not res.ok:
            raise PersistenceError(f"{method} {table} -> {res.status_code}: {res.text}")
        if not res.content:
            return []
        try:
            return res.json()
        except ValueError as e:
            raise StoreUnavailableError(f"{method} {table} returned invalid JSON") from e

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------
    def insert_key_if_absent(self, rec: KeyRecord) -> KeyRecord:
        self._request(
            "POST", KEYS_TABLE,
            params={"on_conflict": "email"},
            json=[rec.to_row()],
            headers={"Prefer": "resolution=ignore-duplicates,return=minimal"},
        )
        stored = self.get_key(rec.identity)
        if stored is None:
            raise StoreUnavailableError(f"key for {rec.identity} not readable after insert")
        return stored

    def upsert_key(self, rec: KeyRecord) -> None:
        row = rec.to_row()
        existing = self.get_key(rec.identity)
        if existing:
            row["created_at"] = existing.created_at
        self._request(
            "POST", KEYS_TABLE,
            params={"on_conflict": "email"},
            json=[row],
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def get_key(self, identity: str) -> Optional[KeyRecord]:
        rows = self._request("GET", KEYS_TABLE, params={
            "select": "email,public_key,pub_key_fpr,created_at,updated_at",
            "email": f"eq.{identity}",
            "limit": "1",
        })
        return KeyRecord.from_row(rows[0]) if rows else None

    def list_keys(self) -> List[KeyRecord]:
        rows = self._request("GET", KEYS_TABLE, params={"select": "email,public_key,pub_key_fpr,created_at,updated_at"})
        return [KeyRecord.from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    def insert_message(self, msg: Message) -> Message:
        rows = self._request(
            "POST", MESSAGES_TABLE,
            json=[msg.to_row()],
            headers={"Prefer": "return=representation"},
        )
        return Message.from_row(rows[0]) if rows else Message.from_row(msg.to_row())

    def _messages(self, column: str, identity: str) -> List[Message]:
        rows = self._request("GET", MESSAGES_TABLE, params={
            "select": "*",
            column: f"eq.{identity}",
            "order": "created_at.desc",
        })
        return [Message.from_row(r) for r in rows]

    def messages_for_recipient(self, identity: str) -> List[Message]:
        return self._messages("recipient_email", identity)

    def messages_from_sender(self, identity: str) -> List[Message]:
        return self._messages("sender_email", identity)

    # ------------------------------------------------------------------
    # Audit: the hosted schema has no audit table, events go to the log
    # ------------------------------------------------------------------
    def log_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        log.info(f"[AUDIT] {event_type}", extra={"event": event_type, "payload": payload})

    def close(self) -> None:
        self.session.close()
