from __future__ import annotations
from typing import Optional, Dict, Any, List
import json, sqlite3, os, threading
from cipherline_core.errors import PersistenceError, StoreUnavailableError
from cipherline_core.message import Message
from cipherline_core.storage.provider import StorageProvider
from cipherline_core.storage.models import KeyRecord
from cipherline_core.utils import canonical_json, now_ts

_KEY_COLUMNS = "email, public_key, pub_key_fpr, created_at, updated_at"
_MSG_COLUMNS = "id, sender_email, recipient_email, encrypted_content, created_at"


class SQLiteStorage(StorageProvider):
    def __init__(self, path="db/cipherline.db"):
        # If no directory, default to current working directory
        if path != ":memory:":
            dir_path = os.path.dirname(path) or "."
            os.makedirs(dir_path, exist_ok=True)
        self.db = sqlite3.connect(path, check_same_thread=False)
        self.db.row_factory = sqlite3.Row
        self._lock = threading.Lock()

        self._init()

    def _init(self) -> None:
        c = self.db.cursor()

        c.execute("""CREATE TABLE IF NOT EXISTS user_keys(
            email TEXT PRIMARY KEY,
            public_key TEXT NOT NULL,
            pub_key_fpr TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )""")
        c.execute("""CREATE TABLE IF NOT EXISTS messages(
            id TEXT PRIMARY KEY,
            sender_email TEXT NOT NULL,
            recipient_email TEXT NOT NULL,
            encrypted_content TEXT NOT NULL,
            created_at TEXT NOT NULL
        )""")
        c.execute("CREATE INDEX IF NOT EXISTS idx_messages_recipient ON messages(recipient_email, created_at)")
        c.execute("CREATE INDEX IF NOT EXISTS idx_messages_sender ON messages(sender_email, created_at)")
        c.execute("""CREATE TABLE IF NOT EXISTS audit(
            ts TEXT,
            event_type TEXT,
            payload TEXT
        )""")

        self.db.commit()

    def _write(self, sql: str, params: tuple) -> None:
        with self._lock:
            try:
                self.db.execute(sql, params)
                self.db.commit()
            except sqlite3.IntegrityError as e:
                self.db.rollback()
                raise PersistenceError(str(e)) from e
            except sqlite3.OperationalError as e:
                # locked / busy database is worth another attempt
                self.db.rollback()
                raise StoreUnavailableError(str(e)) from e

    def _read(self, sql: str, params: tuple) -> List[sqlite3.Row]:
        with self._lock:
            try:
                return self.db.execute(sql, params).fetchall()
            except sqlite3.OperationalError as e:
                raise StoreUnavailableError(str(e)) from e

    # --- keys ---

    def insert_key_if_absent(self, rec: KeyRecord) -> KeyRecord:
        self._write(
            f"INSERT INTO user_keys({_KEY_COLUMNS}) VALUES(?,?,?,?,?) ON CONFLICT(email) DO NOTHING",
            (rec.identity, rec.public_key, rec.pub_key_fpr, rec.created_at, rec.updated_at),
        )
        stored = self.get_key(rec.identity)
        if stored is None:
            raise PersistenceError(f"key for {rec.identity} vanished after insert")
        return stored

    def upsert_key(self, rec: KeyRecord) -> None:
        self._write(
            f"INSERT INTO user_keys({_KEY_COLUMNS}) VALUES(?,?,?,?,?) "
            "ON CONFLICT(email) DO UPDATE SET public_key=excluded.public_key, "
            "pub_key_fpr=excluded.pub_key_fpr, updated_at=excluded.updated_at",
            (rec.identity, rec.public_key, rec.pub_key_fpr, rec.created_at, rec.updated_at),
        )

    def get_key(self, identity: str) -> Optional[KeyRecord]:
        rows = self._read(f"SELECT {_KEY_COLUMNS} FROM user_keys WHERE email=?", (identity,))
        if not rows: return None
        return KeyRecord.from_row(dict(rows[0]))

    def list_keys(self) -> List[KeyRecord]:
        return [KeyRecord.from_row(dict(r)) for r in self._read(f"SELECT {_KEY_COLUMNS} FROM user_keys", ())]

    # --- messages ---

    def insert_message(self, msg: Message) -> Message:
        row = msg.to_row()
        self._write(
            f"INSERT INTO messages({_MSG_COLUMNS}) VALUES(?,?,?,?,?)",
            (row["id"], row["sender_email"], row["recipient_email"], row["encrypted_content"], row["created_at"]),
        )
        return Message.from_row(row)

    def messages_for_recipient(self, identity: str) -> List[Message]:
        rows = self._read(
            f"SELECT {_MSG_COLUMNS} FROM messages WHERE recipient_email=? ORDER BY created_at DESC", (identity,)
        )
        return [Message.from_row(dict(r)) for r in rows]

    def messages_from_sender(self, identity: str) -> List[Message]:
        rows = self._read(
            f"SELECT {_MSG_COLUMNS} FROM messages WHERE sender_email=? ORDER BY created_at DESC", (identity,)
        )
        return [Message.from_row(dict(r)) for r in rows]

    # --- audit ---

    def log_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        self._write("INSERT INTO audit(ts,event_type,payload) VALUES(?,?,?)",
                    (now_ts(), event_type, canonical_json(payload)))

    def audit_events(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        if event_type:
            rows = self._read("SELECT ts, event_type, payload FROM audit WHERE event_type=? ORDER BY ts", (event_type,))
        else:
            rows = self._read("SELECT ts, event_type, payload FROM audit ORDER BY ts", ())
        return [{"ts": r["ts"], "event_type": r["event_type"], "payload": json.loads(r["payload"])} for r in rows]

    def close(self):
        self.db.close()
