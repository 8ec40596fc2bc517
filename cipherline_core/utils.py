"""
cipherline_core.utils
---------------------
Lightweight helpers for message ids, timestamps, base64, identities and
canonical JSON for notarization payloads.
"""

from __future__ import annotations
import base64, binascii, json, re, uuid, hashlib
from datetime import datetime, timezone
from typing import Any, Dict


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def b64d(s: str) -> bytes:
    """Strict decode; raises ValueError on anything that is not base64."""
    try:
        return base64.b64decode(s.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"invalid base64: {e}") from e


def now_ts() -> str:
    # ISO 8601 UTC with microseconds so string order == time order
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


_TS_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:?\d{2})?$"
)


def parse_ts(value: str) -> datetime:
    """
    Parse the ISO 8601 stamps written by now_ts() and by the hosted store
    (`+00:00` offsets, 0-6 fractional digits). Naive stamps are taken as UTC.
    """
    m = _TS_RE.match(value.strip()) if isinstance(value, str) else None
    if not m:
        raise ValueError(f"unrecognised timestamp {value!r}")
    frac = (m.group("frac") or "0")[:6].ljust(6, "0")
    tz = m.group("tz") or "+00:00"
    if tz == "Z":
        tz = "+00:00"
    elif ":" not in tz:
        tz = f"{tz[:3]}:{tz[3:]}"
    return datetime.fromisoformat(f"{m.group('base').replace(' ', 'T')}.{frac}{tz}")


def new_id() -> str:
    return str(uuid.uuid4())


def require_identity(identity: str) -> str:
    if not isinstance(identity, str) or not identity.strip():
        raise ValueError("identity must be a non-empty string")
    return identity


def canonical_json(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
