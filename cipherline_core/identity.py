"""
cipherline_core.identity
------------------------
Boundary to the identity provider (sign-up, sign-in, sign-out, session
lookup) and the session-change subscription it exposes.

LocalIdentityProvider is an in-process implementation used for development
and tests; a hosted provider plugs in by implementing IdentityProvider.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import hashlib, hmac, os, secrets, threading

from .constants import (
    EVENT_INITIAL_SESSION, EVENT_SIGNED_IN, EVENT_TOKEN_REFRESHED, EVENT_USER_UPDATED, EVENT_SIGNED_OUT,
)
from .errors import AuthError
from .logger import get_logger

log = get_logger("cipherline.identity")

EVENT_KINDS = (EVENT_INITIAL_SESSION, EVENT_SIGNED_IN, EVENT_TOKEN_REFRESHED, EVENT_USER_UPDATED, EVENT_SIGNED_OUT)

_PBKDF2_ITERATIONS = 200_000


@dataclass(frozen=True)
class Session:
    identity: str
    email_verified: bool = False
    access_token: str = field(default_factory=lambda: secrets.token_urlsafe(24), repr=False)


@dataclass(frozen=True)
class SessionEvent:
    kind: str
    session: Optional[Session] = None

    def __post_init__(self):
        if self.kind not in EVENT_KINDS:
            raise ValueError(f"unknown session event {self.kind!r}")

    @property
    def identity(self) -> Optional[str]:
        return self.session.identity if self.session else None


SessionCallback = Callable[[SessionEvent], None]


class Subscription:
    """Handle returned by on_session_change(); unsubscribe() is idempotent."""

    def __init__(self, unsubscribe: Callable[[], None]):
        self._unsubscribe = unsubscribe
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._unsubscribe()


class IdentityProvider:
    def sign_up(self, email: str, password: str) -> str:
        raise NotImplementedError

    def sign_in(self, email: str, password: str) -> Session:
        raise NotImplementedError

    def sign_out(self) -> None:
        raise NotImplementedError

    def current_session(self) -> Optional[Session]:
        raise NotImplementedError

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        raise NotImplementedError


class SubscriberRegistry:
    """Fan-out of session events to subscribers; a failing subscriber is logged and skipped."""

    def __init__(self):
        self._callbacks: List[SessionCallback] = []
        self._lock = threading.Lock()

    def add(self, callback: SessionCallback) -> Subscription:
        with self._lock:
            self._callbacks.append(callback)

        def _remove():
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return Subscription(_remove)

    def emit(self, event: SessionEvent) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for cb in callbacks:
            try:
                cb(event)
            except Exception:
                log.exception(f"[IDENTITY] subscriber failed on {event.kind}")


@dataclass
class _Account:
    email: str
    salt: bytes
    password_hash: bytes
    email_verified: bool = False


class LocalIdentityProvider(IdentityProvider):
    """
    In-process identity provider with PBKDF2-SHA256 password hashes.

    With auto_confirm the address counts as verified at sign-up and a
    session is established immediately. Otherwise sign-up leaves the caller
    signed out and sessions stay unverified until confirm_email().
    """

    def __init__(self, auto_confirm: bool = True, min_password_length: int = 6,
                 iterations: int = _PBKDF2_ITERATIONS):
        self.auto_confirm = auto_confirm
        self.min_password_length = min_password_length
        self.iterations = iterations
        self._accounts: Dict[str, _Account] = {}
        self._session: Optional[Session] = None
        self._subscribers = SubscriberRegistry()

    def _hash(self, password: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, self.iterations)

    def _start_session(self, account: _Account) -> Session:
        self._session = Session(identity=account.email, email_verified=account.email_verified)
        self._subscribers.emit(SessionEvent(EVENT_SIGNED_IN, self._session))
        return self._session

    def sign_up(self, email: str, password: str) -> str:
        if not email or not email.strip():
            raise AuthError("email is required")
        if not password or len(password) < self.min_password_length:
            raise AuthError(f"password must be at least {self.min_password_length} characters")
        if email in self._accounts:
            raise AuthError("User already registered")

        salt = os.urandom(16)
        account = _Account(email=email, salt=salt, password_hash=self._hash(password, salt),
                           email_verified=self.auto_confirm)
        self._accounts[email] = account
        log.info(f"[IDENTITY] signed up {email}")
        if self.auto_confirm:
            self._start_session(account)
        return email

    def sign_in(self, email: str, password: str) -> Session:
        account = self._accounts.get(email)
        if account is None or not hmac.compare_digest(account.password_hash, self._hash(password or "", account.salt)):
            raise AuthError("Invalid login credentials")
        return self._start_session(account)

    def sign_out(self) -> None:
        previous = self._session
        self._session = None
        if previous is not None:
            self._subscribers.emit(SessionEvent(EVENT_SIGNED_OUT, None))

    def current_session(self) -> Optional[Session]:
        return self._session

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        return self._subscribers.add(callback)

    # --------- provider-side transitions ----------
    def confirm_email(self, email: str) -> None:
        account = self._accounts.get(email)
        if account is None:
            raise AuthError(f"unknown user {email}")
        account.email_verified = True
        if self._session and self._session.identity == email:
            self._session = Session(identity=email, email_verified=True)
            self._subscribers.emit(SessionEvent(EVENT_USER_UPDATED, self._session))

    def refresh_session(self) -> Optional[Session]:
        """Issue a new token for the current session without a re-login."""
        if self._session is None:
            return None
        self._session = Session(identity=self._session.identity, email_verified=self._session.email_verified)
        self._subscribers.emit(SessionEvent(EVENT_TOKEN_REFRESHED, self._session))
        return self._session
