# tests/conftest.py
import json
import threading

import pytest

from cipherline_core.crypto import generate_keypair
from cipherline_core.errors import NotaryError, StoreUnavailableError
from cipherline_core.notary.notary_base import ContractGateway
from cipherline_core.retry import RetryPolicy
from cipherline_core.storage import InMemoryStorage


@pytest.fixture(scope="session")
def alice_keys():
    return generate_keypair()


@pytest.fixture(scope="session")
def bob_keys():
    return generate_keypair()


@pytest.fixture(scope="session")
def legacy_keys():
    return generate_keypair(1024)


@pytest.fixture
def retry():
    return RetryPolicy.immediate()


# -----------------------------------------------------------------------------
# Storage doubles
# -----------------------------------------------------------------------------

class CountingStorage(InMemoryStorage):
    """In-memory store that counts calls and can be switched off."""

    def __init__(self):
        super().__init__()
        self.calls = {}
        self.down = False
        self.messages_down = False

    def _hit(self, name, messages=False):
        self.calls[name] = self.calls.get(name, 0) + 1
        if self.down or (messages and self.messages_down):
            raise StoreUnavailableError(f"{name}: backend unreachable")

    def insert_key_if_absent(self, rec):
        self._hit("insert_key_if_absent")
        return super().insert_key_if_absent(rec)

    def upsert_key(self, rec):
        self._hit("upsert_key")
        return super().upsert_key(rec)

    def get_key(self, identity):
        self._hit("get_key")
        return super().get_key(identity)

    def insert_message(self, msg):
        self._hit("insert_message", messages=True)
        return super().insert_message(msg)

    def messages_for_recipient(self, identity):
        self._hit("messages_for_recipient", messages=True)
        return super().messages_for_recipient(identity)

    def messages_from_sender(self, identity):
        self._hit("messages_from_sender", messages=True)
        return super().messages_from_sender(identity)


@pytest.fixture
def storage():
    return CountingStorage()


class BarrierStorage(InMemoryStorage):
    """Holds every caller that sees a missing key until all parties have looked."""

    def __init__(self, parties):
        super().__init__()
        self.barrier = threading.Barrier(parties, timeout=30)
        self.armed = True

    def get_key(self, identity):
        rec = super().get_key(identity)
        if rec is None and self.armed:
            self.barrier.wait()
        return rec


@pytest.fixture
def barrier_storage():
    return BarrierStorage


class BrokenGateway(ContractGateway):
    name = "broken"

    @property
    def connected(self):
        return False

    def connect(self):
        raise NotaryError("network down")

    def disconnect(self):
        raise NotaryError("network down")

    def submit_transaction(self, fn, *args):
        raise NotaryError("network down")

    def evaluate_transaction(self, fn, *args):
        raise NotaryError("network down")


@pytest.fixture
def broken_gateway():
    return BrokenGateway()


# -----------------------------------------------------------------------------
# requests doubles
# -----------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode("utf-8")
        self.text = text if text is not None else self.content.decode("utf-8")
        self.reason = "OK" if status_code < 400 else "ERROR"

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """Stands in for requests.Session; `handler(method, url, params, json, headers)` answers."""

    def __init__(self, handler):
        self.handler = handler
        self.headers = {}
        self.calls = []
        self.closed = False

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params, "json": json,
                           "headers": headers, "timeout": timeout})
        return self.handler(method, url, params, json, headers)

    def post(self, url, json=None, headers=None, timeout=None):
        return self.request("POST", url, json=json, headers=headers, timeout=timeout)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession
