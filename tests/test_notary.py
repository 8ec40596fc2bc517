import json

import pytest
import requests

from cipherline_core.errors import NotaryError
from cipherline_core.notary import (
    HTTPGateway, InMemoryLedger, NotarizationRecord, NotaryClient, notary_factory,
)

# CMD Line Usage: pytest -v -s --log-cli-level=DEBUG tests/test_notary.py


@pytest.fixture
def ledger():
    gw = InMemoryLedger()
    gw.connect()
    return gw


def test_ledger_contract_semantics(ledger):
    ledger.submit_transaction("storeMetadata", "m1", '{"messageId":"m1"}')
    assert ledger.evaluate_transaction("metadataExists", "m1") == b"true"

    entry = json.loads(ledger.evaluate_transaction("getMetadata", "m1"))
    assert entry["key"] == "m1"
    assert entry["owner"] == "local-client"
    assert json.loads(entry["value"]) == {"messageId": "m1"}

    ledger.submit_transaction("deleteMetadata", "m1")
    assert ledger.evaluate_transaction("metadataExists", "m1") == b"false"

    for fn, args in [("getMetadata", ("m1",)), ("updateMetadata", ("m1", "{}")), ("deleteMetadata", ("m1",))]:
        with pytest.raises(NotaryError, match="does not exist"):
            ledger.submit_transaction(fn, *args)


def test_ledger_rejects_bad_calls(ledger):
    with pytest.raises(NotaryError):
        ledger.submit_transaction("storeMetadata", "only-one-arg")
    with pytest.raises(NotaryError):
        ledger.submit_transaction("dropTable", "x")
    ledger.disconnect()
    with pytest.raises(NotaryError, match="not connected"):
        ledger.evaluate_transaction("metadataExists", "m1")


def test_client_lifecycle(ledger):
    client = NotaryClient(ledger)
    assert client.store("m1", "alice@x.com", "bob@x.com", "2024-01-01T10:00:00.000000Z")

    rec = client.get("m1")
    assert rec == NotarizationRecord("m1", "alice@x.com", "bob@x.com", "2024-01-01T10:00:00.000000Z", "sent")

    assert client.update_status("m1", "read")
    rec = client.get("m1")
    assert rec.status == "read"
    assert rec.last_updated

    assert client.delete("m1")
    assert client.get("m1") is None
    assert client.update_status("m1", "read") is False
    assert client.delete("m1") is False


def test_client_context_manager():
    with NotaryClient(InMemoryLedger()) as client:
        assert client.connected
    assert not client.connected


def test_client_never_raises(broken_gateway, caplog):
    client = NotaryClient(broken_gateway)
    assert client.connect() is False
    assert client.store("m1", "alice@x.com", "bob@x.com") is False
    assert client.get("m1") is None
    assert client.update_status("m1", "read") is False
    assert client.delete("m1") is False
    client.disconnect()
    assert "store failed for m1" in caplog.text


def test_record_wire_format():
    rec = NotarizationRecord("m1", "a@x.com", "b@x.com", "2024-01-01T10:00:00.000000Z", last_updated="later")
    d = rec.to_dict()
    assert d["messageId"] == "m1"
    assert d["lastUpdated"] == "later"
    assert NotarizationRecord.from_dict(d) == rec


# --------- HTTP bridge ----------

def _bridge(fake_response, ledger):
    """Bridge that forwards to an in-memory ledger, as the real service forwards to the peer."""
    def handler(method, url, params, body, headers):
        try:
            result = ledger.submit_transaction(body["fcn"], *body["args"])
        except NotaryError as e:
            return fake_response(200, {"success": False, "error": str(e)})
        return fake_response(200, {"success": True, "result": result.decode("utf-8")})
    return handler


def test_http_gateway_roundtrip(fake_session, fake_response, ledger):
    session = fake_session(_bridge(fake_response, ledger))
    gw = HTTPGateway("http://bridge:8080/api/fabric/", timeout=3, session=session)
    gw.set_grant("token-123")

    with NotaryClient(gw) as client:
        assert client.store("m1", "alice@x.com", "bob@x.com")
        assert client.get("m1").sender == "alice@x.com"
        assert client.get("missing") is None

    call = session.calls[0]
    assert call["url"] == "http://bridge:8080/api/fabric/submit"
    assert call["json"]["fcn"] == "storeMetadata"
    assert call["json"]["channel"] == "cipherlinechannel"
    assert call["json"]["chaincode"] == "cipherlinecc"
    assert call["headers"]["Authorization"] == "Bearer token-123"
    assert call["timeout"] == 3
    assert session.calls[1]["url"].endswith("/evaluate")
    assert session.closed


def test_http_gateway_errors(fake_session, fake_response):
    gw = HTTPGateway("http://bridge", session=fake_session(lambda *a: fake_response(500, {"error": "boom"})))
    with pytest.raises(NotaryError, match="not connected"):
        gw.submit_transaction("storeMetadata", "m1", "{}")

    gw.connect()
    with pytest.raises(NotaryError):
        gw.submit_transaction("storeMetadata", "m1", "{}")

    def refused(*args):
        raise requests.ConnectionError("refused")

    gw = HTTPGateway("http://bridge", session=fake_session(refused))
    gw.connect()
    with pytest.raises(NotaryError):
        gw.evaluate_transaction("getMetadata", "m1")


def test_notary_factory_modes(monkeypatch):
    """notary_factory returns the right gateway per CIPHERLINE_NOTARY."""
    monkeypatch.delenv("CIPHERLINE_NOTARY", raising=False)
    client = notary_factory()
    assert isinstance(client.gateway, InMemoryLedger)

    monkeypatch.setenv("CIPHERLINE_NOTARY", "http")
    client = notary_factory()
    assert isinstance(client.gateway, HTTPGateway)

    monkeypatch.setenv("CIPHERLINE_NOTARY", "disabled")
    assert notary_factory() is None

    assert isinstance(notary_factory({"mode": "local"}).gateway, InMemoryLedger)
    with pytest.raises(ValueError):
        notary_factory({"mode": "blockchain"})
