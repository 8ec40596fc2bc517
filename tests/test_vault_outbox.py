import json
import os

import pytest

from cipherline_core import vault as vault_mod
from cipherline_core.errors import MalformedKeyError
from cipherline_core.message import Message
from cipherline_core.notary.notary_base import NotarizationRecord
from cipherline_core.outbox import FileMessageLog, MemoryMessageLog, load_outbox
from cipherline_core.vault import FileKeyVault, MemoryKeyVault, load_vault


def _msg(sender="alice@x.com", recipient="bob@x.com", created_at="2024-01-01T10:00:00.000000Z"):
    return Message(sender=sender, recipient=recipient, ciphertext="Y3Q=", created_at=created_at)


# --------- vault ----------

@pytest.mark.parametrize("make", [lambda p: MemoryKeyVault(), lambda p: FileKeyVault(str(p / "keys" / "vault.pem"))])
def test_vault_single_slot(make, tmp_path, alice_keys, bob_keys):
    v = make(tmp_path)
    assert v.get() is None
    v.set(alice_keys.private_key)
    v.set(bob_keys.private_key)
    assert v.get() == bob_keys.private_key
    v.clear()
    assert v.get() is None
    v.clear()  # clearing an empty vault is fine


def test_vault_refuses_public_keys(alice_keys):
    v = MemoryKeyVault()
    with pytest.raises(MalformedKeyError):
        v.set(alice_keys.public_key)
    with pytest.raises(MalformedKeyError):
        v.set("")
    assert v.get() is None


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_file_vault_is_owner_only(tmp_path, alice_keys):
    path = tmp_path / "vault.pem"
    FileKeyVault(str(path)).set(alice_keys.private_key)
    assert os.stat(path).st_mode & 0o777 == 0o600


def test_file_vault_scrubs_before_removing(tmp_path, alice_keys, monkeypatch):
    path = tmp_path / "vault.pem"
    v = FileKeyVault(str(path))
    v.set(alice_keys.private_key)

    seen = {}
    real_remove = os.remove

    def inspect_then_remove(p):
        with open(p, "rb") as f:
            seen["content"] = f.read()
        real_remove(p)

    monkeypatch.setattr(vault_mod.os, "remove", inspect_then_remove)
    v.clear()

    assert seen["content"] and set(seen["content"]) == {0}
    assert not path.exists()


def test_load_vault(tmp_path):
    assert isinstance(load_vault(), MemoryKeyVault)
    assert isinstance(load_vault(str(tmp_path / "v.pem")), FileKeyVault)


# --------- outbox ----------

@pytest.mark.parametrize("make", [lambda p: MemoryMessageLog(), lambda p: FileMessageLog(str(p / "outbox.json"))])
def test_outbox_newest_first_and_local(make, tmp_path):
    log = make(tmp_path)
    first = _msg(created_at="2024-01-01T10:00:00.000000Z")
    second = _msg(sender="bob@x.com", recipient="alice@x.com", created_at="2024-01-01T11:00:00.000000Z")
    second.notarization = NotarizationRecord(second.id, "bob@x.com", "alice@x.com", second.created_at)

    log.append(first)
    log.append(second)

    entries = log.all()
    assert [m.id for m in entries] == [second.id, first.id]
    assert all(m.origin == "local" and m.notarization is None for m in entries)
    assert [m.id for m in log.for_recipient("bob@x.com")] == [first.id]
    assert [m.id for m in log.from_sender("bob@x.com")] == [second.id]

    log.clear()
    assert log.all() == []


def test_file_outbox_survives_restart(tmp_path):
    path = str(tmp_path / "outbox.json")
    m = _msg()
    FileMessageLog(path).append(m)

    again = FileMessageLog(path).all()
    assert len(again) == 1
    assert again[0].id == m.id
    assert again[0].ciphertext == m.ciphertext


def test_corrupt_outbox_reads_as_empty(tmp_path, caplog):
    path = tmp_path / "outbox.json"
    path.write_text("{not json", encoding="utf-8")
    log = FileMessageLog(str(path))
    assert log.all() == []
    assert "unreadable log" in caplog.text

    path.write_text(json.dumps({"id": "x"}), encoding="utf-8")
    assert log.all() == []

    # a bad entry is skipped, the rest survive
    good = _msg().to_dict()
    path.write_text(json.dumps([{"id": "broken"}, good]), encoding="utf-8")
    assert [m.id for m in log.all()] == [good["id"]]


def test_load_outbox(tmp_path):
    assert isinstance(load_outbox(), MemoryMessageLog)
    assert isinstance(load_outbox(str(tmp_path / "o.json")), FileMessageLog)
