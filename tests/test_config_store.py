import os
import json
import stat
import pytest
from pathlib import Path
from command_center.local.sandbox import fileio
from command_center.local.sandbox import ConfigStore


@pytest.fixture
def store(tmp_path):
    return ConfigStore(tmp_path / "openclaw.json")


def test_missing_document_reads_as_none(store):
    assert not store.exists()
    assert store.read() is None


def test_invalid_json_reads_as_none(store):
    store.path.write_text("{not json", encoding="utf-8")
    assert store.read() is None


def test_non_object_document_reads_as_none(store):
    store.path.write_text("[1, 2]", encoding="utf-8")
    assert store.read() is None


def test_write_then_read(store):
    store.write({"gateway": {"port": 18789}})
    assert store.read() == {"gateway": {"port": 18789}}


def test_first_write_creates_no_backup(store):
    store.write({"a": 1})
    assert not store.backup_path.exists()


def test_write_backs_up_previous_bytes(store):
    store.path.write_text('{"old":   true}', encoding="utf-8")
    store.write({"new": True})
    assert store.backup_path.read_text(encoding="utf-8") == '{"old":   true}'
    assert store.read() == {"new": True}


def test_backup_holds_only_the_latest_previous_version(store):
    store.write({"v": 1})
    store.write({"v": 2})
    store.write({"v": 3})
    assert json.loads(store.backup_path.read_text(encoding="utf-8")) == {"v": 2}


def test_merge_creates_intermediate_objects(store):
    store.write({"other": 1})
    doc = store.merge("gateway.auth.mode", "token")
    assert doc == {"other": 1, "gateway": {"auth": {"mode": "token"}}}
    assert store.read() == doc
    assert json.loads(store.backup_path.read_text(encoding="utf-8")) == {"other": 1}


def test_merge_on_missing_document(store):
    store.merge("gateway.port", 19000)
    assert store.get_value("gateway.port") == 19000


def test_merge_through_scalar_is_rejected(store):
    store.write({"gateway": 5})
    with pytest.raises(ValueError):
        store.merge("gateway.port", 1)
    assert store.read() == {"gateway": 5}


@pytest.mark.parametrize("key", ["", "a..b", ".a", "a."])
def test_merge_rejects_empty_segments(store, key):
    with pytest.raises(ValueError):
        store.merge(key, 1)


def test_unserializable_document_leaves_file_untouched(store):
    store.write({"a": 1})
    with pytest.raises(ValueError):
        store.write({"a": object()})
    assert store.read() == {"a": 1}
    assert not store.backup_path.exists()


def test_get_value_default(store):
    store.write({"gateway": {"port": 1}})
    assert store.get_value("gateway.host", "127.0.0.1") == "127.0.0.1"
    assert store.get_value("gateway.port.x", "d") == "d"


def _mode(path):
    return stat.S_IMODE(path.stat().st_mode)


def test_write_keeps_existing_permissions(store):
    store.path.write_text("{}", encoding="utf-8")
    store.path.chmod(0o644)
    store.write({"a": 1})
    assert _mode(store.path) == 0o644
    assert _mode(store.backup_path) == 0o644


def test_new_file_gets_umask_default(tmp_path):
    target = tmp_path / "fresh.txt"
    fileio.atomic_write(target, b"x")
    assert _mode(target) == 0o666 & ~fileio.UMASK


def test_write_proceeds_when_backup_fails(store, monkeypatch):
    store.write({"v": 1})

    def unreadable(self):
        raise OSError("disk error")

    monkeypatch.setattr(Path, "read_bytes", unreadable)
    store.write({"v": 2})
    assert store.read() == {"v": 2}
    assert not store.backup_path.exists()


def test_failed_commit_keeps_previous_document(store, monkeypatch, tmp_path):
    store.write({"v": 1})
    before = store.path.read_bytes()

    def failing_replace(src, dst):
        raise OSError("rename failed")

    monkeypatch.setattr(os, "replace", failing_replace)
    with pytest.raises(OSError):
        store.write({"v": 2})
    monkeypatch.undo()

    assert store.path.read_bytes() == before
    assert list(tmp_path.glob(".*.tmp")) == []
