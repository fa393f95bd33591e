import pytest
from command_center.local.sandbox import EnvStore
from command_center.local.sandbox.env_store import mask_value, parse_env


def test_parse_env_skips_comments_and_strips_quotes():
    text = '# comment\n\nA=1\nB = "two words"\nC=\'x\'\nexport D=4\nE=${A}\n'
    assert parse_env(text) == {"A": "1", "B": "two words", "C": "x", "D": "4", "E": "${A}"}


def test_mask_value():
    assert mask_value("short") == "••••••••"
    assert mask_value("sk-abcdefghijkl1234") == "sk-abc••••1234"


def test_masked_only_hides_secret_looking_keys(tmp_path):
    path = tmp_path / ".env"
    path.write_text("OPENAI_API_KEY=sk-abcdefghijkl1234\nLOG_LEVEL=debug\n", encoding="utf-8")
    store = EnvStore(path)
    assert store.masked() == {"OPENAI_API_KEY": "sk-abc••••1234", "LOG_LEVEL": "debug"}
    assert store.read()["OPENAI_API_KEY"] == "sk-abcdefghijkl1234"


def test_set_and_delete(tmp_path):
    store = EnvStore(tmp_path / ".env")
    assert store.read() == {}
    store.set("A", "1")
    store.set("B", "2")
    store.set("A", "3")
    assert store.read() == {"A": "3", "B": "2"}
    assert store.delete("A") is True
    assert store.delete("A") is False
    assert store.read() == {"B": "2"}


@pytest.mark.parametrize("key", ["", "1ABC", "A B", "A=B", None])
def test_set_rejects_invalid_names(tmp_path, key):
    with pytest.raises(ValueError):
        EnvStore(tmp_path / ".env").set(key, "v")


def test_set_rejects_multiline_values(tmp_path):
    with pytest.raises(ValueError):
        EnvStore(tmp_path / ".env").set("A", "x\nB=y")


@pytest.mark.parametrize("value", [
    "'abc'",
    "  padded  ",
    'say "hi"',
    "back\\slash\\n",
    "a # not a comment",
    "${HOME}",
    "",
])
def test_set_then_read_returns_value_unchanged(tmp_path, value):
    store = EnvStore(tmp_path / ".env")
    store.set("VALUE", value)
    store.set("OTHER", "x")
    assert store.read() == {"VALUE": value, "OTHER": "x"}


def test_export_prefix_is_not_part_of_the_key(tmp_path):
    path = tmp_path / ".env"
    path.write_text("export API_TOKEN=abc\n", encoding="utf-8")
    store = EnvStore(path)
    assert store.read() == {"API_TOKEN": "abc"}
    store.set("LEVEL", "info")
    assert store.read() == {"API_TOKEN": "abc", "LEVEL": "info"}
