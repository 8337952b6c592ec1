import stat
import tempfile
from pathlib import Path

import pytest

from snipq.errors import (
    DuplicateError,
    InvalidGroupError,
    InvalidPathError,
    InvalidSnippetError,
    MissingGroupError,
    NotFoundError,
    NotLoadedError,
    ValidationError,
)
from snipq.models import Counter, Group, Snippet
from snipq.vault import Vault


def _open_vault(root: Path) -> Vault:
    vault = Vault()
    vault.load(root)
    vault.create_group(Group(id="personal", name="Personal"))
    return vault


def _snippet(**overrides) -> Snippet:
    data = dict(id="hello", name="Hello", trigger=":hello", template="Hello, World!", group_id="personal")
    data.update(overrides)
    return Snippet(**data)


def test_upsert_snippet_writes_private_file():
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        vault = _open_vault(root)
        vault.upsert_snippet(_snippet())

        path = root / "groups" / "personal" / "snippets" / "hello.yaml"
        assert path.exists()
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert "groupId" not in path.read_text(encoding="utf-8")
        assert vault.get_snippet("hello").trigger == ":hello"


def test_duplicate_trigger_in_group_is_rejected():
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        vault = _open_vault(root)
        vault.upsert_snippet(_snippet())

        with pytest.raises(DuplicateError):
            vault.upsert_snippet(_snippet(id="hello2", name="Hello again"))

        assert [s.id for s in vault.list_all_snippets()] == ["hello"]
        assert not (root / "groups" / "personal" / "snippets" / "hello2.yaml").exists()


def test_same_trigger_in_another_group_is_allowed():
    with tempfile.TemporaryDirectory() as td:
        vault = _open_vault(Path(td))
        vault.create_group(Group(id="work", name="Work"))
        vault.upsert_snippet(_snippet())
        vault.upsert_snippet(_snippet(id="work-hello", group_id="work"))
        assert len(vault.list_all_snippets()) == 2


def test_upsert_overwrites_same_id():
    with tempfile.TemporaryDirectory() as td:
        vault = _open_vault(Path(td))
        vault.upsert_snippet(_snippet())
        vault.upsert_snippet(_snippet(name="Greeting", template="Hi!"))
        snippet = vault.get_snippet("hello")
        assert snippet.name == "Greeting"
        assert snippet.template == "Hi!"
        assert len(vault.list_all_snippets()) == 1


def test_moving_snippet_between_groups_removes_old_file():
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        vault = _open_vault(root)
        vault.create_group(Group(id="work", name="Work"))
        vault.upsert_snippet(_snippet())
        vault.upsert_snippet(_snippet(group_id="work"))
        assert not (root / "groups" / "personal" / "snippets" / "hello.yaml").exists()
        assert (root / "groups" / "work" / "snippets" / "hello.yaml").exists()
        assert vault.get_snippet("hello").group_id == "work"


def test_snippet_requires_existing_group():
    with tempfile.TemporaryDirectory() as td:
        vault = _open_vault(Path(td))
        with pytest.raises(MissingGroupError) as info:
            vault.upsert_snippet(_snippet(group_id="nowhere"))
        assert isinstance(info.value, ValidationError)
        assert isinstance(info.value, NotFoundError)
        assert vault.list_all_snippets() == []


def test_invalid_snippet_is_rejected_before_write():
    with tempfile.TemporaryDirectory() as td:
        vault = _open_vault(Path(td))
        with pytest.raises(InvalidSnippetError) as info:
            vault.upsert_snippet(_snippet(template=""))
        assert info.value.field == "template"
        assert vault.list_all_snippets() == []


def test_delete_snippet():
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        vault = _open_vault(root)
        vault.upsert_snippet(_snippet())
        vault.delete_snippet("hello")
        assert not (root / "groups" / "personal" / "snippets" / "hello.yaml").exists()
        with pytest.raises(NotFoundError):
            vault.get_snippet("hello")
        with pytest.raises(NotFoundError):
            vault.delete_snippet("hello")


def test_group_create_upsert_delete():
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        vault = _open_vault(root)
        with pytest.raises(DuplicateError):
            vault.create_group(Group(id="personal", name="Again"))

        vault.upsert_group(Group(id="personal", name="Renamed", icon="star", order=3))
        assert vault.get_group("personal").name == "Renamed"
        assert "Renamed" in (root / "groups" / "personal" / "group.yaml").read_text(encoding="utf-8")

        vault.upsert_snippet(_snippet())
        vault.upsert_snippet(_snippet(id="bye", name="Bye", trigger=":bye"))
        vault.delete_group("personal")
        assert vault.list_groups() == []
        assert vault.list_all_snippets() == []
        assert not (root / "groups" / "personal").exists()
        with pytest.raises(NotFoundError):
            vault.delete_group("personal")


def test_listing_order():
    with tempfile.TemporaryDirectory() as td:
        vault = Vault()
        vault.load(td)
        vault.create_group(Group(id="b", name="Beta", order=2))
        vault.create_group(Group(id="z", name="Zulu", order=1))
        vault.create_group(Group(id="a", name="Alpha", order=1))
        assert [g.id for g in vault.list_groups()] == ["a", "z", "b"]

        vault.upsert_snippet(_snippet(id="s1", name="Zed", trigger=":z", group_id="a"))
        vault.upsert_snippet(_snippet(id="s2", name="Ant", trigger=":a", group_id="a"))
        vault.upsert_snippet(_snippet(id="s3", name="Bee", trigger=":b", group_id="b"))
        assert [s.id for s in vault.list_snippets("a")] == ["s2", "s1"]
        assert [s.id for s in vault.list_all_snippets()] == ["s2", "s1", "s3"]
        assert vault.list_snippets("missing") == []


def test_search_snippets():
    with tempfile.TemporaryDirectory() as td:
        vault = _open_vault(Path(td))
        vault.upsert_snippet(_snippet(id="sig", name="Email Signature", trigger=":sig", tags=["work"]))
        vault.upsert_snippet(_snippet(id="addr", name="Address", trigger=":addr", tags=["Home"]))
        vault.upsert_snippet(_snippet(id="ty", name="Thanks", trigger=":ty"))

        assert [s.id for s in vault.search_snippets("SIGNATURE")] == ["sig"]
        assert [s.id for s in vault.search_snippets(":ad")] == ["addr"]
        assert [s.id for s in vault.search_snippets("home")] == ["addr"]
        assert [s.id for s in vault.search_snippets("")] == ["addr", "sig", "ty"]
        assert vault.search_snippets("nothing") == []


def test_find_snippet_by_trigger_is_deterministic():
    with tempfile.TemporaryDirectory() as td:
        vault = Vault()
        vault.load(td)
        vault.create_group(Group(id="alpha", name="Alpha", order=2))
        vault.create_group(Group(id="beta", name="Beta", order=1))
        vault.create_group(Group(id="off", name="Off", order=0, enabled=False))
        vault.upsert_snippet(_snippet(id="a", group_id="alpha"))
        vault.upsert_snippet(_snippet(id="b", group_id="beta"))
        vault.upsert_snippet(_snippet(id="c", group_id="off"))

        assert vault.find_snippet_by_trigger(":hello").id == "b"
        assert vault.find_snippet_by_trigger(":nope") is None

        vault.delete_group("beta")
        assert vault.find_snippet_by_trigger(":hello").id == "a"
        vault.delete_group("alpha")
        assert vault.find_snippet_by_trigger(":hello") is None


def test_counters_persist():
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        vault = _open_vault(root)
        assert vault.get_counter("invoice") is None
        vault.update_counter("invoice", Counter(value=5, step=2, start=1))
        assert vault.get_counter("invoice").value == 5

        counters_file = root / "counters.json"
        assert counters_file.exists()
        assert stat.S_IMODE(counters_file.stat().st_mode) == 0o600

        reloaded = Vault()
        reloaded.load(root)
        assert reloaded.get_counter("invoice").value == 5
        assert reloaded.get_counter("invoice").step == 2


def test_operations_require_loaded_vault():
    vault = Vault()
    with pytest.raises(NotLoadedError):
        vault.save()
    with pytest.raises(NotLoadedError):
        vault.upsert_snippet(_snippet())
    with pytest.raises(NotLoadedError):
        vault.reload()


def test_group_ids_cannot_escape_the_vault():
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        vault = _open_vault(root)
        vault.upsert_snippet(_snippet())

        with pytest.raises(InvalidGroupError):
            vault.upsert_group(Group(id="..", name="Escape"))
        with pytest.raises(InvalidGroupError):
            vault.create_group(Group(id=".", name="Here"))
        assert not (root / "group.yaml").exists()

        with pytest.raises(NotFoundError):
            vault.delete_group("..")
        assert (root / "groups" / "personal" / "snippets" / "hello.yaml").exists()
        assert vault.get_snippet("hello").group_id == "personal"


def test_group_paths_are_checked_before_touching_disk():
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        vault = _open_vault(root)
        vault.upsert_snippet(_snippet())
        # Bypass validation the way a hand-edited in-memory record would.
        vault._groups[".."] = Group(id="..", name="Escape")
        with pytest.raises(InvalidPathError):
            vault.delete_group("..")
        assert (root / "groups" / "personal" / "snippets" / "hello.yaml").exists()
