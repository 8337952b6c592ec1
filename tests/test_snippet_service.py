from datetime import datetime, timezone

from snipq.errors import DuplicateError, InvalidSnippetError, NotFoundError
from snipq.models import Group, Rendered, Settings, Snippet
from snipq.snippet_service import SnippetService


class DummyEngine:
    def __init__(self):
        self.calls = []
        self.snippets = {}

    def open_vault(self, path):
        self.calls.append(("open", path))

    def expand(self, trigger, app_id=None, now=None):
        self.calls.append(("expand", trigger, app_id))
        if trigger != ":hello":
            raise NotFoundError(f"snippet not found: {trigger}")
        return Rendered(output="Hello", used_snippet="hello", used_params={"now": now})

    def preview(self, trigger, now=None):
        return "Hello"

    def list_groups(self):
        return [Group(id="personal", name="Personal")]

    def list_snippets(self, group_id):
        return [s for s in self.snippets.values() if s.group_id == group_id]

    def search_snippets(self, query):
        return list(self.snippets.values())

    def upsert_snippet(self, snippet):
        self.calls.append(("upsert", snippet.id))
        if not snippet.template:
            raise InvalidSnippetError("template is required", field="template")
        if snippet.trigger in {s.trigger for s in self.snippets.values() if s.id != snippet.id}:
            raise DuplicateError(f"duplicate trigger: '{snippet.trigger}'")
        self.snippets[snippet.id] = snippet

    def delete_snippet(self, snippet_id):
        self.calls.append(("delete", snippet_id))
        self.snippets.pop(snippet_id)

    def get_settings(self):
        return Settings()

    def save_settings(self, settings):
        self.calls.append(("settings", settings.prefix))

    def next_counter(self, name, opts):
        self.calls.append(("counter", name, opts.pad, opts.step))
        return "0002"


def test_expand_success_and_not_found():
    engine = DummyEngine()
    service = SnippetService(engine)
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    result = service.expand(":hello", app_id="editor", now=now)
    assert result["status"] == "success"
    assert result["output"] == "Hello"
    assert result["usedSnippet"] == "hello"
    assert result["cursorOffset"] == 0
    assert ("expand", ":hello", "editor") in engine.calls

    missing = service.expand(":nope")
    assert missing["status"] == "error"
    assert missing["error"] == "NotFoundError"
    assert missing["detail"] == "snippet not found: :nope"


def test_snippet_crud_round_trip():
    engine = DummyEngine()
    service = SnippetService(engine)

    result = service.upsert_snippet(
        {"id": "hello", "name": "Hello", "trigger": ":hello", "template": "Hi", "groupId": "personal"}
    )
    assert result["status"] == "success"
    assert engine.snippets["hello"].group_id == "personal"

    listed = service.list_snippets("personal")
    assert listed["count"] == 1
    assert listed["snippets"][0]["groupId"] == "personal"

    dup = service.upsert_snippet({"id": "other", "name": "Other", "trigger": ":hello", "template": "x"})
    assert dup["status"] == "error"
    assert dup["error"] == "DuplicateError"

    service.delete_snippet("hello")
    assert ("delete", "hello") in engine.calls


def test_validation_error_carries_field():
    service = SnippetService(DummyEngine())
    result = service.upsert_snippet({"id": "x", "name": "X", "trigger": ":x", "template": ""})
    assert result == {
        "status": "error",
        "detail": "template is required",
        "error": "InvalidSnippetError",
        "field": "template",
    }


def test_settings_and_counters():
    engine = DummyEngine()
    service = SnippetService(engine)
    settings = service.get_settings()
    assert settings["status"] == "success"
    assert settings["settings"]["prefix"] == ":"

    assert service.save_settings({"prefix": ";"})["status"] == "success"
    assert ("settings", ";") in engine.calls

    counter = service.next_counter("invoice", pad=4)
    assert counter == {"status": "success", "value": "0002"}
    assert ("counter", "invoice", 4, 0) in engine.calls


def test_groups_and_preview():
    service = SnippetService(DummyEngine())
    groups = service.list_groups()
    assert groups["groups"] == [{"id": "personal", "name": "Personal", "enabled": True}]
    assert service.preview(":hello") == {"status": "success", "output": "Hello"}
    assert service.open_vault("/tmp/v")["status"] == "success"
