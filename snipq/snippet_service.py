from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from snipq.errors import SnipqError
from snipq.models import CounterOpts, Group, Settings, Snippet
from snipq.snippet_pack import export_snippet_pack, import_snippet_pack

logger = logging.getLogger(__name__)


def _error(exc: Exception) -> Dict[str, Any]:
    result: Dict[str, Any] = {"status": "error", "detail": str(exc), "error": exc.__class__.__name__}
    field = getattr(exc, "field", None)
    if field:
        result["field"] = field
    return result


class SnippetService:
    """Front-end facade over an `Engine`.

    Desktop shells and CLIs talk to this class: every call returns a plain
    dict with a `status` of "success" or "error" and the error message passed
    through verbatim.
    """

    def __init__(self, engine: Any):
        self._engine = engine

    def _call(self, action: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        try:
            payload = action()
        except (SnipqError, OSError) as exc:
            logger.debug("Request failed: %s", exc)
            return _error(exc)
        return {"status": "success", **payload}

    def open_vault(self, path: str) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            self._engine.open_vault(path)
            return {"detail": f"Opened vault {path}"}

        return self._call(run)

    def expand(self, trigger: str, app_id: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        return self._call(lambda: self._engine.expand(trigger, app_id=app_id, now=now).to_dict())

    def preview(self, trigger: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        return self._call(lambda: {"output": self._engine.preview(trigger, now=now)})

    def list_groups(self) -> Dict[str, Any]:
        return self._call(lambda: {"groups": [g.to_dict() for g in self._engine.list_groups()]})

    def list_snippets(self, group_id: str) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            snippets = [s.to_dict(include_group=True) for s in self._engine.list_snippets(group_id)]
            return {"count": len(snippets), "snippets": snippets}

        return self._call(run)

    def search_snippets(self, query: str = "") -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            results = [s.to_dict(include_group=True) for s in self._engine.search_snippets(query)]
            return {"count": len(results), "results": results}

        return self._call(run)

    def upsert_snippet(self, snippet_data: Dict[str, Any]) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            snippet = Snippet.from_dict(snippet_data)
            self._engine.upsert_snippet(snippet)
            return {"detail": f"Saved snippet {snippet.id}"}

        return self._call(run)

    def delete_snippet(self, snippet_id: str) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            self._engine.delete_snippet(snippet_id)
            return {"detail": f"Deleted {snippet_id}"}

        return self._call(run)

    def upsert_group(self, group_data: Dict[str, Any]) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            group = Group.from_dict(group_data)
            self._engine.upsert_group(group)
            return {"detail": f"Saved group {group.id}"}

        return self._call(run)

    def delete_group(self, group_id: str) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            self._engine.delete_group(group_id)
            return {"detail": f"Deleted group {group_id}"}

        return self._call(run)

    def get_settings(self) -> Dict[str, Any]:
        return self._call(lambda: {"settings": self._engine.get_settings().to_dict()})

    def save_settings(self, settings_data: Dict[str, Any]) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            self._engine.save_settings(Settings.from_dict(settings_data))
            return {"detail": "Settings saved"}

        return self._call(run)

    def next_counter(self, name: str, pad: int = 0, step: int = 0) -> Dict[str, Any]:
        return self._call(lambda: {"value": self._engine.next_counter(name, CounterOpts(pad=pad, step=step))})

    def backup(self, backup_dir: str) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            target = self._engine.backup(backup_dir)
            return {"detail": f"Backup created: {Path(target).name}", "path": str(target)}

        return self._call(run)

    def restore(self, backup_path: str) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            self._engine.restore(backup_path)
            return {"detail": f"Restored from {backup_path}"}

        return self._call(run)

    def list_backups(self, backup_dir: str) -> Dict[str, Any]:
        return self._call(lambda: {"backups": self._engine.list_backups(backup_dir)})

    def import_snippet_pack(self, file_path: str, group_id: str) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            count = import_snippet_pack(self._engine.vault, file_path, group_id)
            return {"detail": f"Imported {count} snippets", "count": count}

        return self._call(run)

    def export_snippet_pack(self, snippet_ids: list, file_path: str) -> Dict[str, Any]:
        def run() -> Dict[str, Any]:
            count = export_snippet_pack(self._engine.vault, snippet_ids, file_path)
            return {"detail": f"Exported {count} snippets", "path": file_path}

        return self._call(run)
