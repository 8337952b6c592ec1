from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from snipq.backup_manager import list_backups
from snipq.errors import ExcludedError, NotFoundError, SnipqError
from snipq.models import (
    Counter,
    CounterOpts,
    Group,
    HistoryEntry,
    Params,
    Rendered,
    Settings,
    Snippet,
)
from snipq.template_engine import TemplateEngine
from snipq.trigger_parser import merge_params, parse_trigger
from snipq.validation import validate_vault_path
from snipq.vault import Vault

logger = logging.getLogger(__name__)


def format_counter(value: int, pad: int = 0) -> str:
    if pad > 0:
        return f"{value:0{pad}d}"
    return str(value)


class Engine:
    """Expands triggers against a vault and exposes the front-end contract.

    The vault is passed in (or created per engine); nothing is shared between
    engine instances.
    """

    def __init__(self, vault: Optional[Vault] = None, templates: Optional[TemplateEngine] = None) -> None:
        self.vault = vault if vault is not None else Vault()
        self.templates = templates if templates is not None else TemplateEngine()

    # -------------------------
    # Vault lifecycle
    # -------------------------
    def open_vault(self, path: Union[str, Path]) -> None:
        self.vault.load(validate_vault_path(path))

    def reload(self) -> None:
        self.vault.reload()

    def save(self) -> None:
        self.vault.save()

    # -------------------------
    # Expansion
    # -------------------------
    def _resolve(self, raw_trigger: str):
        parsed = parse_trigger(raw_trigger)
        snippet = self.vault.find_snippet_by_trigger(parsed.trigger)
        if snippet is None:
            raise NotFoundError(f"snippet not found: {parsed.trigger}")
        return parsed, snippet

    def _build_params(self, query: Dict[str, str], snippet: Snippet, now: datetime) -> Params:
        params = merge_params(query, snippet.defaults, self._global_defaults(self.vault.get_settings()))
        params["now"] = now
        params["timestamp"] = int(now.timestamp())
        return params

    @staticmethod
    def _global_defaults(settings: Settings) -> Dict[str, Any]:
        return {
            "dateFormat": settings.default_date_format,
            "timezone": settings.timezone,
            "locale": settings.locale,
        }

    def expand(
        self,
        raw_trigger: str,
        app_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Rendered:
        if now is None:
            now = datetime.now().astimezone()
        parsed, snippet = self._resolve(raw_trigger)

        settings = self.vault.get_settings()
        if app_id and app_id in settings.excluded_apps:
            raise ExcludedError(f"app excluded: {app_id}")

        params = self._build_params(parsed.params, snippet, now)

        # Counters are advanced once per expansion and only persisted after
        # the template rendered successfully.
        pending = {
            call.name: self._advance_counter(call.name)
            for call in self.templates.find_counter_calls(snippet.template)
        }
        output = self.templates.render(
            snippet.template, params, counters={name: c.value for name, c in pending.items()}
        )
        for name, counter in pending.items():
            self.vault.update_counter(name, counter)

        if settings.history_enabled:
            entry = HistoryEntry(
                timestamp=now,
                snippet_id=snippet.id,
                output=output,
                used_params=dict(params),
                app_id=app_id or "",
            )
            try:
                self.vault.add_history_entry(entry)
            except (SnipqError, OSError) as exc:
                logger.warning("Failed to record history for %s: %s", snippet.id, exc)

        return Rendered(output=output, used_snippet=snippet.id, used_params=params)

    def preview(self, raw_trigger: str, now: Optional[datetime] = None) -> str:
        if now is None:
            now = datetime.now().astimezone()
        parsed, snippet = self._resolve(raw_trigger)
        params = self._build_params(parsed.params, snippet, now)
        return self.templates.render(snippet.template, params)

    # -------------------------
    # Counters
    # -------------------------
    def _advance_counter(self, name: str, step: int = 0) -> Counter:
        current = self.vault.get_counter(name)
        counter = replace(current) if current is not None else Counter(value=1, step=1, start=1)
        counter.value += step if step > 0 else counter.step
        counter.updated_at = datetime.now().astimezone()
        logger.debug("Counter %s advanced to %d", name, counter.value)
        return counter

    def next_counter(self, name: str, opts: Optional[CounterOpts] = None) -> str:
        opts = opts or CounterOpts()
        counter = self._advance_counter(name, opts.step)
        self.vault.update_counter(name, counter)
        return format_counter(counter.value, opts.pad)

    # -------------------------
    # CRUD pass-throughs
    # -------------------------
    def list_groups(self) -> List[Group]:
        return self.vault.list_groups()

    def create_group(self, group: Group) -> None:
        self.vault.create_group(group)

    def upsert_group(self, group: Group) -> None:
        self.vault.upsert_group(group)

    def delete_group(self, group_id: str) -> None:
        self.vault.delete_group(group_id)

    def list_snippets(self, group_id: str) -> List[Snippet]:
        return self.vault.list_snippets(group_id)

    def list_all_snippets(self) -> List[Snippet]:
        return self.vault.list_all_snippets()

    def search_snippets(self, query: str) -> List[Snippet]:
        return self.vault.search_snippets(query)

    def get_snippet(self, snippet_id: str) -> Snippet:
        return self.vault.get_snippet(snippet_id)

    def upsert_snippet(self, snippet: Snippet) -> None:
        self.vault.upsert_snippet(snippet)

    def delete_snippet(self, snippet_id: str) -> None:
        self.vault.delete_snippet(snippet_id)

    def get_settings(self) -> Settings:
        settings = self.vault.get_settings()
        return replace(settings, excluded_apps=list(settings.excluded_apps))

    def save_settings(self, settings: Settings) -> None:
        self.vault.save_settings(settings)

    def get_history(self) -> List[HistoryEntry]:
        return self.vault.get_history()

    def clear_history(self) -> None:
        self.vault.clear_history()

    # -------------------------
    # Backups
    # -------------------------
    def backup(self, backup_dir: Union[str, Path]) -> Path:
        return self.vault.backup_vault(backup_dir)

    def restore(self, backup_path: Union[str, Path]) -> None:
        self.vault.restore_vault(backup_path)

    def list_backups(self, backup_dir: Union[str, Path]) -> List[Dict[str, Any]]:
        return list_backups(backup_dir)
