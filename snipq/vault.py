from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from snipq.errors import (
    DuplicateError,
    InvalidPathError,
    MissingGroupError,
    NotFoundError,
    NotLoadedError,
    ValidationError,
    VaultIOError,
)
from snipq.models import Counter, Group, HistoryEntry, Settings, Snippet, json_default
from snipq.validation import (
    validate_group,
    validate_settings,
    validate_snippet,
    validate_vault_path,
)

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.yaml"
COUNTERS_FILE = "counters.json"
HISTORY_FILE = "history.jsonl"
GROUPS_DIR = "groups"
SNIPPETS_DIR = "snippets"
GROUP_FILE = "group.yaml"
FILE_MODE = 0o600


def dump_yaml(data: Dict[str, Any]) -> str:
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


def _is_child(path: Path, parent: Path) -> bool:
    return os.path.dirname(os.path.normpath(path)) == os.path.normpath(parent)


def write_private(path: Path, text: str) -> None:
    """Write `text` to `path` readable and writable by the owner only."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        os.chmod(path, FILE_MODE)
    except OSError as exc:
        raise VaultIOError(f"failed to write {path}: {exc}") from exc


class Vault:
    """File-backed store of groups, snippets, settings, counters and history.

    Layout under the vault root::

        settings.yaml
        counters.json
        history.jsonl
        groups/<groupId>/group.yaml
        groups/<groupId>/snippets/<snippetId>.yaml

    Every mutating call persists before returning. Mutations are serialized
    with a re-entrant lock so a UI thread and an expansion call can share one
    instance.
    """

    def __init__(self) -> None:
        self._path: Optional[Path] = None
        self._groups: Dict[str, Group] = {}
        self._snippets: Dict[str, Snippet] = {}
        self._settings: Optional[Settings] = None
        self._counters: Dict[str, Counter] = {}
        self._history: List[HistoryEntry] = []
        self._lock = threading.RLock()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def _require_path(self) -> Path:
        if self._path is None:
            raise NotLoadedError("vault not loaded")
        return self._path

    def _group_dir(self, group_id: str) -> Path:
        groups_root = self._require_path() / GROUPS_DIR
        path = groups_root / group_id
        if not group_id or not _is_child(path, groups_root):
            raise InvalidPathError(f"group path escapes the vault: {group_id!r}", field="id")
        return path

    def _snippet_file(self, snippet: Snippet) -> Path:
        snippets_dir = self._group_dir(snippet.group_id) / SNIPPETS_DIR
        path = snippets_dir / f"{snippet.id}.yaml"
        if not _is_child(path, snippets_dir):
            raise InvalidPathError(f"snippet path escapes the vault: {snippet.id!r}", field="id")
        return path

    # -------------------------
    # Load / save
    # -------------------------
    def load(self, path: Union[str, Path]) -> None:
        root = validate_vault_path(path)
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise VaultIOError(f"failed to create vault directory {root}: {exc}") from exc

        with self._lock:
            self._path = root
            self._groups = {}
            self._snippets = {}
            self._counters = {}
            self._history = []
            self._settings = self._load_settings()
            self._counters = self._load_counters()
            self._history = self._load_history()
            self._load_groups()
        logger.info(
            "Loaded vault %s: %d groups, %d snippets, %d history entries",
            root,
            len(self._groups),
            len(self._snippets),
            len(self._history),
        )

    def reload(self) -> None:
        self.load(self._require_path())

    def save(self) -> None:
        with self._lock:
            self._require_path()
            self._write_settings(self.get_settings())
            self._write_counters(self._counters)
            self._write_history(self._history)

    def _load_settings(self) -> Settings:
        settings_path = self._require_path() / SETTINGS_FILE
        if not settings_path.exists():
            return Settings()
        try:
            data = yaml.safe_load(settings_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise VaultIOError(f"failed to load settings: {exc}") from exc
        if not isinstance(data, dict):
            raise VaultIOError(f"failed to load settings: {settings_path} is not a mapping")
        try:
            settings = Settings.from_dict(data)
            validate_settings(settings)
        except (TypeError, ValueError, ValidationError) as exc:
            raise VaultIOError(f"failed to load settings: {exc}") from exc
        return settings

    def _load_counters(self) -> Dict[str, Counter]:
        counters_path = self._require_path() / COUNTERS_FILE
        if not counters_path.exists():
            return {}
        try:
            raw = json.loads(counters_path.read_text(encoding="utf-8") or "{}")
            return {str(name): Counter.from_dict(data) for name, data in (raw or {}).items()}
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            raise VaultIOError(f"failed to load counters: {exc}") from exc

    def _load_history(self) -> List[HistoryEntry]:
        history_path = self._require_path() / HISTORY_FILE
        if not history_path.exists():
            return []
        try:
            lines = history_path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise VaultIOError(f"failed to load history: {exc}") from exc

        entries: List[HistoryEntry] = []
        for number, line in enumerate(lines, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(HistoryEntry.from_dict(json.loads(line)))
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                logger.warning("Skipping malformed history line %d: %s", number, exc)
        return entries

    def _load_groups(self) -> None:
        groups_dir = self._require_path() / GROUPS_DIR
        try:
            groups_dir.mkdir(parents=True, exist_ok=True)
            children = sorted(p for p in groups_dir.iterdir() if p.is_dir() and not p.name.startswith("."))
        except OSError as exc:
            raise VaultIOError(f"failed to load groups: {exc}") from exc
        for group_dir in children:
            self._load_group(group_dir)

    def _load_group(self, group_dir: Path) -> None:
        group_id = group_dir.name
        group_file = group_dir / GROUP_FILE
        if group_file.exists():
            try:
                data = yaml.safe_load(group_file.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError) as exc:
                logger.warning("Skipping group %s: unreadable %s: %s", group_id, GROUP_FILE, exc)
                return
            if not isinstance(data, dict):
                logger.warning("Skipping group %s: %s is not a mapping", group_id, GROUP_FILE)
                return
            try:
                group = Group.from_dict(data)
            except (ValueError, TypeError) as exc:
                logger.warning("Skipping group %s: invalid %s: %s", group_id, GROUP_FILE, exc)
                return
            group.id = group_id
            if not group.name:
                group.name = group_id
        else:
            group = Group(id=group_id, name=group_id, enabled=True)
            self._write_group(group)
            logger.info("Created default group file for %s", group_id)

        self._groups[group_id] = group
        self._load_snippets_for_group(group_id)

    def _load_snippets_for_group(self, group_id: str) -> None:
        snippets_dir = self._group_dir(group_id) / SNIPPETS_DIR
        if not snippets_dir.is_dir():
            return
        for file in sorted(snippets_dir.glob("*.yaml")):
            try:
                data = yaml.safe_load(file.read_text(encoding="utf-8")) or {}
                if not isinstance(data, dict):
                    raise ValueError("snippet file is not a mapping")
                snippet = Snippet.from_dict(data, group_id=group_id)
            except (OSError, yaml.YAMLError, ValueError, TypeError) as exc:
                logger.warning("Skipping snippet file %s: %s", file, exc)
                continue
            if not snippet.id:
                snippet.id = file.stem
            if snippet.id in self._snippets:
                logger.warning(
                    "Skipping snippet file %s: ID %s already loaded from group %s",
                    file,
                    snippet.id,
                    self._snippets[snippet.id].group_id,
                )
                continue
            self._snippets[snippet.id] = snippet

    # -------------------------
    # Writers
    # -------------------------
    def _write_settings(self, settings: Settings) -> None:
        write_private(self._require_path() / SETTINGS_FILE, dump_yaml(settings.to_dict()))

    def _write_counters(self, counters: Dict[str, Counter]) -> None:
        payload = {name: counter.to_dict() for name, counter in counters.items()}
        write_private(self._require_path() / COUNTERS_FILE, json.dumps(payload, indent=2))

    def _write_history(self, history: List[HistoryEntry]) -> None:
        lines = [json.dumps(entry.to_dict(), default=json_default, ensure_ascii=False) for entry in history]
        text = "\n".join(lines) + "\n" if lines else ""
        write_private(self._require_path() / HISTORY_FILE, text)

    def _write_group(self, group: Group) -> None:
        write_private(self._group_dir(group.id) / GROUP_FILE, dump_yaml(group.to_dict()))

    def _write_snippet(self, snippet: Snippet) -> None:
        write_private(self._snippet_file(snippet), dump_yaml(snippet.to_dict()))

    # -------------------------
    # Settings
    # -------------------------
    def get_settings(self) -> Settings:
        if self._settings is None:
            return Settings()
        return self._settings

    def save_settings(self, settings: Settings) -> None:
        validate_settings(settings)
        with self._lock:
            self._write_settings(settings)
            self._settings = replace(settings, excluded_apps=list(settings.excluded_apps))

    # -------------------------
    # Groups
    # -------------------------
    def list_groups(self) -> List[Group]:
        return sorted(self._groups.values(), key=lambda g: (g.order, g.name))

    def get_group(self, group_id: str) -> Group:
        group = self._groups.get(group_id)
        if group is None:
            raise NotFoundError(f"group not found: {group_id}")
        return group

    def create_group(self, group: Group) -> None:
        validate_group(group)
        with self._lock:
            if group.id in self._groups:
                raise DuplicateError(f"group with ID '{group.id}' already exists")
            self._write_group(group)
            self._groups[group.id] = replace(group)

    def upsert_group(self, group: Group) -> None:
        validate_group(group)
        with self._lock:
            self._write_group(group)
            self._groups[group.id] = replace(group)

    def delete_group(self, group_id: str) -> None:
        with self._lock:
            if group_id not in self._groups:
                raise NotFoundError(f"group not found: {group_id}")
            group_dir = self._group_dir(group_id)
            try:
                if group_dir.exists():
                    shutil.rmtree(group_dir)
            except OSError as exc:
                raise VaultIOError(f"failed to delete group directory {group_dir}: {exc}") from exc
            for snippet_id in [sid for sid, s in self._snippets.items() if s.group_id == group_id]:
                del self._snippets[snippet_id]
            del self._groups[group_id]

    # -------------------------
    # Snippets
    # -------------------------
    def get_snippet(self, snippet_id: str) -> Snippet:
        snippet = self._snippets.get(snippet_id)
        if snippet is None:
            raise NotFoundError(f"snippet not found: {snippet_id}")
        return snippet

    def list_snippets(self, group_id: str) -> List[Snippet]:
        members = [s for s in self._snippets.values() if s.group_id == group_id]
        return sorted(members, key=lambda s: (s.name, s.id))

    def list_all_snippets(self) -> List[Snippet]:
        return sorted(self._snippets.values(), key=lambda s: (s.group_id, s.name, s.id))

    def search_snippets(self, query: str) -> List[Snippet]:
        q = (query or "").lower()
        results = [
            s
            for s in self._snippets.values()
            if q in s.name.lower() or q in s.trigger.lower() or any(q in tag.lower() for tag in s.tags)
        ]
        return sorted(results, key=lambda s: (s.name, s.id))

    def find_snippet_by_trigger(self, trigger: str) -> Optional[Snippet]:
        """Return the snippet whose trigger matches exactly, or None.

        Groups are scanned in display order and snippets by ID, so the same
        trigger in two groups always resolves to the same snippet. Snippets in
        disabled groups never match.
        """
        by_group: Dict[str, List[Snippet]] = {}
        for snippet in self._snippets.values():
            if snippet.trigger == trigger:
                by_group.setdefault(snippet.group_id, []).append(snippet)
        if not by_group:
            return None
        for group in self.list_groups():
            if not group.enabled or group.id not in by_group:
                continue
            return min(by_group[group.id], key=lambda s: s.id)
        return None

    def upsert_snippet(self, snippet: Snippet) -> None:
        validate_snippet(snippet)
        with self._lock:
            self._require_path()
            self._check_duplicate_trigger(snippet.trigger, snippet.group_id, snippet.id)
            if snippet.group_id not in self._groups:
                raise MissingGroupError(
                    f"invalid group: group '{snippet.group_id}' does not exist", field="group_id"
                )
            previous = self._snippets.get(snippet.id)
            self._write_snippet(snippet)
            if previous is not None and previous.group_id != snippet.group_id:
                self._remove_file(self._snippet_file(previous))
            self._snippets[snippet.id] = replace(
                snippet, tags=list(snippet.tags), defaults=dict(snippet.defaults)
            )

    def delete_snippet(self, snippet_id: str) -> None:
        with self._lock:
            snippet = self._snippets.get(snippet_id)
            if snippet is None:
                raise NotFoundError(f"snippet not found: {snippet_id}")
            self._remove_file(self._snippet_file(snippet))
            del self._snippets[snippet_id]

    def _check_duplicate_trigger(self, trigger: str, group_id: str, exclude_id: str) -> None:
        for existing in self._snippets.values():
            if existing.group_id == group_id and existing.trigger == trigger and existing.id != exclude_id:
                raise DuplicateError(
                    f"duplicate trigger: '{trigger}' already exists in group '{group_id}' "
                    f"(snippet: {existing.id})"
                )

    @staticmethod
    def _remove_file(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise VaultIOError(f"failed to delete {path}: {exc}") from exc

    # -------------------------
    # Counters
    # -------------------------
    def get_counter(self, name: str) -> Optional[Counter]:
        return self._counters.get(name)

    def list_counters(self) -> Dict[str, Counter]:
        return dict(self._counters)

    def update_counter(self, name: str, counter: Counter) -> None:
        with self._lock:
            counters = dict(self._counters)
            counters[name] = counter
            self._write_counters(counters)
            self._counters = counters

    # -------------------------
    # History
    # -------------------------
    def get_history(self) -> List[HistoryEntry]:
        return list(self._history)

    def add_history_entry(self, entry: HistoryEntry) -> None:
        settings = self.get_settings()
        if not settings.history_enabled:
            return
        with self._lock:
            history = self._history + [entry]
            overflow = len(history) - settings.history_limit
            if overflow > 0:
                del history[:overflow]
            self._write_history(history)
            self._history = history

    def clear_history(self) -> None:
        with self._lock:
            self._write_history([])
            self._history = []

    # -------------------------
    # Bulk replacement (restore)
    # -------------------------
    def replace_contents(
        self,
        groups: Iterable[Group],
        snippets: Iterable[Snippet],
        settings: Settings,
        counters: Dict[str, Counter],
    ) -> None:
        """Replace groups, snippets, settings and counters wholesale.

        The groups tree is rebuilt from scratch so entities absent from the
        new contents do not survive on disk. History is left untouched.
        """
        with self._lock:
            root = self._require_path()
            groups_dir = root / GROUPS_DIR
            try:
                if groups_dir.exists():
                    shutil.rmtree(groups_dir)
            except OSError as exc:
                raise VaultIOError(f"failed to clear {groups_dir}: {exc}") from exc

            self._groups = {}
            self._snippets = {}
            for group in groups:
                self._write_group(group)
                self._groups[group.id] = group
            for snippet in snippets:
                self._write_snippet(snippet)
                self._snippets[snippet.id] = snippet

            self._write_settings(settings)
            self._settings = settings
            self._write_counters(counters)
            self._counters = dict(counters)

    # -------------------------
    # Backup / restore
    # -------------------------
    def backup_vault(self, backup_dir: Union[str, Path]) -> Path:
        from snipq.backup_manager import BackupManager

        return BackupManager(self).backup_vault(backup_dir)

    def restore_vault(self, backup_path: Union[str, Path]) -> None:
        from snipq.backup_manager import BackupManager

        BackupManager(self).restore_vault(backup_path)
