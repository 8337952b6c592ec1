from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Union

import yaml

from snipq.errors import NotFoundError, NotLoadedError, ValidationError, VaultIOError
from snipq.models import Counter, Group, Settings, Snippet, json_default
from snipq.validation import (
    validate_group,
    validate_settings,
    validate_snippet,
    validate_vault_path,
)
from snipq.vault import dump_yaml, write_private

if TYPE_CHECKING:
    from snipq.vault import Vault

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "snipq_backup_"
BACKUP_VERSION = "1.0"
MANIFEST_FILE = "manifest.json"
SNIPPETS_SNAPSHOT = "snippets.json"
GROUPS_SNAPSHOT = "groups.json"
SETTINGS_SNAPSHOT = "settings.yaml"
COUNTERS_SNAPSHOT = "counters.json"
PRE_RESTORE_DIR = Path("backups") / "pre_restore"


def list_backups(backup_dir: Union[str, Path]) -> List[Dict[str, Any]]:
    """List the backups found in `backup_dir`, newest first."""
    root = Path(backup_dir)
    if not root.is_dir():
        return []
    items = []
    for child in sorted(root.iterdir(), reverse=True):
        if not child.is_dir() or not child.name.startswith(BACKUP_PREFIX):
            continue
        meta: Dict[str, Any] = {}
        manifest = child / MANIFEST_FILE
        try:
            if manifest.exists():
                meta = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable backup manifest %s: %s", manifest, exc)
            meta = {}
        items.append({"name": child.name, "path": str(child), "meta": meta})
    return items


class BackupManager:
    """Snapshot a loaded vault into a timestamped directory and restore it.

    A backup directory holds JSON snapshots of snippets, groups and counters,
    the settings as YAML, and a manifest describing where it came from.
    """

    def __init__(self, vault: "Vault") -> None:
        self.vault = vault

    def backup_vault(self, backup_dir: Union[str, Path]) -> Path:
        if self.vault.path is None:
            raise NotLoadedError("vault not loaded")
        target = self._new_backup_dir(validate_vault_path(backup_dir))

        snippets = {s.id: s.to_dict(include_group=True) for s in self.vault.list_all_snippets()}
        groups = {g.id: g.to_dict() for g in self.vault.list_groups()}
        counters = {name: c.to_dict() for name, c in self.vault.list_counters().items()}

        write_private(target / SNIPPETS_SNAPSHOT, json.dumps(snippets, indent=2, default=json_default, ensure_ascii=False))
        write_private(target / GROUPS_SNAPSHOT, json.dumps(groups, indent=2, ensure_ascii=False))
        write_private(target / SETTINGS_SNAPSHOT, dump_yaml(self.vault.get_settings().to_dict()))
        write_private(target / COUNTERS_SNAPSHOT, json.dumps(counters, indent=2))

        manifest = {
            "createdAt": datetime.now().astimezone().isoformat(),
            "sourcePath": str(self.vault.path),
            "backupPath": str(target),
            "version": BACKUP_VERSION,
        }
        write_private(target / MANIFEST_FILE, json.dumps(manifest, indent=2))
        logger.info("Backed up vault %s to %s", self.vault.path, target)
        return target

    def restore_vault(self, backup_path: Union[str, Path]) -> None:
        source = validate_vault_path(backup_path)
        manifest_path = source / MANIFEST_FILE
        if not manifest_path.exists():
            raise NotFoundError(f"backup manifest not found: {manifest_path}")
        try:
            json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise VaultIOError(f"failed to read backup manifest: {exc}") from exc

        vault_root = self.vault.path
        if vault_root is None:
            raise NotLoadedError("vault not loaded")

        # Read every snapshot before touching the vault so a broken backup
        # leaves the current state alone.
        raw_snippets = self._read_json(source, SNIPPETS_SNAPSHOT)
        raw_groups = self._read_json(source, GROUPS_SNAPSHOT)
        raw_counters = self._read_json(source, COUNTERS_SNAPSHOT)
        settings = self._read_settings(source)
        try:
            snippets = [Snippet.from_dict(data) for data in raw_snippets.values()]
            groups = [Group.from_dict(data) for data in raw_groups.values()]
            counters = {name: Counter.from_dict(data) for name, data in raw_counters.items()}
            for group in groups:
                validate_group(group)
            for snippet in snippets:
                validate_snippet(snippet)
        except (KeyError, ValueError, TypeError, AttributeError, ValidationError) as exc:
            raise VaultIOError(f"corrupt backup snapshot in {source}: {exc}") from exc

        pre_restore = self.backup_vault(vault_root / PRE_RESTORE_DIR)
        logger.info("Saved pre-restore backup to %s", pre_restore)

        self.vault.replace_contents(groups, snippets, settings, counters)
        self.vault.reload()
        logger.info("Restored vault %s from %s", vault_root, source)

    @staticmethod
    def _new_backup_dir(root: Path) -> Path:
        """Create a fresh timestamped directory, suffixed when the second is taken."""
        stem = f"{BACKUP_PREFIX}{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        try:
            root.mkdir(parents=True, exist_ok=True)
            attempt = 0
            while True:
                target = root / (stem if attempt == 0 else f"{stem}_{attempt}")
                try:
                    target.mkdir()
                    return target
                except FileExistsError:
                    attempt += 1
        except OSError as exc:
            raise VaultIOError(f"failed to create backup directory under {root}: {exc}") from exc

    @staticmethod
    def _read_json(source: Path, name: str) -> Dict[str, Any]:
        path = source / name
        if not path.exists():
            raise NotFoundError(f"backup snapshot not found: {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise VaultIOError(f"failed to read backup snapshot {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise VaultIOError(f"backup snapshot {path} is not a mapping")
        return data

    @staticmethod
    def _read_settings(source: Path) -> Settings:
        path = source / SETTINGS_SNAPSHOT
        if not path.exists():
            raise NotFoundError(f"backup snapshot not found: {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            settings = Settings.from_dict(data)
            validate_settings(settings)
        except (OSError, yaml.YAMLError, ValueError, TypeError, AttributeError, ValidationError) as exc:
            raise VaultIOError(f"failed to read backup settings {path}: {exc}") from exc
        return settings
