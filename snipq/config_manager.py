from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

VAULT_ENV = "SNIPQ_VAULT"
LOG_LEVEL_ENV = "SNIPQ_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure root logging for front-ends and return the package logger."""
    name = (level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    logging.basicConfig(format=LOG_FORMAT, level=getattr(logging, name, logging.INFO))
    return logging.getLogger("snipq")


class ConfigManager:
    """Manage user preferences and default locations for snipq.

    Preferences live in `preferences.json` under the profile directory
    (`~/.snipq` unless a base directory is given, e.g. by tests).
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base = Path(base_dir) if base_dir is not None else Path.home() / ".snipq"
        self._base.mkdir(parents=True, exist_ok=True)
        self._preferences_path = self._base / "preferences.json"
        self._preferences: Dict[str, Any] = self._load_preferences()

    def _load_preferences(self) -> Dict[str, Any]:
        if not self._preferences_path.exists():
            return {}
        try:
            data = json.loads(self._preferences_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable preferences %s: %s", self._preferences_path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _save_preferences(self) -> None:
        self._preferences_path.write_text(json.dumps(self._preferences, indent=2), encoding="utf-8")

    def get_preferences(self) -> Dict[str, Any]:
        return dict(self._preferences)

    def set_preference(self, key: str, value: Any) -> None:
        self._preferences[key] = value
        self._save_preferences()

    def get_vault_path(self) -> Path:
        override = os.environ.get(VAULT_ENV) or self._preferences.get("vaultPath")
        if override:
            return Path(override).expanduser().absolute()
        return (self._base / "vault").absolute()

    def get_backup_root(self) -> Path:
        override = self._preferences.get("backupRoot")
        if override:
            return Path(override).expanduser().absolute()
        return (self._base / "backups").absolute()
