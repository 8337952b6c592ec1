"""Import and export portable snippet packs (JSON or YAML)."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Iterable, List, Union

import yaml

from snipq.errors import DuplicateError, NotFoundError, ValidationError, VaultIOError
from snipq.models import Snippet, json_default
from snipq.vault import Vault

logger = logging.getLogger(__name__)


def _id_from_trigger(trigger: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_-]+", "-", trigger).strip("-").lower()
    return slug or "snippet"


def _read_pack(path: Path) -> List[Any]:
    if not path.exists():
        raise NotFoundError(f"snippet pack not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            packs = json.loads(text)
        else:
            packs = yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise VaultIOError(f"failed to read snippet pack {path}: {exc}") from exc

    if isinstance(packs, dict):
        packs = packs.get("snippets", [])
    if not isinstance(packs, list):
        raise ValidationError("invalid pack format: expected a list of snippets", field="snippets")
    return packs


def import_snippet_pack(vault: Vault, file_path: Union[str, Path], group_id: str) -> int:
    """Upsert every snippet of a pack into `group_id`; return how many landed.

    Entries without a trigger are skipped. Entries that fail validation or
    collide with an existing trigger are skipped and logged.
    """
    vault.get_group(group_id)
    count = 0
    for raw in _read_pack(Path(file_path)):
        if not isinstance(raw, dict) or not raw.get("trigger"):
            continue
        snippet = Snippet.from_dict(raw, group_id=group_id)
        if not snippet.id:
            snippet.id = _id_from_trigger(snippet.trigger)
        if not snippet.name:
            snippet.name = snippet.trigger
        try:
            vault.upsert_snippet(snippet)
        except (ValidationError, DuplicateError) as exc:
            logger.warning("Skipping pack entry %s: %s", snippet.trigger, exc)
            continue
        count += 1
    logger.info("Imported %d snippets from %s into %s", count, file_path, group_id)
    return count


def export_snippet_pack(vault: Vault, snippet_ids: Iterable[str], file_path: Union[str, Path]) -> int:
    """Write the selected snippets to a JSON pack and return how many were written."""
    snippets = [vault.get_snippet(sid).to_dict(include_group=True) for sid in snippet_ids]
    try:
        Path(file_path).write_text(
            json.dumps({"snippets": snippets}, indent=2, ensure_ascii=False, default=json_default),
            encoding="utf-8",
        )
    except OSError as exc:
        raise VaultIOError(f"failed to write snippet pack {file_path}: {exc}") from exc
    return len(snippets)
