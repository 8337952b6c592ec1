from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from snipq.errors import (
    InvalidGroupError,
    InvalidPathError,
    InvalidSettingsError,
    InvalidSnippetError,
)
from snipq.models import MAX_HISTORY_LIMIT, Group, Settings, Snippet
from snipq.trigger_parser import validate_trigger

# Characters that would break the on-disk layout when used in a directory or
# file name.
UNSAFE_ID_CHARS = set(" \t\n\r/\\:*?\"<>|")


def _blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


def _has_unsafe_chars(value: str) -> bool:
    # Leading dots would allow "." and ".." to step out of the groups tree.
    return value.startswith(".") or any(ch in UNSAFE_ID_CHARS for ch in value)


def validate_snippet(snippet: Optional[Snippet]) -> None:
    if snippet is None:
        raise InvalidSnippetError("snippet cannot be empty")
    for field, label in (
        ("id", "ID"),
        ("name", "name"),
        ("trigger", "trigger"),
        ("template", "template"),
        ("group_id", "group ID"),
    ):
        if _blank(getattr(snippet, field)):
            raise InvalidSnippetError(f"invalid snippet: {label} cannot be empty", field=field)
    if not validate_trigger(snippet.trigger):
        raise InvalidSnippetError("invalid snippet: trigger cannot contain whitespace", field="trigger")
    # The ID doubles as the snippet's file name.
    if _has_unsafe_chars(snippet.id):
        raise InvalidSnippetError("invalid snippet: ID contains invalid characters", field="id")


def validate_group(group: Optional[Group]) -> None:
    if group is None:
        raise InvalidGroupError("group cannot be empty")
    if _blank(group.id):
        raise InvalidGroupError("invalid group: ID cannot be empty", field="id")
    if _blank(group.name):
        raise InvalidGroupError("invalid group: name cannot be empty", field="name")
    if _has_unsafe_chars(group.id):
        raise InvalidGroupError("invalid group: ID contains invalid characters", field="id")


def validate_settings(settings: Optional[Settings]) -> None:
    if settings is None:
        raise InvalidSettingsError("settings cannot be empty")
    if _blank(settings.prefix):
        raise InvalidSettingsError("prefix cannot be empty", field="prefix")
    if settings.history_limit < 0:
        raise InvalidSettingsError("history limit cannot be negative", field="history_limit")
    if settings.history_limit > MAX_HISTORY_LIMIT:
        raise InvalidSettingsError(
            f"history limit cannot exceed {MAX_HISTORY_LIMIT}", field="history_limit"
        )


def validate_vault_path(path: Union[str, Path, None]) -> Path:
    """Validate a vault or backup path and return it as an absolute path."""
    if path is None or _blank(str(path)):
        raise InvalidPathError("invalid vault path: path cannot be empty", field="path")
    try:
        resolved = Path(path).expanduser().absolute()
    except (OSError, RuntimeError) as exc:
        raise InvalidPathError(f"invalid vault path: {exc}", field="path") from exc
    if not resolved.is_absolute():
        raise InvalidPathError("invalid vault path: path must be absolute", field="path")
    return resolved
