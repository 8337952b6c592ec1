from __future__ import annotations

from typing import Optional


class SnipqError(Exception):
    """Base class for every error raised by the snipq core."""


class ParseError(SnipqError):
    """Raised when a raw trigger or its query string cannot be decoded."""


class NotFoundError(SnipqError):
    """Raised when a snippet, group, counter or backup does not exist."""


class ValidationError(SnipqError):
    """A field on a snippet, group, settings object or path is invalid."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidSnippetError(ValidationError):
    pass


class InvalidGroupError(ValidationError):
    pass


class InvalidSettingsError(ValidationError):
    pass


class InvalidPathError(ValidationError):
    pass


class DuplicateError(SnipqError):
    """Raised on trigger, group or ID collisions."""


class ExcludedError(SnipqError):
    """Raised when expansion is requested from an excluded application."""


class TemplateError(SnipqError):
    pass


class TemplateParseError(TemplateError):
    pass


class TemplateExecError(TemplateError):
    pass


class VaultIOError(SnipqError):
    """Filesystem failure while loading, saving, backing up or restoring."""


class NotLoadedError(SnipqError):
    """Raised when a vault operation needs a path but none was loaded."""


class MissingGroupError(InvalidSnippetError, NotFoundError):
    """A snippet references a group that is not in the vault."""
