"""Trigger parsing and parameter merging.

A raw trigger looks like ``:ty?lang=vi&tone=casual``: everything before the
first ``?`` is the trigger, everything after it is a URL-encoded query string.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl

from snipq.errors import ParseError
from snipq.models import ParamValue, Params, ParsedTrigger

_BAD_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")
_WHITESPACE = re.compile(r"\s")

_TRUE_WORDS = {"true", "1", "yes", "on"}
_FALSE_WORDS = {"false", "0", "no", "off"}


def parse_trigger(raw: str) -> ParsedTrigger:
    trigger_part, sep, query = raw.partition("?")
    params: Dict[str, str] = {}
    if sep:
        if _BAD_PERCENT.search(query):
            raise ParseError(f"invalid percent-encoding in query: {query!r}")
        try:
            pairs = parse_qsl(query, keep_blank_values=True, errors="strict")
        except (UnicodeDecodeError, ValueError) as exc:
            raise ParseError(f"invalid query string {query!r}: {exc}") from exc
        for key, value in pairs:
            params.setdefault(key, value)
    return ParsedTrigger(trigger=trigger_part.strip(), params=params)


def normalize_trigger(trigger: str) -> str:
    return trigger.strip()


def validate_trigger(trigger: str) -> bool:
    """A usable trigger is non-empty and has no whitespace anywhere."""
    if not trigger:
        return False
    return _WHITESPACE.search(trigger) is None


def coerce_value(value: str) -> ParamValue:
    lowered = value.lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    return value


def merge_params(
    query_params: Optional[Mapping[str, str]],
    snippet_defaults: Optional[Mapping[str, Any]],
    global_defaults: Optional[Mapping[str, Any]],
) -> Params:
    """Overlay global defaults, then snippet defaults, then query params."""
    merged: Params = {}
    merged.update(global_defaults or {})
    merged.update(snippet_defaults or {})
    for key, value in (query_params or {}).items():
        merged[key] = coerce_value(value)
    return merged
