from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

# Parameter values flowing from the trigger parser into the template engine.
ParamValue = Union[str, bool, int, float, datetime]
Params = Dict[str, ParamValue]

DEFAULT_HISTORY_LIMIT = 200
MAX_HISTORY_LIMIT = 10000


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    return value.isoformat()


def parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def json_default(value: Any) -> Any:
    """`default=` hook for json.dumps covering datetimes and YAML dates."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, (set, tuple)):
        return list(value)
    return str(value)


@dataclass
class Group:
    id: str
    name: str
    description: str = ""
    icon: str = ""
    order: int = 0
    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.description:
            data["description"] = self.description
        if self.icon:
            data["icon"] = self.icon
        if self.order:
            data["order"] = self.order
        data["enabled"] = self.enabled
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Group":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            icon=str(data.get("icon") or ""),
            order=int(data.get("order") or 0),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class Snippet:
    id: str
    name: str
    trigger: str
    template: str
    group_id: str = ""
    description: str = ""
    tags: List[str] = field(default_factory=list)
    strict: bool = False
    defaults: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self, include_group: bool = False) -> Dict[str, Any]:
        """Serialize for disk.

        The snippet's YAML file never stores the group; it is derived from the
        directory the file lives in. Snapshots and front-ends ask for it.
        """
        data: Dict[str, Any] = {"id": self.id, "name": self.name, "trigger": self.trigger}
        if self.description:
            data["description"] = self.description
        if self.tags:
            data["tags"] = list(self.tags)
        if self.strict:
            data["strict"] = True
        if self.defaults:
            data["defaults"] = dict(self.defaults)
        data["template"] = self.template
        if include_group:
            data["groupId"] = self.group_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], group_id: Optional[str] = None) -> "Snippet":
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            trigger=str(data.get("trigger") or ""),
            template=str(data.get("template") or ""),
            group_id=group_id if group_id is not None else str(data.get("groupId") or ""),
            description=str(data.get("description") or ""),
            tags=[str(t) for t in tags],
            strict=bool(data.get("strict", False)),
            defaults=dict(data.get("defaults") or {}),
        )


@dataclass
class Settings:
    prefix: str = ":"
    expand_key: str = "Tab"
    strict_boundaries: bool = True
    excluded_apps: List[str] = field(default_factory=list)
    locale: str = "en-US"
    default_date_format: str = "%Y-%m-%d"
    timezone: str = "Local"
    history_enabled: bool = True
    history_limit: int = DEFAULT_HISTORY_LIMIT
    pin_for_sensitive: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "prefix": self.prefix,
            "expandKey": self.expand_key,
            "strictBoundaries": self.strict_boundaries,
        }
        if self.excluded_apps:
            data["excludedApps"] = list(self.excluded_apps)
        data.update(
            {
                "locale": self.locale,
                "defaultDateFormat": self.default_date_format,
                "timezone": self.timezone,
                "historyEnabled": self.history_enabled,
                "historyLimit": self.history_limit,
                "pinForSensitive": self.pin_for_sensitive,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        base = cls()
        return cls(
            prefix=str(data.get("prefix", base.prefix)),
            expand_key=str(data.get("expandKey", base.expand_key)),
            strict_boundaries=bool(data.get("strictBoundaries", base.strict_boundaries)),
            excluded_apps=[str(a) for a in (data.get("excludedApps") or [])],
            locale=str(data.get("locale", base.locale)),
            default_date_format=str(data.get("defaultDateFormat", base.default_date_format)),
            timezone=str(data.get("timezone", base.timezone)),
            history_enabled=bool(data.get("historyEnabled", base.history_enabled)),
            history_limit=int(data.get("historyLimit", base.history_limit)),
            pin_for_sensitive=bool(data.get("pinForSensitive", base.pin_for_sensitive)),
        )


@dataclass
class Counter:
    value: int = 1
    step: int = 1
    start: int = 1
    updated_at: datetime = field(default_factory=lambda: datetime.now().astimezone())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "step": self.step,
            "start": self.start,
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Counter":
        counter = cls(
            value=int(data.get("value", 1)),
            step=int(data.get("step", 1)),
            start=int(data.get("start", 1)),
        )
        if data.get("updatedAt"):
            counter.updated_at = parse_timestamp(data["updatedAt"])
        return counter


@dataclass
class CounterOpts:
    pad: int = 0
    step: int = 0


@dataclass
class HistoryEntry:
    timestamp: datetime
    snippet_id: str
    output: str
    used_params: Dict[str, Any] = field(default_factory=dict)
    app_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": format_timestamp(self.timestamp),
            "snippetId": self.snippet_id,
            "output": self.output,
            "usedParams": dict(self.used_params),
        }
        if self.app_id:
            data["appId"] = self.app_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            snippet_id=str(data["snippetId"]),
            output=str(data.get("output") or ""),
            used_params=dict(data.get("usedParams") or {}),
            app_id=str(data.get("appId") or ""),
        )


@dataclass
class ParsedTrigger:
    trigger: str
    params: Dict[str, str] = field(default_factory=dict)


@dataclass
class Rendered:
    output: str
    used_snippet: str
    used_params: Params = field(default_factory=dict)
    # Reserved for cursor placement markers; always 0 for now.
    cursor_offset: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output": self.output,
            "cursorOffset": self.cursor_offset,
            "usedSnippet": self.used_snippet,
            "usedParams": dict(self.used_params),
        }
