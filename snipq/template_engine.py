from __future__ import annotations

import logging
import secrets
import uuid as uuid_lib
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Mapping, NamedTuple, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from jinja2 import TemplateSyntaxError, nodes, pass_context
from jinja2.runtime import Context
from jinja2.sandbox import SandboxedEnvironment

from snipq.errors import TemplateExecError, TemplateParseError

logger = logging.getLogger(__name__)

# Context key carrying counter values resolved by the engine before rendering.
COUNTER_VALUES_KEY = "_snipq_counters"

RANDOM_WORDS = ("alpha", "beta", "gamma", "delta", "epsilon", "zeta")


class CounterCall(NamedTuple):
    name: str
    pad: int


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Map a timezone name to a tzinfo; None means the local zone."""
    if not name or name == "Local":
        return None
    if name == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown timezone %r, using local time", name)
        return None


def display(value: Any) -> str:
    """String form used for output and for non-numeric comparisons."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _compare(a: Any, b: Any) -> int:
    # Non-numeric operands compare lexicographically by their string form,
    # so "10" < "9". This is a known limitation of the comparison built-ins.
    if _is_number(a) and _is_number(b):
        left, right = a, b
    else:
        left, right = display(a), display(b)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def _require_str(func: str, value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{func}() expects a string, got {type(value).__name__}")
    return value


def title_case(value: str) -> str:
    words = _require_str("title", value).split()
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def upper(value: str) -> str:
    return _require_str("upper", value).upper()


def lower(value: str) -> str:
    return _require_str("lower", value).lower()


def trim(value: str) -> str:
    return _require_str("trim", value).strip()


@pass_context
def date_func(context: Context, fmt: Optional[str] = None, tz_name: Optional[str] = None) -> str:
    if fmt is None:
        fmt = context.get("dateFormat") or "%Y-%m-%d"
    if tz_name is None:
        tz_name = context.get("timezone")
    now = context.get("now")
    if not isinstance(now, datetime):
        now = datetime.now()
    return now.astimezone(resolve_timezone(tz_name)).strftime(fmt)


def uuid_func(with_hyphens: bool = True) -> str:
    value = str(uuid_lib.uuid4())
    return value if with_hyphens else value.replace("-", "")


@pass_context
def counter_func(context: Context, name: str, pad: int = 0) -> str:
    """Format a counter resolved by the engine.

    Rendering never increments counters. Without a pre-resolved value this
    returns the padded placeholder 1.
    """
    values = context.get(COUNTER_VALUES_KEY) or {}
    value = values.get(name, 1)
    return f"{value:0{int(pad)}d}" if pad and int(pad) > 0 else str(value)


def random_func(*args: Any) -> str:
    if not args:
        return str(secrets.randbelow(101))
    arg = args[0]
    if arg == "word":
        return secrets.choice(RANDOM_WORDS)
    if isinstance(arg, int) and not isinstance(arg, bool):
        return str(secrets.randbelow(arg + 1))
    return "random"


def clipboard_func() -> str:
    # Clipboard contents are owned by the desktop shell, not the core.
    return ""


BUILTINS: Dict[str, Any] = {
    "date": date_func,
    "uuid": uuid_func,
    "counter": counter_func,
    "clipboard": clipboard_func,
    "random": random_func,
    "upper": upper,
    "lower": lower,
    "title": title_case,
    "trim": trim,
    "eq": lambda a, b: _compare(a, b) == 0,
    "ne": lambda a, b: _compare(a, b) != 0,
    "lt": lambda a, b: _compare(a, b) < 0,
    "le": lambda a, b: _compare(a, b) <= 0,
    "gt": lambda a, b: _compare(a, b) > 0,
    "ge": lambda a, b: _compare(a, b) >= 0,
}

STRING_FILTERS = ("upper", "lower", "title", "trim")


class TemplateEngine:
    """Renders snippet templates against a parameter map.

    Templates use Jinja2 syntax evaluated in a sandbox with a fixed table of
    built-in functions. Parameters shadow built-ins of the same name; the
    string transforms stay reachable as filters (``{{ upper|upper }}``).
    """

    def __init__(self) -> None:
        self.env = SandboxedEnvironment(autoescape=False, finalize=display)
        self.env.globals = dict(BUILTINS)
        for name in STRING_FILTERS:
            self.env.filters[name] = BUILTINS[name]

    def render(
        self,
        template_text: str,
        data: Mapping[str, Any],
        counters: Optional[Mapping[str, int]] = None,
    ) -> str:
        try:
            template = self.env.from_string(template_text)
        except TemplateSyntaxError as exc:
            raise TemplateParseError(f"template parse error: {exc}") from exc

        context = dict(data)
        context[COUNTER_VALUES_KEY] = dict(counters or {})
        try:
            return template.render(context)
        except Exception as exc:
            raise TemplateExecError(f"template execution error: {exc}") from exc

    def find_counter_calls(self, template_text: str) -> List[CounterCall]:
        """Return the literal ``counter(name, pad)`` calls, first use of each name."""
        try:
            tree = self.env.parse(template_text)
        except TemplateSyntaxError as exc:
            raise TemplateParseError(f"template parse error: {exc}") from exc

        calls: List[CounterCall] = []
        seen = set()
        for call in tree.find_all(nodes.Call):
            if not (isinstance(call.node, nodes.Name) and call.node.name == "counter"):
                continue
            args: List[Any] = list(call.args)
            keywords = {kw.key: kw.value for kw in call.kwargs}
            name_node = args[0] if args else keywords.get("name")
            pad_node = args[1] if len(args) > 1 else keywords.get("pad")
            if not isinstance(name_node, nodes.Const) or not isinstance(name_node.value, str):
                continue
            pad = 0
            if isinstance(pad_node, nodes.Const) and isinstance(pad_node.value, int):
                pad = pad_node.value
            if name_node.value in seen:
                continue
            seen.add(name_node.value)
            calls.append(CounterCall(name_node.value, pad))
        return calls
