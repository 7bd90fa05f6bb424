"""
DSL formatter for Actual Budget rules.

Converts rules to a compact line-per-rule text format that is much smaller
than the JSON and easy for an LLM to read:

    <id> <STAGE> IF <conditions> THEN <actions>

The format is output-only; updates go through the JSON rule objects.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

DSL_HEADER = (
    "# Rules DSL: [id] [stage] IF conditions THEN actions\n"
    "# Stages: PRE|RUN|POST  Ops: AND|OR\n"
    "# Refs: @payee:Name|@cat:Name|@acct:Name|@sched:Name\n"
    "# To update: get_rules with format=json for the full rule, then call_api_method updateRule\n"
)

NO_RULES = "# (no rules)"

CONDITION_FLAGS = ("inflow", "outflow", "month", "year")

# Characters that force a value or name to be quoted
_VALUE_SPECIALS = (" ", '"', ",", "(", ")")
_NAME_SPECIALS = (" ", ":", ",", "(", ")")
_ACTION_VALUE_SPECIALS = (" ", '"', ",")


@dataclass
class NameResolver:
    """ID -> display name maps used to render entity references."""
    payee: Dict[str, str] = field(default_factory=dict)
    category: Dict[str, str] = field(default_factory=dict)
    account: Dict[str, str] = field(default_factory=dict)
    schedule: Dict[str, str] = field(default_factory=dict)

    def reference(self, field_name: str, value: str) -> Optional[str]:
        """@payee:/@cat:/@acct: reference for an ID, if the field is resolvable."""
        lookup = _REFERENCE_FIELDS.get(field_name)
        if lookup is None:
            return None
        attr, prefix = lookup
        name = getattr(self, attr).get(value)
        if not name:
            return None
        return f"{prefix}:{_escape_name(name)}"


_REFERENCE_FIELDS = {
    "payee": ("payee", "@payee"),
    "category": ("category", "@cat"),
    "account": ("account", "@acct"),
}


def format_rules(rules: Iterable[Mapping[str, Any]], resolver: Optional[NameResolver] = None) -> str:
    """Format rules as DSL text, one rule per line, in input order."""
    lines = [format_rule(rule, resolver) for rule in rules]
    if not lines:
        return DSL_HEADER + "\n" + NO_RULES
    return DSL_HEADER + "\n" + "\n".join(lines)


def format_rule(rule: Mapping[str, Any], resolver: Optional[NameResolver] = None) -> str:
    conditions = _format_conditions(rule.get("conditions") or [], rule.get("conditionsOp"), resolver)
    actions = _format_actions(rule.get("actions") or [], resolver)
    return f"{rule.get('id')} {format_stage(rule.get('stage'))} IF {conditions} THEN {actions}"


def format_stage(stage: Optional[str]) -> str:
    if stage == "pre":
        return "PRE"
    if stage == "post":
        return "POST"
    return "RUN"


# ============================================================================
# CONDITIONS
# ============================================================================

def _format_conditions(
    conditions: List[Mapping[str, Any]],
    conditions_op: Optional[str],
    resolver: Optional[NameResolver],
) -> str:
    if not conditions:
        return "(always)"
    joiner = " AND " if conditions_op == "and" else " OR "
    return joiner.join(_format_condition(c, resolver) for c in conditions)


def _format_condition(cond: Mapping[str, Any], resolver: Optional[NameResolver]) -> str:
    field_name = cond.get("field")
    value = _format_value(cond.get("value"), field_name, resolver)
    flags = _format_condition_flags(cond.get("options"))
    return f"{field_name}{flags} {cond.get('op')} {value}"


def _format_condition_flags(options: Optional[Mapping[str, Any]]) -> str:
    if not options:
        return ""
    flags = [flag for flag in CONDITION_FLAGS if options.get(flag)]
    return f"[{','.join(flags)}]" if flags else ""


def _format_value(value: Any, field_name: str, resolver: Optional[NameResolver]) -> str:
    # oneOf / notOneOf
    if isinstance(value, list):
        return "(" + ",".join(_format_single_value(v, field_name, resolver) for v in value) + ")"

    # isbetween
    if isinstance(value, dict) and "num1" in value and "num2" in value:
        return f"({_format_scalar(value['num1'])},{_format_scalar(value['num2'])})"

    return _format_single_value(value, field_name, resolver)


def _format_single_value(value: Any, field_name: str, resolver: Optional[NameResolver]) -> str:
    if value is None or isinstance(value, (bool, int, float)):
        return _format_scalar(value)

    if isinstance(value, str):
        if resolver:
            reference = resolver.reference(field_name, value)
            if reference:
                return reference
        return _quote_if(value, _VALUE_SPECIALS)

    return _dump(value)


# ============================================================================
# ACTIONS
# ============================================================================

def _format_actions(actions: List[Mapping[str, Any]], resolver: Optional[NameResolver]) -> str:
    if not actions:
        return "(no action)"
    return "; ".join(_format_action(a, resolver) for a in actions)


def _format_action(action: Mapping[str, Any], resolver: Optional[NameResolver]) -> str:
    op = action.get("op")
    if op == "set":
        return _format_set_action(action, resolver)
    if op == "set-split-amount":
        return _format_set_split_amount_action(action)
    if op == "link-schedule":
        return _format_link_schedule_action(action, resolver)
    if op in ("prepend-notes", "append-notes"):
        return f'{op}("{_plain(action.get("value"))}")'
    if op == "delete-transaction":
        return "delete-transaction"
    return f"{op}({_dump(action)})"


def _format_set_action(action: Mapping[str, Any], resolver: Optional[NameResolver]) -> str:
    field_name = action.get("field") or "unknown"
    value = _format_action_value(action.get("value"), field_name, resolver)

    options = action.get("options") or {}
    parts = []
    if options.get("template"):
        parts.append(f"template:{options['template']}")
    if options.get("formula"):
        parts.append(f"formula:{options['formula']}")
    if options.get("splitIndex") is not None:
        parts.append(f"splitIndex:{_format_scalar(options['splitIndex'])}")

    suffix = f"[{','.join(parts)}]" if parts else ""
    return f"set({field_name}={value}){suffix}"


def _format_set_split_amount_action(action: Mapping[str, Any]) -> str:
    options = action.get("options") or {}
    parts = []
    if options.get("method"):
        parts.append(f"method:{options['method']}")
    if options.get("splitIndex") is not None:
        parts.append(f"splitIndex:{_format_scalar(options['splitIndex'])}")

    suffix = f"[{','.join(parts)}]" if parts else ""
    return f"set-split-amount({_plain(action.get('value'))}){suffix}"


def _format_link_schedule_action(action: Mapping[str, Any], resolver: Optional[NameResolver]) -> str:
    # value is a schedule object or a schedule ID
    value = action.get("value")
    schedule_id = value["id"] if isinstance(value, dict) and "id" in value else _plain(value)

    if resolver:
        name = resolver.schedule.get(schedule_id)
        if name:
            return f"link-schedule(@sched:{_escape_name(name)})"
    return f"link-schedule({schedule_id})"


def _format_action_value(value: Any, field_name: str, resolver: Optional[NameResolver]) -> str:
    if value is None or isinstance(value, (bool, int, float)):
        return _format_scalar(value)

    if isinstance(value, str):
        if resolver:
            reference = resolver.reference(field_name, value)
            if reference:
                return reference
        return _quote_if(value, _ACTION_VALUE_SPECIALS)

    return _dump(value)


# ============================================================================
# HELPERS
# ============================================================================

def _format_scalar(value: Any) -> str:
    """null / true / false / numbers without a trailing .0, as JSON writes them."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def _plain(value: Any) -> str:
    if value is None or isinstance(value, (bool, int, float)):
        return _format_scalar(value)
    if isinstance(value, str):
        return value
    return _dump(value)


def _quote_if(value: str, specials: Iterable[str]) -> str:
    if any(ch in value for ch in specials):
        escaped = value.replace('"', '\\"')
        return f'"{escaped}"'
    return value


def _escape_name(name: str) -> str:
    return _quote_if(name, _NAME_SPECIALS)


def _dump(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
