"""
Scoring rule types and the rule catalog.

Rules are immutable pydantic models discriminated by `kind`. Every room has a
fixed set of rule keys; the catalog below holds the global defaults for each
key and therefore also defines which keys a room accepts and which attribute
each rule reads.
"""
from typing import Any, Dict, FrozenSet, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter, field_serializer
from typing_extensions import Annotated

from directreach.core.exceptions import ValidationError
from directreach.engine.thresholds import Room, parse_room


class BaseRule(BaseModel):
    """Fields every rule shares."""
    key: str
    enabled: bool = True
    points: int = 0
    attribute: str
    extra: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True


class PresenceRule(BaseRule):
    """Awards `points` once a count attribute reaches `minimum`."""
    kind: Literal["presence"] = "presence"
    minimum: int = Field(default=1, ge=1)


class CappedRule(BaseRule):
    """Awards `points` per counted item, clamped to `max_points` when set."""
    kind: Literal["capped"] = "capped"
    max_points: Optional[int] = Field(default=None, ge=0)


class ValueMatchRule(BaseRule):
    """
    Awards `points` when a categorical attribute is one of `values`.
    An empty `values` set matches any prospect.
    """
    kind: Literal["value_match"] = "value_match"
    values: FrozenSet[str] = frozenset()
    match_mode: Literal["exact", "casefold", "contains"] = "exact"

    @field_serializer("values")
    def _sorted_values(self, values: FrozenSet[str]):
        return sorted(values)


class ExclusionRule(ValueMatchRule):
    """
    Value match with a second, exclusion list. A value found in
    `excluded_values` scores `exclusion_points` instead of `points`, even
    when it is also listed in `values`.
    """
    kind: Literal["exclusion"] = "exclusion"
    excluded_values: FrozenSet[str] = frozenset()
    exclusion_points: int = Field(default=0, le=0)

    @field_serializer("excluded_values")
    def _sorted_excluded(self, values: FrozenSet[str]):
        return sorted(values)


class PatternRule(BaseRule):
    """Awards `points` once when any pattern is found in a text/URL attribute."""
    kind: Literal["pattern"] = "pattern"
    patterns: Tuple[str, ...] = ()
    match_type: Literal["contains", "exact"] = "contains"


class GatingRule(BaseRule):
    """Room-level minimum: the room scores nothing below `required_score`."""
    kind: Literal["gating"] = "gating"
    required_score: int = Field(default=0, ge=0)


ScoringRule = Annotated[
    Union[PresenceRule, CappedRule, ValueMatchRule, ExclusionRule, PatternRule, GatingRule],
    Field(discriminator="kind"),
]

_rule_adapter = TypeAdapter(ScoringRule)

RULE_KINDS = {
    "presence": PresenceRule,
    "capped": CappedRule,
    "value_match": ValueMatchRule,
    "exclusion": ExclusionRule,
    "pattern": PatternRule,
    "gating": GatingRule,
}

# Fields an override may never change
PROTECTED_FIELDS = {"key", "kind", "attribute"}

# Parameter names used by the admin screens, mapped onto rule fields
FIELD_ALIASES = {
    "points_per_visit": "points",
    "minimum_visits": "minimum",
    "minimum_clicks": "minimum",
    "key_pages": "patterns",
    "utm_sources": "patterns",
    "page_urls": "patterns",
    "excludedValues": "excluded_values",
    "exclusionPoints": "exclusion_points",
    "requiredScore": "required_score",
    "maxPoints": "max_points",
}


def _rule(kind: str, key: str, attribute: str, **fields) -> BaseRule:
    return RULE_KINDS[kind](key=key, attribute=attribute, **fields)


DEFAULT_SCORING_RULES: Dict[Room, Dict[str, BaseRule]] = {
    Room.PROBLEM: {
        "revenue": _rule("value_match", "revenue", "estimated_revenue", points=10),
        "company_size": _rule("value_match", "company_size", "employee_count", points=10),
        "industry_alignment": _rule(
            "exclusion", "industry_alignment", "industry",
            points=15, match_mode="contains", exclusion_points=-200,
        ),
        "target_states": _rule("value_match", "target_states", "state", points=5, match_mode="casefold"),
        "visited_target_pages": _rule(
            "capped", "visited_target_pages", "recent_page_urls",
            enabled=False, points=10, max_points=30,
        ),
        "multiple_visits": _rule("presence", "multiple_visits", "page_views", points=5, minimum=2),
        "role_match": _rule(
            "pattern", "role_match", "job_title",
            enabled=False, points=5,
            patterns=(
                "CEO", "President", "Director", "VP", "Chief",
                "Engineer", "Developer", "CTO",
                "Marketing", "CMO", "Brand",
                "Sales", "Business Development",
            ),
            extra={"target_roles": {
                "decision_makers": ["CEO", "President", "Director", "VP", "Chief"],
                "technical": ["Engineer", "Developer", "CTO"],
                "marketing": ["Marketing", "CMO", "Brand"],
                "sales": ["Sales", "Business Development"],
            }},
        ),
        "minimum_threshold": _rule("gating", "minimum_threshold", "room_score", required_score=20),
    },
    Room.SOLUTION: {
        "email_open": _rule("presence", "email_open", "email_opens", points=2),
        "email_click": _rule("presence", "email_click", "email_clicks", points=5),
        "email_multiple_click": _rule("presence", "email_multiple_click", "email_clicks", points=8, minimum=2),
        "page_visit": _rule("capped", "page_visit", "recent_page_count", points=3, max_points=15),
        "key_page_visit": _rule(
            "pattern", "key_page_visit", "recent_page_urls",
            points=10, patterns=("/pricing", "/demo", "/contact"),
        ),
        "ad_engagement": _rule(
            "pattern", "ad_engagement", "referrer",
            points=5, patterns=("google", "linkedin", "facebook"),
        ),
    },
    Room.OFFER: {
        "demo_request": _rule(
            "pattern", "demo_request", "recent_page_urls",
            points=25, patterns=("/demo/requested", "/demo/confirmation"),
        ),
        "contact_form": _rule(
            "pattern", "contact_form", "engagement_trail",
            points=20, patterns=("form_submitted", "thank", "contact"),
        ),
        "pricing_page": _rule(
            "pattern", "pricing_page", "recent_page_urls",
            points=15, patterns=("/pricing", "/plans"),
        ),
        "pricing_question": _rule(
            "pattern", "pricing_question", "referrer",
            points=20, patterns=("pricing_inquiry",),
        ),
        "partner_referral": _rule(
            "pattern", "partner_referral", "referrer",
            points=15, patterns=("partner_referral",),
        ),
        "webinar_attendance": _rule("pattern", "webinar_attendance", "referrer", enabled=False, points=0),
    },
}


def required_keys(room: Room):
    return tuple(DEFAULT_SCORING_RULES[parse_room(room)].keys())


def validate_rule(data: Mapping[str, Any]) -> BaseRule:
    """Validate a full rule definition into its typed variant."""
    try:
        return _rule_adapter.validate_python(dict(data))
    except ValueError as e:
        key = data.get("key") if isinstance(data, Mapping) else None
        raise ValidationError(_describe(e), field=key)


def normalize_override(rule: BaseRule, fields: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Translate a partial override for `rule` into rule field names.

    Aliased admin parameters are renamed, `target_roles` and `utm_content`
    are folded into `patterns`, and anything the rule type does not declare
    is kept under `extra`.
    """
    if not isinstance(fields, Mapping):
        raise ValidationError("rule override must be an object", field=rule.key)

    known = set(type(rule).model_fields) - PROTECTED_FIELDS
    normalized: Dict[str, Any] = {}
    extra: Dict[str, Any] = dict(fields.get("extra") or {})

    for name, value in fields.items():
        if name == "extra":
            continue
        if name in PROTECTED_FIELDS:
            if value != getattr(rule, name):
                raise ValidationError(f"'{name}' cannot be overridden", field=rule.key)
            continue
        target = FIELD_ALIASES.get(name, name)
        if name == "target_roles" and "patterns" in known:
            if not isinstance(value, Mapping):
                raise ValidationError("target_roles must map categories to keywords", field=rule.key)
            normalized["patterns"] = tuple(kw for keywords in value.values() for kw in keywords)
            extra["target_roles"] = {k: list(v) for k, v in value.items()}
        elif name == "utm_content" and "patterns" in known:
            normalized["patterns"] = (value,) if value else ()
            extra["utm_content"] = value
        elif target in known:
            normalized[target] = value
        else:
            extra[name] = value

    if extra:
        normalized["extra"] = extra
    return normalized


def merge_rule(rule: BaseRule, fields: Mapping[str, Any]) -> BaseRule:
    """Overlay the fields of a partial override on `rule`, field by field."""
    normalized = normalize_override(rule, fields)
    data = rule.model_dump()
    extra = {**rule.extra, **normalized.pop("extra", {})}
    data.update(normalized)
    data["extra"] = extra
    return validate_rule(data)


def validate_room_override(room: Room, overrides: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Check a partial rule override map for one room.

    Every key must be a rule of that room and every field must produce a
    valid rule when merged over the default. A field given as None clears
    it. Returns the override in rule field names, ready to store.
    """
    room = parse_room(room)
    if not isinstance(overrides, Mapping):
        raise ValidationError("rule overrides must be an object", field=room.value)

    defaults = DEFAULT_SCORING_RULES[room]
    cleaned: Dict[str, Dict[str, Any]] = {}
    for key, fields in overrides.items():
        if key not in defaults:
            raise ValidationError(f"unknown rule '{key}' for room '{room.value}'", field=key)
        normalized = normalize_override(defaults[key], fields)
        # None clears a field, it is not merged
        merge_rule(defaults[key], {k: v for k, v in normalized.items() if v is not None})
        if normalized:
            cleaned[key] = _to_storable(normalized)
    return cleaned


def rules_from_config(room: Room, config: Mapping[str, Any]) -> Dict[str, BaseRule]:
    """Read a stored room configuration, filling missing keys from the defaults."""
    room = parse_room(room)
    rules = {}
    for key, default in DEFAULT_SCORING_RULES[room].items():
        stored = (config or {}).get(key)
        rules[key] = merge_rule(default, stored) if stored else default
    return rules


def rules_to_config(rules: Mapping[str, BaseRule]) -> Dict[str, Dict[str, Any]]:
    return {key: rule.model_dump(mode="json", exclude={"key", "attribute", "kind"}) for key, rule in rules.items()}


def _to_storable(fields: Dict[str, Any]) -> Dict[str, Any]:
    storable = {}
    for name, value in fields.items():
        if isinstance(value, (set, frozenset)):
            value = sorted(value)
        elif isinstance(value, tuple):
            value = list(value)
        storable[name] = value
    return storable


def _describe(exc: Exception) -> str:
    errors = getattr(exc, "errors", None)
    if callable(errors):
        parts = []
        for err in errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p not in RULE_KINDS)
            parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
        if parts:
            return "; ".join(parts)
    return str(exc)
