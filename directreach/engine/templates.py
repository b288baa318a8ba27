"""
Template merge policy and prompt section handling.

Campaign templates claim order slots; a global template is only visible in a
campaign when no campaign template holds its slot.
"""
from typing import Any, Dict, Iterable, List, Mapping

from directreach.core.exceptions import ValidationError
from directreach.engine.thresholds import Room, parse_room

MAX_TEMPLATES = 5
TEMPLATE_ORDERS = range(MAX_TEMPLATES)

# Prompt sections in assembly order, with their headers
PROMPT_SECTIONS = (
    ("persona", "PERSONA"),
    ("style_rules", "STYLE RULES"),
    ("output_spec", "OUTPUT SPECIFICATION"),
    ("personalization_guidelines", "PERSONALIZATION GUIDELINES"),
    ("constraints", "CONSTRAINTS"),
    ("examples", "EXAMPLES"),
    ("context_instructions", "CONTEXT INSTRUCTIONS"),
)
SECTION_KEYS = tuple(key for key, _ in PROMPT_SECTIONS)


def _room_of(template: Any) -> Room:
    return parse_room(getattr(template, "room_type"))


def _sort_key(template: Any, scope: int):
    return (template.template_order, scope, str(template.id))


def merge_for_room(
    campaign_templates: Iterable[Any],
    global_templates: Iterable[Any],
    room: Room,
    limit: int = MAX_TEMPLATES,
) -> List[Any]:
    """
    Merge campaign and global templates for one room.

    Every campaign template is kept and claims its order slot. Global
    templates whose slot is claimed are shadowed. The result is sorted by
    order (campaign first on a tie) and truncated to `limit`.
    """
    room = parse_room(room)
    campaign = [t for t in campaign_templates if _room_of(t) == room]
    claimed = {t.template_order for t in campaign}
    visible_global = [
        t for t in global_templates
        if _room_of(t) == room and t.template_order not in claimed
    ]

    keyed = [(_sort_key(t, 0), t) for t in campaign] + [(_sort_key(t, 1), t) for t in visible_global]
    keyed.sort(key=lambda pair: pair[0])
    return [t for _, t in keyed[:limit]]


def template_stats(
    campaign_templates: Iterable[Any],
    global_templates: Iterable[Any],
    room: Room,
) -> Dict[str, Any]:
    """Counts behind a merged template view, for the admin screens."""
    room = parse_room(room)
    campaign = [t for t in campaign_templates if _room_of(t) == room]
    globals_ = [t for t in global_templates if _room_of(t) == room]
    claimed = {t.template_order for t in campaign}
    shadowed = sum(1 for t in globals_ if t.template_order in claimed)
    return {
        "campaign_count": len(campaign),
        "global_count": len(globals_),
        "visible_global_count": len(globals_) - shadowed,
        "shadowed_count": shadowed,
        "has_custom_templates": bool(campaign),
    }


def check_template_order(order: Any) -> int:
    if isinstance(order, bool) or not isinstance(order, int) or order not in TEMPLATE_ORDERS:
        raise ValidationError(
            f"template order must be between 0 and {MAX_TEMPLATES - 1}, got {order!r}", field="template_order"
        )
    return order


def normalize_sections(sections: Mapping[str, Any]) -> Dict[str, str]:
    """
    Validate prompt sections and return all seven keys.

    Unknown keys are rejected, missing keys become empty strings and at
    least one section must carry text.
    """
    if not isinstance(sections, Mapping):
        raise ValidationError("prompt template must be an object", field="prompt_template")

    unknown = sorted(set(sections) - set(SECTION_KEYS))
    if unknown:
        raise ValidationError(f"unknown sections: {', '.join(unknown)}", field="prompt_template")

    normalized = {}
    for key in SECTION_KEYS:
        value = sections.get(key) or ""
        if not isinstance(value, str):
            raise ValidationError(f"section '{key}' must be text", field="prompt_template")
        normalized[key] = value

    if not any(v.strip() for v in normalized.values()):
        raise ValidationError("at least one section must be filled in", field="prompt_template")
    return normalized


def assemble_prompt(sections: Mapping[str, Any]) -> str:
    """Join the non-empty sections in fixed order under markdown headers."""
    sections = normalize_sections(sections)
    parts = []
    for key, header in PROMPT_SECTIONS:
        text = sections[key].strip()
        if text:
            parts.append(f"## {header}\n{text}")
    return "\n\n".join(parts)
