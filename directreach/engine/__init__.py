from .thresholds import Room, ROOMS, RoomThresholds, DEFAULT_THRESHOLDS, parse_room
from .rules import (
    BaseRule, PresenceRule, CappedRule, ValueMatchRule, ExclusionRule, PatternRule, GatingRule,
    ScoringRule, DEFAULT_SCORING_RULES, merge_rule, validate_room_override,
)
from .scoring import ScoringEngine, ProspectAttributes, RoomScore, ProspectScore, scoring_engine
from .templates import merge_for_room, template_stats, assemble_prompt, normalize_sections
from .tracking import EmailStatus, advance
