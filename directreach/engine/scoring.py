"""
Scoring engine - evaluates a room's rule set against prospect attributes.

Additive rules are summed in any order; exclusion is checked before
inclusion inside a rule and gating rules run after every additive rule.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from directreach.engine.rules import (
    BaseRule,
    CappedRule,
    ExclusionRule,
    GatingRule,
    PatternRule,
    PresenceRule,
    ValueMatchRule,
)
from directreach.engine.thresholds import ROOMS, Room, RoomThresholds

logger = logging.getLogger(__name__)

MAX_LEAD_SCORE = 100


class ProspectAttributes(BaseModel):
    """Prospect signals the rules read."""
    estimated_revenue: Optional[str] = None
    employee_count: Optional[str] = None
    industry: Optional[str] = None
    state: Optional[str] = None
    job_title: Optional[str] = None
    page_views: int = 0
    recent_page_urls: List[str] = Field(default_factory=list)
    recent_page_count: Optional[int] = None
    referrer: Optional[str] = None
    email_opens: int = 0
    email_clicks: int = 0

    def value_of(self, attribute: str) -> Any:
        if attribute == "recent_page_count":
            if self.recent_page_count is not None:
                return self.recent_page_count
            return len(self.recent_page_urls)
        if attribute == "engagement_trail":
            # Form submissions show up either as a thank-you URL or in the referrer tag
            trail = list(self.recent_page_urls)
            if self.referrer:
                trail.append(self.referrer)
            return trail
        return getattr(self, attribute, None)


class RoomScore(BaseModel):
    total_points: int = 0
    raw_points: int = 0
    triggered_rules: List[str] = Field(default_factory=list)
    disqualified: bool = False
    gated: bool = False


class ProspectScore(BaseModel):
    rooms: Dict[Room, RoomScore]
    total_score: int
    current_room: Optional[Room] = None
    disqualified: bool = False


class ScoringEngine:
    """Stateless rule evaluator."""

    def score(self, attributes: ProspectAttributes, rules: Mapping[str, BaseRule]) -> RoomScore:
        """Score one room's rules against a prospect."""
        if isinstance(attributes, Mapping):
            attributes = ProspectAttributes(**attributes)

        total = 0
        triggered: List[str] = []
        disqualified = False
        gates: List[GatingRule] = []

        for key, rule in rules.items():
            if not rule.enabled:
                continue
            if isinstance(rule, GatingRule):
                gates.append(rule)
                continue

            value = attributes.value_of(rule.attribute)
            if isinstance(rule, ExclusionRule) and _matches_value(rule, value, rule.excluded_values):
                total += rule.exclusion_points
                triggered.append(key)
                if rule.exclusion_points < 0:
                    disqualified = True
                continue

            points = self._additive_points(rule, value)
            if points:
                total += points
                triggered.append(key)

        raw = total
        gated = False
        # An excluded room is already out; zeroing it would hide the penalty
        for gate in gates if not disqualified else ():
            if total < gate.required_score:
                logger.debug(f"Gate {gate.key} failed: {total} < {gate.required_score}")
                gated = True
        if gated:
            total = 0
            disqualified = True

        return RoomScore(
            total_points=total,
            raw_points=raw,
            triggered_rules=triggered,
            disqualified=disqualified,
            gated=gated,
        )

    def classify(self, score: int, thresholds: RoomThresholds) -> Room:
        return thresholds.classify(score)

    def score_all(
        self,
        attributes: ProspectAttributes,
        rules_by_room: Mapping[Room, Mapping[str, BaseRule]],
        thresholds: RoomThresholds,
    ) -> ProspectScore:
        """
        Score every room and place the prospect.

        The lead score is the sum of the room scores capped at 100. A
        prospect with no positive score is not placed in any room.
        """
        if isinstance(attributes, Mapping):
            attributes = ProspectAttributes(**attributes)

        rooms = {room: self.score(attributes, rules_by_room.get(room, {})) for room in ROOMS}
        total = min(sum(r.total_points for r in rooms.values()), MAX_LEAD_SCORE)
        current_room = thresholds.classify(total) if total > 0 else None

        # A failed gate only zeroes its room; exclusions disqualify the prospect
        return ProspectScore(
            rooms=rooms,
            total_score=total,
            current_room=current_room,
            disqualified=any(r.disqualified and not r.gated for r in rooms.values()),
        )

    def _additive_points(self, rule: BaseRule, value: Any) -> int:
        if isinstance(rule, PresenceRule):
            return rule.points if _count(value) >= rule.minimum else 0

        if isinstance(rule, CappedRule):
            points = rule.points * _count(value)
            if rule.max_points is not None:
                points = min(points, rule.max_points)
            return points

        if isinstance(rule, ValueMatchRule):
            # Empty values is a wildcard
            if not rule.values or _matches_value(rule, value, rule.values):
                return rule.points
            return 0

        if isinstance(rule, PatternRule):
            return rule.points if _matches_pattern(rule, value) else 0

        return 0


def _count(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _matches_value(rule: ValueMatchRule, value: Any, candidates) -> bool:
    if value is None or value == "" or not candidates:
        return False
    value = str(value)

    if rule.match_mode == "exact":
        return value in candidates
    if rule.match_mode == "casefold":
        folded = value.strip().casefold()
        return any(folded == c.strip().casefold() for c in candidates)
    # contains: the stored value may be a pipe-separated list of industries
    lowered = value.lower()
    for candidate in candidates:
        for part in candidate.split("|"):
            part = part.strip().lower()
            if part and part in lowered:
                return True
    return False


def _matches_pattern(rule: PatternRule, value: Any) -> bool:
    if value is None or not rule.patterns:
        return False
    texts = value if isinstance(value, (list, tuple)) else [value]
    texts = [str(t).lower() for t in texts if t]

    for pattern in rule.patterns:
        needle = pattern.lower()
        if not needle:
            continue
        for text in texts:
            if rule.match_type == "exact":
                if text.strip() == needle.strip():
                    return True
            elif needle in text:
                return True
    return False


scoring_engine = ScoringEngine()
