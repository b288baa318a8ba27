"""Tests for rule types, overrides and the rule catalog."""

import pytest

from directreach.core.exceptions import ValidationError
from directreach.engine.rules import (
    DEFAULT_SCORING_RULES,
    ExclusionRule,
    PatternRule,
    PresenceRule,
    merge_rule,
    required_keys,
    rules_from_config,
    rules_to_config,
    validate_room_override,
    validate_rule,
)
from directreach.engine.thresholds import Room


class TestCatalog:
    """Default global rules."""

    def test_problem_room_keys(self):
        assert set(required_keys(Room.PROBLEM)) == {
            "revenue", "company_size", "industry_alignment", "target_states",
            "visited_target_pages", "multiple_visits", "role_match", "minimum_threshold",
        }

    def test_solution_and_offer_keys(self):
        assert set(required_keys("solution")) == {
            "email_open", "email_click", "email_multiple_click",
            "page_visit", "key_page_visit", "ad_engagement",
        }
        assert set(required_keys("offer")) == {
            "demo_request", "contact_form", "pricing_page",
            "pricing_question", "partner_referral", "webinar_attendance",
        }

    def test_industry_rule_carries_exclusion_penalty(self):
        rule = DEFAULT_SCORING_RULES[Room.PROBLEM]["industry_alignment"]
        assert isinstance(rule, ExclusionRule)
        assert rule.points == 15
        assert rule.exclusion_points == -200

    def test_defaults_that_start_disabled(self):
        assert not DEFAULT_SCORING_RULES[Room.PROBLEM]["role_match"].enabled
        assert not DEFAULT_SCORING_RULES[Room.PROBLEM]["visited_target_pages"].enabled
        assert not DEFAULT_SCORING_RULES[Room.OFFER]["webinar_attendance"].enabled


class TestValidateRule:
    """Discriminated union parsing."""

    def test_picks_variant_from_kind(self):
        rule = validate_rule({"kind": "presence", "key": "email_open", "attribute": "email_opens", "points": 2})
        assert isinstance(rule, PresenceRule)

    def test_rejects_positive_exclusion_points(self):
        with pytest.raises(ValidationError):
            validate_rule({
                "kind": "exclusion", "key": "industry_alignment", "attribute": "industry",
                "exclusion_points": 50,
            })

    def test_rejects_unknown_kind(self):
        with pytest.raises(ValidationError):
            validate_rule({"kind": "mystery", "key": "x", "attribute": "y"})

    def test_rules_are_immutable(self):
        rule = DEFAULT_SCORING_RULES[Room.SOLUTION]["email_open"]
        with pytest.raises(Exception):
            rule.points = 99


class TestMergeRule:
    """Field-by-field overlay."""

    def test_only_set_fields_change(self):
        base = DEFAULT_SCORING_RULES[Room.PROBLEM]["industry_alignment"]
        merged = merge_rule(base, {"values": ["Healthcare"]})
        assert merged.values == frozenset({"Healthcare"})
        assert merged.points == base.points
        assert merged.exclusion_points == base.exclusion_points
        assert merged.enabled is True

    def test_aliases_map_onto_rule_fields(self):
        page_visit = merge_rule(DEFAULT_SCORING_RULES[Room.SOLUTION]["page_visit"], {"points_per_visit": 4})
        assert page_visit.points == 4

        visits = merge_rule(DEFAULT_SCORING_RULES[Room.PROBLEM]["multiple_visits"], {"minimum_visits": 5})
        assert visits.minimum == 5

        key_pages = merge_rule(DEFAULT_SCORING_RULES[Room.SOLUTION]["key_page_visit"], {"key_pages": ["/case-studies"]})
        assert key_pages.patterns == ("/case-studies",)

    def test_target_roles_are_flattened_into_patterns(self):
        base = DEFAULT_SCORING_RULES[Room.PROBLEM]["role_match"]
        merged = merge_rule(base, {"target_roles": {"finance": ["CFO", "Controller"]}})
        assert isinstance(merged, PatternRule)
        assert merged.patterns == ("CFO", "Controller")
        assert merged.extra["target_roles"] == {"finance": ["CFO", "Controller"]}

    def test_unknown_fields_land_in_extra(self):
        base = DEFAULT_SCORING_RULES[Room.OFFER]["contact_form"]
        merged = merge_rule(base, {"detection_method": "utm_content"})
        assert merged.extra["detection_method"] == "utm_content"

    def test_kind_cannot_change(self):
        base = DEFAULT_SCORING_RULES[Room.SOLUTION]["email_open"]
        with pytest.raises(ValidationError):
            merge_rule(base, {"kind": "capped"})

    def test_bad_type_is_rejected(self):
        base = DEFAULT_SCORING_RULES[Room.SOLUTION]["email_open"]
        with pytest.raises(ValidationError):
            merge_rule(base, {"points": "lots"})


class TestValidateRoomOverride:

    def test_unknown_rule_key(self):
        with pytest.raises(ValidationError):
            validate_room_override(Room.SOLUTION, {"revenue": {"points": 5}})

    def test_returns_storable_fields(self):
        cleaned = validate_room_override(Room.PROBLEM, {"industry_alignment": {"excludedValues": ["Gambling"]}})
        assert cleaned == {"industry_alignment": {"excluded_values": ["Gambling"]}}

    def test_none_clears_a_field_without_failing(self):
        cleaned = validate_room_override(Room.PROBLEM, {"revenue": {"points": None}})
        assert cleaned == {"revenue": {"points": None}}


class TestConfigRoundTrip:

    def test_stored_config_reads_back_to_the_same_rules(self):
        rules = DEFAULT_SCORING_RULES[Room.PROBLEM]
        assert rules_from_config(Room.PROBLEM, rules_to_config(rules)) == rules

    def test_missing_keys_fall_back_to_defaults(self):
        rules = rules_from_config(Room.OFFER, {"demo_request": {"points": 30}})
        assert rules["demo_request"].points == 30
        assert rules["pricing_page"] == DEFAULT_SCORING_RULES[Room.OFFER]["pricing_page"]
