"""Tests for the campaign/global template merge and prompt assembly."""

import uuid

import pytest

from conftest import SECTIONS, make_template
from directreach.core.exceptions import ValidationError
from directreach.engine.templates import (
    assemble_prompt,
    check_template_order,
    merge_for_room,
    normalize_sections,
    template_stats,
)
from directreach.repositories.memory import InMemoryTemplateStore
from directreach.services.template_service import TemplateResolver


CAMPAIGN_ID = uuid.uuid4()


def names(templates):
    return [t.template_name for t in templates]


class TestMergeForRoom:
    """Campaign templates claim order slots."""

    def test_campaign_slots_shadow_globals(self):
        """Should return [c0, c1, g2, g3, g4] for campaign 0-1 and global 0-4."""
        campaign = [make_template(order=i, campaign_id=CAMPAIGN_ID, name=f"c{i}") for i in range(2)]
        globals_ = [make_template(order=i, name=f"g{i}") for i in range(5)]
        assert names(merge_for_room(campaign, globals_, "problem")) == ["c0", "c1", "g2", "g3", "g4"]

    def test_full_campaign_hides_every_global(self):
        campaign = [make_template(order=i, campaign_id=CAMPAIGN_ID, name=f"c{i}") for i in range(5)]
        globals_ = [make_template(order=i, name=f"g{i}") for i in range(5)]
        assert names(merge_for_room(campaign, globals_, "problem")) == ["c0", "c1", "c2", "c3", "c4"]

    def test_no_campaign_templates_shows_globals(self):
        globals_ = [make_template(order=i, name=f"g{i}") for i in (3, 0, 1)]
        assert names(merge_for_room([], globals_, "problem")) == ["g0", "g1", "g3"]

    def test_other_rooms_are_ignored(self):
        campaign = [make_template(room="offer", order=0, campaign_id=CAMPAIGN_ID, name="offer-c0")]
        globals_ = [make_template(order=0, name="g0")]
        assert names(merge_for_room(campaign, globals_, "problem")) == ["g0"]

    def test_merge_is_deterministic(self):
        campaign = [make_template(order=1, campaign_id=CAMPAIGN_ID, name="c1")]
        globals_ = [make_template(order=i, name=f"g{i}") for i in range(4)]
        first = merge_for_room(campaign, globals_, "problem")
        second = merge_for_room(list(reversed(campaign)), list(reversed(globals_)), "problem")
        assert [t.id for t in first] == [t.id for t in second]


class TestTemplateStats:

    def test_counts(self):
        campaign = [make_template(order=i, campaign_id=CAMPAIGN_ID) for i in range(2)]
        globals_ = [make_template(order=i) for i in range(5)]
        assert template_stats(campaign, globals_, "problem") == {
            "campaign_count": 2,
            "global_count": 5,
            "visible_global_count": 3,
            "shadowed_count": 2,
            "has_custom_templates": True,
        }

    def test_no_custom_templates(self):
        stats = template_stats([], [make_template(order=0)], "problem")
        assert stats["has_custom_templates"] is False
        assert stats["shadowed_count"] == 0


class TestPromptSections:

    def test_assembles_non_empty_sections_in_order(self):
        prompt = assemble_prompt({"constraints": "Keep it short.", "persona": "You are an SDR."})
        assert prompt == "## PERSONA\nYou are an SDR.\n\n## CONSTRAINTS\nKeep it short."

    def test_missing_sections_become_empty(self):
        normalized = normalize_sections({"persona": "Hi"})
        assert len(normalized) == 7
        assert normalized["examples"] == ""

    @pytest.mark.parametrize("sections", [
        {"tone": "casual"},
        {"persona": "   ", "constraints": ""},
        {"persona": 42},
        "not a dict",
    ])
    def test_rejects_bad_sections(self, sections):
        with pytest.raises(ValidationError):
            normalize_sections(sections)


class TestTemplateResolver:

    async def test_resolves_from_store(self):
        store = InMemoryTemplateStore(
            [make_template(order=i, campaign_id=CAMPAIGN_ID, name=f"c{i}") for i in range(2)]
            + [make_template(order=i, name=f"g{i}") for i in range(5)]
            + [make_template(order=0, campaign_id=uuid.uuid4(), name="other-campaign")]
        )
        resolver = TemplateResolver(store, limit=5)
        assert names(await resolver.resolve(CAMPAIGN_ID, "problem")) == ["c0", "c1", "g2", "g3", "g4"]

        stats = await resolver.stats(CAMPAIGN_ID, "problem")
        assert stats["shadowed_count"] == 2

    async def test_skips_templates_with_invalid_sections(self):
        broken = make_template(order=0, campaign_id=CAMPAIGN_ID, name="broken")
        broken.prompt_template = {"tone": "casual"}
        store = InMemoryTemplateStore([broken, make_template(order=0, name="g0")])
        resolver = TemplateResolver(store, limit=5)
        assert names(await resolver.resolve(CAMPAIGN_ID, "problem")) == ["g0"]

    def test_fixture_sections_are_valid(self):
        assert normalize_sections(SECTIONS)["persona"] == SECTIONS["persona"]

    async def test_skips_templates_outside_the_order_slots(self):
        """Should not let a template claim a slot past the last one."""
        store = InMemoryTemplateStore(
            [make_template(order=7, campaign_id=CAMPAIGN_ID, name="c7"), make_template(order=-1, name="g-1")]
            + [make_template(order=i, name=f"g{i}") for i in range(5)]
        )
        resolver = TemplateResolver(store, limit=6)
        assert names(await resolver.resolve(CAMPAIGN_ID, "problem")) == ["g0", "g1", "g2", "g3", "g4"]


@pytest.mark.parametrize("order", [-1, 5, "2", 1.0, True])
def test_check_template_order_rejects(order):
    with pytest.raises(ValidationError):
        check_template_order(order)


def test_check_template_order_accepts_every_slot():
    assert [check_template_order(i) for i in range(5)] == [0, 1, 2, 3, 4]
