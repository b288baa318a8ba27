"""API tests through the ASGI app."""

import asyncio
import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from conftest import FakeGenerator, add_template
from directreach.api.deps import get_draft_writer, get_generator, get_rate_limiter
from directreach.core.debounce import DebouncedWriter
from directreach.database import get_session
from directreach.main import app
from directreach.models.client import Prospect
from directreach.repositories.settings_repo import ClientSettingsRepository, GlobalConfigRepository
from directreach.services.settings_resolver import SettingsResolver


THRESHOLDS = {"problem_max": 30, "solution_max": 50, "offer_min": 51}


@pytest.fixture
def ai():
    """Mutable holder for the generator the app sees."""
    return {"generator": None}


@pytest_asyncio.fixture
async def client(session_factory, rate_limiter, ai):
    async def override_session():
        async with session_factory() as session:
            yield session

    async def flush_draft(client_id, draft):
        async with session_factory() as session:
            resolver = SettingsResolver(ClientSettingsRepository(session), GlobalConfigRepository(session))
            await resolver.save_draft(client_id, draft)

    writer = DebouncedWriter(flush_draft, delay=0.05)
    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_generator] = lambda: ai["generator"]
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_draft_writer] = lambda: writer

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http

    await writer.close(flush=False)
    app.dependency_overrides.clear()


class TestHealth:

    async def test_root_and_health(self, client):
        assert (await client.get("/")).status_code == 200
        response = await client.get("/health")
        assert response.json()["status"] == "healthy"


class TestSettingsApi:

    async def test_client_activity(self, client, seed):
        client_id = seed["client"].id
        await client.put(f"/api/clients/{client_id}/settings/thresholds", json=THRESHOLDS)
        await client.delete(f"/api/clients/{client_id}/settings")

        response = await client.get(f"/api/clients/{client_id}/activity", params={"limit": 10})
        assert response.status_code == 200
        assert sorted(entry["action"] for entry in response.json()) == ["settings_reset", "settings_saved"]
        assert all(entry["client_id"] == str(client_id) for entry in response.json())

        assert (await client.get(f"/api/clients/{uuid.uuid4()}/activity")).status_code == 404

    async def test_global_settings(self, client):
        response = await client.get("/api/settings/global")
        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "global"
        assert data["label"] == "Using Global Defaults"
        assert data["thresholds"] == {"problem_max": 40, "solution_max": 60, "offer_min": 61}
        assert data["rules"]["problem"]["industry_alignment"]["exclusion_points"] == -200

    async def test_client_threshold_override(self, client, seed):
        client_id = seed["client"].id
        response = await client.put(f"/api/clients/{client_id}/settings/thresholds", json=THRESHOLDS)
        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "client"
        assert data["label"] == "Using Acme Corp Settings"
        assert data["sources"]["thresholds"] == "client"
        assert data["version"] == 1

    async def test_invalid_thresholds_are_422(self, client, seed):
        response = await client.put(
            f"/api/clients/{seed['client'].id}/settings/thresholds",
            json={"problem_max": 70, "solution_max": 60, "offer_min": 61},
        )
        assert response.status_code == 422
        assert "problem_max" in response.json()["detail"]

    async def test_stale_version_is_409(self, client, seed):
        url = f"/api/clients/{seed['client'].id}/settings/thresholds"
        assert (await client.put(url, json={**THRESHOLDS, "expected_version": 0})).status_code == 200
        response = await client.put(url, json={**THRESHOLDS, "expected_version": 0})
        assert response.status_code == 409

    async def test_unknown_client_is_404(self, client):
        response = await client.get(f"/api/clients/{uuid.uuid4()}/settings")
        assert response.status_code == 404

    async def test_rule_override_and_room_reset(self, client, seed):
        client_id = seed["client"].id
        response = await client.patch(
            f"/api/clients/{client_id}/settings/rules/problem",
            json={"rules": {"industry_alignment": {"values": ["Retail", "Healthcare"]}}},
        )
        assert response.status_code == 200
        rule = response.json()["rules"]["problem"]["industry_alignment"]
        assert rule["values"] == ["Healthcare", "Retail"]
        assert rule["points"] == 15

        response = await client.delete(f"/api/clients/{client_id}/settings", params={"room": "problem"})
        assert response.status_code == 200
        assert response.json()["sources"]["problem"] == "global"
        assert response.json()["source"] == "global"

    async def test_unknown_rule_key_is_422(self, client, seed):
        response = await client.patch(
            f"/api/clients/{seed['client'].id}/settings/rules/offer",
            json={"rules": {"revenue": {"points": 5}}},
        )
        assert response.status_code == 422

    async def test_global_rule_edit_reaches_client(self, client, seed):
        client_id = seed["client"].id
        await client.patch(
            f"/api/clients/{client_id}/settings/rules/problem",
            json={"rules": {"industry_alignment": {"values": ["Healthcare"]}}},
        )
        await client.patch("/api/settings/global/rules/problem", json={"rules": {"industry_alignment": {"points": 25}}})

        rule = (await client.get(f"/api/clients/{client_id}/settings")).json()["rules"]["problem"]["industry_alignment"]
        assert rule["points"] == 25
        assert rule["values"] == ["Healthcare"]

    async def test_draft_then_flush(self, client, seed):
        client_id = seed["client"].id
        response = await client.patch(
            f"/api/clients/{client_id}/settings/rules/solution/draft",
            json={"rules": {"email_open": {"points": 4}}},
        )
        assert response.status_code == 200
        assert response.json()["pending"] is True

        response = await client.post(f"/api/clients/{client_id}/settings/flush")
        assert response.status_code == 200
        assert response.json()["rules"]["solution"]["email_open"]["points"] == 4

    async def test_draft_flushes_after_quiet_period(self, client, seed):
        client_id = seed["client"].id
        await client.patch(
            f"/api/clients/{client_id}/settings/rules/offer/draft",
            json={"rules": {"demo_request": {"points": 30}}},
        )
        await asyncio.sleep(0.2)
        data = (await client.get(f"/api/clients/{client_id}/settings")).json()
        assert data["rules"]["offer"]["demo_request"]["points"] == 30
        assert data["version"] == 1

    async def test_full_reset(self, client, seed):
        client_id = seed["client"].id
        await client.put(f"/api/clients/{client_id}/settings/thresholds", json=THRESHOLDS)
        response = await client.delete(f"/api/clients/{client_id}/settings")
        assert response.json()["source"] == "global"
        assert response.json()["thresholds"]["problem_max"] == 40


class TestScoringApi:

    async def test_excluded_industry(self, client, seed):
        client_id = seed["client"].id
        await client.patch(
            f"/api/clients/{client_id}/settings/rules/problem",
            json={"rules": {"industry_alignment": {"values": ["Healthcare"], "excluded_values": ["Healthcare"]}}},
        )
        response = await client.post(
            f"/api/clients/{client_id}/score/problem",
            json={"attributes": {"industry": "Healthcare"}},
        )
        assert response.status_code == 200
        score = response.json()["score"]
        assert score["disqualified"]
        assert "industry_alignment" in score["triggered_rules"]
        assert score["total_points"] < 0
        assert response.json()["classified_room"] == "problem"

    async def test_client_thresholds_are_used_for_classification(self, client, seed):
        client_id = seed["client"].id
        await client.put(f"/api/clients/{client_id}/settings/thresholds", json=THRESHOLDS)
        response = await client.post(
            f"/api/clients/{client_id}/score",
            json={"attributes": {"page_views": 3, "email_opens": 1}},
        )
        data = response.json()
        assert data["thresholds"] == THRESHOLDS
        assert data["total_score"] == sum(room["total_points"] for room in data["rooms"].values())
        assert data["current_room"] == ("offer" if data["total_score"] >= 51 else "solution")

    async def test_rescore_stores_the_result(self, client, seed, session_factory):
        prospect_id = seed["prospect"].id
        response = await client.post(f"/api/prospects/{prospect_id}/rescore")
        assert response.status_code == 200
        data = response.json()
        assert data["current_room"] == "offer"

        async with session_factory() as session:
            prospect = await session.get(Prospect, prospect_id)
        assert prospect.lead_score == data["total_score"]
        assert prospect.current_room == "offer"

    async def test_rescore_unknown_prospect(self, client):
        assert (await client.post(f"/api/prospects/{uuid.uuid4()}/rescore")).status_code == 404


class TestTemplatesApi:

    async def test_merged_templates(self, client, seed, session):
        campaign_id = seed["campaign"].id
        for order in range(5):
            await add_template(session, "problem", order)
        for order in range(2):
            await add_template(session, "problem", order, campaign_id=campaign_id)

        response = await client.get(f"/api/campaigns/{campaign_id}/templates/problem")
        assert response.status_code == 200
        data = response.json()
        assert [(t["is_global"], t["template_order"]) for t in data["templates"]] == [
            (False, 0), (False, 1), (True, 2), (True, 3), (True, 4),
        ]
        assert data["stats"]["shadowed_count"] == 2

    async def test_unknown_campaign(self, client):
        response = await client.get(f"/api/campaigns/{uuid.uuid4()}/templates/problem")
        assert response.status_code == 404

    async def test_invalid_room(self, client, seed):
        response = await client.get(f"/api/campaigns/{seed['campaign'].id}/templates/attic")
        assert response.status_code == 422

    async def test_prompt_preview(self, client, session, ai):
        template = await add_template(session, "offer", 0)
        assert (await client.get(f"/api/templates/{template.id}/prompt")).status_code == 502

        ai["generator"] = FakeGenerator()
        response = await client.get(f"/api/templates/{template.id}/prompt")
        assert response.status_code == 200
        assert response.json()["prompt"].startswith("## PERSONA")


class TestEmailsApi:

    async def test_generate_copy_open_click(self, client, seed, session, ai):
        prospect_id = str(seed["prospect"].id)
        await add_template(session, "problem", 0, campaign_id=seed["campaign"].id)
        ai["generator"] = FakeGenerator()

        response = await client.post("/api/emails/generate", json={"prospect_id": prospect_id, "room": "problem"})
        assert response.status_code == 201
        email = response.json()
        assert email["generated_by_ai"] is True
        assert email["status"] == "pending"
        assert email["open_pixel_url"].endswith(f"/api/emails/track-open/{email['tracking_token']}")
        assert email["click_url"].endswith(f"/api/emails/track-click/{email['tracking_token']}")

        response = await client.post(f"/api/emails/{email['id']}/copy", json={"prospect_id": prospect_id})
        assert response.json()["status"] == "copied"

        response = await client.get(f"/api/emails/track-open/{email['tracking_token']}")
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"

        response = await client.get(f"/api/emails/track-click/{email['tracking_token']}")
        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/problem/1"

        stats = (await client.get("/api/emails/stats", params={"prospect_id": prospect_id})).json()
        assert stats["total_emails"] == 1
        assert stats["clicked"] == 1

        usage = (await client.get("/api/emails/usage")).json()
        assert usage["count"] == 1
        assert usage["remaining_this_hour"] == 9

    async def test_rate_limited_generation_is_429(self, client, seed, session, ai, rate_limiter):
        await add_template(session, "problem", 0, campaign_id=seed["campaign"].id)
        ai["generator"] = FakeGenerator()
        for _ in range(10):
            rate_limiter.record(10, 0.0)

        response = await client.post(
            "/api/emails/generate", json={"prospect_id": str(seed["prospect"].id), "room": "problem"},
        )
        assert response.status_code == 429
        assert "Retry-After" in response.headers
        assert (await client.get("/api/emails/stats")).json()["total_emails"] == 0

    async def test_fallback_without_generator(self, client, seed):
        response = await client.post(
            "/api/emails/generate",
            json={"prospect_id": str(seed["prospect"].id), "room": "solution", "email_number": 2},
        )
        assert response.status_code == 201
        assert response.json()["generated_by_ai"] is False

    async def test_email_activity_and_cleanup(self, client, seed):
        prospect_id = str(seed["prospect"].id)
        email = (await client.post("/api/emails/generate", json={"prospect_id": prospect_id, "room": "problem"})).json()
        await client.post(f"/api/emails/{email['id']}/copy", json={"prospect_id": prospect_id})

        response = await client.get(f"/api/emails/{email['id']}/activity")
        assert response.status_code == 200
        assert sorted(entry["action"] for entry in response.json()) == ["email_copied", "email_fallback"]
        assert (await client.get(f"/api/emails/{uuid.uuid4()}/activity")).status_code == 404

        response = await client.post("/api/emails/cleanup", params={"days": 30})
        assert response.json() == {"deleted": 0}
        assert (await client.post("/api/emails/cleanup", params={"days": 0})).status_code == 422

    async def test_unknown_token_is_404(self, client):
        assert (await client.get("/api/emails/track-open/nope")).status_code == 404
