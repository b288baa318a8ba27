"""Pytest configuration and fixtures for the test suite."""

import os
import uuid

# Configure the app BEFORE any directreach imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AI_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from directreach import models  # noqa: F401
from directreach.core.exceptions import GenerationFailure
from directreach.engine.templates import assemble_prompt
from directreach.models.client import Client, Campaign, Prospect, ContentLink
from directreach.models.template import EmailTemplate
from directreach.repositories.memory import (
    InMemoryClientSettingsStore,
    InMemoryGlobalConfigStore,
    InMemoryTemplateStore,
)
from directreach.services.integrations.base import EmailGenerator, GeneratedEmail
from directreach.services.rate_limiter import AIRateLimiter
from directreach.services.settings_resolver import SettingsResolver


SECTIONS = {
    "persona": "You are a friendly B2B marketer.",
    "style_rules": "Short sentences.",
    "output_spec": "",
    "personalization_guidelines": "",
    "constraints": "No more than 120 words.",
    "examples": "",
    "context_instructions": "",
}


# =============================================================================
# DATABASE
# =============================================================================

@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed(session):
    """A client with one campaign, one prospect and two content links per room."""
    client = Client(name="Acme Corp")
    session.add(client)
    await session.commit()

    campaign = Campaign(client_id=client.id, campaign_name="Spring Launch")
    session.add(campaign)
    await session.commit()

    prospect = Prospect(
        campaign_id=campaign.id,
        contact_name="Dana Smith",
        company_name="Globex",
        job_title="VP Marketing",
        industry="Healthcare",
        page_views=3,
        recent_page_urls=["/pricing", "/blog/post"],
    )
    session.add(prospect)
    for room in ("problem", "solution", "offer"):
        for order in range(2):
            session.add(ContentLink(
                campaign_id=campaign.id,
                room_type=room,
                link_title=f"{room.title()} guide {order + 1}",
                link_url=f"https://example.com/{room}/{order + 1}",
                url_summary=f"Guide {order + 1} for the {room} room",
                link_order=order,
            ))
    await session.commit()

    return {"client": client, "campaign": campaign, "prospect": prospect}


async def add_template(session, room="problem", order=0, campaign_id=None, name=None, sections=None):
    template = EmailTemplate(
        campaign_id=campaign_id,
        is_global=campaign_id is None,
        room_type=room,
        template_name=name or f"{'global' if campaign_id is None else 'campaign'}@{order}",
        prompt_template=sections or SECTIONS,
        template_order=order,
    )
    session.add(template)
    await session.commit()
    await session.refresh(template)
    return template


# =============================================================================
# IN-MEMORY STORES
# =============================================================================

@pytest.fixture
def client_store():
    return InMemoryClientSettingsStore()


@pytest.fixture
def global_store():
    return InMemoryGlobalConfigStore()


@pytest.fixture
def client_id(client_store):
    return client_store.add_client("Acme Corp")


@pytest.fixture
def resolver(client_store, global_store):
    return SettingsResolver(client_store, global_store)


def make_template(room="problem", order=0, campaign_id=None, name=None):
    """Unsaved template object for merge tests."""
    return EmailTemplate(
        id=uuid.uuid4(),
        campaign_id=campaign_id,
        is_global=campaign_id is None,
        room_type=room,
        template_name=name or f"{'global' if campaign_id is None else 'campaign'}@{order}",
        prompt_template=SECTIONS,
        template_order=order,
    )


@pytest.fixture
def template_store():
    return InMemoryTemplateStore()


# =============================================================================
# AI
# =============================================================================

class FakeGenerator(EmailGenerator):
    """Generator double returning a canned email or raising."""

    provider = "Fake"

    def __init__(self, email: GeneratedEmail = None, error: Exception = None):
        self.email = email or GeneratedEmail(
            subject="Quick idea for Globex",
            body_html="<p>Hi Dana,</p><p>Thought this might help.</p>",
            body_text="Hi Dana,\n\nThought this might help.",
            prompt_tokens=1200,
            completion_tokens=300,
            url_included="https://example.com/problem/1",
        )
        self.error = error
        self.calls = []

    def build_prompt(self, prompt_sections, prospect_context):
        return assemble_prompt(prompt_sections)

    async def generate(self, prompt_sections, prospect_context):
        self.calls.append((prompt_sections, prospect_context))
        if self.error:
            raise self.error
        return self.email


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def failing_generator():
    return FakeGenerator(error=GenerationFailure("Fake", "upstream 500"))


@pytest.fixture
def rate_limiter():
    return AIRateLimiter(limit_per_hour=10)
