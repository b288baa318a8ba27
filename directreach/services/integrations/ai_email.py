import asyncio
import json
import logging
import re
from typing import Optional, Dict, Any, List, Tuple

from openai import OpenAI
import google.generativeai as genai

from directreach.config import settings
from directreach.core.exceptions import GenerationFailure, AIUnavailableError
from directreach.engine.templates import assemble_prompt
from directreach.services.integrations.base import EmailGenerator, GeneratedEmail

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


def html_to_text(html: str) -> str:
    text = re.sub(r"</p>\s*<p>", "\n\n", html)
    text = re.sub(r"<br\s*/?>", "\n", text)
    return _TAG_RE.sub("", text).strip()


def unsent_links(prospect_context: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Content links the prospect has not been sent yet."""
    sent = set(prospect_context.get("urls_sent") or [])
    return [link for link in prospect_context.get("content_links") or [] if link.get("url") not in sent]


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def build_fallback_email(prospect_context: Dict[str, Any]) -> GeneratedEmail:
    """Static email used whenever AI generation is off or fails."""
    contact = prospect_context.get("contact_name") or "there"
    company = prospect_context.get("company_name") or "your team"
    room = prospect_context.get("room") or "problem"

    html = f"<p>Hi {contact},</p><p>I noticed you've been exploring our {room} solutions.</p>"
    links = unsent_links(prospect_context)
    url = None
    if links:
        url = links[0]["url"]
        title = links[0].get("title") or "this resource"
        html += f'<p>I thought you might find this helpful: <a href="{url}">{title}</a></p>'
    html += "<p>Let me know if you have any questions.</p>"

    return GeneratedEmail(
        subject=f"Follow up: {company}",
        body_html=html,
        body_text=html_to_text(html),
        url_included=url,
        generated_by_ai=False,
    )


class AIEmailGenerator(EmailGenerator):
    """Prompt building and response parsing shared by the AI providers."""

    def __init__(self, model: str, timeout: float = None):
        self.model = model
        self.timeout = timeout if timeout is not None else settings.AI_TIMEOUT_SECONDS

    def build_prompt(self, prompt_sections: Dict[str, str], prospect_context: Dict[str, Any]) -> str:
        parts = [assemble_prompt(prompt_sections)]

        parts.append(
            "=== EMAIL GENERATION INSTRUCTIONS ===\n"
            f"Write email #{prospect_context.get('email_number', 1)} of the sequence for a prospect "
            f"in the {prospect_context.get('room', 'problem')} room. "
            "Pick the single most relevant content link below and work it into the email naturally."
        )

        visitor = [
            f"Contact Name: {prospect_context.get('contact_name') or 'Unknown'}",
            f"Company: {prospect_context.get('company_name') or 'Unknown'}",
            f"Job Title: {prospect_context.get('job_title') or 'Unknown'}",
            f"Industry: {prospect_context.get('industry') or 'Unknown'}",
            f"Lead Score: {prospect_context.get('lead_score', 0)}",
        ]
        pages = prospect_context.get("recent_page_urls") or []
        if pages:
            visitor.append("Recent Pages: " + ", ".join(pages[:10]))
        parts.append("=== VISITOR INFORMATION ===\n" + "\n".join(visitor))

        links = unsent_links(prospect_context)
        if links:
            lines = []
            for i, link in enumerate(links, start=1):
                lines.append(f"{i}. {link.get('title', '')}\n   URL: {link['url']}")
                if link.get("summary"):
                    lines.append(f"   Summary: {link['summary']}")
            parts.append("=== AVAILABLE CONTENT LINKS ===\n" + "\n".join(lines))
        else:
            parts.append("=== AVAILABLE CONTENT LINKS ===\nNone. Do not include a link.")

        parts.append(
            "=== OUTPUT FORMAT ===\n"
            "Return JSON only:\n"
            "{\n"
            '  "subject": "<email subject>",\n'
            '  "body_html": "<email body as HTML paragraphs>",\n'
            '  "body_text": "<plain text version>",\n'
            '  "selected_url_index": <1-based index of the chosen link>,\n'
            '  "reasoning": "<one sentence on why this link>"\n'
            "}"
        )
        return "\n\n".join(parts)

    def parse_response(self, text: str, usage: Tuple[int, int], prospect_context: Dict[str, Any]) -> GeneratedEmail:
        try:
            data = json.loads(strip_code_fences(text or ""))
        except json.JSONDecodeError as e:
            raise GenerationFailure(self.provider, f"response was not valid JSON: {e}")

        if not isinstance(data, dict) or not data.get("subject") or not data.get("body_html"):
            raise GenerationFailure(self.provider, "response is missing subject or body_html")

        links = unsent_links(prospect_context)
        url = None
        if links:
            try:
                index = int(data.get("selected_url_index", 1))
            except (TypeError, ValueError):
                index = 1
            if not 1 <= index <= len(links):
                logger.warning(f"Model picked link #{index} of {len(links)}, using the first link")
                index = 1
            url = links[index - 1]["url"]

        prompt_tokens, completion_tokens = usage
        return GeneratedEmail(
            subject=data["subject"],
            body_html=data["body_html"],
            body_text=data.get("body_text") or html_to_text(data["body_html"]),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            url_included=url,
            reasoning=data.get("reasoning"),
            generated_by_ai=True,
        )

    def _complete(self, prompt: str) -> Tuple[str, Tuple[int, int]]:
        """Blocking provider call. Returns the text and (prompt, completion) tokens."""
        raise NotImplementedError

    async def generate(self, prompt_sections: Dict[str, str], prospect_context: Dict[str, Any]) -> GeneratedEmail:
        prompt = self.build_prompt(prompt_sections, prospect_context)
        try:
            text, usage = await asyncio.wait_for(asyncio.to_thread(self._complete, prompt), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"{self.provider} generation timed out after {self.timeout}s")
            raise GenerationFailure(self.provider, f"timed out after {self.timeout}s")
        except GenerationFailure:
            raise
        except Exception as e:
            logger.error(f"{self.provider} generation failed: {e}")
            if "429" in str(e) or "quota" in str(e).lower():
                raise AIUnavailableError(f"{self.provider} quota exhausted: {e}")
            raise GenerationFailure(self.provider, str(e))

        email = self.parse_response(text, usage, prospect_context)
        logger.info(f"{self.provider} generated email ({email.tokens_used} tokens)")
        return email


class GeminiEmailGenerator(AIEmailGenerator):
    provider = "Gemini"

    def __init__(self, api_key: str, model: str = None, timeout: float = None):
        super().__init__(model or settings.AI_MODEL, timeout)
        genai.configure(api_key=api_key)
        self.client = genai.GenerativeModel(self.model)

    def _complete(self, prompt: str) -> Tuple[str, Tuple[int, int]]:
        response = self.client.generate_content(
            prompt,
            generation_config={
                "temperature": settings.AI_TEMPERATURE,
                "max_output_tokens": settings.AI_MAX_TOKENS,
            },
        )
        usage = getattr(response, "usage_metadata", None)
        prompt_tokens = getattr(usage, "prompt_token_count", 0) or 0
        completion_tokens = getattr(usage, "candidates_token_count", 0) or 0
        return response.text, (prompt_tokens, completion_tokens)


class OpenAIEmailGenerator(AIEmailGenerator):
    provider = "OpenAI"

    def __init__(self, api_key: str, model: str = None, timeout: float = None):
        super().__init__(model or settings.OPENAI_MODEL, timeout)
        self.client = OpenAI(api_key=api_key)

    def _complete(self, prompt: str) -> Tuple[str, Tuple[int, int]]:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            response_format={"type": "json_object"},
            temperature=settings.AI_TEMPERATURE,
            max_tokens=settings.AI_MAX_TOKENS,
        )
        usage = response.usage
        tokens = (usage.prompt_tokens, usage.completion_tokens) if usage else (0, 0)
        return response.choices[0].message.content, tokens


def create_email_generator() -> Optional[EmailGenerator]:
    """Gemini when configured, else OpenAI, else None (fallback emails only)."""
    if not settings.AI_ENABLED:
        logger.info("AI email generation disabled")
        return None

    if settings.GEMINI_API_KEY:
        try:
            generator = GeminiEmailGenerator(settings.GEMINI_API_KEY)
            logger.info("Email generator initialized with Gemini")
            return generator
        except Exception as e:
            logger.error(f"Failed to initialize Gemini: {e}")

    if settings.OPENAI_API_KEY:
        try:
            generator = OpenAIEmailGenerator(settings.OPENAI_API_KEY)
            logger.info("Email generator initialized with OpenAI")
            return generator
        except Exception as e:
            logger.error(f"Failed to initialize OpenAI: {e}")

    logger.warning("No AI provider configured, emails will use the fallback template")
    return None


_generator: Optional[EmailGenerator] = None
_generator_loaded = False


def get_email_generator() -> Optional[EmailGenerator]:
    """Get the singleton email generator, created on first use."""
    global _generator, _generator_loaded
    if not _generator_loaded:
        _generator = create_email_generator()
        _generator_loaded = True
    return _generator
