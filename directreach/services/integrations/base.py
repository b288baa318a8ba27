"""
Base interfaces for integration providers.
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

from pydantic import BaseModel


class GeneratedEmail(BaseModel):
    """Output of one email generation, AI or fallback."""
    subject: str
    body_html: str
    body_text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    url_included: Optional[str] = None
    reasoning: Optional[str] = None
    generated_by_ai: bool = True

    @property
    def tokens_used(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class EmailGenerator(ABC):
    """Base interface for AI email generators (Gemini, OpenAI, etc.)"""

    provider: str = "AI"

    @abstractmethod
    def build_prompt(self, prompt_sections: Dict[str, str], prospect_context: Dict[str, Any]) -> str:
        """
        Full prompt sent to the model.
        Public so the admin screens can preview a template without generating.
        """
        pass

    @abstractmethod
    async def generate(self, prompt_sections: Dict[str, str], prospect_context: Dict[str, Any]) -> GeneratedEmail:
        """
        Generate one email.

        Raises:
            GenerationFailure: the provider call failed, timed out or returned
                something that is not a usable email.
        """
        pass
