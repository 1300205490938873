"""
Natural-language element descriptions.

The text-generation collaborator is a CrewAI agent (Gemini online, Ollama
locally). Any failure, including being switched off, falls back to a
deterministic label built from the element's text, placeholder or tag.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from crewai import Crew

from ..core.config import settings
from ..core.models import ElementFacts
from ..crew_ai.agents import DescriptionAgents
from ..crew_ai.tasks import DescriptionTasks

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 50
FALLBACK_TEXT_LENGTH = 20


def fallback_description(facts: ElementFacts) -> str:
    """``"<text> <tag>"``, else ``"<placeholder> field"``, else ``"<tag> element"``."""
    text = facts.text_content.strip()
    if text:
        return f"{text[:FALLBACK_TEXT_LENGTH]} {facts.tag_name}"
    placeholder = (facts.attributes.get("placeholder") or "").strip()
    if placeholder:
        return f"{placeholder} field"
    return f"{facts.tag_name} element"


def clean_description(raw: str) -> str:
    return raw.strip().replace('"', '').replace("'", "").strip()[:MAX_DESCRIPTION_LENGTH]


class DescriptionGenerator(ABC):

    @abstractmethod
    async def describe(self, facts: ElementFacts) -> str:
        pass


class FallbackDescriptionGenerator(DescriptionGenerator):
    """Deterministic labels only."""

    async def describe(self, facts: ElementFacts) -> str:
        return fallback_description(facts)


class CrewDescriptionGenerator(DescriptionGenerator):
    """Labels elements with a single-agent crew."""

    def __init__(self, model_provider: Optional[str] = None, model_name: Optional[str] = None):
        self.model_provider = model_provider or settings.MODEL_PROVIDER
        if model_name is None:
            model_name = settings.LOCAL_MODEL if self.model_provider == "local" else settings.ONLINE_MODEL
        self.model_name = model_name
        self.tasks = DescriptionTasks()
        self._agents: Optional[DescriptionAgents] = None

    @property
    def agents(self) -> DescriptionAgents:
        if self._agents is None:
            self._agents = DescriptionAgents(self.model_provider, self.model_name)
        return self._agents

    async def describe(self, facts: ElementFacts) -> str:
        try:
            raw = await asyncio.get_event_loop().run_in_executor(None, self._run_crew, facts)
            description = clean_description(raw)
            if description:
                return description
            logger.warning("Description agent returned an empty label, using fallback")
        except Exception as e:
            logger.warning(f"Description generation failed, using fallback: {e}")
        return fallback_description(facts)

    def _run_crew(self, facts: ElementFacts) -> str:
        agent = self.agents.element_description_agent()
        task = self.tasks.describe_element_task(agent, {
            "tag_name": facts.tag_name,
            "text_content": facts.text_content,
            "attributes": facts.attributes
        })
        crew = Crew(agents=[agent], tasks=[task], verbose=False)
        result = crew.kickoff()
        return result.raw if hasattr(result, 'raw') else str(result)


def get_description_generator() -> DescriptionGenerator:
    """Crew-backed generator when AI descriptions are enabled."""
    if settings.ENABLE_AI_DESCRIPTIONS:
        return CrewDescriptionGenerator()
    return FallbackDescriptionGenerator()
