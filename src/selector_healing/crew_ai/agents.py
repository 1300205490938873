"""Agents for element description generation."""

import os
import logging
from crewai import Agent
from crewai.llm import LLM
from langchain_ollama import OllamaLLM

logger = logging.getLogger(__name__)


def get_llm(model_provider: str, model_name: str):
    """Get LLM instance based on provider and model name.

    Args:
        model_provider: "local" for Ollama, "online" for Gemini
        model_name: Model identifier (e.g., "llama3", "gemini/gemini-2.5-flash")
    """
    if model_provider == "local":
        return OllamaLLM(model=model_name)
    else:
        return LLM(
            api_key=os.getenv("GEMINI_API_KEY"),
            model=f"{model_name}",
            num_retries=3,
        )


class DescriptionAgents:
    """Agents that label web elements in plain language."""

    def __init__(self, model_provider: str, model_name: str):
        self.llm = get_llm(model_provider, model_name)
        logger.info(f"Description agents initialized with {model_provider}/{model_name}")

    def element_description_agent(self) -> Agent:
        return Agent(
            role="Web Element Labeling Specialist",
            goal="Describe a web element in a few words the way a tester would name it in a test step.",
            backstory=(
                "You write the human-readable names that appear next to recorded test steps. "
                "You look at an element's tag, visible text and attributes and produce short, "
                "unambiguous labels such as 'Login button', 'Email input field' or "
                "'Search dropdown'. You never add explanations or punctuation around the label."
            ),
            llm=self.llm,
            verbose=False,
            allow_delegation=False,
        )
