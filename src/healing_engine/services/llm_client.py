"""
Selector providers backed by language models.

Two variants share one capability, ``generate_selectors(prompt)``:

- ``OnlineSelectorProvider`` calls a hosted model through litellm in JSON mode.
- ``LocalSelectorProvider`` calls a local Ollama daemon through langchain-ollama
  and scans the free-form reply for a JSON object.

Reply parsing never raises; a reply that cannot be understood becomes an
empty response with a diagnostic ``reasoning`` string. Transport failures are
raised as ``LLMProviderError`` and turned into empty responses by the
orchestrator.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import litellm
from langchain_ollama import OllamaLLM

from ..core.config import Settings, settings as default_settings
from ..core.models import LLMSelectorResponse

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert in web test automation.
Your task is to generate alternative selectors for an element whose selector stopped working.

RULES:
1. Generate 3-5 alternative selectors
2. Prefer accessibility selectors (role, aria-label, visible text)
3. Prefer stable attributes (data-testid, data-*, name, id)
4. Avoid fragile XPath with position indexes
5. Every selector must use one of the valid formats below
6. The selector must target the element type requested, never a wrapper or a different element

VALID SELECTOR FORMATS:
- CSS: "#id", ".class", "tag", "[attribute='value']", "button:has-text('Submit')"
- XPath: "//button[@type='submit']"
- Text: "text=Login"
- Role: "role=button[name='Login']"
- Label / placeholder / test id: "label=Email", "placeholder=Search", "testid=submit"

Respond ONLY with valid JSON in this exact format:
{
  "selectors": ["selector1", "selector2", "selector3"],
  "reasoning": "Brief explanation of why these selectors should work",
  "confidence": 0.8
}"""

DEFAULT_CONFIDENCE = 0.5
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class LLMProviderError(Exception):
    """Raised when a provider cannot be reached or returns nothing."""
    pass


def parse_selector_response(content: Optional[str], extract: bool = False) -> LLMSelectorResponse:
    """Parse a model reply into an LLMSelectorResponse.

    Args:
        content: Raw reply text
        extract: Scan for the outermost ``{...}`` block instead of parsing the whole text

    Returns:
        Parsed response; an empty response when the reply is unusable
    """
    if not content:
        return LLMSelectorResponse.empty("Failed to parse response: empty reply")

    text = content
    if extract:
        match = _JSON_OBJECT_RE.search(content)
        if not match:
            logger.error(f"No JSON object found in model reply: {content[:200]!r}")
            return LLMSelectorResponse.empty("Failed to parse response: no JSON object found")
        text = match.group(0)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse model reply as JSON: {e}")
        return LLMSelectorResponse.empty(f"Failed to parse response: {e.msg}")

    if not isinstance(data, dict):
        return LLMSelectorResponse.empty("Failed to parse response: reply is not a JSON object")

    raw_selectors = data.get("selectors")
    if not isinstance(raw_selectors, list):
        return LLMSelectorResponse.empty("Failed to parse response: missing 'selectors' list")

    selectors: List[str] = []
    for item in raw_selectors:
        if isinstance(item, str) and item.strip() and item.strip() not in selectors:
            selectors.append(item.strip())

    confidence = data.get("confidence")
    try:
        confidence = float(confidence) if confidence else DEFAULT_CONFIDENCE
    except (TypeError, ValueError):
        confidence = DEFAULT_CONFIDENCE

    reasoning = data.get("reasoning")
    return LLMSelectorResponse(
        selectors=selectors,
        reasoning=reasoning if isinstance(reasoning, str) else "",
        confidence=max(0.0, min(confidence, 1.0)),
    )


class SelectorProvider(ABC):
    """Something that proposes selectors for a healing prompt."""

    name: str = "provider"

    @abstractmethod
    async def generate_selectors(self, prompt: str) -> LLMSelectorResponse:
        """Return candidate selectors for the prompt.

        Raises:
            LLMProviderError: If the backend cannot be reached
        """


class OnlineSelectorProvider(SelectorProvider):
    """Hosted model via litellm (Gemini, OpenAI, ...), JSON mode."""

    name = "online"

    def __init__(self, model: str, api_key: Optional[str] = None, timeout: float = 60.0,
                 temperature: float = 0.3, max_tokens: int = 1000):
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        logger.info(f"Online selector provider initialized with model: {model}")

    async def generate_selectors(self, prompt: str) -> LLMSelectorResponse:
        try:
            response = await litellm.acompletion(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
                api_key=self.api_key,
                timeout=self.timeout,
            )
        except Exception as e:
            raise LLMProviderError(f"{self.model} request failed: {e}") from e

        content = _first_message_content(response)
        if not content:
            raise LLMProviderError(f"Empty response from {self.model}")
        return parse_selector_response(content)


def _first_message_content(response: Any) -> Optional[str]:
    try:
        return response.choices[0].message.content
    except (AttributeError, IndexError, KeyError, TypeError):
        return None


class LocalSelectorProvider(SelectorProvider):
    """Local Ollama model; JSON is extracted from free-form output."""

    name = "local"

    def __init__(self, model: str, base_url: str = "http://localhost:11434",
                 timeout: float = 60.0, temperature: float = 0.3):
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.llm = OllamaLLM(
            model=model,
            base_url=base_url,
            format="json",
            temperature=temperature,
            client_kwargs={"timeout": timeout},
        )
        logger.info(f"Local selector provider initialized with model: {model} at {base_url}")

    async def generate_selectors(self, prompt: str) -> LLMSelectorResponse:
        try:
            content = await self.llm.ainvoke(f"{SYSTEM_PROMPT}\n\nUser Query:\n{prompt}")
        except Exception as e:
            raise LLMProviderError(f"Ollama request to {self.base_url} failed: {e}") from e

        if not content:
            raise LLMProviderError("Empty response from Ollama")
        return parse_selector_response(content, extract=True)


def _online_api_key(config: Settings) -> Optional[str]:
    if config.ONLINE_MODEL.startswith("gemini/"):
        return config.GEMINI_API_KEY
    if config.ONLINE_MODEL.startswith(("openai/", "gpt-")):
        return config.OPENAI_API_KEY
    return config.GEMINI_API_KEY or config.OPENAI_API_KEY


def create_selector_provider(config: Settings) -> SelectorProvider:
    """Build the provider variant selected by MODEL_PROVIDER."""
    if config.MODEL_PROVIDER == "local":
        return LocalSelectorProvider(
            model=config.LOCAL_MODEL,
            base_url=config.OLLAMA_BASE_URL,
            timeout=config.LLM_TIMEOUT,
        )
    return OnlineSelectorProvider(
        model=config.ONLINE_MODEL,
        api_key=_online_api_key(config),
        timeout=config.LLM_TIMEOUT,
    )


# Process-wide provider instance
_selector_provider: Optional[SelectorProvider] = None


def get_selector_provider(config: Optional[Settings] = None) -> SelectorProvider:
    """Get the process-wide selector provider, creating it on first use."""
    global _selector_provider
    if _selector_provider is None:
        _selector_provider = create_selector_provider(config or default_settings)
    return _selector_provider


def reset_selector_provider() -> None:
    """Forget the cached provider so the next call rebuilds it."""
    global _selector_provider
    _selector_provider = None
