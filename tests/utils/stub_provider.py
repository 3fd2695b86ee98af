"""Scripted selector provider for orchestrator and API tests."""

import asyncio

from healing_engine.core.models import LLMSelectorResponse
from healing_engine.services.llm_client import SelectorProvider


class StubProvider(SelectorProvider):
    name = "stub"

    def __init__(self, selectors=None, error=None, delay=0.0):
        self.selectors = selectors or []
        self.error = error
        self.delay = delay
        self.prompts = []

    async def generate_selectors(self, prompt):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return LLMSelectorResponse(selectors=list(self.selectors), reasoning="stub", confidence=0.9)
