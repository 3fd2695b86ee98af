"""
Selector validation against a live page.

A candidate selector is resolved with Selenium, the first match is inspected
and a deterministic confidence score is derived from what was found.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from selenium.webdriver.support.ui import WebDriverWait
from selenium.common.exceptions import TimeoutException, WebDriverException

from ..core.models import ElementAction, ValidatedSelector
from .selector_syntax import to_locator

logger = logging.getLogger(__name__)

SEMANTIC_TAGS = frozenset({"button", "input", "a", "select", "textarea"})
FILLABLE_TAGS = frozenset({"input", "textarea"})


def score_selector(match_count: int, is_visible: bool, is_enabled: bool,
                   tag_name: Optional[str]) -> float:
    """Additive confidence score, capped at 1.0."""
    if match_count <= 0:
        return 0.0

    score = 0.3
    if match_count == 1:
        score += 0.3
    elif match_count <= 3:
        score += 0.1
    if is_visible:
        score += 0.2
    if is_enabled:
        score += 0.1
    if tag_name and tag_name.lower() in SEMANTIC_TAGS:
        score += 0.1
    return round(min(score, 1.0), 2)


def _safe(call, default):
    try:
        return call()
    except WebDriverException:
        return default


class SelectorValidator:
    """Resolves selectors against a WebDriver page and scores them."""

    def __init__(self, action_check_timeout: float = 2.0):
        self.action_check_timeout = action_check_timeout

    def validate_sync(self, driver, selector: str) -> ValidatedSelector:
        """Validate one selector. Never raises; resolution errors count as no match."""
        try:
            by, value = to_locator(selector)
            elements = driver.find_elements(by, value)
        except (WebDriverException, ValueError) as e:
            logger.debug(f"Selector '{selector}' could not be resolved: {e}")
            return ValidatedSelector.no_match(selector, error=str(e).splitlines()[0] if str(e) else type(e).__name__)
        except Exception as e:
            logger.warning(f"Unexpected error resolving selector '{selector}': {e}")
            return ValidatedSelector.no_match(selector, error=str(e))

        if not elements:
            return ValidatedSelector.no_match(selector)

        first = elements[0]
        is_visible = _safe(first.is_displayed, False)
        is_enabled = _safe(first.is_enabled, True)
        tag_name = _safe(lambda: (first.tag_name or "").lower(), None)
        has_text = _safe(lambda: bool((first.text or "").strip()), False)

        confidence = score_selector(len(elements), is_visible, is_enabled, tag_name)
        return ValidatedSelector(
            selector=selector,
            is_valid=confidence > 0,
            match_count=len(elements),
            confidence=confidence,
            is_visible=is_visible,
            is_enabled=is_enabled,
            tag_name=tag_name,
            has_text=has_text,
        )

    async def validate(self, driver, selector: str) -> ValidatedSelector:
        """Validate a selector without blocking the event loop."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self.validate_sync, driver, selector)

    async def validate_all(self, driver, selectors: Iterable[str]) -> List[ValidatedSelector]:
        """Validate every selector, then rank by confidence (stable, highest first)."""
        results = []
        for selector in selectors:
            results.append(await self.validate(driver, selector))
        return sorted(results, key=lambda r: r.confidence, reverse=True)

    @staticmethod
    def select_best(results: Iterable[ValidatedSelector], threshold: float) -> Optional[ValidatedSelector]:
        """First result that is valid and meets the threshold, in the given order."""
        for result in results:
            if result.is_valid and result.confidence >= threshold:
                return result
        return None

    def check_action_fitness_sync(self, driver, selector: str, action: ElementAction) -> bool:
        """Check that the resolved element affords the intended action without performing it."""
        try:
            by, value = to_locator(selector)
            elements = driver.find_elements(by, value)
            if not elements:
                return False
            element = elements[0]

            if action == ElementAction.CLICK:
                return self._wait_visible(driver, element) and element.is_enabled()
            if action == ElementAction.FILL:
                return (self._wait_visible(driver, element)
                        and (element.tag_name or "").lower() in FILLABLE_TAGS)
            if action == ElementAction.VISIBLE:
                return self._wait_visible(driver, element)
            return True
        except (WebDriverException, ValueError) as e:
            logger.debug(f"Action check '{action.value}' failed for '{selector}': {e}")
            return False

    async def check_action_fitness(self, driver, selector: str, action: ElementAction) -> bool:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, self.check_action_fitness_sync, driver, selector, action)

    def _wait_visible(self, driver, element) -> bool:
        if element.is_displayed():
            return True
        if self.action_check_timeout <= 0:
            return False
        try:
            WebDriverWait(driver, self.action_check_timeout, poll_frequency=0.1).until(
                lambda _: element.is_displayed())
            return True
        except TimeoutException:
            return False
