"""
Action execution with self-healing.

Test code does not inherit healing behaviour; it asks an executor to run an
action with healing, or to resolve a selector with healing. Retries happen
only after a successful heal, never blindly.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.models import ElementAction, HealingContext, HealingResult
from .failure_detection_service import FailureDetectionService
from .healing_orchestrator import HealingOrchestrator
from .locator_store import LocatorStore

logger = logging.getLogger(__name__)

ActionFactory = Callable[[str], Awaitable[Any]]


class HealingFailedError(Exception):
    """Raised when an action still fails after healing was attempted."""

    def __init__(self, message: str, result: 'RetryResult'):
        super().__init__(message)
        self.result = result


@dataclass
class RetryResult:
    """Outcome of execute_with_healing()."""
    success: bool
    value: Any = None
    attempts: int = 0
    selector: Optional[str] = None
    healing_results: List[HealingResult] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def healed_selector(self) -> Optional[str]:
        for result in reversed(self.healing_results):
            if result.success:
                return result.healed_selector
        return None


class HealingActionExecutor:
    """Runs selector-based actions, healing the selector when a locator error occurs."""

    FLAKY_WARNING_THRESHOLD = 3
    HEALING_BLOCK_THRESHOLD = 10

    def __init__(self, orchestrator: HealingOrchestrator,
                 locator_store: Optional[LocatorStore] = None,
                 failure_detector: Optional[FailureDetectionService] = None,
                 max_retries: Optional[int] = None,
                 heal_on_failure: bool = True,
                 throw_on_final_failure: bool = True,
                 retry_delay: float = 0.5):
        self.orchestrator = orchestrator
        self.locator_store = locator_store or orchestrator.locator_store
        self.failure_detector = failure_detector or FailureDetectionService()
        self.max_retries = max_retries if max_retries is not None else orchestrator.config.max_retries
        self.heal_on_failure = heal_on_failure
        self.throw_on_final_failure = throw_on_final_failure
        self.retry_delay = retry_delay
        self._consecutive_failures: Counter = Counter()
        self._flaky_elements: Counter = Counter()

    def _context(self, driver, page_name: str, element_key: str, failed_selector: str,
                 action_type: ElementAction, test_name: Optional[str]) -> HealingContext:
        entry = self.locator_store.get(page_name, element_key) if self.locator_store else None
        return HealingContext(
            page_name=page_name,
            element_key=element_key,
            failed_selector=failed_selector,
            locator_entry=entry,
            action=action_type,
            test_name=test_name,
            driver=driver,
        )

    async def execute_with_healing(self, action: ActionFactory, driver, page_name: str,
                                   element_key: str, selector: str,
                                   action_type: ElementAction = ElementAction.ANY,
                                   test_name: Optional[str] = None) -> RetryResult:
        """Run ``action(selector)``; on a healable error heal the selector and try again.

        Raises:
            HealingFailedError: If every attempt failed and ``throw_on_final_failure`` is set
        """
        attempts = 0
        current = selector
        last_error: Optional[BaseException] = None
        healing_results: List[HealingResult] = []

        while attempts <= self.max_retries:
            attempts += 1
            try:
                logger.debug(f"Attempt {attempts}/{self.max_retries + 1} for {element_key} "
                             f"with selector: {current}")
                value = await action(current)
            except Exception as e:
                last_error = e
                logger.debug(f"Attempt {attempts} failed for {element_key}: {e}")
            else:
                self._consecutive_failures.pop(element_key, None)
                if attempts > 1:
                    self._flaky_elements[element_key] += 1
                return RetryResult(True, value, attempts, current, healing_results)

            if not self.failure_detector.is_healable_error(last_error):
                logger.warning(f"Non-healable error for {element_key}: {last_error}")
                break

            self._track_failure(element_key)
            if not self.heal_on_failure or attempts > self.max_retries:
                break
            if self.is_healing_blocked(element_key):
                logger.warning(f"Healing blocked for {element_key} after repeated failures")
                break

            logger.info(f"Initiating healing for {page_name}.{element_key}")
            result = await self.orchestrator.heal(
                self._context(driver, page_name, element_key, current, action_type, test_name))
            healing_results.append(result)

            if not (result.success and result.healed_selector):
                logger.warning(f"Healing failed for {element_key}: {result.error}")
                break

            current = result.healed_selector
            logger.info(f"Healed selector for {element_key}: {current}")
            if self.retry_delay > 0:
                await asyncio.sleep(self.retry_delay)

        logger.error(f"All {attempts} attempts failed for {element_key}")
        retry_result = RetryResult(False, None, attempts, current, healing_results, last_error)
        if self.throw_on_final_failure:
            raise HealingFailedError(
                f"Action on {page_name}.{element_key} failed after {attempts} attempts: {last_error}",
                retry_result) from last_error
        return retry_result

    async def resolve_with_healing(self, driver, page_name: str, element_key: str,
                                   action_type: ElementAction = ElementAction.ANY,
                                   test_name: Optional[str] = None) -> Optional[str]:
        """Return a usable selector for the element: the stored primary if it still validates,
        otherwise a healed one, otherwise None."""
        entry = self.locator_store.get(page_name, element_key) if self.locator_store else None
        if entry is None:
            logger.warning(f"No stored locator for {page_name}.{element_key}")
            return None

        validated = await self.orchestrator.validator.validate(driver, entry.primary)
        if validated.is_valid and validated.confidence >= self.orchestrator.config.confidence_threshold:
            return entry.primary

        result = await self.orchestrator.heal(
            self._context(driver, page_name, element_key, entry.primary, action_type, test_name))
        return result.healed_selector if result.success else None

    def _track_failure(self, element_key: str) -> None:
        self._consecutive_failures[element_key] += 1
        count = self._consecutive_failures[element_key]
        if count >= self.FLAKY_WARNING_THRESHOLD:
            logger.warning(f'Element "{element_key}" has failed {count} times in a row')

    def is_healing_blocked(self, element_key: str) -> bool:
        return self._consecutive_failures[element_key] > self.HEALING_BLOCK_THRESHOLD

    def get_flaky_patterns(self) -> Dict[str, int]:
        """Elements that succeeded only after at least one failed attempt, with counts."""
        return dict(self._flaky_elements)
