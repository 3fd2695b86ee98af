"""
Healing orchestrator.

Drives one heal() call through its phases:

    START -> TRY_FALLBACKS -> (SUCCESS | QUERY_LLM) -> VALIDATE_LLM_CANDIDATES
          -> (SUCCESS | FAILURE)

Known fallbacks are tried first, in order, and the first one that clears the
confidence threshold wins. Only when none does is the page captured and the
selector provider queried. Every candidate it returns is validated before
ranking, and only the top-ranked candidate gets the action-fitness check.

The healing timeout bounds identification only. Write-back of the winning
selector runs after it, so the locator file is never rewritten behind a
timed-out result.

heal() never raises. Every outcome, including provider outages, timeouts and
write-back failures, comes back as a HealingResult and is recorded in the
audit trail.
"""

import asyncio
import dataclasses
import logging
import time
from typing import List, Optional, Tuple

from ..core.audit_trail import AuditEventType, AuditTrail, get_audit_trail
from ..core.config import Settings
from ..core.logging_config import get_healing_logger
from ..core.models import (
    HealingConfiguration, HealingContext, HealingResult, HealingSource,
    LLMSelectorResponse
)
from .dom_snapshot import DomSnapshotService
from .llm_client import SelectorProvider, get_selector_provider
from .locator_analyzer import LocatorAnalyzer
from .locator_store import LocatorStore, LocatorStoreError
from .selector_validator import SelectorValidator

logger = logging.getLogger(__name__)

ERROR_DISABLED = "disabled"
ERROR_NO_SELECTORS = "LLM returned no selectors"
ERROR_BELOW_THRESHOLD = "No valid selector found above confidence threshold"


class HealingOrchestrator:
    """Coordinates fallback search, LLM query, validation and persistence."""

    def __init__(self, config: HealingConfiguration, provider: SelectorProvider,
                 validator: Optional[SelectorValidator] = None,
                 snapshot_service: Optional[DomSnapshotService] = None,
                 analyzer: Optional[LocatorAnalyzer] = None,
                 locator_store: Optional[LocatorStore] = None,
                 audit_trail: Optional[AuditTrail] = None):
        self.config = config
        self.provider = provider
        self.validator = validator or SelectorValidator(config.action_check_timeout)
        self.snapshot_service = snapshot_service or DomSnapshotService(
            config.max_html_chars, config.max_similar_elements)
        self.analyzer = analyzer or LocatorAnalyzer(config.max_prompt_html_chars)
        self.locator_store = locator_store
        self.audit_trail = audit_trail or get_audit_trail()

    async def heal(self, context: HealingContext) -> HealingResult:
        """Find a working replacement for ``context.failed_selector``. Never raises."""
        start = time.monotonic()
        attempted: List[str] = []
        log = get_healing_logger("orchestrator", context.page_name, context.element_key,
                                 context.test_name)

        if not self.config.enabled:
            result = self._failure(context, attempted, start, ERROR_DISABLED)
            self.audit_trail.log_healing_result(context, result)
            return result

        log.log_operation_start("heal", failed_selector=context.failed_selector,
                                action=context.action.value)
        self.audit_trail.log_healing_started(context)

        try:
            result = await asyncio.wait_for(
                self._identify(context, attempted, start, log),
                timeout=self.config.healing_timeout)
        except asyncio.TimeoutError:
            result = self._failure(
                context, attempted, start,
                f"Healing timed out after {self.config.healing_timeout}s")
        except Exception as e:
            logger.exception(f"Unexpected error healing {context.page_name}.{context.element_key}")
            self.audit_trail.log_error("orchestrator", str(e), context.page_name, context.element_key)
            result = self._failure(context, attempted, start, f"Healing error: {e}")

        if result.success:
            result = await self._persist(context, result, start)

        duration = result.duration_ms / 1000.0
        if result.success:
            log.log_operation_success("heal", duration, healed_selector=result.healed_selector,
                                      confidence=result.confidence, source=result.source)
        else:
            log.log_operation_failure("heal", duration, result.error,
                                      attempted=list(result.all_attempted_selectors))

        self.audit_trail.log_healing_result(context, result)
        return result

    async def _identify(self, context: HealingContext, attempted: List[str], start: float,
                        log) -> HealingResult:
        threshold = self.config.confidence_threshold
        driver = context.driver

        # Fallback phase: first known-good alternative above threshold wins
        for selector in context.fallbacks:
            attempted.append(selector)
            validated = await self.validator.validate(driver, selector)
            log.log_progress("fallback", f"'{selector}' scored {validated.confidence}",
                             match_count=validated.match_count)
            accepted = validated.is_valid and validated.confidence >= threshold
            self.audit_trail.log_event(
                AuditEventType.FALLBACK_ATTEMPTED, "orchestrator",
                f"Fallback '{selector}' scored {validated.confidence}",
                page_name=context.page_name, element_key=context.element_key,
                test_case=context.test_name, success=accepted,
                details=validated.to_dict())
            if accepted:
                return self._success(context, attempted, start, selector,
                                           validated.confidence, HealingSource.FALLBACK)

        # LLM phase
        snapshot = await self.snapshot_service.capture(driver, context.failed_selector)
        analysis = self.analyzer.analyze(context.failed_selector, snapshot,
                                         context.locator_entry, context.element_key)
        prompt = self.analyzer.build_prompt(analysis)

        response, query_error = await self._query_provider(context, prompt)
        if query_error:
            return self._failure(context, attempted, start, query_error)
        if not response.selectors:
            return self._failure(context, attempted, start, ERROR_NO_SELECTORS)

        attempted.extend(response.selectors)
        ranked = await self.validator.validate_all(driver, response.selectors)
        for validated in ranked:
            self.audit_trail.log_event(
                AuditEventType.CANDIDATE_VALIDATED, "validator",
                f"Candidate '{validated.selector}' scored {validated.confidence}",
                page_name=context.page_name, element_key=context.element_key,
                test_case=context.test_name, success=validated.is_valid,
                details=validated.to_dict())

        best = self.validator.select_best(ranked, threshold)
        if best is None:
            top = ranked[0].confidence if ranked else 0.0
            return self._failure(context, attempted, start, ERROR_BELOW_THRESHOLD, confidence=top)

        # Single shot: a fitness failure does not fall through to the next candidate
        if not await self.validator.check_action_fitness(driver, best.selector, context.action):
            self.audit_trail.log_event(
                AuditEventType.ACTION_CHECK_FAILED, "validator",
                f"'{best.selector}' is not suitable for action '{context.action.value}'",
                page_name=context.page_name, element_key=context.element_key,
                test_case=context.test_name, success=False,
                details={"selector": best.selector, "action": context.action.value})
            return self._failure(
                context, attempted, start,
                f"Selector found but not suitable for action: {context.action.value}",
                confidence=best.confidence)

        return self._success(context, attempted, start, best.selector,
                                   best.confidence, HealingSource.LLM)

    async def _query_provider(self, context: HealingContext,
                              prompt: str) -> Tuple[LLMSelectorResponse, Optional[str]]:
        """Query the provider; failures and timeouts come back as an error string."""
        query_start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self.provider.generate_selectors(prompt), timeout=self.config.llm_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Selector provider timed out after {self.config.llm_timeout}s")
            response, error = LLMSelectorResponse.empty("LLM query timed out"), "LLM query failed: timeout"
        except Exception as e:
            logger.error(f"Selector provider query failed: {e}")
            response, error = LLMSelectorResponse.empty("LLM query failed"), f"LLM query failed: {e}"
        else:
            error = None

        self.audit_trail.log_llm_query(context, response.selectors, response.reasoning,
                                       time.monotonic() - query_start)
        return response, error

    async def _persist(self, context: HealingContext, result: HealingResult,
                       start: float) -> HealingResult:
        """Write the healed selector back and record what actually happened."""
        if not self.config.auto_update_locators or self.locator_store is None:
            return result

        selector = result.healed_selector
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, self.locator_store.apply_update,
                                       context.page_name, context.element_key, selector)
        except LocatorStoreError as e:
            error = str(e)
        except Exception as e:
            logger.exception(f"Unexpected error writing locator {context.page_name}.{context.element_key}")
            error = f"Unexpected error: {e}"
        else:
            self.audit_trail.log_locator_update(context, selector, True)
            return dataclasses.replace(result, persisted=True, duration_ms=_elapsed_ms(start))

        self.audit_trail.log_locator_update(context, selector, False, error)
        return dataclasses.replace(
            result,
            persisted=False,
            persistence_error=error,
            error=f"Locator write-back failed: {error}",
            duration_ms=_elapsed_ms(start),
        )

    @staticmethod
    def _success(context: HealingContext, attempted: List[str], start: float,
                 selector: str, confidence: float, source: HealingSource) -> HealingResult:
        return HealingResult(
            success=True,
            original_selector=context.failed_selector,
            healed_selector=selector,
            all_attempted_selectors=tuple(attempted),
            confidence=confidence,
            retry_count=len(attempted),
            duration_ms=_elapsed_ms(start),
            source=source,
        )

    @staticmethod
    def _failure(context: HealingContext, attempted: List[str], start: float, error: str,
                 confidence: float = 0.0) -> HealingResult:
        return HealingResult(
            success=False,
            original_selector=context.failed_selector,
            all_attempted_selectors=tuple(attempted),
            confidence=confidence,
            retry_count=len(attempted),
            duration_ms=_elapsed_ms(start),
            error=error,
        )


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 1)


def build_healing_orchestrator(config: HealingConfiguration, app_settings: Settings,
                               provider: Optional[SelectorProvider] = None,
                               audit_trail: Optional[AuditTrail] = None) -> HealingOrchestrator:
    """Wire an orchestrator from configuration."""
    return HealingOrchestrator(
        config=config,
        provider=provider or get_selector_provider(app_settings),
        locator_store=LocatorStore(app_settings.LOCATORS_DIR),
        audit_trail=audit_trail,
    )
