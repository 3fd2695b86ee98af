"""
Services module for selector healing.

Validation, DOM capture, prompt building, selector providers, locator
persistence and the orchestrator that ties them together.
"""

from .healing_orchestrator import HealingOrchestrator, build_healing_orchestrator
from .locator_store import LocatorStore, LocatorStoreError
from .selector_validator import SelectorValidator
from .retry_handler import HealingActionExecutor, HealingFailedError, RetryResult

__all__ = [
    "HealingOrchestrator",
    "build_healing_orchestrator",
    "LocatorStore",
    "LocatorStoreError",
    "SelectorValidator",
    "HealingActionExecutor",
    "HealingFailedError",
    "RetryResult"
]
