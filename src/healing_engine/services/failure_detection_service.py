"""
Failure detection for selector healing.

Decides whether an error raised by a browser action is a locator problem the
healing engine can do something about, and classifies it.
"""

import json
import logging
import re
from typing import Optional, Union

from selenium.common.exceptions import (
    ElementNotInteractableException,
    InvalidSelectorException,
    NoSuchElementException,
    StaleElementReferenceException,
    TimeoutException,
)

from ..core.models import FailureType

logger = logging.getLogger(__name__)


class FailureDetectionService:
    """Classifies action errors and decides whether they are healable."""

    # Message patterns that indicate locator-related failures
    LOCATOR_EXCEPTION_PATTERNS = {
        FailureType.ELEMENT_NOT_FOUND: [
            r"NoSuchElementException",
            r"Unable to locate element",
            r"Element not found",
            r"Could not find element",
            r"no element matching",
            r"InvalidSelectorException",
        ],
        FailureType.AMBIGUOUS_MATCH: [
            r"strict mode violation",
            r"locator resolved to \d+ elements",
        ],
        FailureType.ELEMENT_NOT_INTERACTABLE: [
            r"ElementNotInteractableException",
            r"Element is not interactable",
            r"Element .* is not clickable",
            r"element click intercepted",
            r"Element not visible",
        ],
        FailureType.TIMEOUT: [
            r"TimeoutException",
            r"Timed out waiting for element",
            r"Timeout \d+ms exceeded",
            r"waiting for (?:locator|selector|element)",
            r"\bTimeout\b",
        ],
        FailureType.STALE_ELEMENT: [
            r"StaleElementReferenceException",
            r"Element is no longer attached",
            r"Stale element reference",
            r"Target closed",
        ],
    }

    EXCEPTION_TYPES = {
        NoSuchElementException: FailureType.ELEMENT_NOT_FOUND,
        InvalidSelectorException: FailureType.ELEMENT_NOT_FOUND,
        ElementNotInteractableException: FailureType.ELEMENT_NOT_INTERACTABLE,
        StaleElementReferenceException: FailureType.STALE_ELEMENT,
        TimeoutException: FailureType.TIMEOUT,
    }

    # Selenium embeds the failed locator as JSON in "no such element" messages
    SELENIUM_LOCATOR_PATTERN = re.compile(r"Unable to locate element:\s*(\{.*?\})")

    def classify_failure(self, error: Union[BaseException, str]) -> FailureType:
        """Map an exception or error message onto a FailureType."""
        if isinstance(error, BaseException):
            for exc_type, failure_type in self.EXCEPTION_TYPES.items():
                if isinstance(error, exc_type):
                    return failure_type
            message = f"{type(error).__name__}: {error}"
        else:
            message = error or ""

        for failure_type, patterns in self.LOCATOR_EXCEPTION_PATTERNS.items():
            for pattern in patterns:
                if re.search(pattern, message, re.IGNORECASE):
                    return failure_type
        return FailureType.OTHER

    def is_healable_error(self, error: Union[BaseException, str]) -> bool:
        """True when the error looks like a locator problem."""
        healable = self.classify_failure(error) != FailureType.OTHER
        logger.debug(f"Error classified as {'healable' if healable else 'not healable'}: {error}")
        return healable

    def extract_selector(self, message: str) -> Optional[str]:
        """Pull the failed selector out of a Selenium "no such element" message, if present."""
        match = self.SELENIUM_LOCATOR_PATTERN.search(message or "")
        if not match:
            return None
        try:
            return json.loads(match.group(1)).get("selector")
        except (json.JSONDecodeError, AttributeError):
            return None
