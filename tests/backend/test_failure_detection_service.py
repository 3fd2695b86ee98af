"""Tests for classifying action errors as healable locator failures."""

import pytest
from selenium.common.exceptions import (
    ElementNotInteractableException, NoSuchElementException, StaleElementReferenceException,
    TimeoutException, WebDriverException
)

from healing_engine.core.models import FailureType
from healing_engine.services.failure_detection_service import FailureDetectionService


@pytest.fixture
def detector():
    return FailureDetectionService()


class TestClassifyFailure:

    @pytest.mark.parametrize("error,expected", [
        (NoSuchElementException("no such element"), FailureType.ELEMENT_NOT_FOUND),
        (ElementNotInteractableException("not interactable"), FailureType.ELEMENT_NOT_INTERACTABLE),
        (StaleElementReferenceException("stale"), FailureType.STALE_ELEMENT),
        (TimeoutException("waited"), FailureType.TIMEOUT),
    ])
    def test_selenium_exception_types(self, detector, error, expected):
        assert detector.classify_failure(error) == expected

    @pytest.mark.parametrize("message,expected", [
        ("Element not found: #login", FailureType.ELEMENT_NOT_FOUND),
        ("strict mode violation: locator resolved to 3 elements", FailureType.AMBIGUOUS_MATCH),
        ("Timeout 30000ms exceeded.", FailureType.TIMEOUT),
        ("waiting for locator('#login') to be visible", FailureType.TIMEOUT),
        ("element click intercepted: other element would receive the click", FailureType.ELEMENT_NOT_INTERACTABLE),
        ("Target closed", FailureType.STALE_ELEMENT),
        ("AssertionError: expected 'Welcome' to equal 'Hello'", FailureType.OTHER),
        ("", FailureType.OTHER),
    ])
    def test_messages(self, detector, message, expected):
        assert detector.classify_failure(message) == expected

    def test_generic_webdriver_error_uses_message(self, detector):
        error = WebDriverException("no element matching '#login'")
        assert detector.classify_failure(error) == FailureType.ELEMENT_NOT_FOUND


class TestHealable:

    def test_locator_errors_are_healable(self, detector):
        assert detector.is_healable_error(NoSuchElementException("gone"))
        assert detector.is_healable_error("Timeout 5000ms exceeded")

    def test_other_errors_are_not(self, detector):
        assert not detector.is_healable_error(ValueError("bad test data"))
        assert not detector.is_healable_error("net::ERR_CONNECTION_REFUSED")


def test_extract_selector_from_selenium_message(detector):
    message = ('Message: no such element: Unable to locate element: '
               '{"method":"css selector","selector":"#login"}\n  (Session info: chrome=120)')
    assert detector.extract_selector(message) == "#login"
    assert detector.extract_selector("something else") is None
    assert detector.extract_selector("Unable to locate element: {broken}") is None
