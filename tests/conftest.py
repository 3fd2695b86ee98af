"""
Pytest configuration and shared fixtures for the test suite.
"""

import logging
import sys
from pathlib import Path

import pytest

# Make the src/ layout importable without installation
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))
sys.path.insert(0, str(Path(__file__).parent.parent))

from healing_engine.core.audit_trail import AuditTrail
from healing_engine.core.models import HealingConfiguration, LocatorEntry
from healing_engine.services.locator_store import LocatorStore
from tests.utils.fake_webdriver import FakeDriver


@pytest.fixture
def healing_config():
    """Healing configuration with short timeouts for tests."""
    return HealingConfiguration(
        enabled=True,
        confidence_threshold=0.7,
        max_retries=3,
        auto_update_locators=True,
        llm_timeout=5.0,
        healing_timeout=10.0,
        action_check_timeout=0.0,
    )


@pytest.fixture
def audit_trail(tmp_path):
    return AuditTrail(str(tmp_path / "audit"))


@pytest.fixture
def locator_store(tmp_path):
    return LocatorStore(str(tmp_path / "locators"))


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def login_entry():
    return LocatorEntry(primary="#broken", fallbacks=["#also-broken", "button[type=submit]"])


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
