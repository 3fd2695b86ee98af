"""
Integration tests for the healing HTTP API.

The browser is replaced by a fake session manager that serves a scripted
page, and the selector provider by a stub; everything between the route and
the locator file is the real stack.
"""

from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from selenium.common.exceptions import WebDriverException

from healing_engine.api import healing_endpoints
from healing_engine.core import config_loader as config_loader_module
from healing_engine.core.config_loader import SelfHealingConfigLoader
from healing_engine.core.models import LocatorEntry
from healing_engine.main import app
from healing_engine.services.healing_orchestrator import HealingOrchestrator
from tests.utils.fake_webdriver import FakeDriver, FakeElement, button
from tests.utils.stub_provider import StubProvider


class FakeChromeManager:
    """Serves one scripted FakeDriver regardless of the posted markup."""

    def __init__(self, driver=None, error=None):
        self.driver = driver or FakeDriver()
        self.error = error
        self.loaded = []

    @asynccontextmanager
    async def page_with_content(self, html):
        if self.error:
            raise self.error
        self.loaded.append(html)
        yield self.driver


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def chrome():
    return FakeChromeManager()


@pytest.fixture
def orchestrator(healing_config, provider, locator_store, audit_trail):
    return HealingOrchestrator(healing_config, provider, locator_store=locator_store,
                               audit_trail=audit_trail)


@pytest.fixture
def client(orchestrator, chrome, tmp_path):
    loader = SelfHealingConfigLoader(str(tmp_path / "self_healing.yaml"))
    app.dependency_overrides[healing_endpoints.get_healing_orchestrator] = lambda: orchestrator
    app.dependency_overrides[healing_endpoints.get_chrome_manager] = lambda: chrome
    with patch.object(config_loader_module, "config_loader", loader):
        yield TestClient(app)
    app.dependency_overrides.clear()


def heal_body(**overrides):
    body = {
        "pageName": "login",
        "elementKey": "loginButton",
        "failedSelector": "#broken",
        "domSnapshot": "<html><body><button type='submit'>Login</button></body></html>",
        "action": "click",
    }
    body.update(overrides)
    return body


class TestHealthEndpoint:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "healingEnabled" in data
        assert "timestamp" in data


class TestHealEndpoint:

    def test_heals_with_posted_fallbacks(self, client, chrome, provider, locator_store):
        chrome.driver.register("button[type=submit]", button("Login"))

        response = client.post("/api/heal", json=heal_body(
            fallbacks=["#also-broken", "button[type=submit]"]))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["healedSelector"] == "button[type=submit]"
        assert data["fallbacksAttempted"] == ["#also-broken", "button[type=submit]"]
        assert data["source"] == "fallback"
        assert data["persisted"] is True
        assert provider.prompts == []
        assert chrome.loaded == [heal_body()["domSnapshot"]]
        assert locator_store.get("login", "loginButton").primary == "button[type=submit]"

    def test_uses_stored_fallbacks(self, client, chrome, locator_store):
        locator_store.save_entry("login", "loginButton", LocatorEntry("#broken", ["#stored"]))
        chrome.driver.register("#stored", button())

        data = client.post("/api/heal", json=heal_body()).json()

        assert data["success"] is True
        assert data["healedSelector"] == "#stored"

    def test_llm_heal(self, client, chrome, provider):
        provider.selectors = ["#right-one"]
        chrome.driver.register("#right-one", button())

        data = client.post("/api/heal", json=heal_body()).json()

        assert data["success"] is True
        assert data["healedSelector"] == "#right-one"
        assert data["confidence"] == 1.0
        assert data["source"] == "llm"

    def test_no_selectors(self, client):
        data = client.post("/api/heal", json=heal_body()).json()
        assert data["success"] is False
        assert data["error"] == "LLM returned no selectors"
        assert data["healedSelector"] is None

    def test_below_threshold(self, client, chrome, provider):
        provider.selectors = [".row"]
        chrome.driver.register(".row", *[FakeElement("div", displayed=False, enabled=False)] * 5)
        data = client.post("/api/heal", json=heal_body(action="any")).json()
        assert data["success"] is False
        assert data["error"] == "No valid selector found above confidence threshold"

    @pytest.mark.parametrize("missing", ["pageName", "elementKey", "failedSelector", "domSnapshot"])
    def test_missing_field_rejected(self, client, missing):
        body = heal_body()
        del body[missing]
        assert client.post("/api/heal", json=body).status_code == 422

    def test_empty_field_rejected(self, client):
        assert client.post("/api/heal", json=heal_body(failedSelector="")).status_code == 422

    def test_unknown_action_rejected(self, client):
        assert client.post("/api/heal", json=heal_body(action="hover")).status_code == 422

    def test_browser_unavailable(self, client, chrome):
        chrome.error = WebDriverException("chrome not reachable")
        response = client.post("/api/heal", json=heal_body())
        assert response.status_code == 503
        assert response.json()["success"] is False
        assert "chrome not reachable" in response.json()["error"]


class TestValidateEndpoint:

    def test_valid_selector(self, client, chrome):
        chrome.driver.register("#ok", button())
        data = client.post("/api/validate", json={"selector": "#ok", "domSnapshot": "<p/>"}).json()
        assert data == {"valid": True, "confidence": 1.0, "elementCount": 1, "error": None}

    def test_no_match(self, client):
        data = client.post("/api/validate", json={"selector": "#nope", "domSnapshot": "<p/>"}).json()
        assert data["valid"] is False
        assert data["elementCount"] == 0


class TestLocatorsEndpoint:

    def test_get_locators(self, client, locator_store):
        locator_store.apply_update("login", "loginButton", "#login")
        data = client.get("/api/locators/login").json()
        assert data["loginButton"]["primary"] == "#login"
        assert data["loginButton"]["healCount"] == 1

    def test_missing_page(self, client):
        assert client.get("/api/locators/nowhere").status_code == 404

    def test_missing_page_after_lookup(self, client, locator_store):
        assert locator_store.get("nowhere", "anything") is None
        assert client.get("/api/locators/nowhere").status_code == 404

    def test_corrupt_page(self, client, locator_store):
        locator_store.base_dir.mkdir(parents=True, exist_ok=True)
        locator_store.file_path("broken").write_text("{oops", encoding="utf-8")
        assert client.get("/api/locators/broken").status_code == 500


class TestConfigEndpoint:

    def test_get_config(self, client):
        data = client.get("/api/config").json()
        assert data["confidence_threshold"] == 0.7
        assert data["max_retries"] == 3

    def test_update_config(self, client, tmp_path):
        response = client.put("/api/config", json={"confidence_threshold": 0.8, "max_retries": 5})
        assert response.status_code == 200
        assert response.json()["confidence_threshold"] == 0.8
        assert (tmp_path / "self_healing.yaml").exists()
        assert client.get("/api/config").json()["max_retries"] == 5

    def test_update_config_out_of_range(self, client):
        assert client.put("/api/config", json={"confidence_threshold": 1.5}).status_code == 422

    def test_update_config_inconsistent(self, client):
        response = client.put("/api/config", json={"llm_timeout": 300, "healing_timeout": 100})
        assert response.status_code == 400
        assert "healing timeout must be greater than llm timeout" in response.json()["detail"]
