"""Tests for the HTTP client test runners use to reach the healing service."""

from unittest.mock import Mock

import pytest
import requests

from healing_engine.clients.healing_service_client import HealingServiceClient, ServiceHealResult


def response(status=200, payload=None, text=""):
    mock = Mock(status_code=status, text=text)
    mock.json.return_value = payload or {}
    return mock


@pytest.fixture
def session():
    session = Mock(spec=requests.Session)
    session.get.return_value = response(200, {"status": "ok"})
    return session


@pytest.fixture
def client(session):
    return HealingServiceClient("http://healer:3001/", session=session)


class TestHealthCheck:

    def test_available(self, client, session):
        assert client.check_service_health()
        session.get.assert_called_once_with("http://healer:3001/api/health", timeout=5.0)

    def test_unreachable(self, client, session):
        session.get.side_effect = requests.ConnectionError("refused")
        assert not client.check_service_health()
        assert not client.is_healing_available()

    def test_disabled_never_calls_service(self, session):
        client = HealingServiceClient(enabled=False, session=session)
        assert not client.check_service_health()
        assert client.heal("login", "loginButton", "#x", "<html/>").error == "Healing is disabled"
        session.get.assert_not_called()
        session.post.assert_not_called()


class TestHeal:

    def test_successful_heal(self, client, session):
        session.post.return_value = response(200, {
            "success": True, "healedSelector": "#new", "confidence": 0.9,
            "fallbacksAttempted": ["#a"], "durationMs": 120.5, "persisted": True,
        })

        result = client.heal("login", "loginButton", "#old", "<html/>", action="click",
                             fallbacks=["#a"], test_name="test_login")

        assert result == ServiceHealResult(True, "#new", 0.9, ["#a"], 120.5, None, True)
        url = session.post.call_args.args[0]
        payload = session.post.call_args.kwargs["json"]
        assert url == "http://healer:3001/api/heal"
        assert payload == {"pageName": "login", "elementKey": "loginButton", "failedSelector": "#old",
                           "domSnapshot": "<html/>", "action": "click", "fallbacks": ["#a"],
                           "testName": "test_login"}
        assert session.post.call_args.kwargs["timeout"] == (5.0, 30.0)

    def test_service_down(self, client, session):
        session.get.side_effect = requests.ConnectionError("refused")
        result = client.heal("login", "loginButton", "#old", "<html/>")
        assert result.error == "Healing service not available"
        session.post.assert_not_called()

    def test_request_error_marks_service_unavailable(self, client, session):
        session.post.side_effect = requests.Timeout("read timed out")
        result = client.heal("login", "loginButton", "#old", "<html/>")
        assert not result.success
        assert result.error.startswith("Request failed:")
        assert client._service_available is False

    def test_http_error(self, client, session):
        session.post.return_value = response(422, text='{"detail": "invalid"}')
        result = client.heal("login", "loginButton", "#old", "<html/>")
        assert result.error == 'HTTP 422: {"detail": "invalid"}'

    def test_failed_heal_is_passed_through(self, client, session):
        session.post.return_value = response(200, {"success": False, "error": "LLM returned no selectors"})
        result = client.heal("login", "loginButton", "#old", "<html/>")
        assert not result.success
        assert result.error == "LLM returned no selectors"

    def test_write_back_failure_is_carried_over(self, client, session):
        session.post.return_value = response(200, {
            "success": True, "healedSelector": "#new", "persisted": False,
            "persistenceError": "disk full", "error": "Locator write-back failed: disk full",
        })
        result = client.heal("login", "loginButton", "#old", "<html/>")
        assert result.success
        assert result.persisted is False
        assert result.persistence_error == "disk full"

    @pytest.mark.parametrize("body", [["not", "an", "object"], "text", 42])
    def test_non_object_body(self, client, session, body):
        session.post.return_value = response(200, body)
        result = client.heal("login", "loginButton", "#old", "<html/>")
        assert not result.success
        assert result.error.startswith("Invalid response from healing service")


class TestValidateSelector:

    def test_valid(self, client, session):
        session.post.return_value = response(200, {"valid": True, "confidence": 1.0})
        assert client.validate_selector("#ok", "<button id='ok'/>")

    def test_invalid_or_error(self, client, session):
        session.post.return_value = response(200, {"valid": False})
        assert not client.validate_selector("#nope", "<html/>")
        session.post.side_effect = requests.ConnectionError("refused")
        assert not client.validate_selector("#nope", "<html/>")
