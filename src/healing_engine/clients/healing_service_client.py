"""
Client for the healing HTTP service.

Test runners use this to ask a running healing service for a replacement
selector. The service being down is never an error for the caller: every
method degrades to "healing unavailable".
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


@dataclass
class ServiceHealResult:
    """Heal response as returned by the service."""
    success: bool
    healed_selector: Optional[str] = None
    confidence: float = 0.0
    fallbacks_attempted: List[str] = field(default_factory=list)
    duration_ms: float = 0.0
    error: Optional[str] = None
    persisted: Optional[bool] = None
    persistence_error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServiceHealResult':
        return cls(
            success=bool(data.get("success")),
            healed_selector=data.get("healedSelector"),
            confidence=float(data.get("confidence") or 0.0),
            fallbacks_attempted=list(data.get("fallbacksAttempted") or []),
            duration_ms=float(data.get("durationMs") or 0.0),
            error=data.get("error"),
            persisted=data.get("persisted"),
            persistence_error=data.get("persistenceError"),
        )

    @classmethod
    def failed(cls, error: str) -> 'ServiceHealResult':
        return cls(success=False, error=error)


class HealingServiceClient:
    """Talks to the healing service over HTTP with requests."""

    def __init__(self, service_url: str = "http://localhost:3001", enabled: bool = True,
                 connect_timeout: float = 5.0, read_timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.service_url = service_url.rstrip("/")
        self.enabled = enabled
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.session = session or requests.Session()
        self._service_available = False

    def check_service_health(self) -> bool:
        """Probe ``/api/health`` and remember the answer."""
        if not self.enabled:
            logger.debug("Healing is disabled in configuration")
            return False

        try:
            response = self.session.get(f"{self.service_url}/api/health",
                                        timeout=self.connect_timeout)
            self._service_available = response.status_code == 200
        except requests.RequestException as e:
            self._service_available = False
            logger.warning(f"Healing service not available: {e}")
            return False

        if self._service_available:
            logger.info(f"Healing service is available at: {self.service_url}")
        else:
            logger.warning(f"Healing service returned status: {response.status_code}")
        return self._service_available

    def is_healing_available(self) -> bool:
        return self.enabled and (self._service_available or self.check_service_health())

    def heal(self, page_name: str, element_key: str, failed_selector: str, dom_snapshot: str,
             action: str = "any", fallbacks: Optional[List[str]] = None,
             test_name: Optional[str] = None) -> ServiceHealResult:
        """Request a healed selector. Never raises."""
        if not self.enabled:
            return ServiceHealResult.failed("Healing is disabled")
        if not self.is_healing_available():
            return ServiceHealResult.failed("Healing service not available")

        payload: Dict[str, Any] = {
            "pageName": page_name,
            "elementKey": element_key,
            "failedSelector": failed_selector,
            "domSnapshot": dom_snapshot,
            "action": action,
        }
        if fallbacks is not None:
            payload["fallbacks"] = list(fallbacks)
        if test_name:
            payload["testName"] = test_name

        logger.info(f"Requesting healing for: {page_name}.{element_key}")
        try:
            response = self.session.post(f"{self.service_url}/api/heal", json=payload,
                                         timeout=(self.connect_timeout, self.read_timeout))
        except requests.RequestException as e:
            logger.error(f"Healing request failed: {e}")
            self._service_available = False
            return ServiceHealResult.failed(f"Request failed: {e}")

        if response.status_code != 200:
            logger.error(f"Healing API returned error status: {response.status_code}")
            return ServiceHealResult.failed(f"HTTP {response.status_code}: {response.text}")

        try:
            result = ServiceHealResult.from_dict(response.json())
        except (ValueError, AttributeError, TypeError) as e:
            return ServiceHealResult.failed(f"Invalid response from healing service: {e}")

        if result.success:
            logger.info(f"Healing successful: {result.healed_selector} (confidence: {result.confidence})")
        else:
            logger.warning(f"Healing failed: {result.error}")
        return result

    def validate_selector(self, selector: str, dom_snapshot: str) -> bool:
        """True when the service reports the selector valid against the snapshot."""
        if not self.is_healing_available():
            return False
        try:
            response = self.session.post(
                f"{self.service_url}/api/validate",
                json={"selector": selector, "domSnapshot": dom_snapshot},
                timeout=(self.connect_timeout, self.read_timeout))
            if response.status_code == 200:
                return bool(response.json().get("valid"))
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.warning(f"Validation request failed: {e}")
        return False
