"""HTTP client for test runners talking to the healing service."""

from .healing_service_client import HealingServiceClient, ServiceHealResult

__all__ = ["HealingServiceClient", "ServiceHealResult"]
