"""
API module for the selector healing service.

This module contains:
- healing_endpoints.py: Heal, validate, health, locator and config endpoints
"""

__all__ = ["healing_endpoints"]
