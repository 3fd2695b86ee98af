"""
Core module for the selector healing engine.

This module contains:
- config.py: Application settings
- config_loader.py: Healing behaviour configuration (YAML)
- logging_config.py: Structured logging configuration
- audit_trail.py: Audit records for healing attempts
"""

__all__ = ["config", "config_loader", "logging_config", "audit_trail"]
