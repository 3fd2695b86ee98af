"""Core data models for the selector healing engine."""

from .healing_models import (
    LocatorEntry,
    HealingContext,
    ValidatedSelector,
    HealingResult,
    LLMSelectorResponse,
    ElementContext,
    DomSnapshot,
    LocatorAnalysis,
    HealingConfiguration,
    FailureType,
    ElementAction,
    SelectorDialect,
    HealingSource
)

__all__ = [
    "LocatorEntry",
    "HealingContext",
    "ValidatedSelector",
    "HealingResult",
    "LLMSelectorResponse",
    "ElementContext",
    "DomSnapshot",
    "LocatorAnalysis",
    "HealingConfiguration",
    "FailureType",
    "ElementAction",
    "SelectorDialect",
    "HealingSource"
]
