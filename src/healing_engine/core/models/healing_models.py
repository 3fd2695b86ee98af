"""Data models for the selector self-healing engine."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum


class FailureType(Enum):
    """Types of locator failures that can be healed."""
    ELEMENT_NOT_FOUND = "element_not_found"
    ELEMENT_NOT_INTERACTABLE = "element_not_interactable"
    TIMEOUT = "timeout"
    STALE_ELEMENT = "stale_element"
    AMBIGUOUS_MATCH = "ambiguous_match"
    OTHER = "other"


class ElementAction(Enum):
    """Action the caller intends to perform on the healed element."""
    CLICK = "click"
    FILL = "fill"
    VISIBLE = "visible"
    TEXT = "text"
    ANY = "any"


class SelectorDialect(Enum):
    """Syntax family of a selector string."""
    CSS = "css"
    XPATH = "xpath"
    ROLE = "role"
    TEXT = "text"
    LABEL = "label"
    PLACEHOLDER = "placeholder"
    TEST_ID = "testid"


class HealingSource(Enum):
    """Where a healed selector came from."""
    FALLBACK = "fallback"
    LLM = "llm"


@dataclass
class LocatorEntry:
    """Stored locator for one element of a page."""
    primary: str
    fallbacks: List[str] = field(default_factory=list)
    last_healed: Optional[datetime] = None
    heal_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the on-disk JSON shape."""
        data: Dict[str, Any] = {
            "primary": self.primary,
            "fallbacks": list(self.fallbacks),
        }
        if self.last_healed is not None:
            data["lastHealed"] = self.last_healed.isoformat()
        if self.heal_count:
            data["healCount"] = self.heal_count
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LocatorEntry':
        """Create from the on-disk JSON shape."""
        last_healed = data.get("lastHealed")
        return cls(
            primary=data["primary"],
            fallbacks=[f for f in data.get("fallbacks", []) if isinstance(f, str)],
            last_healed=datetime.fromisoformat(last_healed.replace("Z", "+00:00")) if last_healed else None,
            heal_count=int(data.get("healCount", 0) or 0),
        )

    def copy(self) -> 'LocatorEntry':
        return LocatorEntry(self.primary, list(self.fallbacks), self.last_healed, self.heal_count)


@dataclass(frozen=True)
class HealingContext:
    """Everything the orchestrator needs to heal one failed locator."""
    page_name: str
    element_key: str
    failed_selector: str
    locator_entry: Optional[LocatorEntry] = None
    action: ElementAction = ElementAction.ANY
    test_name: Optional[str] = None
    driver: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        # Private copy of the caller's entry
        if self.locator_entry is not None:
            object.__setattr__(self, "locator_entry", self.locator_entry.copy())

    @property
    def fallbacks(self) -> Tuple[str, ...]:
        if self.locator_entry is None:
            return ()
        return tuple(self.locator_entry.fallbacks)


@dataclass(frozen=True)
class ValidatedSelector:
    """Result of resolving one selector against the live page."""
    selector: str
    is_valid: bool
    match_count: int
    confidence: float
    is_visible: bool = False
    is_enabled: bool = False
    tag_name: Optional[str] = None
    has_text: bool = False
    error: Optional[str] = None

    @classmethod
    def no_match(cls, selector: str, error: Optional[str] = None) -> 'ValidatedSelector':
        return cls(selector=selector, is_valid=False, match_count=0, confidence=0.0, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HealingResult:
    """Terminal outcome of a heal() call.

    ``success`` reports selector identification. Write-back to the locator
    store is reported independently through ``persisted``: None when no
    write was attempted, False when the write failed.
    """
    success: bool
    original_selector: str
    healed_selector: Optional[str] = None
    all_attempted_selectors: Tuple[str, ...] = ()
    confidence: float = 0.0
    retry_count: int = 0
    duration_ms: float = 0.0
    error: Optional[str] = None
    source: Optional[HealingSource] = None
    persisted: Optional[bool] = None
    persistence_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for audit records and API responses."""
        return {
            "success": self.success,
            "original_selector": self.original_selector,
            "healed_selector": self.healed_selector,
            "all_attempted_selectors": list(self.all_attempted_selectors),
            "confidence": self.confidence,
            "retry_count": self.retry_count,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "source": self.source.value if self.source else None,
            "persisted": self.persisted,
            "persistence_error": self.persistence_error,
        }


@dataclass
class LLMSelectorResponse:
    """Candidate selectors returned by a provider."""
    selectors: List[str] = field(default_factory=list)
    reasoning: str = ""
    confidence: float = 0.0

    @classmethod
    def empty(cls, reasoning: str) -> 'LLMSelectorResponse':
        return cls(selectors=[], reasoning=reasoning, confidence=0.0)


@dataclass
class ElementContext:
    """Structured description of the (partially) resolved target element."""
    tag_name: str
    id: Optional[str] = None
    classes: List[str] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    text: Optional[str] = None
    placeholder: Optional[str] = None
    aria_label: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    href: Optional[str] = None
    parent_tag: Optional[str] = None
    parent_classes: List[str] = field(default_factory=list)
    sibling_tags: List[str] = field(default_factory=list)
    child_count: int = 0
    position: Optional[Dict[str, float]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ElementContext':
        """Build from the camelCase mapping produced by the page script."""
        return cls(
            tag_name=(data.get("tagName") or "").lower(),
            id=data.get("id") or None,
            classes=list(data.get("classes") or []),
            attributes=dict(data.get("attributes") or {}),
            text=data.get("text") or None,
            placeholder=data.get("placeholder") or None,
            aria_label=data.get("ariaLabel") or None,
            role=data.get("role") or None,
            name=data.get("name") or None,
            type=data.get("type") or None,
            href=data.get("href") or None,
            parent_tag=(data.get("parentTag") or "").lower() or None,
            parent_classes=list(data.get("parentClasses") or []),
            sibling_tags=[t.lower() for t in data.get("siblingTags") or []],
            child_count=int(data.get("childCount") or 0),
            position=data.get("position"),
        )


@dataclass
class DomSnapshot:
    """Bounded, sanitized page context used for prompting."""
    url: str = ""
    title: str = ""
    html: str = ""
    element: Optional[ElementContext] = None
    similar_elements: List[ElementContext] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def empty(cls, url: str = "") -> 'DomSnapshot':
        return cls(url=url)


@dataclass
class LocatorAnalysis:
    """Normalized view of a failed locator used to build the prompt."""
    element_key: str
    element_type: str
    failed_selector: str
    known_selectors: List[str] = field(default_factory=list)
    attribute_hints: Dict[str, Any] = field(default_factory=dict)
    expected_text: Optional[str] = None
    dom_snapshot: Optional[DomSnapshot] = None


@dataclass
class HealingConfiguration:
    """Configuration for selector healing behaviour."""
    enabled: bool = True
    confidence_threshold: float = 0.7
    max_retries: int = 3
    auto_update_locators: bool = True
    llm_timeout: float = 60.0
    healing_timeout: float = 120.0
    action_check_timeout: float = 2.0
    max_html_chars: int = 10000
    max_prompt_html_chars: int = 4000
    max_similar_elements: int = 5

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HealingConfiguration':
        """Create from dictionary, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
