"""
Audit trail for selector healing attempts.

Every heal() call leaves a record here, whatever its outcome, so that
"no candidate found", provider outages and write-back failures can be told
apart after a test run.
"""

import json
import uuid
from datetime import datetime
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Any
from enum import Enum
from pathlib import Path
import logging

from .models import HealingContext, HealingResult


class AuditEventType(Enum):
    """Types of audit events."""
    HEALING_STARTED = "healing_started"
    FALLBACK_ATTEMPTED = "fallback_attempted"
    LLM_QUERY_COMPLETED = "llm_query_completed"
    CANDIDATE_VALIDATED = "candidate_validated"
    ACTION_CHECK_FAILED = "action_check_failed"
    LOCATOR_FILE_UPDATED = "locator_file_updated"
    LOCATOR_FILE_UPDATE_FAILED = "locator_file_update_failed"
    HEALING_COMPLETED = "healing_completed"
    ERROR_OCCURRED = "error_occurred"


@dataclass
class AuditEvent:
    """A single audit event record."""
    event_id: str
    event_type: AuditEventType
    timestamp: datetime
    page_name: Optional[str]
    element_key: Optional[str]
    test_case: Optional[str]
    component: str
    message: str
    details: Dict[str, Any]
    success: Optional[bool] = None
    duration: Optional[float] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert audit event to dictionary."""
        data = asdict(self)
        data['event_type'] = self.event_type.value
        data['timestamp'] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        """Create audit event from dictionary."""
        data = data.copy()
        data['event_type'] = AuditEventType(data['event_type'])
        data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        return cls(**data)


class AuditTrail:
    """Audit trail manager for healing operations."""

    def __init__(self, storage_path: str = "logs/audit", max_recent_events: int = 1000):
        """
        Initialize audit trail.

        Args:
            storage_path: Directory for the daily JSONL files
            max_recent_events: Size of the in-memory window of recent events
        """
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("healing.audit")

        self._recent_events: List[AuditEvent] = []
        self._max_recent_events = max_recent_events

    def log_event(self, event_type: AuditEventType, component: str, message: str,
                  page_name: str = None, element_key: str = None, test_case: str = None,
                  details: Dict[str, Any] = None, success: bool = None,
                  duration: float = None, error_message: str = None) -> str:
        """
        Record an audit event.

        Returns:
            Event ID
        """
        event = AuditEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            timestamp=datetime.now(),
            page_name=page_name,
            element_key=element_key,
            test_case=test_case,
            component=component,
            message=message,
            details=details or {},
            success=success,
            duration=duration,
            error_message=error_message
        )

        self._recent_events.append(event)
        if len(self._recent_events) > self._max_recent_events:
            self._recent_events.pop(0)

        self.logger.info(message, extra={
            'operation': event_type.value,
            'page_name': page_name,
            'element_key': element_key,
            'test_case': test_case,
            'success': success,
            'duration': duration,
            'metadata': details
        })

        self._save_event_to_file(event)
        return event.event_id

    def log_healing_started(self, context: HealingContext) -> str:
        """Log the start of a heal() call."""
        return self.log_event(
            event_type=AuditEventType.HEALING_STARTED,
            component="orchestrator",
            message=f"Healing {context.page_name}.{context.element_key}",
            page_name=context.page_name,
            element_key=context.element_key,
            test_case=context.test_name,
            details={
                "failed_selector": context.failed_selector,
                "fallbacks": list(context.fallbacks),
                "action": context.action.value
            }
        )

    def log_llm_query(self, context: HealingContext, selectors: List[str],
                      reasoning: str, duration: float) -> str:
        """Log the candidates returned by the selector provider."""
        return self.log_event(
            event_type=AuditEventType.LLM_QUERY_COMPLETED,
            component="llm",
            message=f"Provider returned {len(selectors)} candidate selectors",
            page_name=context.page_name,
            element_key=context.element_key,
            test_case=context.test_name,
            success=bool(selectors),
            duration=duration,
            details={"selectors": list(selectors), "reasoning": reasoning}
        )

    def log_locator_update(self, context: HealingContext, new_primary: str,
                           success: bool, error_message: Optional[str] = None) -> str:
        """Log the outcome of writing a healed selector back to the store."""
        event_type = (AuditEventType.LOCATOR_FILE_UPDATED if success
                      else AuditEventType.LOCATOR_FILE_UPDATE_FAILED)
        return self.log_event(
            event_type=event_type,
            component="locator_store",
            message=f"Locator write-back for {context.page_name}.{context.element_key}: "
                    f"{'ok' if success else 'failed'}",
            page_name=context.page_name,
            element_key=context.element_key,
            test_case=context.test_name,
            success=success,
            error_message=error_message,
            details={"old_primary": context.failed_selector, "new_primary": new_primary}
        )

    def log_healing_result(self, context: HealingContext, result: HealingResult) -> str:
        """Log the terminal result of a heal() call.

        Identification success and persistence outcome are recorded separately.
        """
        return self.log_event(
            event_type=AuditEventType.HEALING_COMPLETED,
            component="orchestrator",
            message=(f"Healed {context.page_name}.{context.element_key} -> {result.healed_selector}"
                     if result.success else
                     f"Healing failed for {context.page_name}.{context.element_key}: {result.error}"),
            page_name=context.page_name,
            element_key=context.element_key,
            test_case=context.test_name,
            success=result.success,
            duration=result.duration_ms / 1000.0,
            error_message=result.error,
            details=result.to_dict()
        )

    def log_error(self, component: str, error_message: str, page_name: str = None,
                  element_key: str = None, details: Dict[str, Any] = None) -> str:
        """Log error events."""
        return self.log_event(
            event_type=AuditEventType.ERROR_OCCURRED,
            component=component,
            message=f"Error in {component}: {error_message}",
            page_name=page_name,
            element_key=element_key,
            success=False,
            error_message=error_message,
            details=details or {}
        )

    def get_recent_events(self, limit: int = 100) -> List[AuditEvent]:
        """Get recent audit events."""
        return self._recent_events[-limit:] if limit else self._recent_events.copy()

    def get_events(self, page_name: str = None, element_key: str = None,
                   event_type: AuditEventType = None, limit: int = 100) -> List[AuditEvent]:
        """Get recent events filtered by page, element and/or type."""
        events = [
            event for event in self._recent_events
            if (page_name is None or event.page_name == page_name)
            and (element_key is None or event.element_key == element_key)
            and (event_type is None or event.event_type == event_type)
        ]
        return events[-limit:] if limit else events

    def _save_event_to_file(self, event: AuditEvent):
        """Append audit event to the daily JSONL file."""
        date_str = event.timestamp.strftime("%Y-%m-%d")
        file_path = self.storage_path / f"audit_{date_str}.jsonl"

        try:
            with open(file_path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(event.to_dict(), default=str) + '\n')
        except OSError as e:
            self.logger.error(f"Failed to save audit event to file: {e}")


# Global audit trail instance
_audit_trail: Optional[AuditTrail] = None


def get_audit_trail() -> AuditTrail:
    """Get the global audit trail instance."""
    global _audit_trail
    if _audit_trail is None:
        from .config import settings
        _audit_trail = AuditTrail(settings.AUDIT_DIR)
    return _audit_trail
