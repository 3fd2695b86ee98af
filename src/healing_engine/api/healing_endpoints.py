"""
Healing API endpoints.

Exposes the healing engine to test runners written in any language: the
caller posts the failed selector together with the page markup, the service
loads the markup into headless Chrome and runs the orchestrator against it.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from selenium.common.exceptions import WebDriverException

from ..core.config import settings
from ..core.config_loader import ConfigurationError, get_healing_config, save_healing_config
from ..core.models import ElementAction, HealingConfiguration, HealingContext, LocatorEntry
from ..services.browser_session import ChromeSessionManager
from ..services.healing_orchestrator import HealingOrchestrator, build_healing_orchestrator
from ..services.locator_store import LocatorStore, LocatorStoreError

logger = logging.getLogger(__name__)

# Global instances, created on first use
_healing_orchestrator: Optional[HealingOrchestrator] = None
_chrome_manager: Optional[ChromeSessionManager] = None

router = APIRouter(prefix="/api", tags=["healing"])


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealRequest(CamelModel):
    page_name: str = Field(..., min_length=1)
    element_key: str = Field(..., min_length=1)
    failed_selector: str = Field(..., min_length=1)
    dom_snapshot: str = Field(..., min_length=1)
    action: ElementAction = ElementAction.ANY
    fallbacks: Optional[List[str]] = None
    test_name: Optional[str] = None


class HealResponse(CamelModel):
    success: bool
    healed_selector: Optional[str] = None
    confidence: float = 0.0
    fallbacks_attempted: List[str] = Field(default_factory=list)
    duration_ms: float = 0.0
    error: Optional[str] = None
    source: Optional[str] = None
    persisted: Optional[bool] = None
    persistence_error: Optional[str] = None


class ValidateRequest(CamelModel):
    selector: str = Field(..., min_length=1)
    dom_snapshot: str = Field(..., min_length=1)


class ValidateResponse(CamelModel):
    valid: bool
    confidence: float
    element_count: int
    error: Optional[str] = None


class HealingConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    confidence_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_retries: Optional[int] = Field(None, ge=1, le=10)
    auto_update_locators: Optional[bool] = None
    llm_timeout: Optional[float] = Field(None, ge=1, le=600)
    healing_timeout: Optional[float] = Field(None, ge=5, le=1800)


async def get_healing_orchestrator() -> HealingOrchestrator:
    """Get or create the global healing orchestrator instance."""
    global _healing_orchestrator

    if _healing_orchestrator is None:
        config = get_healing_config()
        _healing_orchestrator = build_healing_orchestrator(config, settings)
        logger.info(f"Healing orchestrator initialized with provider {_healing_orchestrator.provider.name}")

    return _healing_orchestrator


def get_chrome_manager() -> ChromeSessionManager:
    """Get or create the global Chrome session manager."""
    global _chrome_manager
    if _chrome_manager is None:
        _chrome_manager = ChromeSessionManager()
    return _chrome_manager


def get_locator_store(orchestrator: HealingOrchestrator = Depends(get_healing_orchestrator)) -> LocatorStore:
    return orchestrator.locator_store or LocatorStore(settings.LOCATORS_DIR)


async def shutdown_services() -> None:
    """Close the browser and drop global instances."""
    global _healing_orchestrator, _chrome_manager
    if _chrome_manager is not None:
        await _chrome_manager.stop()
    _chrome_manager = None
    _healing_orchestrator = None


@router.get("/health")
async def health():
    """Side-channel readiness check for callers deciding whether to rely on healing."""
    config = get_healing_config()
    return {
        "status": "ok",
        "provider": settings.MODEL_PROVIDER,
        "healingEnabled": config.enabled,
        "timestamp": datetime.now().isoformat()
    }


@router.post("/heal", response_model=HealResponse)
async def heal(request: HealRequest,
               orchestrator: HealingOrchestrator = Depends(get_healing_orchestrator),
               chrome: ChromeSessionManager = Depends(get_chrome_manager),
               store: LocatorStore = Depends(get_locator_store)):
    """Heal a failed selector against the posted DOM snapshot."""
    logger.info(f"Healing request for {request.page_name}.{request.element_key}: "
                f"'{request.failed_selector}' ({request.action.value})")

    if request.fallbacks is not None:
        entry = LocatorEntry(primary=request.failed_selector, fallbacks=list(request.fallbacks))
    else:
        entry = store.get(request.page_name, request.element_key)

    try:
        async with chrome.page_with_content(request.dom_snapshot) as driver:
            result = await orchestrator.heal(HealingContext(
                page_name=request.page_name,
                element_key=request.element_key,
                failed_selector=request.failed_selector,
                locator_entry=entry,
                action=request.action,
                test_name=request.test_name or "api-request",
                driver=driver,
            ))
    except WebDriverException as e:
        logger.error(f"Browser unavailable for healing request: {e}")
        body = HealResponse(success=False, error=f"Browser unavailable: {e.msg or e}")
        return JSONResponse(status_code=503, content=body.model_dump(by_alias=True))

    return HealResponse(
        success=result.success,
        healed_selector=result.healed_selector,
        confidence=result.confidence,
        fallbacks_attempted=list(result.all_attempted_selectors),
        duration_ms=result.duration_ms,
        error=result.error,
        source=result.source.value if result.source else None,
        persisted=result.persisted,
        persistence_error=result.persistence_error,
    )


@router.post("/validate", response_model=ValidateResponse)
async def validate(request: ValidateRequest,
                   orchestrator: HealingOrchestrator = Depends(get_healing_orchestrator),
                   chrome: ChromeSessionManager = Depends(get_chrome_manager)):
    """Validate a selector against the posted DOM snapshot."""
    try:
        async with chrome.page_with_content(request.dom_snapshot) as driver:
            result = await orchestrator.validator.validate(driver, request.selector)
    except WebDriverException as e:
        logger.error(f"Browser unavailable for validation request: {e}")
        body = ValidateResponse(valid=False, confidence=0.0, element_count=0,
                                error=f"Browser unavailable: {e.msg or e}")
        return JSONResponse(status_code=503, content=body.model_dump(by_alias=True))

    return ValidateResponse(
        valid=result.is_valid,
        confidence=result.confidence,
        element_count=result.match_count,
        error=result.error,
    )


@router.get("/locators/{page_name}")
async def get_locators(page_name: str, store: LocatorStore = Depends(get_locator_store)) -> Dict[str, Any]:
    """Return the locator file of a page."""
    if not store.page_exists(page_name):
        raise HTTPException(status_code=404, detail=f"Locator file not found for page: {page_name}")
    try:
        entries = store.read_page(page_name)
    except LocatorStoreError as e:
        logger.error(f"Failed to read locators for {page_name}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {key: entry.to_dict() for key, entry in entries.items()}


@router.get("/config")
async def get_config():
    """Current healing configuration."""
    return get_healing_config().to_dict()


@router.put("/config")
async def update_config(config_update: HealingConfigUpdate):
    """Update healing configuration settings and apply them to the running orchestrator."""
    current = get_healing_config()
    config_dict = current.to_dict()
    config_dict.update(config_update.model_dump(exclude_unset=True, exclude_none=True))
    updated = HealingConfiguration.from_dict(config_dict)

    try:
        save_healing_config(updated)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if _healing_orchestrator is not None:
        _healing_orchestrator.config = get_healing_config()
    logger.info(f"Healing configuration updated: {config_update.model_dump(exclude_unset=True)}")
    return updated.to_dict()
