"""Headless Chrome session used by the HTTP service to heal against posted DOM snapshots."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncGenerator, Callable, Dict, Optional

from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.common.exceptions import WebDriverException

logger = logging.getLogger(__name__)

LOAD_HTML_SCRIPT = "document.open(); document.write(arguments[0]); document.close();"


@dataclass
class ChromeSession:
    """A Chrome browser session."""
    driver: Any
    created_at: datetime = field(default_factory=datetime.now)
    last_used: datetime = field(default_factory=datetime.now)
    usage_count: int = 0
    is_active: bool = True

    def update_last_used(self):
        self.last_used = datetime.now()
        self.usage_count += 1

    def close(self):
        """Close the Chrome session."""
        try:
            if self.driver:
                self.driver.quit()
        except WebDriverException as e:
            logger.warning(f"Error closing Chrome session: {e}")
        finally:
            self.is_active = False


def create_chrome_options() -> Options:
    """Chrome options for headless operation. JavaScript stays on: validation evaluates scripts."""
    options = Options()
    options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-gpu")
    options.add_argument("--disable-extensions")
    options.add_argument("--window-size=1920,1080")
    options.add_experimental_option("useAutomationExtension", False)
    options.add_experimental_option("excludeSwitches", ["enable-automation"])
    return options


def _default_driver_factory():
    return webdriver.Chrome(options=create_chrome_options())


class ChromeSessionManager:
    """Owns one lazily started headless Chrome and hands it out one caller at a time.

    Healing reads page state across several round trips, so two requests must
    never share the page; ``page_with_content`` holds an asyncio lock for the
    duration of its block.
    """

    def __init__(self, driver_factory: Optional[Callable[[], Any]] = None):
        self._driver_factory = driver_factory or _default_driver_factory
        self._session: Optional[ChromeSession] = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._session is not None and self._session.is_active

    async def _ensure_session(self) -> ChromeSession:
        if not self.is_running:
            loop = asyncio.get_event_loop()
            driver = await loop.run_in_executor(None, self._driver_factory)
            self._session = ChromeSession(driver=driver)
            logger.info("Started headless Chrome session")
        return self._session

    @asynccontextmanager
    async def page_with_content(self, html: str) -> AsyncGenerator[Any, None]:
        """Load ``html`` into the browser and yield its driver exclusively."""
        async with self._lock:
            session = await self._ensure_session()
            loop = asyncio.get_event_loop()
            try:
                await loop.run_in_executor(None, self._load_html, session.driver, html)
            except WebDriverException as e:
                logger.error(f"Chrome session failed to load content, restarting: {e}")
                session.close()
                session = await self._ensure_session()
                await loop.run_in_executor(None, self._load_html, session.driver, html)
            session.update_last_used()
            yield session.driver

    @staticmethod
    def _load_html(driver, html: str) -> None:
        driver.get("about:blank")
        driver.execute_script(LOAD_HTML_SCRIPT, html)

    async def stop(self):
        """Close the browser if it was started."""
        async with self._lock:
            if self._session is not None:
                session, self._session = self._session, None
                await asyncio.get_event_loop().run_in_executor(None, session.close)
                logger.info(f"Chrome session stopped after {session.usage_count} uses")

    def get_session_stats(self) -> Dict[str, Any]:
        session = self._session
        return {
            "running": self.is_running,
            "usage_count": session.usage_count if session else 0,
            "created_at": session.created_at.isoformat() if session else None,
            "last_used": session.last_used.isoformat() if session else None,
        }
