"""
DOM context extraction for selector healing.

Captures a bounded, sanitized view of the page around a failed selector: the
target element if it still partially resolves, a handful of elements with the
same tag, and the body markup without scripts, styles and inline SVG.
"""

import asyncio
import logging
from typing import List, Optional

from bs4 import BeautifulSoup
from selenium.common.exceptions import WebDriverException

from ..core.models import DomSnapshot, ElementContext
from .selector_syntax import infer_tag_name, to_locator

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "... [truncated]"

ELEMENT_CONTEXT_SCRIPT = """
const el = arguments[0];
const textLimit = arguments[1];
const rect = el.getBoundingClientRect();
const parent = el.parentElement;
const attrs = {};
for (const a of el.attributes) { attrs[a.name] = a.value; }
return {
  tagName: el.tagName.toLowerCase(),
  id: el.id || null,
  classes: Array.from(el.classList),
  attributes: attrs,
  text: (el.innerText || el.textContent || '').trim().substring(0, textLimit) || null,
  placeholder: el.getAttribute('placeholder'),
  ariaLabel: el.getAttribute('aria-label'),
  role: el.getAttribute('role'),
  name: el.getAttribute('name'),
  type: el.getAttribute('type'),
  href: el.getAttribute('href'),
  parentTag: parent ? parent.tagName.toLowerCase() : null,
  parentClasses: parent ? Array.from(parent.classList) : [],
  siblingTags: parent ? Array.from(parent.children).map(s => s.tagName.toLowerCase()) : [],
  childCount: el.children.length,
  position: {x: Math.round(rect.x), y: Math.round(rect.y)}
};
"""

SIMILAR_ELEMENTS_SCRIPT = """
const tag = arguments[0];
const limit = arguments[1];
const keep = ['id', 'class', 'name', 'type', 'role', 'aria-label', 'data-testid', 'placeholder'];
return Array.from(document.querySelectorAll(tag)).slice(0, limit).map(el => {
  const rect = el.getBoundingClientRect();
  const attrs = {};
  for (const a of el.attributes) { if (keep.includes(a.name)) attrs[a.name] = a.value; }
  return {
    tagName: el.tagName.toLowerCase(),
    id: el.id || null,
    classes: Array.from(el.classList),
    attributes: attrs,
    text: (el.innerText || el.textContent || '').trim().substring(0, 50) || null,
    placeholder: el.getAttribute('placeholder'),
    ariaLabel: el.getAttribute('aria-label'),
    role: el.getAttribute('role'),
    name: el.getAttribute('name'),
    type: el.getAttribute('type'),
    childCount: el.children.length,
    position: {x: Math.round(rect.x), y: Math.round(rect.y)}
  };
});
"""


def sanitize_html(page_source: str, max_chars: int = 10000) -> str:
    """Return the body markup with script/style/svg/noscript removed, length-capped."""
    soup = BeautifulSoup(page_source or "", "html.parser")
    for tag in soup.find_all(["script", "style", "svg", "noscript"]):
        tag.decompose()

    root = soup.body or soup
    html = "".join(str(child) for child in root.contents).strip()
    if len(html) > max_chars:
        html = html[:max_chars] + TRUNCATION_MARKER
    return html


class DomSnapshotService:
    """Captures DomSnapshot objects from a live WebDriver page."""

    def __init__(self, max_html_chars: int = 10000, max_similar_elements: int = 5):
        self.max_html_chars = max_html_chars
        self.max_similar_elements = max_similar_elements

    def capture_sync(self, driver, failed_selector: str) -> DomSnapshot:
        """Capture a snapshot. Never raises; falls back to an empty snapshot keeping the URL."""
        url = self._current_url(driver)
        try:
            title = driver.title or ""
            element = self.extract_element_context(driver, failed_selector)
            html = sanitize_html(driver.page_source, self.max_html_chars)
            similar = self.find_similar_elements(driver, failed_selector)
        except Exception as e:
            logger.error(f"Error capturing DOM snapshot for '{failed_selector}': {e}")
            return DomSnapshot.empty(url)

        logger.debug(
            f"Captured DOM snapshot of {url}: {len(html)} chars, "
            f"target {'found' if element else 'missing'}, {len(similar)} similar elements")
        return DomSnapshot(
            url=url,
            title=title,
            html=html,
            element=element,
            similar_elements=similar,
        )

    async def capture(self, driver, failed_selector: str) -> DomSnapshot:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self.capture_sync, driver, failed_selector)

    def extract_element_context(self, driver, selector: str) -> Optional[ElementContext]:
        """Describe the first element the selector still resolves to, if any."""
        try:
            by, value = to_locator(selector)
            elements = driver.find_elements(by, value)
            if not elements:
                return None
            data = driver.execute_script(ELEMENT_CONTEXT_SCRIPT, elements[0], 100)
        except (WebDriverException, ValueError) as e:
            logger.debug(f"Could not extract element context for '{selector}': {e}")
            return None
        return ElementContext.from_dict(data) if data else None

    def find_similar_elements(self, driver, failed_selector: str) -> List[ElementContext]:
        """Up to ``max_similar_elements`` elements sharing the selector's inferred tag."""
        tag = infer_tag_name(failed_selector)
        if not tag or self.max_similar_elements <= 0:
            return []
        try:
            items = driver.execute_script(SIMILAR_ELEMENTS_SCRIPT, tag, self.max_similar_elements) or []
        except WebDriverException as e:
            logger.debug(f"Could not collect similar <{tag}> elements: {e}")
            return []
        return [ElementContext.from_dict(item) for item in items[:self.max_similar_elements]]

    @staticmethod
    def _current_url(driver) -> str:
        try:
            return driver.current_url or ""
        except WebDriverException:
            return ""
