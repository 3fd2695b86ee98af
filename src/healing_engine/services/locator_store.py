"""
Locator store: one JSON document per page mapping element keys to locators.

Documents are loaded lazily and cached per page until ``clear_cache`` is
called. Writes go to a temporary file in the same directory which is then
renamed over the destination, so an interrupted write never leaves a
truncated document in place. The previous version is kept as
``<page>.locators.json.backup``.
"""

import json
import logging
import os
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..core.models import LocatorEntry

logger = logging.getLogger(__name__)

LOCATOR_FILE_SUFFIX = ".locators.json"


class LocatorStoreError(Exception):
    """Raised when a locator document cannot be read or written."""
    pass


class LocatorStore:
    """Durable (page, element key) -> LocatorEntry mapping."""

    def __init__(self, base_dir: str = "locators"):
        self.base_dir = Path(base_dir)
        self._cache: Dict[str, Dict[str, LocatorEntry]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def file_path(self, page: str) -> Path:
        return self.base_dir / f"{page}{LOCATOR_FILE_SUFFIX}"

    def _page_lock(self, page: str) -> threading.Lock:
        with self._locks_guard:
            if page not in self._locks:
                self._locks[page] = threading.Lock()
            return self._locks[page]

    def _load(self, page: str) -> Dict[str, LocatorEntry]:
        """Load a page document into the cache (caller holds the page lock)."""
        if page in self._cache:
            return self._cache[page]

        path = self.file_path(page)
        # Pages without a document are not cached
        if not path.exists():
            return {}

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise LocatorStoreError(f"Cannot read locator file {path}: {e}") from e
        if not isinstance(data, dict):
            raise LocatorStoreError(f"Locator file {path} must contain a JSON object")
        try:
            entries = {key: LocatorEntry.from_dict(value) for key, value in data.items()}
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise LocatorStoreError(f"Malformed entry in {path}: {e}") from e

        self._cache[page] = entries
        return entries

    def read_page(self, page: str) -> Dict[str, LocatorEntry]:
        """All entries of a page (copies).

        Raises:
            LocatorStoreError: If the page document is unreadable
        """
        with self._page_lock(page):
            return {key: entry.copy() for key, entry in self._load(page).items()}

    def get(self, page: str, key: str) -> Optional[LocatorEntry]:
        """Entry for (page, key), or None if absent or the document is unreadable."""
        try:
            with self._page_lock(page):
                entry = self._load(page).get(key)
        except LocatorStoreError as e:
            logger.error(f"Failed to load locators for page '{page}': {e}")
            return None
        return entry.copy() if entry else None

    def page_exists(self, page: str) -> bool:
        return self.file_path(page).exists()

    def list_pages(self) -> List[str]:
        if not self.base_dir.exists():
            return []
        return sorted(p.name[:-len(LOCATOR_FILE_SUFFIX)]
                      for p in self.base_dir.glob(f"*{LOCATOR_FILE_SUFFIX}"))

    def apply_update(self, page: str, key: str, new_primary: str) -> LocatorEntry:
        """Promote ``new_primary`` and demote the old primary to the head of the fallbacks.

        Returns:
            The updated entry

        Raises:
            LocatorStoreError: If the document cannot be read or written
        """
        with self._page_lock(page):
            current = self._load(page)
            entries = {k: v.copy() for k, v in current.items()}

            entry = entries.get(key) or LocatorEntry(primary=new_primary)
            old_primary = entry.primary
            fallbacks = [f for f in entry.fallbacks if f != new_primary]
            if old_primary and old_primary != new_primary and old_primary not in fallbacks:
                fallbacks.insert(0, old_primary)

            entry.primary = new_primary
            entry.fallbacks = fallbacks
            entry.heal_count += 1
            entry.last_healed = datetime.now(timezone.utc)
            entries[key] = entry

            self._write(page, entries)
            self._cache[page] = entries

        logger.info(f"Updated locator {page}.{key}: '{old_primary}' -> '{new_primary}' "
                    f"(heal #{entry.heal_count})")
        return entry.copy()

    def update(self, page: str, key: str, new_primary: str) -> bool:
        """Like ``apply_update`` but reports failure as False instead of raising."""
        try:
            self.apply_update(page, key, new_primary)
            return True
        except LocatorStoreError as e:
            logger.error(f"Failed to update locator {page}.{key}: {e}")
            return False

    def save_entry(self, page: str, key: str, entry: LocatorEntry) -> None:
        """Write an entry as-is, creating the page document if needed.

        Raises:
            LocatorStoreError: If the document cannot be read or written
        """
        with self._page_lock(page):
            entries = {k: v.copy() for k, v in self._load(page).items()}
            stored = entry.copy()
            stored.fallbacks = [f for f in dict.fromkeys(stored.fallbacks) if f != stored.primary]
            entries[key] = stored
            self._write(page, entries)
            self._cache[page] = entries

    def clear_cache(self, page: Optional[str] = None) -> None:
        """Drop cached documents so the next read goes back to disk."""
        if page is None:
            self._cache.clear()
        else:
            self._cache.pop(page, None)

    def _write(self, page: str, entries: Dict[str, LocatorEntry]) -> None:
        """Crash-safe write: backup, temp file in the same directory, atomic rename."""
        path = self.file_path(page)
        temp_path = path.with_name(path.name + ".tmp")
        payload = json.dumps({key: entry.to_dict() for key, entry in entries.items()}, indent=2)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.exists():
                shutil.copy2(path, path.with_name(path.name + ".backup"))

            with open(temp_path, 'w', encoding='utf-8') as f:
                f.write(payload)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_path, path)
        except OSError as e:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    logger.warning(f"Could not remove temporary file {temp_path}")
            raise LocatorStoreError(f"Cannot write locator file {path}: {e}") from e
