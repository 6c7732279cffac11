"""In-memory cache for already loaded manifest.webpackage documents."""

import logging
import threading
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ResponseCache:
    """Maps webpackage ids (and artifact ids) to manifest documents.

    Level batches are resolved on a thread pool, so access is serialized
    with a lock.
    """

    def __init__(self):
        self._items: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def add_item(self, key: str, manifest: Dict[str, Any]) -> Dict[str, Any]:
        """Store a manifest under the given key unless the key is already cached.

        Returns:
            The manifest cached for key after the call
        """
        with self._lock:
            cached = self._items.setdefault(key, manifest)
        if cached is manifest:
            logger.debug(f"Cached manifest for '{key}'")
        return cached

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the cached manifest for key or None."""
        with self._lock:
            return self._items.get(key)

    def invalidate(self) -> None:
        """Drop all cached manifests."""
        with self._lock:
            self._items.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
