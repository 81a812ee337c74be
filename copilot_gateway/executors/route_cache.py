"""
Per-executor memo of models that must be served through an alternate endpoint.
"""

import threading
from typing import Iterable, Optional


class ModelRouteCache:
    """
    Thread-safe set of model ids.

    Losing an entry only costs one extra upstream round trip, so the cache is
    process-local and never persisted.
    """

    def __init__(self, models: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._models: set[str] = set(models or ())

    def __contains__(self, model: object) -> bool:
        with self._lock:
            return model in self._models

    def __len__(self) -> int:
        with self._lock:
            return len(self._models)

    def add(self, model: str) -> None:
        with self._lock:
            self._models.add(model)

    def discard(self, model: str) -> None:
        with self._lock:
            self._models.discard(model)

    def clear(self) -> None:
        with self._lock:
            self._models.clear()

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._models)
