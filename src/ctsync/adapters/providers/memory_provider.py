"""
In-memory CMS provider for offline runs and tests.

Behaves like a remote CMS: every write bumps the item's ETag, updates
honour ``If-Match`` semantics, and failures can be injected per method.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable
from typing import Any

from ctsync.core.domain.definitions import ContentTypeDefinition
from ctsync.core.exceptions import NotFoundError, PreconditionFailedError
from ctsync.core.ports.cms_provider import CmsProviderPort, RemoteContentType


class InMemoryCmsProvider(CmsProviderPort):
    """Thread-safe dictionary-backed provider."""

    def __init__(self, platform: str = "memory", latency: float = 0.0):
        self.platform = platform
        self.latency = latency
        self.logger = logging.getLogger("InMemoryCmsProvider")
        self.calls: list[tuple[str, str | None]] = []

        self._items: dict[str, dict[str, Any]] = {}
        self._revisions: dict[str, int] = {}
        self._faults: dict[str, deque[BaseException]] = defaultdict(deque)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.platform

    # -------------------------------------------------------------------------
    # Test Helpers
    # -------------------------------------------------------------------------

    def seed(self, definition: ContentTypeDefinition | dict[str, Any]) -> RemoteContentType:
        """Put an item in place without recording a call."""
        data = definition.to_dict() if isinstance(definition, ContentTypeDefinition) else dict(definition)
        with self._lock:
            return self._store(data)

    def modify(self, key: str, mutate: Callable[[dict[str, Any]], None]) -> RemoteContentType:
        """Simulate an edit made directly on the remote."""
        with self._lock:
            if key not in self._items:
                raise NotFoundError(f"Not found: {key}", type_key=key)
            data = copy.deepcopy(self._items[key])
            mutate(data)
            return self._store(data)

    def remove(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def fail_next(self, method: str, error: BaseException, times: int = 1) -> None:
        """Make the next ``times`` calls of ``method`` raise ``error``."""
        with self._lock:
            self._faults[method].extend([error] * times)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._items)

    def etag_of(self, key: str) -> str | None:
        with self._lock:
            return self._etag(key) if key in self._items else None

    def call_count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _etag(self, key: str) -> str:
        return f'W/"{key}-{self._revisions[key]}"'

    def _store(self, data: dict[str, Any]) -> RemoteContentType:
        key = str(data["key"])
        self._items[key] = copy.deepcopy(data)
        self._revisions[key] = self._revisions.get(key, 0) + 1
        return self._snapshot(key)

    def _snapshot(self, key: str) -> RemoteContentType:
        return RemoteContentType(
            ContentTypeDefinition.from_dict(copy.deepcopy(self._items[key])),
            self._etag(key),
        )

    def _enter(self, method: str, key: str | None = None) -> None:
        if self.latency:
            time.sleep(self.latency)
        with self._lock:
            self.calls.append((method, key))
            faults = self._faults.get(method)
            error = faults.popleft() if faults else None
        if error is not None:
            self.logger.debug(f"Injected failure on {method}: {error}")
            raise error

    # -------------------------------------------------------------------------
    # CmsProviderPort Implementation
    # -------------------------------------------------------------------------

    def get_content_types(self) -> list[RemoteContentType]:
        self._enter("get_content_types")
        with self._lock:
            return [self._snapshot(key) for key in sorted(self._items)]

    def get_content_type(self, key: str) -> RemoteContentType | None:
        self._enter("get_content_type", key)
        with self._lock:
            return self._snapshot(key) if key in self._items else None

    def create_content_type(self, definition: ContentTypeDefinition) -> RemoteContentType:
        self._enter("create_content_type", definition.key)
        with self._lock:
            if definition.key in self._items:
                raise PreconditionFailedError(
                    f"Content type {definition.key} already exists",
                    type_key=definition.key,
                    etag=self._etag(definition.key),
                )
            return self._store(definition.to_dict())

    def update_content_type(
        self,
        key: str,
        definition: ContentTypeDefinition,
        etag: str | None = None,
    ) -> RemoteContentType:
        self._enter("update_content_type", key)
        with self._lock:
            if key not in self._items:
                raise NotFoundError(f"Not found: {key}", type_key=key)
            current = self._etag(key)
            if etag is not None and etag != current:
                raise PreconditionFailedError(
                    f"ETag mismatch for {key}: expected {etag}, found {current}",
                    type_key=key,
                    etag=current,
                )
            return self._store(definition.to_dict())

    def delete_content_type(self, key: str) -> bool:
        self._enter("delete_content_type", key)
        with self._lock:
            return self._items.pop(key, None) is not None
