"""
Catalog Snapshots and Hot Reload

CatalogStore owns the current RuleIndex and the engine built on it.
Reloads build a fresh index + engine and swap the reference under a lock
(copy-on-write), so a caller that grabbed current() keeps one consistent
snapshot for its whole call.

CatalogFileEventHandler watches the catalog directory with watchdog and
triggers a debounced reload when catalog files change.
"""

import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

import activation_engine.engine  # noqa: F401 - imported for side effect (engine registration)
from activation_engine.catalog_loader import CatalogError
from activation_engine.config import ConfigurationError, PolicyConfig
from activation_engine.routing_engine import ActivationEngine, create_engine
from activation_engine.rule_index import RuleIndex

logger = logging.getLogger(__name__)

WATCHED_SUFFIXES = (".md", ".yaml", ".yml")


class CatalogStore:
    """
    Holder of the current catalog snapshot.

    Thread Safety:
    - current() / engine() are lock-free reads of an immutable object
    - reload() is serialized by a lock
    """

    def __init__(
        self,
        catalog_path: Path,
        engine_config: Optional[Dict[str, Any]] = None,
        policy: Optional[PolicyConfig] = None,
    ):
        """
        Load the initial snapshot.

        Raises:
            CatalogError: If the catalog is invalid (fatal at startup)
            ConfigurationError: If the engine configuration is invalid
        """
        self.catalog_path = Path(catalog_path)
        self.engine_config = engine_config
        self.policy = policy or PolicyConfig()
        self._reload_lock = threading.Lock()
        self._engine: ActivationEngine = self._build()
        self.last_reload_time = time.time()

    def _build(self) -> ActivationEngine:
        index = RuleIndex.from_path(self.catalog_path)
        return create_engine(index, self.engine_config, policy=self.policy)

    def current(self) -> RuleIndex:
        """The catalog snapshot in effect right now."""
        return self._engine.index

    def engine(self) -> ActivationEngine:
        """The engine bound to the current snapshot."""
        return self._engine

    def reload(self) -> Dict[str, Any]:
        """
        Rebuild the snapshot from disk and swap it in.

        A failed reload keeps the previous snapshot.

        Returns:
            Dict with success flag, unit counts, elapsed time and error if any
        """
        with self._reload_lock:
            start_time = time.time()
            old_count = len(self._engine.index)
            try:
                new_engine = self._build()
            except (CatalogError, ConfigurationError) as e:
                logger.error(f"Catalog reload failed, keeping previous snapshot: {e}")
                return {
                    "success": False,
                    "error": str(e),
                    "unit_count": old_count,
                    "timestamp": datetime.now().isoformat(),
                }

            # Atomic swap
            self._engine = new_engine
            self.last_reload_time = time.time()
            elapsed_ms = (self.last_reload_time - start_time) * 1000
            new_count = len(new_engine.index)
            logger.info(
                f"Catalog reloaded: {old_count} → {new_count} units ({elapsed_ms:.1f}ms)"
            )
            return {
                "success": True,
                "old_count": old_count,
                "new_count": new_count,
                "elapsed_ms": elapsed_ms,
                "engine": new_engine.version,
                "timestamp": datetime.now().isoformat(),
            }


class CatalogFileEventHandler(FileSystemEventHandler):
    """
    File watcher event handler for catalog files.

    Debounces bursts of changes into a single reload. Only reacts to
    created/modified/deleted/moved events on catalog files.
    """

    def __init__(self, store: CatalogStore, debounce_seconds: float = 3.0):
        super().__init__()
        self.store = store
        self.debounce_seconds = debounce_seconds
        self._pending_events: set[str] = set()
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def _should_process(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        return str(event.src_path).endswith(WATCHED_SUFFIXES)

    def _handle_event(self, event: FileSystemEvent):
        if not self._should_process(event):
            return

        logger.info(f"Catalog file {event.event_type}: {Path(event.src_path).name}")
        with self._lock:
            self._pending_events.add(str(event.src_path))
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self._trigger_reload)
            self._timer.daemon = True
            self._timer.start()

    def on_modified(self, event: FileSystemEvent):
        self._handle_event(event)

    def on_created(self, event: FileSystemEvent):
        self._handle_event(event)

    def on_deleted(self, event: FileSystemEvent):
        self._handle_event(event)

    def on_moved(self, event: FileSystemEvent):
        self._handle_event(event)

    def cancel(self):
        """Cancel a pending debounced reload."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending_events.clear()

    def _trigger_reload(self):
        with self._lock:
            if not self._pending_events:
                return
            event_count = len(self._pending_events)
            self._pending_events.clear()
            self._timer = None

        logger.info(f"Debounce period complete - reloading catalog ({event_count} file(s) changed)")
        self.store.reload()


def start_watcher(store: CatalogStore, debounce_seconds: float = 3.0):
    """
    Start watching the catalog directory.

    Returns:
        (observer, handler); call observer.stop() and handler.cancel() to stop
    """
    handler = CatalogFileEventHandler(store, debounce_seconds=debounce_seconds)
    observer = Observer()
    observer.schedule(handler, str(store.catalog_path), recursive=True)
    observer.daemon = True
    observer.start()
    logger.info(f"Catalog watcher started: {store.catalog_path}")
    return observer, handler
