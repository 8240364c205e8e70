from __future__ import annotations

import logging
import threading
from typing import Callable, TypeVar

from .errors import DOMAIN_ERRORS
from .models import BackendName
from .store import GraphStore, PrimaryGraphStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackendOrchestrator:
    """Routes each operation to the primary store or the file store.

    The primary is used while `primary_available` holds. The first primary
    failure demotes it for the rest of the process; nothing re-promotes it.
    """

    def __init__(self, primary: PrimaryGraphStore | None, fallback: GraphStore, *, configured: bool):
        self.primary = primary
        self.fallback = fallback
        self.configured = configured
        self.primary_available = bool(configured and primary is not None)
        self.last_operation_backend: BackendName = "file"
        self._probe: threading.Thread | None = None

    @property
    def current_backend(self) -> BackendName:
        return "neo4j" if self.primary_available else "file"

    @property
    def active_store(self) -> GraphStore:
        if self.primary_available and self.primary is not None:
            return self.primary
        return self.fallback

    def verify_connectivity(self) -> bool:
        """Probe the primary once; demote and release it on failure."""
        if not self.primary_available or self.primary is None:
            return False
        try:
            self.primary.verify_connectivity()
            logger.info("Connected to primary graph backend")
        except Exception:
            logger.exception("Primary graph backend connection failed on startup check")
            self._release_primary()
            return False

        try:
            self.primary.ensure_schema()
        except Exception:
            # Missing constraints only cost performance.
            logger.exception("Failed to ensure graph constraints and indexes")
        return True

    def start_probe(self) -> threading.Thread | None:
        if not self.primary_available:
            return None
        self._probe = threading.Thread(target=self.verify_connectivity, name="graph-probe", daemon=True)
        self._probe.start()
        return self._probe

    def wait_for_probe(self, timeout: float | None = None) -> None:
        if self._probe is not None:
            self._probe.join(timeout)

    def execute(self, operation: Callable[[GraphStore], T], *, demote_on_error: bool = True) -> T:
        """Run `operation` against whichever store currently owns the graph.

        Domain errors from the primary are re-raised untouched. Any other
        primary failure demotes the primary and re-runs the operation on the
        file store, unless `demote_on_error` is False, in which case the
        error propagates and the health flag is left alone.
        """
        if self.primary_available and self.primary is not None:
            try:
                result = operation(self.primary)
            except DOMAIN_ERRORS:
                raise
            except Exception:
                if not demote_on_error:
                    raise
                logger.exception("Primary operation failed. Falling back to file storage.")
                self.primary_available = False
                self.last_operation_backend = "file"
                return operation(self.fallback)
            self.last_operation_backend = "neo4j"
            return result

        self.last_operation_backend = "file"
        return operation(self.fallback)

    def _release_primary(self) -> None:
        self.primary_available = False
        if self.primary is None:
            return
        try:
            self.primary.close()
        except Exception:
            logger.warning("Error closing primary graph backend", exc_info=True)
        self.primary = None

    def close(self) -> None:
        if self.primary is not None:
            self.primary.close()
            self.primary = None
            logger.info("Primary graph backend closed")
        self.primary_available = False
        self.fallback.close()
