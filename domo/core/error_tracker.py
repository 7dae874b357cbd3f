"""Counters for failures the webhook absorbs instead of surfacing.

Guardrail violations, permanent lookup misses and transient collaborator
failures all end in a 200 response, so they are invisible to Tavus. The
tracker keeps the last MAX_ERRORS of them in memory for the health endpoint.
"""

import logging
import threading
import time
from collections import deque
from typing import Any

logger = logging.getLogger(__name__)

MAX_ERRORS = 1000

# Error taxonomy categories
GUARDRAIL_VIOLATION = "guardrail_violation"
PERMANENT_LOOKUP_FAILURE = "permanent_lookup_failure"
TRANSIENT_COLLABORATOR_FAILURE = "transient_collaborator_failure"
AUTHENTICATION_FAILURE = "authentication_failure"
MALFORMED_PAYLOAD = "malformed_payload"
INTERNAL_ERROR = "internal_error"


class ErrorTracker:
    """Singleton that records and summarizes absorbed webhook failures.

    Stores up to MAX_ERRORS in memory (oldest evicted). Thread-safe.
    """

    _instance: "ErrorTracker | None" = None
    _lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "ErrorTracker":
        """Return the singleton ErrorTracker instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def __init__(self) -> None:
        self._errors: deque[dict[str, Any]] = deque(maxlen=MAX_ERRORS)
        self._write_lock = threading.Lock()

    def record(
        self,
        category: str,
        message: str,
        conversation_id: str | None = None,
    ) -> None:
        """Record one absorbed failure.

        Args:
            category: One of the taxonomy constants in this module.
            message: Human-readable description.
            conversation_id: Tavus conversation the failure belongs to, if known.
        """
        entry = {
            "category": category,
            "message": message,
            "conversation_id": conversation_id,
            "timestamp": time.time(),
        }
        with self._write_lock:
            self._errors.append(entry)

    def get_recent_errors(self, limit: int = 50) -> list[dict[str, Any]]:
        """Return the most recent errors, newest first."""
        with self._write_lock:
            items = list(self._errors)
        items.reverse()
        return items[:limit]

    def get_summary(self, period_seconds: int = 3600) -> dict[str, Any]:
        """Count errors per category within the given time window."""
        cutoff = time.time() - period_seconds
        with self._write_lock:
            items = list(self._errors)

        by_category: dict[str, int] = {}
        total = 0
        for entry in items:
            if entry["timestamp"] >= cutoff:
                total += 1
                by_category[entry["category"]] = by_category.get(entry["category"], 0) + 1

        return {
            "total": total,
            "by_category": by_category,
            "period_seconds": period_seconds,
        }

    def reset(self) -> None:
        """Clear all tracked errors."""
        with self._write_lock:
            self._errors.clear()
