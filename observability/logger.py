"""
Observability Layer — structured runtime events.

Responsibility:
- Log command/pipeline events as JSON lines (runtime_id, trace_id, event)
- Time operations and record their outcome

Diagnostics (observability/diagnostics.py) handles user-facing errors;
this module only records what ran and how long it took.
"""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

logger = logging.getLogger("observability")


class Observability:
    """Structured event logger for one runtime."""

    def __init__(self, runtime_id: str | None = None):
        self.runtime_id = runtime_id or uuid.uuid4().hex[:12]
        self.trace_id = uuid.uuid4().hex[:12]

    def log_event(self, event_type: str, payload: dict[str, Any], level: str = "DEBUG") -> None:
        """Log a structured event."""
        log_method = getattr(logger, level.lower(), logger.debug)
        if not logger.isEnabledFor(logging.getLevelName(level.upper())):
            return
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "runtime_id": self.runtime_id,
            "trace_id": self.trace_id,
            "event": event_type,
            **payload,
        }
        log_method(json.dumps(entry, default=str))

    @contextmanager
    def measure(self, operation: str, metadata: dict[str, Any] | None = None) -> Iterator[dict[str, Any]]:
        """Time the wrapped block; callers may add fields to the yielded dict."""
        start_time = time.perf_counter()
        fields: dict[str, Any] = dict(metadata or {})
        success = True
        error = None
        try:
            yield fields
        except Exception as exc:
            success = False
            error = str(exc)
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.log_event(
                "execution_metric",
                {
                    "operation": operation,
                    "duration_ms": round(duration_ms, 2),
                    "success": fields.pop("success", success),
                    "error": fields.pop("error", error),
                    **fields,
                },
            )
