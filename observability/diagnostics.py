"""
Diagnostics — structured errors, typo suggestions, runaway-chain detection.

Responsibility:
- Build InvokerError objects carrying severity, command, target and recovery hints
- Record every reported error; log error/critical always, warnings only in debug mode
- Suggest near matches for unknown commands
- Rate-monitor executions to stop runaway chains
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any, Callable, Iterable

from shared.models import DiagnosticRecord, Severity

logger = logging.getLogger(__name__)

WARNING: Severity = "warning"
ERROR: Severity = "error"
CRITICAL: Severity = "critical"


class InvokerError(Exception):
    """Error carrying diagnostic metadata."""

    def __init__(
        self,
        message: str,
        severity: Severity = ERROR,
        *,
        command: str | None = None,
        target_ref: str | None = None,
        cause: BaseException | None = None,
        recovery: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.command = command
        self.target_ref = target_ref
        self.cause = cause
        self.recovery = recovery
        self.context = dict(context or {})
        if cause is not None:
            self.__cause__ = cause

    def to_record(self) -> DiagnosticRecord:
        return DiagnosticRecord(
            message=self.message,
            severity=self.severity,
            command=self.command,
            target_ref=self.target_ref,
            cause=f"{type(self.cause).__name__}: {self.cause}" if self.cause is not None else None,
            recovery=self.recovery,
            context=self.context,
        )


class CommandTimeoutError(InvokerError):
    def __init__(self, command: str, timeout_seconds: float):
        super().__init__(
            f"Command '{command}' timed out after {timeout_seconds:g}s",
            ERROR,
            command=command,
            recovery="Make the handler finish sooner or raise the command timeout",
        )


class RunawayChainError(InvokerError):
    def __init__(self, command: str, stats: dict[str, Any]):
        super().__init__(
            "Rate limit exceeded: too many command executions, aborting to stop a runaway chain",
            CRITICAL,
            command=command,
            context=stats,
            recovery="Check for chains that re-trigger themselves",
        )


class Diagnostics:
    """Collects and logs InvokerErrors for one runtime."""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.records: list[DiagnosticRecord] = []

    def report(self, error: InvokerError) -> DiagnosticRecord:
        record = error.to_record()
        self.records.append(record)

        if error.severity == WARNING and not self.debug:
            return record

        details = []
        if record.command:
            details.append(f"command={record.command}")
        if record.target_ref:
            details.append(f"target={record.target_ref}")
        if record.cause:
            details.append(f"cause={record.cause}")
        if record.recovery:
            details.append(f"fix: {record.recovery}")
        suffix = f" ({'; '.join(details)})" if details else ""

        if error.severity == CRITICAL:
            logger.critical("Invokers: %s%s", record.message, suffix)
        elif error.severity == ERROR:
            logger.error("Invokers: %s%s", record.message, suffix)
        else:
            logger.warning("Invokers: %s%s", record.message, suffix)
        return record

    def warn(self, message: str, **kwargs: Any) -> DiagnosticRecord:
        return self.report(InvokerError(message, WARNING, **kwargs))

    def error(self, message: str, **kwargs: Any) -> DiagnosticRecord:
        return self.report(InvokerError(message, ERROR, **kwargs))

    def critical(self, message: str, **kwargs: Any) -> DiagnosticRecord:
        return self.report(InvokerError(message, CRITICAL, **kwargs))

    def by_severity(self, severity: Severity) -> list[DiagnosticRecord]:
        return [record for record in self.records if record.severity == severity]

    def clear(self) -> None:
        self.records.clear()


def edit_distance(a: str, b: str, max_distance: int | None = None) -> int:
    """Levenshtein distance; returns ``max_distance + 1`` once the bound is exceeded."""
    if a == b:
        return 0
    if max_distance is not None and abs(len(a) - len(b)) > max_distance:
        return max_distance + 1
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        if max_distance is not None and min(current) > max_distance:
            return max_distance + 1
        previous = current
    return previous[-1]


def suggest(name: str, candidates: Iterable[str], limit: int = 3, max_distance: int = 3) -> list[str]:
    """Near matches: substring containment first, then bounded edit distance."""
    needle = name.strip().lower()
    if not needle:
        return []
    pool = list(dict.fromkeys(candidates))

    contained = [c for c in pool if needle in c.lower() or c.lower() in needle]
    suggestions = contained[:limit]
    if len(suggestions) >= limit:
        return suggestions

    scored = []
    for candidate in pool:
        if candidate in suggestions:
            continue
        distance = edit_distance(needle, candidate.lower(), max_distance)
        if distance <= max_distance:
            scored.append((distance, candidate))
    scored.sort(key=lambda item: (item[0], item[1]))
    suggestions.extend(candidate for _, candidate in scored[: limit - len(suggestions)])
    return suggestions


class RateMonitor:
    """Fixed-window execution counter."""

    def __init__(
        self,
        max_executions: int = 100,
        window_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_executions = max_executions
        self.window_seconds = window_seconds
        self._clock = clock
        self._executions: deque[float] = deque()
        self._tripped = False

    def _prune(self, now: float) -> None:
        while self._executions and now - self._executions[0] >= self.window_seconds:
            self._executions.popleft()

    def record(self) -> bool:
        """Count one execution; False when the window is already full."""
        now = self._clock()
        self._prune(now)
        if len(self._executions) >= self.max_executions:
            return False
        self._executions.append(now)
        self._tripped = False
        return True

    def first_trip(self) -> bool:
        """True only for the first rejected execution of a saturated window."""
        if self._tripped:
            return False
        self._tripped = True
        return True

    def stats(self) -> dict[str, Any]:
        self._prune(self._clock())
        return {
            "executions_in_window": len(self._executions),
            "max_executions": self.max_executions,
            "window_seconds": self.window_seconds,
        }

    def reset(self) -> None:
        self._executions.clear()
        self._tripped = False
