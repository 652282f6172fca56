"""Structured call logging injected into the client and health tracker."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from druidclient.errors import ProblemError, log_problem

LOG = logging.getLogger("druidclient.client")
HEALTH_LOG = logging.getLogger("druidclient.client.health")


@dataclass
class QueryCallMetrics:
    """Structured metrics describing one client call."""

    name: str
    host: str | None
    duration_ms: float
    kind: str | None = None
    rows: int | None = None
    status: int | None = None
    error: str | None = None


@dataclass
class ClientObservability:
    """
    Logging handle passed to ``QueryClient`` and ``HealthTracker``.

    ``logger`` receives query logs; ``health_logger`` is a separate category
    so health probes can be filtered independently.
    """

    enabled: bool = False
    logger: logging.Logger = field(default_factory=lambda: LOG)
    health_logger: logging.Logger = field(default_factory=lambda: HEALTH_LOG)

    def record(self, metrics: QueryCallMetrics) -> None:
        """
        Emit a structured log line for a client call.

        Parameters
        ----------
        metrics:
            Call metrics describing the invocation outcome.
        """
        if not self.enabled or not self.logger.isEnabledFor(logging.INFO):
            return
        payload: dict[str, object] = {
            "name": metrics.name,
            "host": metrics.host,
            "duration_ms": round(metrics.duration_ms, 2),
        }
        if metrics.kind is not None:
            payload["kind"] = metrics.kind
        if metrics.rows is not None:
            payload["rows"] = metrics.rows
        if metrics.status is not None:
            payload["status"] = metrics.status
        if metrics.error is not None:
            payload["error"] = metrics.error
        self.logger.info("query_call %s", payload)

    def problem(self, exc: ProblemError) -> None:
        """Log the Problem Detail of a failed call when enabled."""
        if self.enabled:
            log_problem(self.logger, exc.problem_detail)


async def observe_call[T](
    observability: ClientObservability,
    *,
    name: str,
    host: str | None,
    kind: str | None,
    func: Callable[[], Awaitable[T]],
) -> T:
    """
    Await a call while capturing observability signals.

    Returns
    -------
    T
        Result returned by the wrapped coroutine.
    """
    start = time.perf_counter()
    try:
        result = await func()
    except Exception as exc:
        duration_ms = (time.perf_counter() - start) * 1000
        observability.record(
            QueryCallMetrics(
                name=name,
                host=host,
                duration_ms=duration_ms,
                kind=kind,
                status=getattr(exc, "status", None),
                error=exc.__class__.__name__,
            )
        )
        if isinstance(exc, ProblemError):
            observability.problem(exc)
        raise
    duration_ms = (time.perf_counter() - start) * 1000
    rows = len(result) if hasattr(result, "__len__") else None
    observability.record(
        QueryCallMetrics(
            name=name,
            host=host,
            duration_ms=duration_ms,
            kind=kind,
            rows=rows,
        )
    )
    return result
