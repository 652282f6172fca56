"""Error taxonomy and Problem Details helpers for query dispatch and decoding."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any
from uuid import uuid4

PROBLEM_TYPE_BASE = "https://problems.druidclient.dev/"


@dataclass(frozen=True)
class ProblemDetail:
    """
    RFC 9457 Problem Details for one failed broker interaction.

    ``host`` names the broker that produced the failure; ``status`` is the
    HTTP status when one was received. ``instance`` is a per-failure UUID so
    log lines and exceptions can be matched up.
    """

    code: str
    title: str
    detail: str
    status: int | None = None
    host: str | None = None
    instance: str = field(default_factory=lambda: str(uuid4()))
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        """Return the problem type URI derived from ``code``."""
        return f"{PROBLEM_TYPE_BASE}{self.code}"

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize to a JSON-friendly dict, omitting unset fields.

        Returns
        -------
        dict[str, Any]
            ``type`` followed by every populated field.
        """
        fields = {name: value for name, value in asdict(self).items() if value not in (None, {})}
        return {"type": self.type, **fields}


def problem(
    code: str,
    title: str,
    detail: str,
    *,
    status: int | None = None,
    host: str | None = None,
    extras: dict[str, Any] | None = None,
) -> ProblemDetail:
    """
    Create a ProblemDetail with a fresh instance id.

    Parameters
    ----------
    code
        Stable problem code such as ``query.service_error``.
    title
        Short summary shared by every problem with this code.
    detail
        Description of this particular failure.
    status
        HTTP status returned by the broker, if any.
    host
        Base URL of the broker involved.
    extras
        Further structured context for diagnostics.

    Returns
    -------
    ProblemDetail
        Structured problem payload.
    """
    return ProblemDetail(
        code=code,
        title=title,
        detail=detail,
        status=status,
        host=host,
        extras=extras or {},
    )


def log_problem(logger: logging.Logger | logging.LoggerAdapter, detail: ProblemDetail) -> None:
    """Emit a Problem Detail as one JSON error line."""
    logger.error(json.dumps(detail.to_dict(), default=str))


class ProblemError(Exception):
    """Base exception carrying a ProblemDetail payload."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail.detail)
        self.problem_detail = detail


class QueryError(ProblemError):
    """Failure of a single query dispatch; ``host`` and ``status`` come from the detail."""

    @property
    def host(self) -> str | None:
        return self.problem_detail.host

    @property
    def status(self) -> int | None:
        return self.problem_detail.status


class ServiceError(QueryError):
    """The broker answered with a non-success HTTP status."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        status: int,
        http_version: str,
        headers: Mapping[str, str],
        body: bytes | None,
        body_error: BaseException | None = None,
        host: str | None = None,
    ) -> None:
        extras: dict[str, Any] = {"http_version": http_version}
        if body is not None:
            extras["body"] = body.decode("utf-8", errors="replace")
        if body_error is not None:
            extras["body_error"] = repr(body_error)
        super().__init__(
            problem(
                code="query.service_error",
                title="Query service rejected the request",
                detail=f"Broker responded with HTTP {status}",
                status=status,
                host=host,
                extras=extras,
            )
        )
        self.http_version = http_version
        self.headers = dict(headers)
        self.body = body
        self.body_error = body_error


class PayloadError(QueryError):
    """The response body could not be parsed into the expected shape."""

    def __init__(self, message: str, *, host: str | None = None, status: int | None = None) -> None:
        super().__init__(
            problem(
                code="query.payload_error",
                title="Response payload could not be decoded",
                detail=message,
                status=status,
                host=host,
            )
        )


class TimeoutFailure(QueryError):
    """Response buffering or a health probe exceeded its time bound."""

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: float,
        host: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(
            problem(
                code="query.timeout",
                title="Query timed out",
                detail=message,
                status=status,
                host=host,
                extras={"timeout_seconds": timeout_seconds},
            )
        )
        self.timeout_seconds = timeout_seconds


class TransportError(QueryError):
    """Connection-level failure before any response status was obtained."""

    def __init__(self, message: str, *, host: str | None = None) -> None:
        super().__init__(
            problem(
                code="query.transport_error",
                title="Could not reach query service",
                detail=message,
                host=host,
            )
        )


class ClientClosedError(QueryError):
    """The client was used after shutdown()."""

    def __init__(self) -> None:
        super().__init__(
            problem(
                code="client.closed",
                title="Client is closed",
                detail="QueryClient has been shut down",
            )
        )
