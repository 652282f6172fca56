"""Async client for Druid brokers: buffered and streamed query results plus health checks."""

from druidclient.client import QueryClient
from druidclient.config import ClientConfig
from druidclient.errors import (
    ClientClosedError,
    PayloadError,
    ProblemDetail,
    ProblemError,
    QueryError,
    ServiceError,
    TimeoutFailure,
    TransportError,
)
from druidclient.health import HealthTracker
from druidclient.models import (
    QueryHost,
    QueryKind,
    QueryRequest,
    QueryResponse,
    ResultEnvelope,
    ScanResponse,
    SqlResponse,
    SqlRow,
    TimeseriesResponse,
)
from druidclient.observability import ClientObservability

__all__ = [
    "ClientClosedError",
    "ClientConfig",
    "ClientObservability",
    "HealthTracker",
    "PayloadError",
    "ProblemDetail",
    "ProblemError",
    "QueryClient",
    "QueryError",
    "QueryHost",
    "QueryKind",
    "QueryRequest",
    "QueryResponse",
    "ResultEnvelope",
    "ScanResponse",
    "ServiceError",
    "SqlResponse",
    "SqlRow",
    "TimeoutFailure",
    "TimeseriesResponse",
    "TransportError",
]
