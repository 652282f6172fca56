"""Client configuration loaded from arguments or the environment."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from druidclient.models import QueryHost

HostSelection = Literal["round_robin", "first"]


def _parse_env_flag(value: str | None, *, default: bool) -> bool:
    """
    Interpret a string environment value as a boolean.

    Parameters
    ----------
    value:
        Raw environment variable value or None.
    default:
        Value to return when the environment variable is unset.

    Returns
    -------
    bool
        Parsed boolean flag.
    """
    if value is None:
        return default
    return value.lower() not in {"0", "false", "no", "off"}


def _parse_hosts(value: str) -> list[QueryHost]:
    return [QueryHost.parse(item) for item in value.split(",") if item.strip()]


class ClientConfig(BaseModel):
    """Runtime settings for ``QueryClient``: brokers, endpoints and time bounds."""

    hosts: list[QueryHost] = Field(
        default_factory=lambda: [QueryHost(host="localhost", port=8082)],
        description="Broker endpoints queries may be sent to.",
    )
    url_path: str = Field(
        default="/druid/v2/",
        description="Path of the native query endpoint.",
    )
    sql_url_path: str = Field(
        default="/druid/v2/sql/",
        description="Path of the SQL query endpoint.",
    )
    health_path: str = Field(
        default="/status/health",
        description="Path probed by health checks.",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Connect/read timeout for broker requests.",
    )
    response_parsing_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound for buffering a whole response body.",
    )
    health_probe_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound for a single health probe.",
    )
    host_selection: HostSelection = Field(
        default="round_robin",
        description="Policy used to pick one broker per call.",
    )
    observability_enabled: bool = Field(
        default=False,
        description="Emit structured query_call logs.",
    )

    @field_validator("hosts", mode="before")
    @classmethod
    def _coerce_hosts(cls, value: object) -> object:
        if isinstance(value, str):
            return _parse_hosts(value)
        if isinstance(value, list):
            return [QueryHost.parse(item) if isinstance(item, str) else item for item in value]
        return value

    @classmethod
    def from_env(cls) -> ClientConfig:
        """
        Construct a ClientConfig from environment variables.

        Returns
        -------
        ClientConfig
            Validated configuration populated from environment values.
        """
        hosts = _parse_hosts(os.environ.get("DRUID_HOSTS", "http://localhost:8082"))
        selection_env = os.environ.get("DRUID_HOST_SELECTION", "round_robin").lower()
        host_selection: HostSelection = "first" if selection_env == "first" else "round_robin"

        return cls(
            hosts=hosts,
            url_path=os.environ.get("DRUID_URL", "/druid/v2/"),
            sql_url_path=os.environ.get("DRUID_SQL_URL", "/druid/v2/sql/"),
            health_path=os.environ.get("DRUID_HEALTH_URL", "/status/health"),
            request_timeout_seconds=float(os.environ.get("DRUID_REQUEST_TIMEOUT_SEC", "30.0")),
            response_parsing_timeout_seconds=float(
                os.environ.get("DRUID_RESPONSE_PARSING_TIMEOUT_SEC", "5.0")
            ),
            health_probe_timeout_seconds=float(
                os.environ.get("DRUID_HEALTH_PROBE_TIMEOUT_SEC", "5.0")
            ),
            host_selection=host_selection,
            observability_enabled=_parse_env_flag(
                os.environ.get("DRUID_OBSERVABILITY"), default=False
            ),
        )

    @model_validator(mode="after")
    def _validate(self) -> ClientConfig:
        """
        Check hosts, paths and timeouts.

        Returns
        -------
        ClientConfig
            The validated configuration.

        Raises
        ------
        ValueError
            When no host is configured, a path is relative or a timeout is not positive.
        """
        if not self.hosts:
            message = "At least one query host must be configured"
            raise ValueError(message)
        for name in ("url_path", "sql_url_path", "health_path"):
            if not getattr(self, name).startswith("/"):
                message = f"{name} must start with '/'"
                raise ValueError(message)
        for name in (
            "request_timeout_seconds",
            "response_parsing_timeout_seconds",
            "health_probe_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                message = f"{name} must be positive"
                raise ValueError(message)
        return self


__all__ = ["ClientConfig", "HostSelection"]
