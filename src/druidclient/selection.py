"""Host selection policies: pick exactly one broker per call."""

from __future__ import annotations

from collections.abc import Sequence
from itertools import cycle
from typing import Protocol

from druidclient.models import QueryHost


class HostSelector(Protocol):
    """Chooses the broker for the next call."""

    def select(self) -> QueryHost:
        """Return one configured host."""
        ...


class RoundRobinSelector:
    """Rotate through hosts in configuration order."""

    def __init__(self, hosts: Sequence[QueryHost]) -> None:
        if not hosts:
            message = "RoundRobinSelector needs at least one host"
            raise ValueError(message)
        self._hosts = cycle(tuple(hosts))

    def select(self) -> QueryHost:
        return next(self._hosts)


class FixedSelector:
    """Always use the same host."""

    def __init__(self, host: QueryHost) -> None:
        self.host = host

    def select(self) -> QueryHost:
        return self.host
