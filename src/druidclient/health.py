"""Concurrent reachability checks across broker hosts."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Iterable

import anyio

from druidclient.models import QueryHost
from druidclient.observability import ClientObservability
from druidclient.transport import Transport

HTTP_OK = 200

Probe = Callable[[QueryHost], Awaitable[bool]]


def status_probe(transport: Transport, path: str) -> Probe:
    """
    Build a probe that asks a broker for its health status.

    The broker answers ``GET /status/health`` with the JSON literal ``true``
    when it is serving.

    Returns
    -------
    Probe
        Coroutine function returning True when the host reports healthy.
    """

    async def probe(host: QueryHost) -> bool:
        async with transport.open("GET", host, path) as raw:
            body = b"".join([chunk async for chunk in raw.chunks])
        if raw.status_code != HTTP_OK:
            return False
        try:
            return json.loads(body) is True
        except ValueError:
            return False

    return probe


class HealthTracker:
    """Probe every host concurrently and report a reachability map."""

    def __init__(
        self,
        probe: Probe,
        *,
        probe_timeout: float,
        observability: ClientObservability | None = None,
    ) -> None:
        self.probe = probe
        self.probe_timeout = probe_timeout
        self.observability = observability or ClientObservability()

    async def _probe_one(self, host: QueryHost, slots: dict[QueryHost, bool]) -> None:
        logger = self.observability.health_logger
        healthy = False
        with anyio.move_on_after(self.probe_timeout) as scope:
            try:
                healthy = await self.probe(host)
            except Exception as exc:  # noqa: BLE001
                logger.debug("Health probe for %s failed: %r", host, exc)
        if scope.cancelled_caught:
            logger.debug("Health probe for %s timed out after %ss", host, self.probe_timeout)
        slots[host] = healthy

    async def check_all(self, hosts: Iterable[QueryHost]) -> dict[QueryHost, bool]:
        """
        Probe all hosts at once and wait for every probe to finish.

        Parameters
        ----------
        hosts:
            Hosts to check; duplicates are probed once.

        Returns
        -------
        dict[QueryHost, bool]
            One entry per distinct host; False for failed or timed-out probes.
        """
        unique = list(dict.fromkeys(hosts))
        slots: dict[QueryHost, bool] = {}
        async with anyio.create_task_group() as tg:
            for host in unique:
                tg.start_soon(self._probe_one, host, slots)
        result = {host: slots[host] for host in unique}
        healthy = sum(result.values())
        self.observability.health_logger.info(
            "Health check: %d/%d brokers healthy", healthy, len(result)
        )
        return result

    async def is_healthy(self, hosts: Iterable[QueryHost]) -> bool:
        """Return True only when every host is reachable."""
        result = await self.check_all(hosts)
        return all(result.values())
