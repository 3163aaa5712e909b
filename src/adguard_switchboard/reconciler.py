"""
Reconciliation loop.

On every tick the loop asks the live switch groups which snapshot fields they
read, fetches exactly those, and pushes the snapshot to each group in order.
"""

import asyncio
import signal
from functools import reduce
from typing import Optional

import httpx

from .adguard_client import AdGuardClient
from .audit_logger import AuditLogger, NullLogger
from .config import SystemConfig
from .models import FetchRequest, Snapshot
from .presentation import LoggingPresenter, Presenter
from .state_store import ClientConfigSlots, FileKeyValueStore, KeyValueStore, TimerSlots
from .switch_group import SwitchGroup, build_switch_groups


COMPONENT = "Reconciler"


class Reconciler:
    """Periodically reconciles every switch group against the server."""

    def __init__(
        self,
        client: AdGuardClient,
        groups: list[SwitchGroup],
        interval_ms: int = 10000,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._client = client
        self._groups = list(groups)
        self._interval_ms = interval_ms
        self._logger = logger or NullLogger()
        self._last_available: Optional[bool] = None

    @property
    def groups(self) -> list[SwitchGroup]:
        return list(self._groups)

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    def build_request(self) -> FetchRequest:
        """Union of the fields needed by all groups."""
        return reduce(
            lambda acc, group: acc.union(group.needs()),
            self._groups,
            FetchRequest(),
        )

    async def tick(self) -> Snapshot:
        """Run one fetch and propagate the result to every group."""
        request = self.build_request()
        self._logger.debug(COMPONENT, "Checking server status", {
            "fields": [f.value for f in request.fields],
        })
        snapshot = await self._client.fetch(request)
        self._log_availability_edge(snapshot)

        try:
            self._propagate(snapshot)
        except Exception as e:
            self._logger.log_error(COMPONENT, "Failed to update switch states", error=e)
            try:
                self._propagate(snapshot.as_unavailable())
            except Exception as e2:
                self._logger.log_error(
                    COMPONENT, "Switch states still not updated after retry", error=e2
                )

        self._last_available = snapshot.available
        return snapshot

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Tick every interval until stop_event is set.

        Args:
            stop_event: Optional event to signal the loop to stop
        """
        self._logger.info(COMPONENT, f"Starting monitoring loop with interval {self._interval_ms}ms")
        interval = self._interval_ms / 1000
        stop_event = stop_event or asyncio.Event()

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass
            await self.tick()

        self._logger.info(COMPONENT, "Monitoring loop stopped")

    async def restore_unfinished_timers(self) -> None:
        """Restore every group's persisted timer concurrently."""
        await asyncio.gather(*(group.restore_unfinished_timers() for group in self._groups))

    def _propagate(self, snapshot: Snapshot) -> None:
        for group in self._groups:
            group.update(snapshot)

    def _log_availability_edge(self, snapshot: Snapshot) -> None:
        if snapshot.available and self._last_available is not True:
            self._logger.info(COMPONENT, "AdGuard Home server is now responsive")
        elif not snapshot.available and self._last_available is True:
            data = snapshot.error.to_dict() if snapshot.error else None
            self._logger.warn(COMPONENT, "AdGuard Home server is not responding", data)


async def run_service(
    config: SystemConfig,
    logger: Optional[AuditLogger] = None,
    presenter: Optional[Presenter] = None,
    store: Optional[KeyValueStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> int:
    """
    Run the switchboard until stopped.

    Fetches a full initial snapshot, builds the groups, then restores
    unfinished timers while the polling loop runs. SIGINT and SIGTERM set
    the stop event.

    Returns:
        Exit code (0 = clean shutdown, 1 = no usable switch groups)
    """
    log = logger or NullLogger()
    stop_event = stop_event or asyncio.Event()
    store = store or FileKeyValueStore(
        config.persistence.storage_dir, config.persistence.hmac_secret
    )
    presenter = presenter or LoggingPresenter(logger)

    loop = asyncio.get_running_loop()
    handled_signals = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
            handled_signals.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            log.debug(COMPONENT, f"No handler installed for {sig.name}")

    try:
        async with AdGuardClient(config.server, logger=logger, transport=transport) as client:
            initial = await client.fetch(FetchRequest.everything())
            if not initial.available:
                log.warn(COMPONENT, "AdGuard Home server is not reachable at startup", {
                    "url": client.base_url,
                })

            groups = build_switch_groups(
                config.switches,
                client,
                TimerSlots(store),
                ClientConfigSlots(store),
                presenter,
                initial,
                logger=logger,
            )
            if not groups:
                log.error(COMPONENT, "No usable switch groups configured")
                return 1

            reconciler = Reconciler(client, groups, config.interval_ms, logger=logger)
            try:
                await asyncio.gather(
                    reconciler.restore_unfinished_timers(),
                    reconciler.run(stop_event),
                )
            finally:
                for group in groups:
                    group.timer.cancel()
    finally:
        for sig in handled_signals:
            loop.remove_signal_handler(sig)

    return 0
