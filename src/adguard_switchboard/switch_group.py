"""
Switch group module.

A switch group is one logical on/off switch over a slice of the server's
configuration: global protection, a set of globally blocked services, or the
blocking settings of selected clients. The group derives its four-valued
state from snapshots, drives the server through the mutation protocol and
owns the auto-revert timer.
"""

import asyncio
from typing import Callable, Iterable, Optional

from .adguard_client import AdGuardClient
from .audit_logger import AuditLogger, NullLogger
from .config import SwitchGroupConfig
from .enums import GroupState, TargetState
from .exceptions import ConfigInvalid, StorageFailed
from .models import FetchRequest, Snapshot
from .presentation import Presenter, TimedSwitch
from .state_store import ClientConfigSlots, TimerSlots
from .timers import AutoRevertTimer


COMPONENT = "SwitchGroup"


def contains_all_or_none(superset: Iterable[str], subset: Iterable[str]) -> int:
    """
    Compare a subset against a superset.

    Returns:
        1 if every element of subset is in superset (also for an empty
        subset), -1 if none is, 0 otherwise
    """
    present = set(superset)
    all_present = True
    none_present = True
    for item in subset:
        if item in present:
            none_present = False
        else:
            all_present = False
    if all_present:
        return 1
    return -1 if none_present else 0


def unbridged_name(name: str, timeout_minutes: int) -> str:
    if timeout_minutes == 0:
        return name
    return f"{name}: {timeout_minutes} minute{'s' if timeout_minutes > 1 else ''}"


class SwitchGroup:
    """
    One logical switch.

    current_state may be any GroupState; target_state is always a consistent
    TargetState and keeps its last value when the group becomes inconsistent
    or unavailable.
    """

    def __init__(
        self,
        config: SwitchGroupConfig,
        client: AdGuardClient,
        timer_slots: TimerSlots,
        client_slots: ClientConfigSlots,
        presenter: Presenter,
        initial_snapshot: Snapshot,
        clock: Optional[Callable[[], int]] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._config = config
        self._client = client
        self._client_slots = client_slots
        self._presenter = presenter
        self._logger = logger or NullLogger()
        self._lock = asyncio.Lock()
        self._timer = AutoRevertTimer(
            config.name, timer_slots, self._revert_to_default, clock=clock, logger=logger
        )

        timeouts = config.timeouts if config.bridged else config.timeouts[:1]
        concise = len(timeouts) > 1
        self._switches = [TimedSwitch(config.name, t, concise=concise) for t in timeouts]

        self._target = TargetState.from_bool(config.default_state)
        self._current = GroupState.UNAVAILABLE
        self._set_current(self.derive_state(initial_snapshot))
        self._render(self._current)

        self._logger.info(COMPONENT, f"Switch group '{config.name}' initialized to {self._current.value}", {
            "clients": list(config.clients),
            "services": list(config.services),
            "timeouts": list(config.timeouts),
        })

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> SwitchGroupConfig:
        return self._config

    @property
    def is_global(self) -> bool:
        return self._config.is_global

    @property
    def is_select_services(self) -> bool:
        return self._config.is_select_services

    @property
    def current_state(self) -> GroupState:
        return self._current

    @property
    def target_state(self) -> TargetState:
        return self._target

    @property
    def timer(self) -> AutoRevertTimer:
        return self._timer

    @property
    def switches(self) -> list[TimedSwitch]:
        return list(self._switches)

    def needs(self) -> FetchRequest:
        """Snapshot fields this group reads."""
        if self.is_global:
            return FetchRequest(
                global_enabled=not self.is_select_services,
                global_blocked_services=self.is_select_services,
            )
        # Client records are also needed to expand @tags and wildcards.
        return FetchRequest(clients=True)

    def derive_state(self, snapshot: Snapshot) -> GroupState:
        """Compute the group's state from a snapshot. Has no side effects."""
        if not snapshot.available:
            return GroupState.UNAVAILABLE

        config = self._config
        if self.is_global:
            if self.is_select_services:
                cmp = contains_all_or_none(snapshot.global_blocked_services, config.services)
            else:
                cmp = 1 if snapshot.global_enabled else -1
        else:
            all_blocking = True
            none_blocking = True
            for name in self._client.expand_selectors(config.clients, snapshot.clients):
                record = snapshot.find_client(name)
                if record is None:
                    all_blocking = False
                    continue
                if self.is_select_services:
                    client_cmp = contains_all_or_none(record.blocked_services, config.services)
                    all_blocking = all_blocking and client_cmp > 0
                    none_blocking = none_blocking and client_cmp < 0
                else:
                    blocking = record.has_blocking_enabled()
                    all_blocking = all_blocking and blocking
                    none_blocking = none_blocking and not blocking
            cmp = 1 if all_blocking else (-1 if none_blocking else 0)

        if cmp < 0:
            return GroupState.DISABLED
        if cmp > 0:
            return GroupState.BLOCKING
        return GroupState.INCONSISTENT

    def update(self, snapshot: Snapshot) -> bool:
        """
        Reconcile against a fresh snapshot.

        Returns:
            True if the state changed and was rendered

        Raises:
            Whatever the presenter raises; the state is then left unchanged
        """
        new_state = self.derive_state(snapshot)
        if new_state is self._current:
            return False

        self._logger.debug(COMPONENT, f"'{self.name}' changed to {new_state.value}", {
            "previous": self._current.value,
            "available": snapshot.available,
        })
        target = TargetState.from_group_state(new_state) if new_state.is_consistent else None
        self._render(new_state, target)
        return True

    async def set_state(self, desired: bool) -> GroupState:
        """
        Drive the server to the desired state.

        Calls are serialized per group. On failure the group becomes
        Unavailable; sub-requests that did succeed are not rolled back.
        """
        async with self._lock:
            target = TargetState.from_bool(desired)
            self._target = target
            self._logger.info(COMPONENT, f"Setting '{self.name}' to {target.value}")

            success = await self._dispatch(desired)
            if not success:
                self._logger.warn(
                    COMPONENT,
                    f"Unable to change '{self.name}'. Setting state to {GroupState.UNAVAILABLE.value}",
                )
            self._set_current(target.as_group_state() if success else GroupState.UNAVAILABLE)
            return self._current

    async def on_user_toggle(self, timeout_minutes: int, desired: bool) -> GroupState:
        """
        Handle a user flipping one of the group's switches.

        An inconsistent group rejects the toggle unless force_state is set.
        Moving away from the default arms the timer; returning to it disarms.
        """
        if not self._current.is_consistent and not self._config.force_state:
            self._logger.info(COMPONENT, f"Toggle of '{self.name}' rejected in state {self._current.value}", {
                "force_state": self._config.force_state,
            })
            self._render(self._current)
            return self._current

        if desired != self._config.default_state:
            await self._timer.arm(timeout_minutes)
        else:
            await self._timer.arm(0)

        await self.set_state(desired)
        self._render(self._current)
        return self._current

    async def restore_unfinished_timers(self) -> None:
        self._logger.debug(COMPONENT, f"Restoring timers for '{self.name}'")
        await self._timer.restore_on_startup()

    async def _revert_to_default(self) -> None:
        self._logger.info(
            COMPONENT,
            f"Restoring '{self.name}' to its default state {TargetState.from_bool(self._config.default_state).value}",
        )
        state = await self.set_state(self._config.default_state)
        self._render(state, TargetState.from_bool(self._config.default_state))

    async def _dispatch(self, desired: bool) -> bool:
        config = self._config
        info = f"{config.name}: {'enable' if desired else 'disable'} blocking"
        if self.is_global:
            if self.is_select_services:
                return await self._client.post_global_services(desired, config.services, info=info)
            return await self._client.post_global(desired, info=info)
        if self.is_select_services:
            return await self._client.post_client_services(
                desired, config.clients, config.services, info=info
            )
        return await self._client.post_clients(
            desired, config.clients, self._read_saved, self._write_saved, info=info
        )

    async def _read_saved(self, client_name: str) -> Optional[dict]:
        try:
            return await self._client_slots.take(client_name)
        except StorageFailed as e:
            self._logger.warn(COMPONENT, f"Failed reading saved state of client '{client_name}'", {
                "code": e.code,
                "error": e.message,
            })
            return None

    async def _write_saved(self, client_name: str, record: dict) -> None:
        try:
            await self._client_slots.save(client_name, record)
        except StorageFailed as e:
            self._logger.warn(COMPONENT, f"Failed saving state of client '{client_name}'", {
                "code": e.code,
                "error": e.message,
            })

    def _set_current(self, state: GroupState) -> None:
        if state.is_consistent:
            self._target = TargetState.from_group_state(state)
        self._current = state

    def _render(self, state: GroupState, target: Optional[TargetState] = None) -> None:
        if target is not None:
            self._target = target
        self._presenter.render(self.name, state, self._target)
        self._set_current(state)


def build_switch_groups(
    raw_switches: list[dict],
    client: AdGuardClient,
    timer_slots: TimerSlots,
    client_slots: ClientConfigSlots,
    presenter: Presenter,
    initial_snapshot: Snapshot,
    clock: Optional[Callable[[], int]] = None,
    logger: Optional[AuditLogger] = None,
) -> list[SwitchGroup]:
    """
    Construct the switch groups from raw switch definitions.

    Bridged switches become one group carrying all their timeouts; other
    switches become one group per timeout. An invalid definition is logged
    and skipped without affecting the others.
    """
    log = logger or NullLogger()
    groups: list[SwitchGroup] = []
    seen: set[str] = set()

    for raw in raw_switches:
        try:
            config = SwitchGroupConfig.from_dict(raw)
        except ConfigInvalid as e:
            log.log_error(COMPONENT, "Skipping invalid switch definition", error=e)
            continue

        if config.bridged:
            variants = [config]
        else:
            variants = [
                config.with_timeouts(unbridged_name(config.name, t), (t,))
                for t in config.timeouts
            ]

        for variant in variants:
            if variant.name in seen:
                log.warn(COMPONENT, f"Skipping duplicate switch group '{variant.name}'")
                continue
            seen.add(variant.name)
            groups.append(SwitchGroup(
                variant,
                client,
                timer_slots,
                client_slots,
                presenter,
                initial_snapshot,
                clock=clock,
                logger=logger,
            ))

    return groups
