"""
Presentation seam for switch groups.

A presenter receives every state change a group wants to show. The core never
depends on how the state is displayed; it only calls render().
"""

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from .audit_logger import AuditLogger, NullLogger
from .enums import GroupState, TargetState


@runtime_checkable
class Presenter(Protocol):
    """Protocol defining the interface for state presenters."""

    @abstractmethod
    def render(self, group_id: str, current: GroupState, target: TargetState) -> None:
        """
        Show a group's state.

        Args:
            group_id: Name of the switch group
            current: Observed state (any of the four)
            target: Last consistent state the group is heading to

        Raises:
            Any exception if the presentation layer cannot be updated
        """
        ...


class LoggingPresenter:
    """Presenter that writes every rendered state to the logger."""

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._logger = logger or NullLogger()

    def render(self, group_id: str, current: GroupState, target: TargetState) -> None:
        self._logger.info("Presenter", f"{group_id}: {current.value}", {
            "group": group_id,
            "current": current.value,
            "target": target.value,
        })


@dataclass
class RenderCall:
    group_id: str
    current: GroupState
    target: TargetState


@dataclass
class RecordingPresenter:
    """Presenter that remembers what was rendered."""

    history: list[RenderCall] = field(default_factory=list)

    def render(self, group_id: str, current: GroupState, target: TargetState) -> None:
        self.history.append(RenderCall(group_id, current, target))

    def last(self, group_id: str) -> Optional[RenderCall]:
        for call in reversed(self.history):
            if call.group_id == group_id:
                return call
        return None

    def calls_for(self, group_id: str) -> list[RenderCall]:
        return [call for call in self.history if call.group_id == group_id]


def minutes_label(timeout_minutes: int) -> str:
    if timeout_minutes == 0:
        return "No Timer"
    return f"{timeout_minutes} Minute{'s' if timeout_minutes > 1 else ''}"


@dataclass(frozen=True)
class TimedSwitch:
    """One user-facing switch of a group, bound to a single timeout."""

    group_name: str
    timeout_minutes: int
    concise: bool = False

    @property
    def display_name(self) -> str:
        # Groups with several timeouts label each switch by its timer only.
        if self.concise:
            return minutes_label(self.timeout_minutes)
        if self.timeout_minutes == 0:
            return self.group_name
        return f"{self.group_name}: {minutes_label(self.timeout_minutes)}"

    @property
    def subtype(self) -> str:
        if self.timeout_minutes == 0:
            return "main_switch"
        return f"timed_switch_{self.timeout_minutes}"
