"""
Enumeration types for the switchboard.

These enums provide type-safe constants for switch states, timer states,
error codes and logging levels throughout the system.
"""

from enum import Enum


class GroupState(Enum):
    """Observed state of a switch group."""

    BLOCKING = "Blocking"
    DISABLED = "Disabled"
    INCONSISTENT = "Inconsistent"
    UNAVAILABLE = "Unavailable"

    @property
    def is_consistent(self) -> bool:
        """True for the two clean binary outcomes."""
        return self in (GroupState.BLOCKING, GroupState.DISABLED)

    @classmethod
    def from_bool(cls, blocking: bool) -> "GroupState":
        return cls.BLOCKING if blocking else cls.DISABLED


class TargetState(Enum):
    """Desired state of a switch group. Only consistent values exist."""

    BLOCKING = "Blocking"
    DISABLED = "Disabled"

    @classmethod
    def from_bool(cls, blocking: bool) -> "TargetState":
        return cls.BLOCKING if blocking else cls.DISABLED

    @classmethod
    def from_group_state(cls, state: GroupState) -> "TargetState":
        """
        Convert a consistent GroupState into a TargetState.

        Raises:
            ValueError: If the state is inconsistent or unavailable
        """
        if not state.is_consistent:
            raise ValueError(f"Not a consistent state: {state.value}")
        return cls(state.value)

    def as_bool(self) -> bool:
        return self is TargetState.BLOCKING

    def as_group_state(self) -> GroupState:
        return GroupState(self.value)


class TimerState(Enum):
    """Auto-revert timer state."""

    IDLE = "idle"
    ARMED = "armed"


class SnapshotField(Enum):
    """Fields of the server snapshot that can be fetched independently."""

    GLOBAL_ENABLED = "global_enabled"
    GLOBAL_BLOCKED_SERVICES = "global_blocked_services"
    CLIENTS = "clients"


class FetchErrorCode(Enum):
    """Error codes for remote server requests."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}
