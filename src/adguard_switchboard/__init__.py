"""
AdGuard Switchboard - timed, revertible on/off switches for AdGuard Home.

This package keeps a set of switch groups (global protection, blocked
services, per-client blocking) reconciled against an AdGuard Home server and
reverts them to their default state after a configurable delay.
"""

__version__ = "0.1.0"
__author__ = "AdGuard Switchboard Team"

from adguard_switchboard.exceptions import (
    SwitchboardError,
    FetchUnavailable,
    MutationFailed,
    StorageFailed,
    TamperingError,
    ConfigInvalid,
)
from adguard_switchboard.enums import (
    GroupState,
    TargetState,
    TimerState,
    SnapshotField,
    FetchErrorCode,
    LogLevel,
)
from adguard_switchboard.config import (
    ServerConfig,
    SwitchGroupConfig,
    PersistenceConfig,
    LoggingConfig,
    SystemConfig,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
    apply_env_overrides,
)
from adguard_switchboard.models import (
    ClientRecord,
    FetchRequest,
    CacheView,
    ClientCache,
    Snapshot,
    PersistedData,
)
from adguard_switchboard.adguard_client import (
    AdGuardClient,
    merge,
    remove,
    wildcard_match,
)
from adguard_switchboard.state_store import (
    KeyValueStore,
    MemoryKeyValueStore,
    FileKeyValueStore,
    TimerSlots,
    ClientConfigSlots,
    derive_key,
)
from adguard_switchboard.audit_logger import (
    AuditLogger,
    LogEntry,
    NullLogger,
)
from adguard_switchboard.presentation import (
    Presenter,
    LoggingPresenter,
    RecordingPresenter,
    TimedSwitch,
)
from adguard_switchboard.timers import AutoRevertTimer
from adguard_switchboard.switch_group import (
    SwitchGroup,
    build_switch_groups,
    contains_all_or_none,
)
from adguard_switchboard.reconciler import (
    Reconciler,
    run_service,
)
from adguard_switchboard.cli import (
    main as cli_main,
    create_parser,
)

__all__ = [
    # Exceptions
    "SwitchboardError",
    "FetchUnavailable",
    "MutationFailed",
    "StorageFailed",
    "TamperingError",
    "ConfigInvalid",
    # Enums
    "GroupState",
    "TargetState",
    "TimerState",
    "SnapshotField",
    "FetchErrorCode",
    "LogLevel",
    # Configuration
    "ServerConfig",
    "SwitchGroupConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SystemConfig",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
    "apply_env_overrides",
    # Models
    "ClientRecord",
    "FetchRequest",
    "CacheView",
    "ClientCache",
    "Snapshot",
    "PersistedData",
    # AdGuard Client
    "AdGuardClient",
    "merge",
    "remove",
    "wildcard_match",
    # State Store
    "KeyValueStore",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
    "TimerSlots",
    "ClientConfigSlots",
    "derive_key",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    "NullLogger",
    # Presentation
    "Presenter",
    "LoggingPresenter",
    "RecordingPresenter",
    "TimedSwitch",
    # Timers
    "AutoRevertTimer",
    # Switch Groups
    "SwitchGroup",
    "build_switch_groups",
    "contains_all_or_none",
    # Reconciler
    "Reconciler",
    "run_service",
    # CLI
    "cli_main",
    "create_parser",
]
