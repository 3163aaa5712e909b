"""
Data models for the switchboard.

This module defines the value objects read from the remote server
(client records, snapshots), the versioned cache that mutation code
diffs against, and the envelope used for durable records.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Optional

from .enums import SnapshotField
from .exceptions import FetchUnavailable


@dataclass(frozen=True)
class ClientRecord:
    """A client's filtering configuration as reported by the server."""

    name: str
    tags: frozenset[str] = frozenset()
    use_global_settings: bool = False
    use_global_blocked_services: bool = False
    filtering_enabled: bool = False
    parental_enabled: bool = False
    safebrowsing_enabled: bool = False
    safesearch_enabled: bool = False
    safe_search_enabled: bool = False  # nested safe_search.enabled on newer servers
    blocked_services: tuple[str, ...] = ()
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> "ClientRecord":
        """Build a record from the server's JSON, keeping the full payload."""
        safe_search = data.get("safe_search")
        return cls(
            name=str(data.get("name", "")),
            tags=frozenset(data.get("tags") or ()),
            use_global_settings=data.get("use_global_settings") is True,
            use_global_blocked_services=data.get("use_global_blocked_services") is True,
            filtering_enabled=data.get("filtering_enabled") is True,
            parental_enabled=data.get("parental_enabled") is True,
            safebrowsing_enabled=data.get("safebrowsing_enabled") is True,
            safesearch_enabled=data.get("safesearch_enabled") is True,
            safe_search_enabled=(
                isinstance(safe_search, dict) and safe_search.get("enabled") is True
            ),
            blocked_services=tuple(data.get("blocked_services") or ()),
            raw=copy.deepcopy(data),
        )

    def has_blocking_enabled(self, ignore_services: bool = False) -> bool:
        """
        Check whether any blocking feature is switched on for this client.

        A client counts as blocking if it delegates to global settings, blocks
        services (unless ignore_services is set), or has any of the filtering,
        parental, safe browsing or safe search features enabled. Every one of
        them must be off for the client to count as disabled.
        """
        if self.use_global_settings:
            return True
        if not ignore_services and (
            self.use_global_blocked_services or len(self.blocked_services) > 0
        ):
            return True
        return (
            self.filtering_enabled
            or self.parental_enabled
            or self.safebrowsing_enabled
            or self.safesearch_enabled
            or self.safe_search_enabled
        )

    def to_dict(self) -> dict:
        """Return a deep copy of the full server record."""
        return copy.deepcopy(self.raw)


@dataclass(frozen=True)
class FetchRequest:
    """Which snapshot fields a fetch should load."""

    global_enabled: bool = False
    global_blocked_services: bool = False
    clients: bool = False

    @classmethod
    def everything(cls) -> "FetchRequest":
        return cls(True, True, True)

    def union(self, other: "FetchRequest") -> "FetchRequest":
        return FetchRequest(
            global_enabled=self.global_enabled or other.global_enabled,
            global_blocked_services=(
                self.global_blocked_services or other.global_blocked_services
            ),
            clients=self.clients or other.clients,
        )

    @property
    def fields(self) -> list[SnapshotField]:
        requested = []
        if self.global_enabled:
            requested.append(SnapshotField.GLOBAL_ENABLED)
        if self.global_blocked_services:
            requested.append(SnapshotField.GLOBAL_BLOCKED_SERVICES)
        if self.clients:
            requested.append(SnapshotField.CLIENTS)
        return requested


@dataclass(frozen=True)
class CacheView:
    """Immutable view of the client cache at one version."""

    version: int
    global_enabled: Optional[bool] = None
    global_blocked_services: Optional[tuple[str, ...]] = None
    clients: tuple[ClientRecord, ...] = ()

    def find_client(self, name: str) -> Optional[ClientRecord]:
        for client in self.clients:
            if client.name == name:
                return client
        return None


class ClientCache:
    """
    Last-known server data used for diffing and selector expansion.

    Only the fetch step writes to the cache. Each write bumps the version;
    readers take a CacheView and work from that version.
    """

    def __init__(self) -> None:
        self._view = CacheView(version=0)

    @property
    def version(self) -> int:
        return self._view.version

    def view(self) -> CacheView:
        return self._view

    def set_global_enabled(self, enabled: bool) -> None:
        self._replace(global_enabled=enabled)

    def set_global_blocked_services(self, services: list[str]) -> None:
        self._replace(global_blocked_services=tuple(services))

    def set_clients(self, clients: list[ClientRecord]) -> None:
        self._replace(clients=tuple(clients))

    def _replace(self, **changes: Any) -> None:
        current = self._view
        values = {
            "global_enabled": current.global_enabled,
            "global_blocked_services": current.global_blocked_services,
            "clients": current.clients,
        }
        values.update(changes)
        self._view = CacheView(version=current.version + 1, **values)


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time read of the server's filtering configuration."""

    available: bool
    global_enabled: bool = False
    global_blocked_services: tuple[str, ...] = ()
    clients: tuple[ClientRecord, ...] = ()
    error: Optional[FetchUnavailable] = None
    cache_version: int = 0

    @classmethod
    def from_view(cls, view: CacheView) -> "Snapshot":
        return cls(
            available=True,
            global_enabled=view.global_enabled is True,
            global_blocked_services=view.global_blocked_services or (),
            clients=view.clients,
            cache_version=view.version,
        )

    @classmethod
    def unavailable(cls, error: Optional[FetchUnavailable] = None) -> "Snapshot":
        return cls(available=False, error=error)

    def as_unavailable(self) -> "Snapshot":
        """Copy of this snapshot marked unavailable, keeping the error."""
        return Snapshot(
            available=False,
            global_enabled=self.global_enabled,
            global_blocked_services=self.global_blocked_services,
            clients=self.clients,
            error=self.error,
            cache_version=self.cache_version,
        )

    def find_client(self, name: str) -> Optional[ClientRecord]:
        for client in self.clients:
            if client.name == name:
                return client
        return None


@dataclass
class PersistedData:
    """
    Generic wrapper for all persisted data with HMAC protection.

    All data stored to disk uses this format to ensure integrity.
    """

    version: int
    created_at: str
    updated_at: str
    data: Any
    hmac: str  # HMAC-SHA256 over json.dumps(data, sort_keys=True)
