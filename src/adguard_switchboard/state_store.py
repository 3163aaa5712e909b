"""
State Store module for durable timer deadlines and saved client configurations.

Values live in a key-value store behind a small async protocol so the backing
technology can be swapped. The file backend keeps one JSON document per key,
wrapped in an HMAC-protected envelope so tampered records are detected.
"""

import asyncio
import hashlib
import hmac
import json
import re
from collections import defaultdict
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from .exceptions import StorageFailed, TamperingError
from .models import PersistedData


TIMER_NAMESPACE = "timer"
CLIENT_NAMESPACE = "clients"


def derive_key(namespace: str, name: str) -> str:
    """
    Map a group or client name to a storage key.

    The readable part replaces every run of non-alphanumeric characters with
    '_'; the hash suffix keeps names that sanitize identically apart.
    """
    readable = re.sub(r"[^a-zA-Z0-9]+", "_", name).strip("_") or "_"
    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()[:16]
    return f"{namespace}/{readable}-{digest}"


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for durable key-value backends."""

    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if the key is absent."""
        ...

    async def put(self, key: str, value: Any) -> None:
        ...

    async def delete(self, key: str) -> None:
        """Remove a key. Deleting an absent key is not an error."""
        ...


class MemoryKeyValueStore:
    """In-process backend. Values are JSON round-tripped to match the file store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def put(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class FileKeyValueStore:
    """
    File-backed key-value store with HMAC protection.

    Each key is stored as <root>/<key>.json containing a PersistedData
    envelope. Blocking file I/O runs in the default executor.
    """

    VERSION = 1

    def __init__(self, root: Path, hmac_secret: str) -> None:
        """
        Initialize the store.

        Args:
            root: Directory holding the records
            hmac_secret: Secret key for HMAC computation
        """
        self._root = root
        self._hmac_secret = hmac_secret.encode("utf-8")

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        return self._root / f"{key}.json"

    async def get(self, key: str) -> Optional[Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read, key)

    async def put(self, key: str, value: Any) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, key, value)

    async def delete(self, key: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._unlink, key)

    def compute_hmac(self, data: Any) -> str:
        """Compute HMAC-SHA256 over the canonical JSON form of data."""
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _read(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageFailed(
                code="parse_error",
                message=f"Failed to parse record: {e}",
                details={"file_path": str(path)},
            )
        except OSError as e:
            raise StorageFailed(
                code="io_error",
                message=f"Failed to read record: {e}",
                details={"file_path": str(path)},
            )

        if not isinstance(raw, dict) or "data" not in raw:
            raise StorageFailed(
                code="parse_error",
                message="Record is not a persisted-data envelope",
                details={"file_path": str(path)},
            )

        record = PersistedData(
            version=raw.get("version", self.VERSION),
            created_at=raw.get("created_at", ""),
            updated_at=raw.get("updated_at", ""),
            data=raw["data"],
            hmac=raw.get("hmac", ""),
        )
        if not hmac.compare_digest(record.hmac, self.compute_hmac(record.data)):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - record may have been tampered with",
                details={"file_path": str(path)},
            )
        return record.data

    def _write(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        now = datetime.now(timezone.utc).isoformat()
        record = PersistedData(
            version=self.VERSION,
            created_at=now,
            updated_at=now,
            data=value,
            hmac=self.compute_hmac(value),
        )

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(asdict(record), f, indent=2, sort_keys=True)
            tmp_path.replace(path)
        except (OSError, TypeError) as e:
            raise StorageFailed(
                code="io_error",
                message=f"Failed to write record: {e}",
                details={"file_path": str(path)},
            )

    def _unlink(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailed(
                code="io_error",
                message=f"Failed to delete record: {e}",
                details={"file_path": str(path)},
            )


class TimerSlots:
    """Per-group auto-revert deadlines, stored as epoch milliseconds (0 = none)."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def read(self, group_name: str) -> Optional[int]:
        """
        Read a group's deadline.

        Returns:
            The deadline in epoch milliseconds, or None if no slot exists

        Raises:
            StorageFailed: If the slot cannot be read or does not hold an integer
        """
        value = await self._store.get(derive_key(TIMER_NAMESPACE, group_name))
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise StorageFailed(
                code="parse_error",
                message=f"Timer slot for '{group_name}' does not hold an integer",
                details={"group": group_name, "value": repr(value)},
            )
        try:
            return int(value)
        except ValueError:
            raise StorageFailed(
                code="parse_error",
                message=f"Timer slot for '{group_name}' does not hold an integer",
                details={"group": group_name, "value": repr(value)},
            )

    async def write(self, group_name: str, deadline_ms: int) -> None:
        await self._store.put(derive_key(TIMER_NAMESPACE, group_name), int(deadline_ms))


class ClientConfigSlots:
    """
    Saved client configurations, shared by every group.

    Access is serialized per client name so two groups touching the same
    client never interleave a save with a take.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def save(self, client_name: str, record: dict) -> None:
        async with self._locks[client_name]:
            await self._store.put(derive_key(CLIENT_NAMESPACE, client_name), record)

    async def take(self, client_name: str) -> Optional[dict]:
        """
        Read and clear a saved configuration.

        Returns:
            The saved record, or None if nothing was saved for this client
        """
        if not client_name:
            return None

        key = derive_key(CLIENT_NAMESPACE, client_name)
        async with self._locks[client_name]:
            record = await self._store.get(key)
            if record is None:
                return None
            if not isinstance(record, dict):
                raise StorageFailed(
                    code="parse_error",
                    message=f"Saved configuration for '{client_name}' is not an object",
                    details={"client": client_name},
                )
            await self._store.delete(key)
            return record

    async def peek(self, client_name: str) -> Optional[dict]:
        async with self._locks[client_name]:
            return await self._store.get(derive_key(CLIENT_NAMESPACE, client_name))
