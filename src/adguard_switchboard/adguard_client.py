"""
AdGuard Home client for snapshot fetching and remote mutations.

This module provides an async HTTP client that loads only the snapshot fields
the caller asks for, keeps the last-known values in a versioned cache, expands
client selectors (@tags and wildcards) and turns a desired on/off value into
the full-replacement requests the server expects.
"""

import asyncio
import copy
import re
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

from .audit_logger import AuditLogger, NullLogger
from .config import ServerConfig
from .enums import FetchErrorCode, SnapshotField
from .exceptions import FetchUnavailable, MutationFailed, SwitchboardError
from .models import ClientCache, ClientRecord, FetchRequest, Snapshot


TAG_MARKER = "@"
INFO_HEADER = "X-Switchboard-Info"

COMPONENT = "AdGuardClient"

ReadSaved = Callable[[str], Awaitable[Optional[dict]]]
WriteSaved = Callable[[str, dict], Awaitable[None]]


def merge(base: Iterable[str], extra: Iterable[str]) -> list[str]:
    """Keep base's order and append items of extra not already present."""
    result = list(base)
    for item in extra:
        if item not in result:
            result.append(item)
    return result


def remove(base: Iterable[str], drop: Iterable[str]) -> list[str]:
    """Keep base's order minus every item of drop."""
    dropped = set(drop)
    return [item for item in base if item not in dropped]


def wildcard_match(pattern: str, name: str, case_sensitive: bool = True) -> bool:
    """
    Match a name against a glob pattern.

    '*' matches any run of characters and '?' exactly one. The match is
    anchored at both ends; every other character is literal.
    """
    regex = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    flags = re.DOTALL if case_sensitive else re.DOTALL | re.IGNORECASE
    return re.fullmatch(regex, name, flags) is not None


def is_wildcard(token: str) -> bool:
    return "*" in token


class AdGuardClient:
    """
    Async AdGuard Home client.

    Fetch and mutation failures never escape: a failed fetch yields an
    unavailable Snapshot, a failed mutation yields False.
    """

    def __init__(
        self,
        server: ServerConfig,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            server: Connection settings
            logger: Optional logger
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._server = server
        self._logger = logger or NullLogger()
        self._transport = transport
        self._cache = ClientCache()
        self._client: Optional[httpx.AsyncClient] = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def cache(self) -> ClientCache:
        return self._cache

    @property
    def base_url(self) -> str:
        return self._server.base_url

    async def __aenter__(self) -> "AdGuardClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            auth = None
            if self._server.username or self._server.password:
                auth = httpx.BasicAuth(self._server.username, self._server.password)
            self._client = httpx.AsyncClient(
                base_url=self._server.base_url + "/",
                auth=auth,
                verify=self._server.verify_ssl,
                timeout=httpx.Timeout(self._server.timeout_ms / 1000),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        for task in list(self._inflight):
            task.cancel()
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: type[SwitchboardError],
        json_body: Any = None,
        info: Optional[str] = None,
        parse_json: bool = False,
    ) -> Any:
        client = self._ensure_client()
        url = f"{self._server.base_url}/{path}"
        headers = {INFO_HEADER: info} if info else None

        try:
            response = await client.request(method, path, json=json_body, headers=headers)
        except httpx.TimeoutException as e:
            raise error_cls(
                code=FetchErrorCode.TIMEOUT.value,
                message=f"{method} {path} timed out after {self._server.timeout_ms}ms",
                details={"url": url, "reason": str(e)},
            )
        except httpx.HTTPError as e:
            raise error_cls(
                code=FetchErrorCode.NETWORK_ERROR.value,
                message=f"{method} {path} failed: {e}",
                details={"url": url},
            )

        if not response.is_success:
            raise error_cls(
                code=FetchErrorCode.HTTP_ERROR.value,
                message=f"{method} {path} returned HTTP {response.status_code}",
                details={
                    "url": url,
                    "status_code": response.status_code,
                    "body": response.text[:500],
                },
            )

        if not parse_json:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise error_cls(
                code=FetchErrorCode.PARSE_ERROR.value,
                message=f"{method} {path} returned an undecodable body: {e}",
                details={"url": url},
            )

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    async def fetch(self, request: FetchRequest) -> Snapshot:
        """
        Load the requested snapshot fields concurrently.

        Unrequested fields keep their cached values. On the first failing
        field the snapshot is reported unavailable; sibling requests are left
        to finish on their own and may still refresh the cache.
        """
        tasks = []
        for snapshot_field in request.fields:
            task = asyncio.ensure_future(self._fetch_field(snapshot_field))
            self._inflight.add(task)
            task.add_done_callback(self._forget)
            tasks.append(task)

        try:
            for next_done in asyncio.as_completed(tasks):
                await next_done
        except FetchUnavailable as e:
            self._logger.debug(COMPONENT, "Snapshot unavailable", {
                "code": e.code,
                "error": e.message,
            })
            return Snapshot.unavailable(e)

        return Snapshot.from_view(self._cache.view())

    def _forget(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        # Failures after the snapshot was already reported are expected.
        if not task.cancelled():
            task.exception()

    async def _fetch_field(self, snapshot_field: SnapshotField) -> None:
        if snapshot_field is SnapshotField.GLOBAL_ENABLED:
            body = await self._request("GET", "status", FetchUnavailable, parse_json=True)
            enabled = body.get("protection_enabled") if isinstance(body, dict) else None
            if not isinstance(enabled, bool):
                raise FetchUnavailable(
                    code=FetchErrorCode.PARSE_ERROR.value,
                    message="status response has no boolean 'protection_enabled'",
                )
            self._cache.set_global_enabled(enabled)

        elif snapshot_field is SnapshotField.GLOBAL_BLOCKED_SERVICES:
            body = await self._request(
                "GET", "blocked_services/get", FetchUnavailable, parse_json=True
            )
            ids = body.get("ids") if isinstance(body, dict) else None
            if ids is not None and not isinstance(ids, list):
                raise FetchUnavailable(
                    code=FetchErrorCode.PARSE_ERROR.value,
                    message="blocked_services response 'ids' is not a list",
                )
            self._cache.set_global_blocked_services([str(i) for i in ids or []])

        elif snapshot_field is SnapshotField.CLIENTS:
            body = await self._request("GET", "clients", FetchUnavailable, parse_json=True)
            raw_clients = body.get("clients") if isinstance(body, dict) else None
            if raw_clients is not None and not isinstance(raw_clients, list):
                raise FetchUnavailable(
                    code=FetchErrorCode.PARSE_ERROR.value,
                    message="clients response 'clients' is not a list",
                )
            self._cache.set_clients([
                ClientRecord.from_dict(c) for c in raw_clients or [] if isinstance(c, dict)
            ])

    # ------------------------------------------------------------------
    # Selector expansion
    # ------------------------------------------------------------------

    def expand_selectors(
        self,
        tokens: Iterable[str],
        clients: Optional[Iterable[ClientRecord]] = None,
    ) -> list[str]:
        """
        Expand client selectors into literal client names.

        '@tag' tokens resolve to every client carrying the tag and tokens
        containing '*' resolve by wildcard match, both in client-list order.
        Other tokens pass through literally. The result has no duplicates.

        Args:
            tokens: Raw selector tokens
            clients: Client list to expand against (defaults to the cache)
        """
        known = list(self._cache.view().clients if clients is None else clients)

        names: list[str] = []
        for token in tokens:
            if token.startswith(TAG_MARKER):
                tag = token[len(TAG_MARKER):]
                matches = [c.name for c in known if tag in c.tags]
            elif is_wildcard(token):
                matches = [c.name for c in known if wildcard_match(token, c.name)]
            else:
                matches = [token]
            for name in matches:
                if name not in names:
                    names.append(name)
        return names

    # ------------------------------------------------------------------
    # Client blocking configuration
    # ------------------------------------------------------------------

    @staticmethod
    def set_blocking_config(record: ClientRecord, blocking: bool) -> dict:
        """
        Build the full record to send for a client being switched on or off.

        Switching on a client with no blocking at all delegates to the global
        settings. A client that already blocks something keeps that signal.
        Switching off clears every blocking-related field.
        """
        data = record.to_dict()
        if blocking:
            if not record.has_blocking_enabled():
                data["use_global_settings"] = True
                data["use_global_blocked_services"] = True
            else:
                data["use_global_settings"] = (
                    record.use_global_settings
                    or not record.has_blocking_enabled(ignore_services=True)
                )
                data["use_global_blocked_services"] = len(record.blocked_services) > 0
        else:
            data["use_global_settings"] = False
            data["use_global_blocked_services"] = False
            data["filtering_enabled"] = False
            data["parental_enabled"] = False
            data["safebrowsing_enabled"] = False
            data["safesearch_enabled"] = False
            data["blocked_services"] = []
            if isinstance(data.get("safe_search"), dict):
                data["safe_search"] = dict(data["safe_search"], enabled=False)
        return data

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def post_global(self, enabled: bool, info: Optional[str] = None) -> bool:
        """Set the global protection flag."""
        return await self._dispatch("post_global", [
            self._request(
                "POST", "dns_config", MutationFailed,
                json_body={"protection_enabled": enabled},
                info=info,
            ),
        ])

    async def post_global_services(
        self,
        enabled: bool,
        services: Iterable[str],
        info: Optional[str] = None,
    ) -> bool:
        """
        Add services to or remove them from the global blocked list.

        The server takes the whole list, so the change is refused while the
        current list has never been fetched.
        """
        cached = self._cache.view().global_blocked_services
        if cached is None:
            self._logger.warn(COMPONENT, "Global blocked services not loaded yet, not updating", {
                "enabled": enabled,
            })
            return False
        ids = merge(cached, services) if enabled else remove(cached, services)
        return await self._dispatch("post_global_services", [
            self._request(
                "PUT", "blocked_services/update", MutationFailed,
                json_body={"ids": ids},
                info=info,
            ),
        ])

    async def post_client_services(
        self,
        enabled: bool,
        selectors: Iterable[str],
        services: Iterable[str],
        info: Optional[str] = None,
    ) -> bool:
        """Add services to or remove them from each selected client's list."""
        view = self._cache.view()
        services = list(services)

        updates = []
        for name in self.expand_selectors(selectors, view.clients):
            record = view.find_client(name)
            if record is None:
                continue
            data = record.to_dict()
            current = record.blocked_services
            data["blocked_services"] = (
                merge(current, services) if enabled else remove(current, services)
            )
            updates.append(self._update_client(record.name, data, info))

        return await self._dispatch("post_client_services", updates)

    async def post_clients(
        self,
        enabled: bool,
        selectors: Iterable[str],
        read_saved: ReadSaved,
        write_saved: WriteSaved,
        info: Optional[str] = None,
    ) -> bool:
        """
        Switch all blocking on or off for each selected client.

        Disabling saves a client's full record (only if it blocks anything)
        before zeroing it; enabling replays the saved record, or synthesizes
        one when nothing was saved.

        Args:
            enabled: Desired blocking state
            selectors: Client selector tokens
            read_saved: Reads and clears a client's saved record
            write_saved: Saves a client's record
            info: Optional description sent with each request
        """
        view = self._cache.view()

        async def update_one(record: ClientRecord) -> None:
            if enabled:
                saved = await read_saved(record.name)
                data = saved if saved is not None else self.set_blocking_config(record, True)
            else:
                if record.has_blocking_enabled():
                    await write_saved(record.name, record.to_dict())
                data = self.set_blocking_config(record, False)
            await self._update_client(record.name, data, info)

        updates = []
        for name in self.expand_selectors(selectors, view.clients):
            record = view.find_client(name)
            if record is not None:
                updates.append(update_one(record))

        return await self._dispatch("post_clients", updates)

    async def _update_client(self, name: str, data: dict, info: Optional[str]) -> None:
        await self._request(
            "POST", "clients/update", MutationFailed,
            json_body={"name": name, "data": copy.deepcopy(data)},
            info=info,
        )

    async def _dispatch(self, operation: str, requests: list[Awaitable[Any]]) -> bool:
        """Run requests concurrently; succeed only if every one succeeds."""
        results = await asyncio.gather(*requests, return_exceptions=True)

        success = True
        for result in results:
            if not isinstance(result, BaseException):
                continue
            success = False
            if isinstance(result, SwitchboardError):
                self._logger.log_error(
                    COMPONENT,
                    f"{operation} request failed",
                    error=result,
                    response_status_code=result.details.get("status_code"),
                )
            else:
                self._logger.log_error(COMPONENT, f"{operation} raised unexpectedly", error=result)

        self._logger.debug(COMPONENT, f"{operation} finished", {
            "requests": len(results),
            "success": success,
        })
        return success
