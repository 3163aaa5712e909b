"""
In-memory AdGuard Home server for tests.

Requests go through httpx.MockTransport, so no network is involved. The fake
applies mutations to its own state the way the real server does (full
replacement, no patching) and records every request it received.
"""

import asyncio
import copy
import json
from typing import Optional

import httpx

from adguard_switchboard.adguard_client import AdGuardClient
from adguard_switchboard.config import ServerConfig


def make_client(
    name: str,
    tags: tuple[str, ...] = (),
    use_global_settings: bool = False,
    use_global_blocked_services: bool = False,
    filtering_enabled: bool = False,
    parental_enabled: bool = False,
    safebrowsing_enabled: bool = False,
    safesearch_enabled: bool = False,
    safe_search: bool = False,
    blocked_services: tuple[str, ...] = (),
) -> dict:
    """Build a client record in the server's JSON shape."""
    return {
        "name": name,
        "ids": [f"192.168.1.{abs(hash(name)) % 250 + 1}"],
        "tags": list(tags),
        "use_global_settings": use_global_settings,
        "use_global_blocked_services": use_global_blocked_services,
        "filtering_enabled": filtering_enabled,
        "parental_enabled": parental_enabled,
        "safebrowsing_enabled": safebrowsing_enabled,
        "safesearch_enabled": safesearch_enabled,
        "safe_search": {"enabled": safe_search, "bing": True, "google": True},
        "blocked_services": list(blocked_services),
        "upstreams": [],
    }


class FakeAdGuard:
    """Minimal AdGuard Home control API."""

    def __init__(
        self,
        protection_enabled: bool = True,
        blocked_services: Optional[list[str]] = None,
        clients: Optional[list[dict]] = None,
    ) -> None:
        self.protection_enabled = protection_enabled
        self.blocked_services = list(blocked_services or [])
        self.clients = [copy.deepcopy(c) for c in clients or []]
        self.requests: list[httpx.Request] = []
        self.fail_paths: set[str] = set()
        self.fail_client_updates: set[str] = set()
        self.unreachable = False
        self.slow_paths: set[str] = set()

    # ------------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def make_api(self, **server_overrides) -> AdGuardClient:
        server = ServerConfig(host="adguard.test", username="admin", password="hunter2")
        for key, value in server_overrides.items():
            setattr(server, key, value)
        return AdGuardClient(server, transport=self.transport())

    def find_client(self, name: str) -> Optional[dict]:
        for client in self.clients:
            if client["name"] == name:
                return client
        return None

    def paths(self, method: Optional[str] = None) -> list[str]:
        return [
            self._path(r) for r in self.requests
            if method is None or r.method == method
        ]

    def mutations(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method != "GET"]

    def bodies(self, path: str) -> list[dict]:
        return [
            json.loads(r.content) for r in self.requests
            if self._path(r) == path and r.method != "GET"
        ]

    # ------------------------------------------------------------------

    @staticmethod
    def _path(request: httpx.Request) -> str:
        return request.url.path.removeprefix("/control/")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = self._path(request)

        if self.unreachable:
            raise httpx.ConnectError("Connection refused", request=request)
        if path in self.slow_paths:
            raise httpx.ReadTimeout("timed out", request=request)
        if path in self.fail_paths:
            return httpx.Response(500, text="internal error")

        if request.method == "GET" and path == "status":
            return httpx.Response(200, json={
                "protection_enabled": self.protection_enabled,
                "running": True,
                "version": "v0.107.0",
            })
        if request.method == "GET" and path == "blocked_services/get":
            return httpx.Response(200, json={"ids": list(self.blocked_services), "schedule": {}})
        if request.method == "GET" and path == "clients":
            return httpx.Response(200, json={
                "clients": copy.deepcopy(self.clients) or None,
                "auto_clients": [],
                "supported_tags": [],
            })

        body = json.loads(request.content) if request.content else {}
        if request.method == "POST" and path == "dns_config":
            self.protection_enabled = body["protection_enabled"]
            return httpx.Response(200, text="OK")
        if request.method == "PUT" and path == "blocked_services/update":
            self.blocked_services = list(body["ids"])
            return httpx.Response(200, text="OK")
        if request.method == "POST" and path == "clients/update":
            name = body["name"]
            if name in self.fail_client_updates:
                return httpx.Response(400, text=f"client {name} rejected")
            for index, client in enumerate(self.clients):
                if client["name"] == name:
                    self.clients[index] = copy.deepcopy(body["data"])
                    return httpx.Response(200, text="OK")
            return httpx.Response(400, text=f"client {name} not found")

        return httpx.Response(404, text="not found")


class GatedAdGuard(FakeAdGuard):
    """FakeAdGuard that holds every mutation until the gate is opened."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.gate = asyncio.Event()
        self.arrived = asyncio.Event()
        self.arrivals: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.gated_handler)

    async def gated_handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return self.handler(request)

        self.arrivals.append(self._path(request))
        self.arrived.set()
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self.gate.wait()
            return self.handler(request)
        finally:
            self.in_flight -= 1
