"""Registre d'identite (credentials reseau) / Identity registry (network credentials)."""

import logging
from typing import Protocol

import httpx

from device_association.config import settings
from device_association.errors import AdapterError

log = logging.getLogger(__name__)


class IdentityRegistrationAdapter(Protocol):
    async def register(self, device_id: str, credential: str, device_type: str) -> None: ...

    async def deregister(self, device_id: str) -> None: ...


class HttpIdentityRegistry:
    """Client HTTP du registre d'identite / HTTP client for the identity registry."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.IDENTITY_REGISTRY_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def register(self, device_id: str, credential: str, device_type: str) -> None:
        payload = {"clientId": device_id, "clientSecret": credential, "deviceType": device_type}
        await self._send("POST", self.base_url, json=payload)
        log.info("Credentials registered for device %s", device_id)

    async def deregister(self, device_id: str) -> None:
        await self._send("DELETE", f"{self.base_url}/{device_id}")
        log.info("Credentials deregistered for device %s", device_id)

    async def _send(self, method: str, url: str, **kwargs) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise AdapterError("identity-registry", str(exc)) from exc
        if resp.status_code >= 300:
            raise AdapterError("identity-registry", f"{method} {url} returned {resp.status_code}")
