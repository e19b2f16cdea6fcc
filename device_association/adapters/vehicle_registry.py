"""
Registre vehicule et messagerie appareil / Vehicle registry and device messaging.
Appeles uniquement par le remplacement d'appareil / Only called by device replacement.
"""

import logging
from typing import Protocol

import httpx

from device_association.config import settings
from device_association.errors import AdapterError

log = logging.getLogger(__name__)


class VehicleRegistryAdapter(Protocol):
    async def update_device(self, vin: str, device_id: str, serial_number: str) -> None: ...


class DeviceMessenger(Protocol):
    async def reset_device(self, imei: str) -> None: ...


async def _request(adapter: str, method: str, url: str, timeout: float, **kwargs) -> None:
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise AdapterError(adapter, str(exc)) from exc
    if resp.status_code >= 300:
        raise AdapterError(adapter, f"{method} {url} returned {resp.status_code}")


class HttpVehicleRegistry:
    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.VEHICLE_PROFILE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def update_device(self, vin: str, device_id: str, serial_number: str) -> None:
        """Rattacher le nouvel appareil au profil vehicule / Attach the new device to the vehicle profile."""
        payload = {"ecus": {"hu": {"clientId": device_id, "serialNo": serial_number}}}
        await _request("vehicle-registry", "PATCH", f"{self.base_url}/{vin}", self.timeout, json=payload)
        log.info("Vehicle profile %s now points to device %s", vin, device_id)


class HttpDeviceMessenger:
    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.DEVICE_MESSAGE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def reset_device(self, imei: str) -> None:
        """Envoyer une commande de reinitialisation / Send a reset command."""
        payload = {"imei": imei, "command": "RESET"}
        await _request("device-messenger", "POST", self.base_url, self.timeout, json=payload)
        log.info("Reset command sent to device %s", imei)
