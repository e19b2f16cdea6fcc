"""Centre de notification / Notification center adapter."""

import logging
from typing import Protocol

import httpx

from device_association.config import settings
from device_association.errors import AdapterError
from device_association.models.association import DeviceAssociation

log = logging.getLogger(__name__)


class NotificationAdapter(Protocol):
    async def notify_lifecycle_change(self, association: DeviceAssociation) -> None: ...


class HttpNotificationCenter:
    """Envoie les evenements de cycle de vie / Sends lifecycle events."""

    def __init__(self, base_url: str | None = None, notification_id: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.NOTIFICATION_CENTER_URL
        self.notification_id = notification_id or settings.NOTIFICATION_ID
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def notify_lifecycle_change(self, association: DeviceAssociation) -> None:
        event = association.association_status.event_name
        payload = {
            "notificationId": self.notification_id,
            "userId": association.user_id,
            "data": {
                "event": event,
                "associationId": association.id,
                "serialNumber": association.serial_number,
                "deviceId": association.device_id,
                "associationType": association.association_type,
            },
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.base_url, json=payload)
        except httpx.HTTPError as exc:
            raise AdapterError("notification-center", str(exc)) from exc
        if resp.status_code >= 300:
            raise AdapterError("notification-center", f"returned {resp.status_code}: {resp.text}")
        log.info("Notification %s sent for association %s", event, association.id)
