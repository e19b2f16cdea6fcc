"""
Registre des appareils / Device registry adapter.
Lecture des donnees usine et transitions d'etat demandees par le moteur.
Reads factory data and applies state transitions requested by the engine.
"""

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from device_association.errors import AdapterError
from device_association.models.device_identity import DeviceIdentity, DeviceState
from device_association.schemas.association import DeviceSelector
from device_association.utils.clock import sanitize

log = logging.getLogger(__name__)


class DeviceRegistryAdapter(Protocol):
    async def lookup(self, selector: DeviceSelector) -> list[DeviceIdentity]: ...

    async def get(self, factory_id: int) -> DeviceIdentity | None: ...

    async def set_state(self, factory_id: int, state: DeviceState, reason: str) -> DeviceIdentity: ...

    async def dummy_identity(self) -> DeviceIdentity: ...


class SqlDeviceRegistry:
    """Registre adosse a la table device_identities / Registry backed by the device_identities table.

    Partage la session de l'unite de travail : les transitions sont commit avec elle.
    Shares the unit of work's session: transitions commit with it.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def lookup(self, selector: DeviceSelector) -> list[DeviceIdentity]:
        filters = selector.device_filters()
        if not filters:
            return []
        query = select(DeviceIdentity).where(DeviceIdentity.state != DeviceState.DUMMY)
        for field, value in filters.items():
            query = query.where(getattr(DeviceIdentity, field) == value)
        result = await self.session.execute(query.order_by(DeviceIdentity.id))
        return list(result.scalars().all())

    async def get(self, factory_id: int) -> DeviceIdentity | None:
        return await self.session.get(DeviceIdentity, factory_id)

    async def set_state(self, factory_id: int, state: DeviceState, reason: str) -> DeviceIdentity:
        device = await self.session.get(DeviceIdentity, factory_id)
        if device is None:
            raise AdapterError("device-registry", f"unknown factory id {factory_id}")
        previous = device.state
        device.state = state
        await self.session.flush()
        log.info(
            "Device %s state %s -> %s (%s)",
            sanitize(device.serial_number), previous.value, state.value, reason,
        )
        return device

    async def dummy_identity(self) -> DeviceIdentity:
        result = await self.session.execute(
            select(DeviceIdentity).where(DeviceIdentity.state == DeviceState.DUMMY).order_by(DeviceIdentity.id)
        )
        dummy = result.scalars().first()
        if dummy is None:
            raise AdapterError("device-registry", "DUMMY identity missing, run init_db()")
        return dummy
