"""
Magasin des associations / Association store.
Seul arbitre de la serialisation par appareil : verrou par numero de serie
puis transaction explicite (commit en succes, rollback sur exception).
Sole arbiter of per-device serialization: a lock per serial number, then an
explicit transaction (commit on success, rollback on exception).
"""

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from device_association.adapters.device_registry import DeviceRegistryAdapter, SqlDeviceRegistry
from device_association.schemas.association import DeviceSelector
from device_association.services.association_repository import AssociationRepository

log = logging.getLogger(__name__)


class UnitOfWork:
    """Session + depots pour une operation / Session + repositories for one operation."""

    def __init__(self, session: AsyncSession, devices: DeviceRegistryAdapter):
        self.session = session
        self.associations = AssociationRepository(session)
        self.devices = devices


class AssociationStore:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry_factory: Callable[[AsyncSession], DeviceRegistryAdapter] = SqlDeviceRegistry,
    ):
        self.session_factory = session_factory
        self.registry_factory = registry_factory
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, serial_number: str) -> asyncio.Lock:
        lock = self._locks.get(serial_number)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[serial_number] = lock
        return lock

    @asynccontextmanager
    async def unit_of_work(self, *serial_numbers: str) -> AsyncIterator[UnitOfWork]:
        """Verrouiller les appareils puis ouvrir une transaction / Lock the devices then open a transaction.

        Plusieurs appareils : verrous pris dans l'ordre trie.
        Several devices: locks are taken in sorted order.
        """
        keys = sorted({s for s in serial_numbers if s})
        async with AsyncExitStack() as stack:
            for key in keys:
                await stack.enter_async_context(self._lock_for(key))
            log.debug("Unit of work holds device locks %s", keys)
            async with self.session_factory() as session:
                async with session.begin():
                    yield UnitOfWork(session, self.registry_factory(session))

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[UnitOfWork]:
        """Lecture sans verrou / Lock-free read."""
        async with self.session_factory() as session:
            yield UnitOfWork(session, self.registry_factory(session))

    async def serials_for(self, *selectors: DeviceSelector) -> list[str]:
        """Numeros de serie a verrouiller, resolus hors transaction /
        Serial numbers to lock, resolved outside the transaction.

        L'appelant re-verifie dans l'unite de travail / The caller re-checks inside the unit of work.
        """
        keys: set[str] = set()
        async with self.read_session() as uow:
            for selector in selectors:
                if selector.serial_number:
                    keys.add(selector.serial_number)
                    continue
                for device in await uow.devices.lookup(selector):
                    keys.add(device.serial_number)
                if selector.association_id is not None or selector.device_id:
                    rows = await uow.associations.find(selector, for_update=False)
                    keys.update(r.serial_number for r in rows)
        return sorted(keys)
