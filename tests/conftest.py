"""Fixtures de test / Test fixtures."""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from device_association.database import init_db
from device_association.errors import AdapterError
from device_association.models.association import DeviceAssociation
from device_association.models.device_identity import DeviceIdentity, DeviceState
from device_association.schemas.association import DeviceSelector
from device_association.services.association_store import AssociationStore
from device_association.services.lifecycle import AssociationLifecycleEngine
from device_association.services.policy import AssociationPolicy
from device_association.services.replacement import ReplacementSaga
from device_association.services.wipe import WipeDataOrchestrator


# ─── Adaptateurs factices / Fake adapters ───

class FakeIdentityRegistry:
    def __init__(self):
        self.registered: list[tuple[str, str, str]] = []
        self.deregistered: list[str] = []
        self.fail_register = False
        self.fail_deregister = False

    async def register(self, device_id, credential, device_type):
        if self.fail_register:
            raise AdapterError("identity-registry", "register unavailable")
        self.registered.append((device_id, credential, device_type))

    async def deregister(self, device_id):
        if self.fail_deregister:
            raise AdapterError("identity-registry", "deregister unavailable")
        self.deregistered.append(device_id)


class FakeNotifier:
    def __init__(self):
        self.events: list[tuple[int, str]] = []
        self.fail = False
        self.fail_serials: set[str] = set()

    async def notify_lifecycle_change(self, association):
        if self.fail or association.serial_number in self.fail_serials:
            raise AdapterError("notification-center", "notification unavailable")
        self.events.append((association.id, association.association_status.event_name))


class FakeVehicleRegistry:
    def __init__(self):
        self.updates: list[tuple[str, str, str]] = []
        self.fail = False

    async def update_device(self, vin, device_id, serial_number):
        if self.fail:
            raise AdapterError("vehicle-registry", "unavailable")
        self.updates.append((vin, device_id, serial_number))


class FakeDeviceMessenger:
    def __init__(self):
        self.resets: list[str] = []
        self.fail = False

    async def reset_device(self, imei):
        if self.fail:
            raise AdapterError("device-messenger", "unavailable")
        self.resets.append(imei)


# ─── Base et services / Database and services ───

@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'associations.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory):
    return AssociationStore(session_factory)


@pytest.fixture
def identity():
    return FakeIdentityRegistry()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def vehicles():
    return FakeVehicleRegistry()


@pytest.fixture
def messenger():
    return FakeDeviceMessenger()


@pytest.fixture
def policy():
    return AssociationPolicy()


@pytest.fixture
def lifecycle(store, identity, notifier, policy):
    return AssociationLifecycleEngine(store, identity, notifier, policy)


@pytest.fixture
def saga(store, identity, vehicles, messenger, policy):
    return ReplacementSaga(store, identity, vehicles, messenger, policy)


@pytest.fixture
def wipe(lifecycle):
    return WipeDataOrchestrator(lifecycle)


# ─── Helpers ───

@pytest.fixture
def add_device(session_factory):
    async def _add(serial, state=DeviceState.PROVISIONED, **fields):
        async with session_factory() as session:
            device = DeviceIdentity(serial_number=serial, state=state, **fields)
            session.add(device)
            await session.commit()
            return device.id

    return _add


@pytest.fixture
def activated(lifecycle, add_device):
    """Appareil associe et active pour un utilisateur / Device associated and activated for a user."""

    async def _make(serial, user="alice", **fields):
        await add_device(serial, **fields)
        await lifecycle.associate(DeviceSelector(serial_number=serial), user)
        return await lifecycle.activate(serial, user)

    return _make


@pytest.fixture
def rows(session_factory):
    async def _rows(**filters):
        async with session_factory() as session:
            query = select(DeviceAssociation).order_by(DeviceAssociation.id)
            for field, value in filters.items():
                query = query.where(getattr(DeviceAssociation, field) == value)
            result = await session.execute(query)
            return list(result.scalars().all())

    return _rows


@pytest.fixture
def device_state(session_factory):
    async def _state(serial):
        async with session_factory() as session:
            result = await session.execute(select(DeviceIdentity.state).where(DeviceIdentity.serial_number == serial))
            return result.scalar_one()

    return _state
