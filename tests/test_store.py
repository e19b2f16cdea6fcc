"""Tests du magasin et de l'unite de travail / Store and unit-of-work tests."""

import asyncio

import pytest

from device_association.models.association import AssociationStatus, DeviceAssociation
from device_association.schemas.association import DeviceSelector


async def test_unit_of_work_rolls_back_on_error(store, rows):
    with pytest.raises(RuntimeError):
        async with store.unit_of_work("SN1") as uow:
            await uow.associations.add(DeviceAssociation(
                serial_number="SN1", user_id="alice", association_type="OWNER",
                association_status=AssociationStatus.INITIATED,
            ))
            raise RuntimeError("boom")
    assert await rows() == []


async def test_unit_of_work_commits(store, rows):
    async with store.unit_of_work("SN1") as uow:
        await uow.associations.add(DeviceAssociation(
            serial_number="SN1", user_id="alice", association_type="OWNER",
            association_status=AssociationStatus.INITIATED,
        ))
    assert len(await rows(serial_number="SN1")) == 1


async def test_same_device_is_serialized(store):
    trace: list[str] = []

    async def worker(name):
        async with store.unit_of_work("SN1"):
            trace.append(f"{name}-in")
            await asyncio.sleep(0.01)
            trace.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert trace in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])


async def test_read_session_takes_no_lock(store):
    entered = asyncio.Event()
    release = asyncio.Event()

    async def holder():
        async with store.unit_of_work("SN1"):
            entered.set()
            await release.wait()

    task = asyncio.create_task(holder())
    await entered.wait()

    async def read():
        async with store.read_session() as uow:
            return await uow.associations.fetch_for_user("alice")

    assert await asyncio.wait_for(read(), timeout=2) == []
    release.set()
    await task


async def test_serials_for_resolves_identity_fields(store, add_device, lifecycle):
    await add_device("SN1", imei="123")
    await add_device("SN2", bssid="aa:bb")
    created = await lifecycle.associate(DeviceSelector(imei="123"), "alice")

    assert await store.serials_for(DeviceSelector(imei="123"), DeviceSelector(bssid="aa:bb")) == ["SN1", "SN2"]
    assert await store.serials_for(DeviceSelector(association_id=created.association_id)) == ["SN1"]
    assert await store.serials_for(DeviceSelector(imei="missing")) == []
