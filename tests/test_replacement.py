"""Tests du remplacement d'appareil / Device replacement tests."""

import pytest
from sqlalchemy import select, update

from device_association.errors import FanOutFailure, PreconditionFailed
from device_association.models.activation import DeviceActivationState
from device_association.models.association import AssociationStatus
from device_association.models.credential import DeviceCredential
from device_association.models.device_identity import DeviceIdentity, DeviceState
from device_association.models.subscription import VinDetails
from device_association.schemas.association import DelegateRequest, DeviceSelector, ReplaceRequest
from device_association.services.policy import AssociationPolicy
from device_association.services.replacement import ReplacementSaga


async def _mark(session_factory, serial, state):
    async with session_factory() as session:
        await session.execute(
            update(DeviceIdentity).where(DeviceIdentity.serial_number == serial).values(state=state)
        )
        await session.commit()


def _request(current="D1", replacement="D2"):
    return ReplaceRequest(
        current=DeviceSelector(serial_number=current), replace_with=DeviceSelector(serial_number=replacement),
    )


async def test_replace_faulty_device(saga, activated, add_device, session_factory, identity, device_state, rows):
    owner = await activated("D1", imei="111")
    await _mark(session_factory, "D1", DeviceState.FAULTY)
    await add_device("D2", imei="222")
    old_passcode = identity.registered[-1][1]

    result = await saga.replace(_request(), "alice")

    assert result.association_id == owner.association_id
    assert result.device_id == owner.device_id
    assert await device_state("D2") == DeviceState.ACTIVE
    assert await device_state("D1") == DeviceState.PROVISIONED
    [row] = await rows()
    assert row.serial_number == "D2"
    assert row.association_status == AssociationStatus.ASSOCIATED
    assert identity.deregistered == [owner.device_id]
    device_id, passcode, _ = identity.registered[-1]
    assert device_id == owner.device_id
    assert passcode != old_passcode

    async with session_factory() as session:
        ready = await session.execute(
            select(DeviceActivationState.serial_number).where(DeviceActivationState.activation_ready.is_(True))
        )
        credential = (await session.execute(select(DeviceCredential))).scalar_one()
    assert ready.scalars().all() == ["D2"]
    assert credential.serial_number == "D2"


async def test_replace_repoints_delegates(saga, lifecycle, activated, add_device, rows):
    await activated("D1")
    await lifecycle.delegate(
        DelegateRequest(serial_number="D1", delegation_user_id="bob", association_type="DRIVER"), "alice",
    )
    await add_device("D2")
    await saga.replace(_request(), "alice")
    assert {r.serial_number for r in await rows()} == {"D2"}


async def test_replacement_must_be_provisioned(saga, activated, add_device, device_state, rows, identity):
    await activated("D1")
    await add_device("D2", state=DeviceState.ACTIVE)
    with pytest.raises(PreconditionFailed) as exc:
        await saga.replace(_request(), "alice")
    assert exc.value.code == "assoc-044"
    assert await device_state("D1") == DeviceState.ACTIVE
    assert [r.serial_number for r in await rows()] == ["D1"]
    assert identity.deregistered == []


async def test_current_device_must_belong_to_user(saga, activated, add_device):
    await activated("D1")
    await add_device("D2")
    with pytest.raises(PreconditionFailed) as exc:
        await saga.replace(_request(), "mallory")
    assert exc.value.code == "assoc-046"


async def test_strict_policy_requires_faulty_or_stolen(store, identity, vehicles, messenger, activated, add_device):
    await activated("D1")
    await add_device("D2")
    strict = ReplacementSaga(store, identity, vehicles, messenger, AssociationPolicy(move_current_to_provisioned=False))
    with pytest.raises(PreconditionFailed) as exc:
        await strict.replace(_request(), "alice")
    assert exc.value.code == "assoc-042"


async def test_missing_credential_rolls_back(saga, activated, add_device, session_factory, device_state):
    await activated("D1")
    await add_device("D2")
    async with session_factory() as session:
        await session.execute(update(DeviceCredential).values(active=False))
        await session.commit()

    with pytest.raises(PreconditionFailed) as exc:
        await saga.replace(_request(), "alice")
    assert exc.value.code == "assoc-045"
    assert await device_state("D2") == DeviceState.PROVISIONED


async def test_step_seven_failure_keeps_local_changes(saga, activated, add_device, identity, device_state, rows):
    await activated("D1")
    await add_device("D2")
    identity.fail_register = True

    with pytest.raises(FanOutFailure) as exc:
        await saga.replace(_request(), "alice")
    assert exc.value.code == "assoc-038"
    assert await device_state("D2") == DeviceState.ACTIVE
    [row] = await rows()
    assert row.serial_number == "D2"


async def test_vehicle_profile_and_reset(
    store, identity, vehicles, messenger, activated, add_device, session_factory,
):
    owner = await activated("D1", imei="111")
    await add_device("D2")
    async with session_factory() as session:
        session.add(VinDetails(association_id=owner.association_id, vin="VIN42"))
        await session.commit()
    messenger.fail = True
    full = ReplacementSaga(
        store, identity, vehicles, messenger,
        AssociationPolicy(vehicle_profile_update=True, send_reset_device=True),
    )

    result = await full.replace(_request(), "alice")

    assert vehicles.updates == [("VIN42", result.device_id, "D2")]
    assert messenger.resets == []
