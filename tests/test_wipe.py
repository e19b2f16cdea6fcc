"""Tests d'effacement des donnees / Wipe-data tests."""

import pytest
from sqlalchemy import select, update

from device_association.errors import AssociationNotFound, ErrorKind, ValidationFailed, WipeDataFailure
from device_association.models.activation import DeviceActivationState
from device_association.models.association import AssociationStatus, DeviceAssociation
from device_association.models.audit import AssociationAudit
from device_association.models.device_identity import DeviceIdentity, DeviceState
from device_association.models.subscription import VinDetails
from device_association.schemas.association import DelegateRequest
from device_association.services.lifecycle import AssociationLifecycleEngine
from device_association.services.policy import AssociationPolicy
from device_association.services.wipe import WipeDataOrchestrator


async def _delegate(lifecycle, serial, user, owner="alice", kind="DRIVER"):
    await lifecycle.delegate(
        DelegateRequest(serial_number=serial, delegation_user_id=user, association_type=kind), owner,
    )


async def test_wipe_reassociates_and_anonymises(wipe, lifecycle, activated, rows, session_factory):
    first = await activated("SN1")
    await _delegate(lifecycle, "SN1", "bob")

    device_ids = await wipe.wipe("alice")

    assert len(device_ids) == 1
    assert device_ids[0] != first.device_id
    [alice] = await rows(user_id="alice")
    assert alice.association_status == AssociationStatus.ASSOCIATED
    assert alice.device_id == device_ids[0]
    [bob] = await rows(user_id="bob")
    assert bob.association_status == AssociationStatus.ASSOCIATED
    assert bob.association_type == "DRIVER"

    anonymised = [r for r in await rows() if r.association_status == AssociationStatus.DISASSOCIATED]
    assert len(anonymised) == 2
    async with session_factory() as session:
        dummy_id = (await session.execute(
            select(DeviceIdentity.id).where(DeviceIdentity.state == DeviceState.DUMMY)
        )).scalar_one()
        stale = (await session.execute(
            select(DeviceActivationState).where(DeviceActivationState.active.is_(False))
        )).scalars().all()
    for row in anonymised:
        assert row.user_id.startswith("ANON-")
        assert row.serial_number == row.user_id
        assert row.factory_id == dummy_id
    assert stale and all(a.serial_number.startswith("ANON-") for a in stale)

    async with session_factory() as session:
        scrubbed = await session.execute(
            select(AssociationAudit.acting_user).where(AssociationAudit.association_id.in_([r.id for r in anonymised]))
        )
    assert all(user.startswith("ANON-") for user in scrubbed.scalars().all())


async def test_subset_mismatch_mutates_nothing(wipe, activated, rows, identity):
    await activated("SN1")
    await activated("SN2")
    before = [(r.id, r.association_status, r.user_id) for r in await rows()]
    registered = len(identity.registered)

    with pytest.raises(ValidationFailed) as exc:
        await wipe.wipe("alice", ["SN1", "SN3"])

    assert exc.value.code == "assoc-077"
    assert [(r.id, r.association_status, r.user_id) for r in await rows()] == before
    assert identity.deregistered == []
    assert len(identity.registered) == registered


async def test_subset_is_deduplicated(wipe, activated, rows):
    await activated("SN1")
    await activated("SN2")
    device_ids = await wipe.wipe("alice", ["SN1", "SN1"])
    assert len(device_ids) == 1
    untouched = await rows(serial_number="SN2")
    assert [r.association_status for r in untouched] == [AssociationStatus.ASSOCIATED]


async def test_wipe_without_associations(wipe):
    with pytest.raises(AssociationNotFound) as exc:
        await wipe.wipe("nobody")
    assert exc.value.code == "assoc-076"


async def test_wipe_delegate_only_terminates_own_rows(wipe, lifecycle, activated, rows):
    owner = await activated("SN1")
    await _delegate(lifecycle, "SN1", "bob")

    assert await wipe.wipe("bob") == []

    [alice] = await rows(user_id="alice")
    assert alice.id == owner.association_id
    assert alice.association_status == AssociationStatus.ASSOCIATED
    assert await rows(user_id="bob") == []


async def test_device_failure_aborts_whole_call(wipe, activated, notifier):
    await activated("SN1")
    notifier.fail = True
    with pytest.raises(WipeDataFailure) as exc:
        await wipe.wipe("alice")
    assert exc.value.code == "assoc-080"
    assert exc.value.details["serial_number"] == "SN1"


async def test_vehicle_link_follows_new_owner_row(wipe, activated, session_factory):
    owner = await activated("SN1")
    async with session_factory() as session:
        session.add(VinDetails(association_id=owner.association_id, vin="VIN42"))
        await session.commit()

    await wipe.wipe("alice")

    async with session_factory() as session:
        vin = (await session.execute(select(VinDetails))).scalar_one()
    assert vin.association_id != owner.association_id


async def test_empty_subset_wipes_every_device(wipe, activated, rows):
    first = await activated("SN1")
    second = await activated("SN2")

    device_ids = await wipe.wipe("alice", [])

    assert len(device_ids) == 2
    live = await rows(user_id="alice")
    assert [r.association_status for r in live] == [AssociationStatus.ASSOCIATED] * 2
    assert not {first.device_id, second.device_id} & {r.device_id for r in live}


async def test_single_owner_mode_reassociates_as_owner(store, identity, notifier, activated, session_factory, rows):
    owner = await activated("SN1")
    async with session_factory() as session:
        await session.execute(
            update(DeviceAssociation).where(DeviceAssociation.id == owner.association_id).values(association_type="DRIVER")
        )
        await session.commit()
    engine = AssociationLifecycleEngine(store, identity, notifier, AssociationPolicy(many_to_many=False))

    device_ids = await WipeDataOrchestrator(engine).wipe("alice")

    assert len(device_ids) == 1
    assert identity.deregistered == [owner.device_id]
    [alice] = await rows(user_id="alice")
    assert alice.association_type == "OWNER"
    assert alice.association_status == AssociationStatus.ASSOCIATED
    assert alice.device_id == device_ids[0]


async def test_failure_on_later_device_keeps_earlier_devices(wipe, activated, notifier, rows):
    first = await activated("SN1")
    await activated("SN2")
    notifier.fail_serials = {"SN2"}

    with pytest.raises(WipeDataFailure) as exc:
        await wipe.wipe("alice")

    assert exc.value.code == "assoc-080"
    assert exc.value.details["serial_number"] == "SN2"
    old, new = await rows(serial_number="SN1")
    assert (old.user_id, old.association_status) == ("alice", AssociationStatus.DISASSOCIATED)
    assert (new.user_id, new.association_status) == ("alice", AssociationStatus.ASSOCIATED)
    assert new.device_id != first.device_id
    [terminated] = await rows(serial_number="SN2")
    assert terminated.association_status == AssociationStatus.DISASSOCIATED


async def test_precondition_inside_wipe_keeps_its_kind(store, identity, notifier, activated, session_factory, rows):
    owner = await activated("SN1")
    async with session_factory() as session:
        session.add(VinDetails(association_id=owner.association_id, vin="VIN42"))
        await session.commit()
    engine = AssociationLifecycleEngine(store, identity, notifier, AssociationPolicy(subscription_check=True))

    with pytest.raises(WipeDataFailure) as exc:
        await WipeDataOrchestrator(engine).wipe("alice")

    assert exc.value.kind == ErrorKind.PRECONDITION
    assert exc.value.code == "assoc-080"
    assert [r.association_status for r in await rows()] == [AssociationStatus.ASSOCIATED]
