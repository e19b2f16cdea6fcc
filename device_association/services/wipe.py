"""
Effacement des donnees d'un utilisateur / User wipe-data orchestrator.

Tout est valide avant la premiere mutation ; tout echec sur un appareil
interrompt l'appel entier (re-executable depuis le debut).
Everything is validated before the first mutation; any per-device failure
aborts the whole call (re-runnable from scratch).
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from device_association.errors import (
    AssociationError,
    AssociationNotFound,
    ErrorCode,
    PreconditionFailed,
    ValidationFailed,
    WipeDataFailure,
)
from device_association.models.association import LIVE_STATUSES, AssociationStatus, DeviceAssociation
from device_association.schemas.association import DelegateRequest, DeviceSelector
from device_association.services.lifecycle import AssociationLifecycleEngine
from device_association.utils.clock import sanitize

log = logging.getLogger(__name__)


@dataclass
class _DelegateSnapshot:
    user_id: str
    association_type: str
    start_timestamp: datetime | None
    end_timestamp: datetime | None


class WipeDataOrchestrator:
    def __init__(self, engine: AssociationLifecycleEngine):
        self.engine = engine
        self.store = engine.store
        self.ownership = engine.ownership

    async def wipe(self, user_id: str, serial_numbers: list[str] | None = None) -> list[str]:
        """Reinitialiser les appareils de l'utilisateur / Reset the user's devices.

        serial_numbers vide ou absent = tous les appareils / empty or missing means every device.
        Retourne les nouveaux device ids / Returns the new device ids.
        """
        if not user_id:
            raise ValidationFailed(ErrorCode.USER_ID_MANDATORY)
        targets = await self._select_targets(user_id, serial_numbers)
        log.info("Wipe start user=%s devices=%s", sanitize(user_id), sorted(targets))

        device_ids: list[str] = []
        wiped_users: set[str] = {user_id}
        for row in targets.values():
            new_device_id, users = await self._wipe_device(row, user_id)
            if new_device_id:
                device_ids.append(new_device_id)
            wiped_users.update(users)

        async with self.store.unit_of_work(*targets) as uow:
            dummy = await uow.devices.dummy_identity()
            count = await uow.associations.anonymize(wiped_users, set(targets), dummy)
        log.info("Wipe done user=%s devices=%d anonymised_rows=%d", sanitize(user_id), len(targets), count)
        return device_ids

    async def _select_targets(self, user_id: str, serial_numbers: list[str] | None) -> dict[str, DeviceAssociation]:
        """Lignes ASSOCIATED dedupliquees par numero de serie / ASSOCIATED rows deduplicated by serial number."""
        async with self.store.read_session() as uow:
            live = await uow.associations.fetch_for_user(user_id, LIVE_STATUSES)
        if not live:
            raise AssociationNotFound(ErrorCode.WIPE_DATA_NO_ASSOC_FOUND)
        rows = [r for r in live if r.association_status == AssociationStatus.ASSOCIATED]
        if not rows:
            raise PreconditionFailed(ErrorCode.WIPE_DATA_NO_ASSOC_STATE_FOUND)

        if serial_numbers:
            subset = set(serial_numbers)
            rows = [r for r in rows if r.serial_number in subset]
            if len({r.serial_number for r in rows}) != len(subset):
                raise ValidationFailed(ErrorCode.WIPE_DATA_NO_ASSOC_FOUND_FOR_SOME_DEVICE)

        targets: dict[str, DeviceAssociation] = {}
        for row in rows:
            chosen = targets.get(row.serial_number)
            if chosen is None or (self.ownership.is_owner_type(row) and not self.ownership.is_owner_type(chosen)):
                targets[row.serial_number] = row
        return targets

    async def _wipe_device(self, row: DeviceAssociation, user_id: str) -> tuple[str | None, set[str]]:
        serial = row.serial_number
        if not self.ownership.is_owner_type(row):
            await self._step(ErrorCode.WIPE_DATA_TERMINATION_FAILURE, serial,
                             self.engine.terminate(DeviceSelector(association_id=row.id), user_id))
            return None, {user_id}

        async with self.store.read_session() as uow:
            device_rows = await uow.associations.live_rows_for_device(serial)
        delegates = [
            _DelegateSnapshot(r.user_id, r.association_type, r.start_timestamp, r.end_timestamp)
            for r in device_rows
            if r.id != row.id and not self.ownership.is_owner_type(r)
        ]

        await self._step(ErrorCode.WIPE_DATA_TERMINATION_FAILURE, serial,
                         self.engine.terminate(DeviceSelector(association_id=row.id), user_id))
        await self._step(ErrorCode.WIPE_DATA_ASSOCIATION_FAILURE, serial,
                         self.engine.associate(DeviceSelector(serial_number=serial), user_id, reassociation=True))
        activated = await self._step(ErrorCode.WIPE_DATA_ACTIVATION_FAILURE, serial,
                                     self.engine.activate(serial, user_id))
        async with self.store.unit_of_work(serial) as uow:
            await uow.associations.repoint_vin_details([row.id], activated.association_id)
        for snapshot in delegates:
            request = DelegateRequest(
                serial_number=serial,
                delegation_user_id=snapshot.user_id,
                association_type=snapshot.association_type,
                start_timestamp=snapshot.start_timestamp,
                end_timestamp=snapshot.end_timestamp,
            )
            await self._step(ErrorCode.WIPE_DATA_ASSOCIATION_FAILURE, serial, self.engine.delegate(request, user_id))

        log.info("Wipe device %s re-associated, %d delegation(s) recreated", sanitize(serial), len(delegates))
        return activated.device_id, {user_id} | {d.user_id for d in delegates}

    @staticmethod
    async def _step(error: ErrorCode, serial: str, operation):
        try:
            return await operation
        except AssociationError as exc:
            log.error("Wipe aborted on device %s (%s): %s", sanitize(serial), error.code, exc)
            raise WipeDataFailure(error, serial, exc) from exc
