"""
Remplacement d'appareil / Device replacement saga.

Etapes 1-2 : validation pure. Etapes 3-6 : une seule transaction locale.
Etape 7 (credentials, registre vehicule, reset) : apres commit, sans rollback
des etapes precedentes.
Steps 1-2: pure validation. Steps 3-6: one local transaction.
Step 7 (credentials, vehicle registry, reset): after commit, earlier steps
are not rolled back.
"""

import logging
from dataclasses import dataclass, field

from device_association.adapters.identity_registration import IdentityRegistrationAdapter
from device_association.adapters.vehicle_registry import DeviceMessenger, VehicleRegistryAdapter
from device_association.errors import (
    AdapterError,
    DataIntegrityFault,
    ErrorCode,
    FanOutFailure,
    PreconditionFailed,
    ValidationFailed,
)
from device_association.models.association import AssociationStatus, DeviceAssociation
from device_association.models.device_identity import DeviceIdentity, DeviceState
from device_association.schemas.association import AssociationResult, DeviceSelector, ReplaceRequest
from device_association.services.association_store import AssociationStore, UnitOfWork
from device_association.services.lifecycle import generate_passcode
from device_association.services.ownership import OwnershipResolver
from device_association.services.policy import AssociationPolicy
from device_association.utils.clock import sanitize, utcnow

log = logging.getLogger(__name__)

# Etats que l'on peut ramener a PROVISIONED / States that may be moved back to PROVISIONED
_RESETTABLE_STATES = (DeviceState.ACTIVE, DeviceState.READY_TO_ACTIVATE, DeviceState.STOLEN, DeviceState.FAULTY)


@dataclass
class ReplacementOperation:
    """Contexte d'un appel replace / Context of one replace call."""
    current: DeviceIdentity
    replacement: DeviceIdentity
    user_id: str
    association: DeviceAssociation | None = None
    device_id: str | None = None
    passcode: str | None = None
    vin: str | None = None
    repointed_ids: list[int] = field(default_factory=list)


class ReplacementSaga:
    def __init__(
        self,
        store: AssociationStore,
        identity: IdentityRegistrationAdapter,
        vehicles: VehicleRegistryAdapter,
        messenger: DeviceMessenger,
        policy: AssociationPolicy | None = None,
    ):
        self.store = store
        self.identity = identity
        self.vehicles = vehicles
        self.messenger = messenger
        self.policy = policy or AssociationPolicy.from_settings()
        self.ownership = OwnershipResolver(self.policy)

    async def replace(self, request: ReplaceRequest, acting_user: str) -> AssociationResult:
        if not acting_user:
            raise ValidationFailed(ErrorCode.USER_ID_MANDATORY)
        keys = await self.store.serials_for(request.current, request.replace_with)
        log.info("Replace start user=%s devices=%s", sanitize(acting_user), keys)

        async with self.store.unit_of_work(*keys) as uow:
            op = await self._validate(uow, request, acting_user)
            await self._apply(uow, op)

        await self._fan_out(op)
        log.info(
            "Replace done association=%s %s -> %s",
            op.association.id, sanitize(op.current.serial_number), sanitize(op.replacement.serial_number),
        )
        return AssociationResult(
            association_id=op.association.id,
            association_status=op.association.association_status,
            device_id=op.device_id,
        )

    # ─── Etapes 1-2 : validation ───

    async def _validate(self, uow: UnitOfWork, request: ReplaceRequest, user_id: str) -> ReplacementOperation:
        current = self._one(
            await uow.devices.lookup(request.current), ErrorCode.INVALID_CURRENT_DEVICE_FOR_REPLACE,
        )
        owners = await uow.associations.find(
            DeviceSelector(serial_number=current.serial_number), (AssociationStatus.ASSOCIATED,), user_id=user_id,
        )
        owners = [r for r in owners if self.ownership.is_owner_type(r)]
        if not owners:
            raise PreconditionFailed(ErrorCode.ASSOCIATION_DOES_NOT_EXIST)
        if len(owners) > 1:
            raise DataIntegrityFault(ErrorCode.ASSO_INTEGRITY_ERROR, {"association_ids": [r.id for r in owners]})
        if not self.policy.move_current_to_provisioned and current.state not in (DeviceState.FAULTY, DeviceState.STOLEN):
            raise PreconditionFailed(ErrorCode.INVALID_CURRENT_DEVICE_STATE)

        replacement = self._one(
            await uow.devices.lookup(request.replace_with), ErrorCode.INVALID_REPLACEMENT_DEVICE,
        )
        if replacement.id == current.id:
            raise ValidationFailed(ErrorCode.INVALID_REPLACE_REQUEST_DATA)
        if replacement.state != DeviceState.PROVISIONED:
            raise PreconditionFailed(ErrorCode.INVALID_REPLACEMENT_DEVICE_STATE)

        return ReplacementOperation(current=current, replacement=replacement, user_id=user_id, association=owners[0])

    @staticmethod
    def _one(devices: list[DeviceIdentity], not_found: ErrorCode) -> DeviceIdentity:
        if not devices:
            raise ValidationFailed(not_found)
        if len(devices) > 1:
            raise DataIntegrityFault(ErrorCode.DATABASE_INTEGRITY_ERROR)
        return devices[0]

    # ─── Etapes 3-6 : transaction locale ───

    async def _apply(self, uow: UnitOfWork, op: ReplacementOperation) -> None:
        repo = uow.associations
        current, replacement = op.current, op.replacement

        # 3. Credential actif de l'appareil courant / Active credential of the current device
        credential = await repo.active_credential(current.id)
        if credential is None:
            raise PreconditionFailed(ErrorCode.INACTIVE_DEVICE_FOR_REPLACEMENT)

        # 4. Activations
        await repo.deactivate_activations(current.id, op.user_id)
        await repo.create_activation(replacement, op.user_id)

        # 5. Rattachement / Re-pointing
        now = utcnow()
        rows = await repo.live_rows_for_device(current.serial_number)
        for row in rows:
            row.serial_number = replacement.serial_number
            row.factory_id = replacement.id
            row.modified_by = op.user_id
            row.modified_on = now
            op.repointed_ids.append(row.id)
        credential.factory_id = replacement.id
        credential.serial_number = replacement.serial_number
        credential.passcode = generate_passcode()
        op.device_id = credential.device_id
        op.passcode = credential.passcode
        vin = await repo.vin_details(op.association.id)
        op.vin = vin.vin if vin else None

        # 6. Etats usine / Factory states
        await uow.devices.set_state(replacement.id, DeviceState.ACTIVE, "replace")
        if self.policy.move_current_to_provisioned and current.state in _RESETTABLE_STATES:
            await uow.devices.set_state(current.id, DeviceState.PROVISIONED, "replaced")

        repo.audit(op.association.id, "REPLACE", op.user_id, {
            "from_serial": current.serial_number,
            "to_serial": replacement.serial_number,
            "association_ids": op.repointed_ids,
        })

    # ─── Etape 7 : systemes externes ───

    async def _fan_out(self, op: ReplacementOperation) -> None:
        """Aucun rollback des etapes 3-6 / No rollback of steps 3-6."""
        try:
            await self.identity.deregister(op.device_id)
        except AdapterError as exc:
            log.error("Replace: deregistration of %s failed, association already re-pointed: %s", op.device_id, exc)
            raise FanOutFailure(ErrorCode.DE_REGISTER_FAILED, {"association_id": op.association.id}) from exc
        try:
            await self.identity.register(op.device_id, op.passcode, self.policy.device_type)
        except AdapterError as exc:
            log.error("Replace: registration of %s failed, association already re-pointed: %s", op.device_id, exc)
            raise FanOutFailure(ErrorCode.REGISTER_FAILED, {"association_id": op.association.id}) from exc

        if self.policy.vehicle_profile_update and op.vin:
            try:
                await self.vehicles.update_device(op.vin, op.device_id, op.replacement.serial_number)
            except AdapterError as exc:
                log.error("Replace: vehicle profile update for %s failed: %s", op.vin, exc)
                raise FanOutFailure(ErrorCode.VEHICLE_PROFILE_UPDATE_FAILED, {"vin": op.vin}) from exc

        if self.policy.send_reset_device and op.current.imei:
            try:
                await self.messenger.reset_device(op.current.imei)
            except AdapterError as exc:
                log.warning("Replace: reset of old device %s failed: %s", op.current.imei, exc)
