"""
Moteur de cycle de vie des associations / Association lifecycle engine.

INITIATED -> ASSOCIATED -> {SUSPENDED <-> ASSOCIATED} -> DISASSOCIATED.
Chaque operation de mutation lit, decide et ecrit dans une seule unite de
travail verrouillee par appareil ; les appels externes qui suivent le commit
(deregistration, notification) ne rollbackent jamais la ligne.
Every mutating operation reads, decides and writes inside one unit of work
locked per device; external calls after commit (deregistration,
notification) never roll the row back.
"""

import logging
import secrets
import uuid

from device_association.adapters.identity_registration import IdentityRegistrationAdapter
from device_association.adapters.notification import NotificationAdapter
from device_association.errors import (
    AdapterError,
    AssociationNotFound,
    DataIntegrityFault,
    ErrorCode,
    ExternalUnavailable,
    FanOutFailure,
    PreconditionFailed,
    ValidationFailed,
)
from device_association.models.association import LIVE_STATUSES, AssociationStatus, DeviceAssociation
from device_association.models.credential import DeviceCredential
from device_association.models.device_identity import PROVISIONED_STATES, DeviceState
from device_association.models.subscription import SimAction, SimTransactionStatus
from device_association.schemas.association import (
    AssociationResult,
    AssociationUpdateRequest,
    DelegateRequest,
    DeviceSelector,
)
from device_association.services.association_store import AssociationStore, UnitOfWork
from device_association.services.ownership import OwnershipResolver
from device_association.services.policy import AssociationPolicy
from device_association.utils.clock import sanitize, to_naive_utc, utcnow

log = logging.getLogger(__name__)

# Etats deplaces vers PROVISIONED par la terminaison / States moved to PROVISIONED by terminate
_DEACTIVATABLE_STATES = (DeviceState.READY_TO_ACTIVATE, DeviceState.ACTIVE)


def generate_device_id() -> str:
    return f"DEV{uuid.uuid4().hex[:16].upper()}"


def generate_passcode() -> str:
    return secrets.token_urlsafe(24)


class AssociationLifecycleEngine:
    """Associate / activate / terminate / suspend / restore / delegate / update."""

    def __init__(
        self,
        store: AssociationStore,
        identity: IdentityRegistrationAdapter,
        notifier: NotificationAdapter,
        policy: AssociationPolicy | None = None,
    ):
        self.store = store
        self.identity = identity
        self.notifier = notifier
        self.policy = policy or AssociationPolicy.from_settings()
        self.ownership = OwnershipResolver(self.policy)

    # ─── Associate ───

    async def associate(
        self,
        selector: DeviceSelector,
        user_id: str,
        acting_user: str | None = None,
        *,
        reassociation: bool = False,
    ) -> AssociationResult:
        """Creer une association INITIATED / Create an INITIATED association.

        acting_user differe de user_id pour un admin agissant pour un utilisateur.
        acting_user differs from user_id when an admin acts on behalf of a user.
        """
        if not user_id:
            raise ValidationFailed(ErrorCode.USER_ID_MANDATORY)
        if not selector.has_basic_data():
            raise ValidationFailed(ErrorCode.BASIC_DATA_MANDATORY)
        acting = acting_user or user_id
        log.info("Associate start user=%s selector=%s", sanitize(user_id), sanitize(selector.device_filters()))

        async with self.store.unit_of_work(*await self.store.serials_for(selector)) as uow:
            devices = await uow.devices.lookup(selector)
            if not devices:
                raise ValidationFailed(ErrorCode.FETCHING_FACTORY_DATA_ERROR)
            if len(devices) > 1:
                log.error("Device registry returned %d devices for %s", len(devices), sanitize(selector.device_filters()))
                raise DataIntegrityFault(ErrorCode.DATABASE_INTEGRITY_ERROR)
            device = devices[0]

            if await uow.associations.holds_live_association(device.serial_number, user_id):
                raise PreconditionFailed(ErrorCode.ASSOCIATION_ALREADY_EXISTS)
            if device.state in (DeviceState.STOLEN, DeviceState.FAULTY):
                raise PreconditionFailed(ErrorCode.STOLEN_OR_FAULTY)
            if device.state not in PROVISIONED_STATES:
                raise PreconditionFailed(ErrorCode.INVALID_FACTORY_STATE)
            live_rows = await uow.associations.live_rows_for_device(device.serial_number)
            if self.ownership.owner_row(live_rows) is not None:
                raise PreconditionFailed(ErrorCode.INVALID_FACTORY_STATE)
            if (
                self.policy.forbid_after_terminate
                and not reassociation
                and await uow.associations.has_terminated(device.id)
            ):
                raise PreconditionFailed(ErrorCode.DEVICE_TERMINATED)

            now = utcnow()
            row = await uow.associations.add(DeviceAssociation(
                serial_number=device.serial_number,
                factory_id=device.id,
                user_id=user_id,
                association_type=self.policy.owner_type,
                start_timestamp=now,
                association_status=AssociationStatus.INITIATED,
                associated_by=acting,
                associated_on=now,
                modified_by=acting,
                modified_on=now,
            ))
            await uow.associations.create_activation(device, acting)
            await uow.devices.set_state(device.id, DeviceState.READY_TO_ACTIVATE, "associate")
            uow.associations.audit(row.id, "ASSOCIATE", acting, {"user_id": user_id, "serial_number": device.serial_number})

        log.info("Associate done association=%s serial=%s status=INITIATED", row.id, sanitize(row.serial_number))
        return AssociationResult(association_id=row.id, association_status=row.association_status)

    # ─── Activate ───

    async def activate(self, serial_number: str, user_id: str) -> AssociationResult:
        """INITIATED -> ASSOCIATED : cree et enregistre les credentials / creates and registers credentials."""
        if not serial_number:
            raise ValidationFailed(ErrorCode.BASIC_DATA_MANDATORY)
        log.info("Activate start serial=%s user=%s", sanitize(serial_number), sanitize(user_id))

        async with self.store.unit_of_work(serial_number) as uow:
            rows = await uow.associations.find(
                DeviceSelector(serial_number=serial_number), (AssociationStatus.INITIATED,), user_id=user_id,
            )
            row = self._single(rows, ErrorCode.ASSO_DATA_NOT_FOUND)
            device = await uow.devices.get(row.factory_id) if row.factory_id else None
            if device is None or device.state != DeviceState.READY_TO_ACTIVATE:
                raise PreconditionFailed(ErrorCode.INVALID_DEVICE_STATE)

            now = utcnow()
            credential = await uow.associations.add_credential(DeviceCredential(
                device_id=generate_device_id(),
                factory_id=device.id,
                serial_number=device.serial_number,
                passcode=generate_passcode(),
                active=True,
                created_on=now,
            ))
            activation = await uow.associations.ready_activation(device.id)
            if activation is not None:
                activation.activation_ready = False

            try:
                await self.identity.register(credential.device_id, credential.passcode, self.policy.device_type)
            except AdapterError as exc:
                log.error("Credential registration failed for serial=%s: %s", sanitize(serial_number), exc)
                raise ExternalUnavailable(ErrorCode.REGISTER_FAILED) from exc

            row.device_id = credential.device_id
            row.association_status = AssociationStatus.ASSOCIATED
            row.modified_by = user_id
            row.modified_on = now
            await uow.devices.set_state(device.id, DeviceState.ACTIVE, "activate")
            uow.associations.audit(row.id, "ACTIVATE", user_id, {"device_id": credential.device_id})

        try:
            await self.notifier.notify_lifecycle_change(row)
        except AdapterError as exc:
            log.warning("Activation notification failed for association=%s: %s", row.id, exc)

        log.info("Activate done association=%s serial=%s status=ASSOCIATED", row.id, sanitize(serial_number))
        return AssociationResult(association_id=row.id, association_status=row.association_status, device_id=row.device_id)

    # ─── Terminate ───

    async def terminate(self, selector: DeviceSelector, acting_user: str, is_admin: bool = False) -> AssociationResult:
        """Dissocier une ligne ; terminaison complete pour le proprietaire /
        Disassociate a row; full termination for the owner.
        """
        if not acting_user or (is_admin and not selector.user_id):
            raise ValidationFailed(ErrorCode.USER_ID_MANDATORY)
        if selector.is_empty():
            raise ValidationFailed(ErrorCode.BASIC_DATA_MANDATORY)
        target_user = selector.user_id or acting_user
        log.info("Terminate start user=%s acting=%s", sanitize(target_user), sanitize(acting_user))

        async with self.store.unit_of_work(*await self.store.serials_for(selector)) as uow:
            rows = await uow.associations.find(selector, LIVE_STATUSES, user_id=target_user)
            row = self._single(rows, ErrorCode.ASSO_DATA_NOT_FOUND)
            device_rows = await uow.associations.live_rows_for_device(row.serial_number)
            if not is_admin:
                self.ownership.ensure_can_disassociate(row, acting_user, device_rows)

            full = self.ownership.requires_credential_cascade(row)
            if not full:
                self._disassociate(uow, row, acting_user)
            else:
                self.ownership.owner_row(device_rows)
                if row.association_status == AssociationStatus.SUSPENDED:
                    raise PreconditionFailed(ErrorCode.ASSOCIATION_SUSPENDED)
                if self.policy.subscription_check:
                    await self._check_subscription(uow, row)
                credential = await self._terminate_owner(uow, row, device_rows, acting_user)

        if not full:
            log.info("Terminate done association=%s (delegate, no credential change)", row.id)
            return AssociationResult(association_id=row.id, association_status=row.association_status)

        device_id = credential.device_id if credential else row.device_id
        if device_id:
            try:
                await self.identity.deregister(device_id)
            except AdapterError as exc:
                log.error(
                    "Deregistration failed after terminate association=%s device=%s, row stays DISASSOCIATED: %s",
                    row.id, device_id, exc,
                )
                raise FanOutFailure(ErrorCode.DE_REGISTER_FAILED, {"association_id": row.id}) from exc

        try:
            await self.notifier.notify_lifecycle_change(row)
        except AdapterError as exc:
            log.error("Terminate notification failed for association=%s: %s", row.id, exc)
            if device_id and credential is not None:
                await self._reregister(device_id, credential.passcode, row.id)
            raise FanOutFailure(ErrorCode.ASSO_NOTIF_ERROR, {"association_id": row.id}) from exc

        log.info("Terminate done association=%s serial=%s status=DISASSOCIATED", row.id, sanitize(row.serial_number))
        return AssociationResult(association_id=row.id, association_status=row.association_status, device_id=device_id)

    async def _terminate_owner(
        self, uow: UnitOfWork, row: DeviceAssociation, device_rows: list[DeviceAssociation], acting_user: str
    ) -> DeviceCredential | None:
        self._disassociate(uow, row, acting_user)
        for other in device_rows:
            if other.id != row.id and other.is_live:
                self._disassociate(uow, other, acting_user)
        if row.factory_id is None:
            return None
        credential = await uow.associations.active_credential(row.factory_id)
        if credential is not None:
            credential.active = False
        await uow.associations.deactivate_activations(row.factory_id, acting_user)
        device = await uow.devices.get(row.factory_id)
        if device is not None and device.state in _DEACTIVATABLE_STATES:
            await uow.devices.set_state(device.id, DeviceState.PROVISIONED, "terminate")
        return credential

    async def _reregister(self, device_id: str, passcode: str, association_id: int) -> None:
        """Compensation unique apres echec de notification / Single compensation after a failed notification."""
        log.warning("Re-registering credentials for device=%s (association=%s)", device_id, association_id)
        try:
            await self.identity.register(device_id, passcode, self.policy.device_type)
        except AdapterError as exc:
            log.error("Compensation failed for device=%s: %s", device_id, exc)
            return
        log.error(
            "Association %s is DISASSOCIATED while device %s credentials are registered again",
            association_id, device_id,
        )

    async def _check_subscription(self, uow: UnitOfWork, row: DeviceAssociation) -> None:
        if await uow.associations.vin_details(row.id) is None:
            return
        activation = await uow.associations.latest_sim_status(row.id, SimAction.ACTIVATE)
        if activation in (SimTransactionStatus.PENDING, SimTransactionStatus.IN_PROGRESS):
            raise PreconditionFailed(ErrorCode.SUBSCRIPTION_ACTIVATION_PENDING)
        termination = await uow.associations.latest_sim_status(row.id, SimAction.TERMINATE)
        if termination != SimTransactionStatus.COMPLETED:
            raise PreconditionFailed(ErrorCode.SUBSCRIPTION_SUSPEND_PENDING)

    def _disassociate(self, uow: UnitOfWork, row: DeviceAssociation, acting_user: str) -> None:
        if row.association_status == AssociationStatus.DISASSOCIATED:
            raise PreconditionFailed(ErrorCode.ASSOCIATION_TERMINATED)
        now = utcnow()
        previous = row.association_status
        row.association_status = AssociationStatus.DISASSOCIATED
        row.end_timestamp = now
        row.disassociated_by = acting_user
        row.disassociated_on = now
        row.modified_by = acting_user
        row.modified_on = now
        uow.associations.audit(row.id, "TERMINATE", acting_user, {"from": previous.value})

    # ─── Suspend / Restore ───

    async def suspend(self, selector: DeviceSelector, acting_user: str, is_admin: bool = False) -> AssociationResult:
        """ASSOCIATED -> SUSPENDED, credentials deregistres / credentials deregistered."""
        return await self._toggle(selector, acting_user, is_admin, suspend=True)

    async def restore(self, selector: DeviceSelector, acting_user: str, is_admin: bool = False) -> AssociationResult:
        """SUSPENDED -> ASSOCIATED, credentials re-enregistres / credentials re-registered."""
        return await self._toggle(selector, acting_user, is_admin, suspend=False)

    async def _toggle(
        self, selector: DeviceSelector, acting_user: str, is_admin: bool, suspend: bool
    ) -> AssociationResult:
        action = "SUSPEND" if suspend else "RESTORE"
        expected = AssociationStatus.ASSOCIATED if suspend else AssociationStatus.SUSPENDED
        target = AssociationStatus.SUSPENDED if suspend else AssociationStatus.ASSOCIATED
        if not acting_user:
            raise ValidationFailed(ErrorCode.USER_ID_MANDATORY)
        if selector.is_empty():
            raise ValidationFailed(ErrorCode.BASIC_DATA_MANDATORY)
        target_user = selector.user_id or acting_user
        if target_user != acting_user and not is_admin:
            raise PreconditionFailed(ErrorCode.USER_NOT_OWNER_OF_DEVICE)
        log.info("%s start user=%s", action.capitalize(), sanitize(target_user))

        async with self.store.unit_of_work(*await self.store.serials_for(selector)) as uow:
            rows = await uow.associations.find(selector, LIVE_STATUSES, user_id=target_user)
            owner_rows = [r for r in rows if self.ownership.is_owner_type(r)]
            if rows and not owner_rows:
                raise PreconditionFailed(ErrorCode.USER_NOT_OWNER_OF_DEVICE)
            row = self._single(owner_rows, ErrorCode.ASSO_DATA_NOT_FOUND)
            self.ownership.owner_row(await uow.associations.live_rows_for_device(row.serial_number))
            if row.association_status != expected:
                raise PreconditionFailed(ErrorCode.INVALID_DEVICE_STATE)
            credential = await uow.associations.credential_by_device_id(row.device_id) if row.device_id else None
            if credential is None or credential.active != suspend:
                raise PreconditionFailed(ErrorCode.INVALID_DEVICE_STATE)

            try:
                if suspend:
                    await self.identity.deregister(credential.device_id)
                else:
                    await self.identity.register(credential.device_id, credential.passcode, self.policy.device_type)
            except AdapterError as exc:
                log.error("%s failed for association=%s: %s", action.capitalize(), row.id, exc)
                code = ErrorCode.DE_REGISTER_FAILED if suspend else ErrorCode.REGISTER_FAILED
                raise ExternalUnavailable(code, {"association_id": row.id}) from exc

            credential.active = not suspend
            row.association_status = target
            row.modified_by = acting_user
            row.modified_on = utcnow()
            uow.associations.audit(row.id, action, acting_user, {"from": expected.value, "to": target.value})

        log.info("%s done association=%s status=%s", action.capitalize(), row.id, target.value)
        return AssociationResult(association_id=row.id, association_status=target, device_id=row.device_id)

    # ─── Delegate ───

    async def delegate(self, request: DelegateRequest, acting_user: str, is_admin: bool = False) -> AssociationResult:
        """Creer une ligne deleguee a partir de la ligne proprietaire /
        Create a delegate row from the owner row.
        """
        owner_user = request.owner_user_id if is_admin else acting_user
        if not owner_user:
            raise ValidationFailed(ErrorCode.USER_ID_MANDATORY)
        self.ownership.validate_delegation_type(request.association_type)
        start, end = self.ownership.validate_window(request.start_timestamp, request.end_timestamp)
        if request.delegation_user_id == owner_user:
            raise ValidationFailed(ErrorCode.INVALID_USER_DETAILS)
        selector = DeviceSelector(**request.model_dump(include=set(DeviceSelector.model_fields) - {"user_id"}))
        if selector.is_empty():
            raise ValidationFailed(ErrorCode.BASIC_DATA_MANDATORY)
        log.info("Delegate start owner=%s delegate=%s", sanitize(owner_user), sanitize(request.delegation_user_id))

        async with self.store.unit_of_work(*await self.store.serials_for(selector)) as uow:
            if not await uow.associations.type_exists(request.association_type):
                raise ValidationFailed(ErrorCode.ASSOC_TYPE_VALIDATION_FAILURE)
            owners = await uow.associations.find(
                selector, (AssociationStatus.ASSOCIATED,),
                user_id=owner_user, association_type=self.policy.owner_type,
            )
            if not owners:
                raise PreconditionFailed(ErrorCode.OWNER_ASSO_NOT_FOUND)
            owner = self._single(owners, ErrorCode.OWNER_ASSO_NOT_FOUND)
            if await uow.associations.holds_live_association(owner.serial_number, request.delegation_user_id):
                raise PreconditionFailed(ErrorCode.ASSOCIATION_ALREADY_EXISTS)

            now = utcnow()
            row = await uow.associations.add(DeviceAssociation(
                serial_number=owner.serial_number,
                device_id=owner.device_id,
                factory_id=owner.factory_id,
                user_id=request.delegation_user_id,
                association_type=request.association_type,
                start_timestamp=start,
                end_timestamp=end,
                association_status=AssociationStatus.ASSOCIATED,
                associated_by=acting_user,
                associated_on=now,
                modified_by=acting_user,
                modified_on=now,
            ))
            uow.associations.audit(row.id, "DELEGATE", acting_user, {
                "owner_association_id": owner.id,
                "association_type": request.association_type,
            })

        log.info("Delegate done association=%s serial=%s", row.id, sanitize(row.serial_number))
        return AssociationResult(association_id=row.id, association_status=row.association_status, device_id=row.device_id)

    # ─── Update ───

    async def update_association(
        self, association_id: int, acting_user: str, request: AssociationUpdateRequest
    ) -> AssociationResult:
        """Modifier type ou fenetre d'une delegation / Update a delegation's type or window."""
        if request.association_type is None and request.start_timestamp is None and request.end_timestamp is None:
            raise ValidationFailed(ErrorCode.ASSOCIATION_UPDATE_DATA_MANDATORY)
        if request.association_type is not None and request.association_type == self.policy.owner_type:
            raise ValidationFailed(ErrorCode.TYPE_CANNOT_BE_OWNER)

        keys = await self.store.serials_for(DeviceSelector(association_id=association_id))
        async with self.store.unit_of_work(*keys) as uow:
            row = await uow.associations.get(association_id)
            if row is None:
                raise AssociationNotFound(ErrorCode.ASSO_DETAILS_NOT_FOUND)
            if not row.is_live:
                raise PreconditionFailed(ErrorCode.ASSOCIATION_TERMINATED)
            device_rows = await uow.associations.live_rows_for_device(row.serial_number)
            self.ownership.ensure_can_edit_delegate(row, acting_user, device_rows)
            if request.association_type is not None and not await uow.associations.type_exists(request.association_type):
                raise ValidationFailed(ErrorCode.ASSOC_TYPE_VALIDATION_FAILURE)

            start = to_naive_utc(request.start_timestamp) or row.start_timestamp
            end = to_naive_utc(request.end_timestamp) or row.end_timestamp
            self.ownership.check_window(start, end)

            changes = {}
            if request.association_type is not None:
                changes["association_type"] = request.association_type
                row.association_type = request.association_type
            if start != row.start_timestamp:
                changes["start_timestamp"] = start
                row.start_timestamp = start
            if end != row.end_timestamp:
                changes["end_timestamp"] = end
                row.end_timestamp = end
            row.modified_by = acting_user
            row.modified_on = utcnow()
            uow.associations.audit(row.id, "UPDATE", acting_user, changes)

        log.info("Update done association=%s fields=%s", row.id, ",".join(changes))
        return AssociationResult(association_id=row.id, association_status=row.association_status, device_id=row.device_id)

    # ─── Helpers ───

    @staticmethod
    def _single(rows: list[DeviceAssociation], not_found: ErrorCode) -> DeviceAssociation:
        """Exactement une ligne, sinon erreur / Exactly one row, otherwise an error."""
        if not rows:
            raise AssociationNotFound(not_found)
        if len(rows) > 1:
            log.error("Expected one association, found %d: %s", len(rows), [r.id for r in rows])
            raise DataIntegrityFault(ErrorCode.ASSO_INTEGRITY_ERROR, {"association_ids": [r.id for r in rows]})
        return rows[0]
