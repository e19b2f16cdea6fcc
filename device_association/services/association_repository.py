"""
Acces aux lignes d'association / Association row access.
Toutes les requetes de mutation passent par ici, dans une unite de travail.
Every mutating query goes through here, inside a unit of work.
"""

import json
import uuid
from collections.abc import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from device_association.models.activation import DeviceActivationState
from device_association.models.association import LIVE_STATUSES, AssociationStatus, DeviceAssociation
from device_association.models.association_type import AssociationType
from device_association.models.audit import AssociationAudit
from device_association.models.credential import DeviceCredential
from device_association.models.device_identity import DeviceIdentity
from device_association.models.subscription import SimAction, SimTransaction, SimTransactionStatus, VinDetails
from device_association.schemas.association import DeviceSelector
from device_association.utils.clock import utcnow

_IDENTITY_FIELDS = ("imei", "bssid", "iccid", "imsi", "msisdn")


class AssociationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ─── Associations ───

    async def find(
        self,
        selector: DeviceSelector,
        statuses: Iterable[AssociationStatus] = LIVE_STATUSES,
        *,
        user_id: str | None = None,
        association_type: str | None = None,
        for_update: bool = True,
    ) -> list[DeviceAssociation]:
        """Lignes correspondant au selecteur / Rows matching the selector.

        Les champs d'identite (IMEI, BSSID...) sont resolus via les donnees usine.
        Identity fields (IMEI, BSSID...) are resolved through factory data.
        """
        query = select(DeviceAssociation).where(DeviceAssociation.association_status.in_(list(statuses)))
        if selector.association_id is not None:
            query = query.where(DeviceAssociation.id == selector.association_id)
        if selector.serial_number:
            query = query.where(DeviceAssociation.serial_number == selector.serial_number)
        if selector.device_id:
            query = query.where(DeviceAssociation.device_id == selector.device_id)
        identity = {f: getattr(selector, f) for f in _IDENTITY_FIELDS if getattr(selector, f)}
        if identity:
            query = query.join(DeviceIdentity, DeviceIdentity.id == DeviceAssociation.factory_id)
            for field, value in identity.items():
                query = query.where(getattr(DeviceIdentity, field) == value)
        if user_id is not None:
            query = query.where(DeviceAssociation.user_id == user_id)
        if association_type is not None:
            query = query.where(DeviceAssociation.association_type == association_type)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.order_by(DeviceAssociation.id))
        return list(result.scalars().all())

    async def live_rows_for_device(self, serial_number: str) -> list[DeviceAssociation]:
        return await self.find(DeviceSelector(serial_number=serial_number))

    async def get(self, association_id: int, for_update: bool = True) -> DeviceAssociation | None:
        query = select(DeviceAssociation).where(DeviceAssociation.id == association_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def holds_live_association(self, serial_number: str, user_id: str) -> bool:
        rows = await self.find(DeviceSelector(serial_number=serial_number), user_id=user_id)
        return bool(rows)

    async def has_terminated(self, factory_id: int) -> bool:
        result = await self.session.execute(
            select(func.count(DeviceAssociation.id)).where(
                DeviceAssociation.factory_id == factory_id,
                DeviceAssociation.association_status == AssociationStatus.DISASSOCIATED,
            )
        )
        return result.scalar() > 0

    async def fetch_for_user(
        self, user_id: str, statuses: Iterable[AssociationStatus] = (AssociationStatus.ASSOCIATED,)
    ) -> list[DeviceAssociation]:
        result = await self.session.execute(
            select(DeviceAssociation)
            .where(
                DeviceAssociation.user_id == user_id,
                DeviceAssociation.association_status.in_(list(statuses)),
            )
            .order_by(DeviceAssociation.id)
        )
        return list(result.scalars().all())

    async def add(self, association: DeviceAssociation) -> DeviceAssociation:
        self.session.add(association)
        await self.session.flush()
        return association

    async def type_exists(self, name: str) -> bool:
        result = await self.session.execute(select(AssociationType.id).where(AssociationType.name == name))
        return result.first() is not None

    # ─── Activation ───

    async def create_activation(self, device: DeviceIdentity, initiated_by: str) -> DeviceActivationState:
        record = DeviceActivationState(
            factory_id=device.id,
            serial_number=device.serial_number,
            activation_initiated_by=initiated_by,
            activation_initiated_on=utcnow(),
            activation_ready=True,
            active=True,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def ready_activation(self, factory_id: int) -> DeviceActivationState | None:
        result = await self.session.execute(
            select(DeviceActivationState)
            .where(
                DeviceActivationState.factory_id == factory_id,
                DeviceActivationState.active.is_(True),
                DeviceActivationState.activation_ready.is_(True),
            )
            .order_by(DeviceActivationState.id.desc())
        )
        return result.scalars().first()

    async def deactivate_activations(self, factory_id: int, deactivated_by: str) -> int:
        """Desactiver les activations en cours / Disable in-flight activation records."""
        result = await self.session.execute(
            update(DeviceActivationState)
            .where(DeviceActivationState.factory_id == factory_id, DeviceActivationState.active.is_(True))
            .values(
                active=False,
                activation_ready=False,
                deactivation_initiated_by=deactivated_by,
                deactivation_initiated_on=utcnow(),
            )
        )
        return result.rowcount

    # ─── Credentials ───

    async def active_credential(self, factory_id: int) -> DeviceCredential | None:
        result = await self.session.execute(
            select(DeviceCredential)
            .where(DeviceCredential.factory_id == factory_id, DeviceCredential.active.is_(True))
            .order_by(DeviceCredential.id.desc())
        )
        return result.scalars().first()

    async def credential_by_device_id(self, device_id: str) -> DeviceCredential | None:
        result = await self.session.execute(select(DeviceCredential).where(DeviceCredential.device_id == device_id))
        return result.scalar_one_or_none()

    async def add_credential(self, credential: DeviceCredential) -> DeviceCredential:
        self.session.add(credential)
        await self.session.flush()
        return credential

    # ─── Abonnement / Subscription ───

    async def vin_details(self, association_id: int) -> VinDetails | None:
        result = await self.session.execute(
            select(VinDetails).where(VinDetails.association_id == association_id).order_by(VinDetails.id.desc())
        )
        return result.scalars().first()

    async def latest_sim_status(self, association_id: int, action: SimAction) -> SimTransactionStatus | None:
        result = await self.session.execute(
            select(SimTransaction.tran_status)
            .where(SimTransaction.association_id == association_id, SimTransaction.user_action == action)
            .order_by(SimTransaction.id.desc())
        )
        return result.scalars().first()

    async def repoint_vin_details(self, old_association_ids: list[int], new_association_id: int) -> None:
        if not old_association_ids:
            return
        await self.session.execute(
            update(VinDetails)
            .where(VinDetails.association_id.in_(old_association_ids))
            .values(association_id=new_association_id)
        )

    # ─── Anonymisation ───

    async def anonymize(self, user_ids: set[str], serial_numbers: set[str], dummy: DeviceIdentity) -> int:
        """Ecraser les lignes DISASSOCIATED par une sentinelle / Overwrite DISASSOCIATED rows with a sentinel.

        Irreversible : la sentinelle n'est jamais stockee ailleurs.
        Irreversible: the sentinel is never stored anywhere else.
        """
        sentinel = f"ANON-{uuid.uuid4().hex}"
        result = await self.session.execute(
            select(DeviceAssociation.id).where(
                DeviceAssociation.association_status == AssociationStatus.DISASSOCIATED,
                DeviceAssociation.serial_number.in_(serial_numbers),
                DeviceAssociation.user_id.in_(user_ids),
            )
        )
        ids = list(result.scalars().all())
        if ids:
            await self.session.execute(
                update(DeviceAssociation)
                .where(DeviceAssociation.id.in_(ids))
                .values(
                    user_id=sentinel,
                    associated_by=sentinel,
                    modified_by=sentinel,
                    disassociated_by=sentinel,
                    serial_number=sentinel,
                    device_id=None,
                    factory_id=dummy.id,
                )
                .execution_options(synchronize_session=False)
            )
            await self.session.execute(
                update(AssociationAudit)
                .where(AssociationAudit.association_id.in_(ids))
                .values(acting_user=sentinel, changes=None)
                .execution_options(synchronize_session=False)
            )
        await self.session.execute(
            update(DeviceActivationState)
            .where(
                DeviceActivationState.serial_number.in_(serial_numbers),
                DeviceActivationState.activation_ready.is_(False),
                DeviceActivationState.active.is_(False),
            )
            .values(
                serial_number=sentinel,
                activation_initiated_by=sentinel,
                deactivation_initiated_by=sentinel,
                factory_id=dummy.id,
            )
            .execution_options(synchronize_session=False)
        )
        return len(ids)

    # ─── Audit ───

    def audit(self, association_id: int, action: str, acting_user: str | None, changes: dict | None = None) -> None:
        """Tracer une transition / Record a transition."""
        self.session.add(AssociationAudit(
            association_id=association_id,
            action=action,
            acting_user=acting_user,
            changes=json.dumps(changes, ensure_ascii=False, default=str) if changes else None,
            recorded_on=utcnow(),
        ))
