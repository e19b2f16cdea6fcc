"""
Requetes en lecture seule / Read-only association queries.
Aucun verrou : lecture directe de la session / No lock: plain session reads.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from device_association.errors import AssociationNotFound, ErrorCode, ValidationFailed
from device_association.models.association import LIVE_STATUSES, DeviceAssociation
from device_association.models.association_type import AssociationType
from device_association.models.device_identity import DeviceIdentity
from device_association.schemas.association import (
    AssociationHistoryItem,
    AssociationHistoryPage,
    AssociationRead,
    AssociationTypeUsage,
    SerialAssociation,
)

HISTORY_SORT_FIELDS = {
    "user_id": DeviceAssociation.user_id,
    "association_status": DeviceAssociation.association_status,
    "associated_on": DeviceAssociation.associated_on,
}


def to_read(row: DeviceAssociation) -> AssociationRead:
    """Ligne + attributs usine joints / Row + joined factory attributes."""
    read = AssociationRead.model_validate(row)
    device = row.device_identity
    if device is not None:
        read = read.model_copy(update={
            "imei": device.imei,
            "bssid": device.bssid,
            "iccid": device.iccid,
            "imsi": device.imsi,
            "msisdn": device.msisdn,
            "ssid": device.ssid,
            "device_state": device.state.value,
        })
    return read


class AssociationQueryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_user(self, user_id: str) -> list[AssociationRead]:
        result = await self.db.execute(
            select(DeviceAssociation)
            .where(DeviceAssociation.user_id == user_id, DeviceAssociation.association_status.in_(LIVE_STATUSES))
            .order_by(DeviceAssociation.id)
        )
        return [to_read(r) for r in result.scalars().all()]

    async def details(self, association_id: int, user_id: str) -> AssociationRead:
        result = await self.db.execute(
            select(DeviceAssociation).where(
                DeviceAssociation.id == association_id, DeviceAssociation.user_id == user_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise AssociationNotFound(ErrorCode.ASSO_DETAILS_NOT_FOUND)
        return to_read(row)

    async def history(
        self, imei: str, sort_by: str = "associated_on", order: str = "desc", page: int = 0, size: int = 20,
    ) -> AssociationHistoryPage:
        """Historique pagine par IMEI / Paged history by IMEI."""
        column = HISTORY_SORT_FIELDS.get(sort_by)
        if not imei or column is None or order.lower() not in ("asc", "desc") or page < 0 or size < 1:
            raise ValidationFailed(ErrorCode.INVALID_HISTORY_QUERY)

        base = (
            select(DeviceAssociation)
            .join(DeviceIdentity, DeviceIdentity.id == DeviceAssociation.factory_id)
            .where(DeviceIdentity.imei == imei)
        )
        total = (await self.db.execute(select(func.count()).select_from(base.subquery()))).scalar()
        if not total:
            raise AssociationNotFound(ErrorCode.ASSOCIATION_HISTORY_NOT_FOUND)

        ordering = column.asc() if order.lower() == "asc" else column.desc()
        result = await self.db.execute(base.order_by(ordering, DeviceAssociation.id).offset(page * size).limit(size))
        items = [AssociationHistoryItem.model_validate(r) for r in result.scalars().all()]
        return AssociationHistoryPage(total_count=total, items=items)

    async def is_associated(self, serial_number: str) -> SerialAssociation:
        result = await self.db.execute(
            select(func.count(DeviceAssociation.id)).where(
                DeviceAssociation.serial_number == serial_number,
                DeviceAssociation.association_status.in_(LIVE_STATUSES),
            )
        )
        return SerialAssociation(serial_number=serial_number, associated=result.scalar() > 0)

    async def type_usage(self) -> list[AssociationTypeUsage]:
        """Nombre de lignes vivantes par type / Live rows per association type."""
        result = await self.db.execute(
            select(DeviceAssociation.association_type, func.count(DeviceAssociation.id))
            .where(DeviceAssociation.association_status.in_(LIVE_STATUSES))
            .group_by(DeviceAssociation.association_type)
            .order_by(DeviceAssociation.association_type)
        )
        return [AssociationTypeUsage(association_type=t, count=c) for t, c in result.all()]

    async def association_types(self) -> list[str]:
        result = await self.db.execute(select(AssociationType.name).order_by(AssociationType.id))
        return list(result.scalars().all())
