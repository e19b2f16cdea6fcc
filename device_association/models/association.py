"""Modele Association appareil-utilisateur / Device-user association model."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from device_association.database import Base


class AssociationStatus(str, enum.Enum):
    """Statut de l'association / Association status.

    INITIATED -> ASSOCIATED -> {SUSPENDED <-> ASSOCIATED} -> DISASSOCIATED (terminal).
    """
    INITIATED = "INITIATED"
    ASSOCIATED = "ASSOCIATED"
    SUSPENDED = "SUSPENDED"
    DISASSOCIATED = "DISASSOCIATED"

    @property
    def event_name(self) -> str:
        """Nom d'evenement notifie / Notified event name."""
        return _EVENT_NAMES.get(self, self.value)


_EVENT_NAMES = {
    AssociationStatus.ASSOCIATED: "VehicleAssociation",
    AssociationStatus.DISASSOCIATED: "VehicleDisAssociation",
}

# Statuts encore vivants / Statuses that are still live
LIVE_STATUSES = (
    AssociationStatus.INITIATED,
    AssociationStatus.ASSOCIATED,
    AssociationStatus.SUSPENDED,
)


class DeviceAssociation(Base):
    """Lien entre un appareil et un compte utilisateur / Link between a device and a user account.

    Les lignes ne sont jamais supprimees ; DISASSOCIATED est terminal.
    Rows are never deleted; DISASSOCIATED is terminal.
    """
    __tablename__ = "device_associations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    serial_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    device_id: Mapped[str | None] = mapped_column(String(64), index=True)  # id credential / credential id
    factory_id: Mapped[int | None] = mapped_column(ForeignKey("device_identities.id"))
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    association_type: Mapped[str] = mapped_column(String(50), nullable=False)
    start_timestamp: Mapped[datetime | None] = mapped_column(DateTime)
    end_timestamp: Mapped[datetime | None] = mapped_column(DateTime)  # vide = sans fin / unset = open-ended
    association_status: Mapped[AssociationStatus] = mapped_column(Enum(AssociationStatus), nullable=False)

    # Audit
    associated_by: Mapped[str | None] = mapped_column(String(100))
    associated_on: Mapped[datetime | None] = mapped_column(DateTime)
    disassociated_by: Mapped[str | None] = mapped_column(String(100))
    disassociated_on: Mapped[datetime | None] = mapped_column(DateTime)
    modified_by: Mapped[str | None] = mapped_column(String(100))
    modified_on: Mapped[datetime | None] = mapped_column(DateTime)

    # Attributs joints, non autoritaires / Joined attributes, not authoritative
    device_identity: Mapped["DeviceIdentity | None"] = relationship(lazy="selectin", viewonly=True)

    @property
    def is_live(self) -> bool:
        return self.association_status in LIVE_STATUSES

    def __repr__(self) -> str:
        return f"<DeviceAssociation {self.id} {self.serial_number}:{self.user_id} {self.association_status.value}>"
