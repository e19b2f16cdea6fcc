"""Modele Etat d'activation / Device activation state model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from device_association.database import Base


class DeviceActivationState(Base):
    """Enregistrement pret-a-activer d'un appareil / Activation-ready record of a device."""
    __tablename__ = "device_activation_states"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    factory_id: Mapped[int | None] = mapped_column(ForeignKey("device_identities.id"))
    serial_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    activation_initiated_by: Mapped[str | None] = mapped_column(String(100))
    activation_initiated_on: Mapped[datetime | None] = mapped_column(DateTime)
    deactivation_initiated_by: Mapped[str | None] = mapped_column(String(100))
    deactivation_initiated_on: Mapped[datetime | None] = mapped_column(DateTime)
    activation_ready: Mapped[bool] = mapped_column(Boolean, default=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
