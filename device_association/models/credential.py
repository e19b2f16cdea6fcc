"""Modele Enregistrement credential / Credential registration model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from device_association.database import Base


class DeviceCredential(Base):
    """Credential reseau d'un appareil, miroir du registre d'identite /
    Device network credential, mirror of the identity registry record.
    """
    __tablename__ = "device_credentials"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    factory_id: Mapped[int | None] = mapped_column(ForeignKey("device_identities.id"))
    serial_number: Mapped[str] = mapped_column(String(64), nullable=False)
    passcode: Mapped[str] = mapped_column(String(128), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_on: Mapped[datetime | None] = mapped_column(DateTime)
