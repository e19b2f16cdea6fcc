"""Modele Donnees usine / Factory data (device identity) model."""

import enum

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from device_association.database import Base


class DeviceState(str, enum.Enum):
    """Etat de cycle de vie usine / Manufacturing lifecycle state."""
    PROVISIONED = "PROVISIONED"
    PROVISIONED_ALIVE = "PROVISIONED_ALIVE"
    READY_TO_ACTIVATE = "READY_TO_ACTIVATE"
    ACTIVE = "ACTIVE"
    STOLEN = "STOLEN"
    FAULTY = "FAULTY"
    DUMMY = "DUMMY"  # cible des lignes anonymisees / target of anonymised rows


PROVISIONED_STATES = (DeviceState.PROVISIONED, DeviceState.PROVISIONED_ALIVE)


class DeviceIdentity(Base):
    __tablename__ = "device_identities"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    serial_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    imei: Mapped[str | None] = mapped_column(String(32), index=True)
    bssid: Mapped[str | None] = mapped_column(String(32))
    iccid: Mapped[str | None] = mapped_column(String(32))
    imsi: Mapped[str | None] = mapped_column(String(32))
    msisdn: Mapped[str | None] = mapped_column(String(32))
    ssid: Mapped[str | None] = mapped_column(String(64))
    state: Mapped[DeviceState] = mapped_column(Enum(DeviceState), nullable=False, default=DeviceState.PROVISIONED)

    def __repr__(self) -> str:
        return f"<DeviceIdentity {self.serial_number} {self.state.value}>"
