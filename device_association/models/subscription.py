"""Modeles Abonnement vehicule / Vehicle subscription models."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from device_association.database import Base


class SimAction(str, enum.Enum):
    """Action SIM demandee / Requested SIM action."""
    ACTIVATE = "ACTIVATE"
    TERMINATE = "TERMINATE"


class SimTransactionStatus(str, enum.Enum):
    """Statut de transaction SIM / SIM transaction status."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class VinDetails(Base):
    """Lien association-VIN / Association-VIN link."""
    __tablename__ = "vin_details"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    association_id: Mapped[int] = mapped_column(ForeignKey("device_associations.id"), nullable=False, index=True)
    vin: Mapped[str] = mapped_column(String(32), nullable=False)
    region: Mapped[str | None] = mapped_column(String(20))


class SimTransaction(Base):
    __tablename__ = "sim_transactions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    association_id: Mapped[int] = mapped_column(ForeignKey("device_associations.id"), nullable=False, index=True)
    user_action: Mapped[SimAction] = mapped_column(Enum(SimAction), nullable=False)
    tran_status: Mapped[SimTransactionStatus] = mapped_column(Enum(SimTransactionStatus), nullable=False)
    created_on: Mapped[datetime | None] = mapped_column(DateTime)
