"""Historique des transitions d'association / Association transition log."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from device_association.database import Base


class AssociationAudit(Base):
    """Une ligne par transition / One row per transition."""
    __tablename__ = "association_audit"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    association_id: Mapped[int] = mapped_column(ForeignKey("device_associations.id"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(30), nullable=False)  # ASSOCIATE, ACTIVATE, TERMINATE, ...
    acting_user: Mapped[str | None] = mapped_column(String(100))
    changes: Mapped[str | None] = mapped_column(Text)  # JSON
    recorded_on: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<AssociationAudit {self.action} association:{self.association_id}>"
