"""Modele Type d'association autorise / Allowed association type model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from device_association.database import Base


class AssociationType(Base):
    __tablename__ = "association_types"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(String(200))
