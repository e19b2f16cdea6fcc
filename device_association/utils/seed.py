"""
Seed du referentiel / Reference data seeding.
Cree les types d'association autorises et l'identite DUMMY au premier demarrage.
Creates the allowed association types and the DUMMY identity on first startup.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from device_association.config import settings
from device_association.models.association_type import AssociationType
from device_association.models.device_identity import DeviceIdentity, DeviceState

log = logging.getLogger(__name__)

DUMMY_SERIAL_NUMBER = "DUMMY"


async def seed_reference_data(session: AsyncSession) -> None:
    """Creer le referentiel manquant / Create missing reference data."""
    wanted = [settings.OWNER_ASSOCIATION_TYPE] + [
        t for t in settings.ASSOCIATION_TYPES if t != settings.OWNER_ASSOCIATION_TYPE
    ]
    result = await session.execute(select(AssociationType.name))
    existing = set(result.scalars().all())
    missing = [name for name in wanted if name not in existing]
    for name in missing:
        session.add(AssociationType(name=name))

    result = await session.execute(select(DeviceIdentity.id).where(DeviceIdentity.state == DeviceState.DUMMY))
    if result.first() is None:
        session.add(DeviceIdentity(serial_number=DUMMY_SERIAL_NUMBER, state=DeviceState.DUMMY))
        log.info("DUMMY device identity created")

    await session.commit()
    if missing:
        log.info("Association types seeded: %s", ", ".join(missing))
    else:
        log.info("%d association type(s) already present, seed skipped", len(existing))
