"""
Modèles SQLAlchemy / SQLAlchemy models.
Importer tous les modèles ici pour enregistrer les tables.
Import all models here so their tables are registered.
"""

from device_association.models.device_identity import DeviceIdentity, DeviceState
from device_association.models.association import AssociationStatus, DeviceAssociation
from device_association.models.activation import DeviceActivationState
from device_association.models.credential import DeviceCredential
from device_association.models.association_type import AssociationType
from device_association.models.subscription import SimAction, SimTransaction, SimTransactionStatus, VinDetails
from device_association.models.audit import AssociationAudit

__all__ = [
    "DeviceIdentity",
    "DeviceState",
    "AssociationStatus",
    "DeviceAssociation",
    "DeviceActivationState",
    "DeviceCredential",
    "AssociationType",
    "SimAction",
    "SimTransaction",
    "SimTransactionStatus",
    "VinDetails",
    "AssociationAudit",
]
