"""
Resolution proprietaire / delegue / Owner vs. delegate resolution.
Decide qui peut dissocier, qui peut modifier une delegation et si la
terminaison doit revoquer les credentials.
Decides who may disassociate, who may edit a delegation and whether
termination must revoke credentials.
"""

import enum
from datetime import datetime

from device_association.errors import DataIntegrityFault, ErrorCode, PreconditionFailed, ValidationFailed
from device_association.models.association import DeviceAssociation
from device_association.services.policy import AssociationPolicy
from device_association.utils.clock import to_naive_utc, utcnow


class Role(str, enum.Enum):
    """Role d'un utilisateur sur un appareil / User role on a device."""
    OWNER = "OWNER"
    DELEGATE = "DELEGATE"
    NONE = "NONE"


class OwnershipResolver:
    def __init__(self, policy: AssociationPolicy):
        self.policy = policy

    def is_owner_type(self, association: DeviceAssociation | str) -> bool:
        if not self.policy.many_to_many:
            return True
        kind = association if isinstance(association, str) else association.association_type
        return kind == self.policy.owner_type

    def role_of(self, device_rows: list[DeviceAssociation], user_id: str) -> Role:
        """Role de l'utilisateur parmi les lignes vivantes / User role among the live rows."""
        mine = [r for r in device_rows if r.user_id == user_id and r.is_live]
        if any(self.is_owner_type(r) for r in mine):
            return Role.OWNER
        return Role.DELEGATE if mine else Role.NONE

    def owner_row(self, device_rows: list[DeviceAssociation]) -> DeviceAssociation | None:
        """Ligne proprietaire unique ou None / The single owner row or None."""
        owners = [r for r in device_rows if r.is_live and self.is_owner_type(r)]
        if len(owners) > 1:
            raise DataIntegrityFault(ErrorCode.ASSO_INTEGRITY_ERROR, {"association_ids": [r.id for r in owners]})
        return owners[0] if owners else None

    def requires_credential_cascade(self, association: DeviceAssociation) -> bool:
        return self.is_owner_type(association)

    def ensure_can_disassociate(
        self, target: DeviceAssociation, acting_user: str, device_rows: list[DeviceAssociation]
    ) -> None:
        if target.user_id == acting_user:
            return
        if self.role_of(device_rows, acting_user) is not Role.OWNER:
            raise PreconditionFailed(ErrorCode.OWNER_TERMINATION_VALIDATION_FAILED)

    def ensure_can_edit_delegate(
        self, target: DeviceAssociation, acting_user: str, device_rows: list[DeviceAssociation]
    ) -> None:
        if self.is_owner_type(target):
            raise ValidationFailed(ErrorCode.ASSOC_TYPE_VALIDATION_FAILURE)
        if self.role_of(device_rows, acting_user) is not Role.OWNER:
            raise PreconditionFailed(ErrorCode.USER_NOT_OWNER_OF_DEVICE)

    def validate_delegation_type(self, association_type: str) -> None:
        if not self.policy.many_to_many or association_type == self.policy.owner_type:
            raise ValidationFailed(ErrorCode.DELEGATION_TYPE_NOT_ALLOWED)

    def validate_window(
        self, start: datetime | None, end: datetime | None
    ) -> tuple[datetime, datetime | None]:
        """Fenetre de delegation ; debut par defaut = maintenant / Delegation window; start defaults to now."""
        start = to_naive_utc(start) or utcnow()
        end = to_naive_utc(end)
        self.check_window(start, end)
        return start, end

    @staticmethod
    def check_window(start: datetime | None, end: datetime | None) -> None:
        if start is not None and end is not None and start >= end:
            raise ValidationFailed(ErrorCode.START_END_TIME_INVALID)
