"""Politique d'association / Association policy."""

from dataclasses import dataclass

from device_association.config import Settings, settings


@dataclass(frozen=True)
class AssociationPolicy:
    """Interrupteurs de comportement du moteur / Engine behaviour switches.

    many_to_many=False : chaque ligne se comporte comme proprietaire.
    many_to_many=False: every row behaves as owner.
    """
    owner_type: str = "OWNER"
    many_to_many: bool = True
    forbid_after_terminate: bool = False
    subscription_check: bool = False
    move_current_to_provisioned: bool = True
    send_reset_device: bool = False
    vehicle_profile_update: bool = False
    device_type: str = "dongle"

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "AssociationPolicy":
        s = source or settings
        return cls(
            owner_type=s.OWNER_ASSOCIATION_TYPE,
            many_to_many=s.MANY_TO_MANY_ENABLED,
            forbid_after_terminate=s.FORBID_ASSOC_AFTER_TERMINATE,
            subscription_check=s.SUBSCRIPTION_CHECK_ENABLED,
            move_current_to_provisioned=s.MOVE_CURRENT_DEVICE_TO_PROVISIONED,
            send_reset_device=s.SEND_RESET_DEVICE,
            vehicle_profile_update=s.VEHICLE_PROFILE_UPDATE_ENABLED,
            device_type=s.DEVICE_TYPE,
        )
