"""
Dependances d'identite et de services / Identity and service dependencies.
L'identite vient de la passerelle : header user-id, scopes dans header scope.
Identity comes from the gateway: user-id header, scopes in the scope header.
"""

from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status

from device_association.adapters.identity_registration import HttpIdentityRegistry, IdentityRegistrationAdapter
from device_association.adapters.notification import HttpNotificationCenter, NotificationAdapter
from device_association.adapters.vehicle_registry import (
    DeviceMessenger,
    HttpDeviceMessenger,
    HttpVehicleRegistry,
    VehicleRegistryAdapter,
)
from device_association.database import async_session
from device_association.errors import ErrorCode, ValidationFailed
from device_association.services.association_store import AssociationStore
from device_association.services.lifecycle import AssociationLifecycleEngine
from device_association.services.policy import AssociationPolicy
from device_association.services.replacement import ReplacementSaga
from device_association.services.wipe import WipeDataOrchestrator

ADMIN_SCOPE = "AssociationAdmin"


async def get_user_id(user_id: str | None = Header(None, alias="user-id")) -> str:
    """Utilisateur appelant / Calling user."""
    if not user_id or not user_id.strip():
        raise ValidationFailed(ErrorCode.USER_ID_MANDATORY)
    return user_id.strip()


def require_scope(required: str):
    """Factory de dependance qui verifie un scope / Dependency factory that checks a scope."""

    async def _check(
        user_id: str = Depends(get_user_id),
        scope: str | None = Header(None, alias="scope"),
    ) -> str:
        scopes = {s.strip() for s in (scope or "").split(",") if s.strip()}
        if required not in scopes:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Scope required: {required}")
        return user_id

    return _check


require_admin = require_scope(ADMIN_SCOPE)


# ─── Services ───

@lru_cache
def get_store() -> AssociationStore:
    """Magasin unique : porte les verrous par appareil / Single store: holds the per-device locks."""
    return AssociationStore(async_session)


def get_policy() -> AssociationPolicy:
    return AssociationPolicy.from_settings()


def get_identity_registry() -> IdentityRegistrationAdapter:
    return HttpIdentityRegistry()


def get_notifier() -> NotificationAdapter:
    return HttpNotificationCenter()


def get_vehicle_registry() -> VehicleRegistryAdapter:
    return HttpVehicleRegistry()


def get_device_messenger() -> DeviceMessenger:
    return HttpDeviceMessenger()


def get_engine(
    store: AssociationStore = Depends(get_store),
    identity: IdentityRegistrationAdapter = Depends(get_identity_registry),
    notifier: NotificationAdapter = Depends(get_notifier),
    policy: AssociationPolicy = Depends(get_policy),
) -> AssociationLifecycleEngine:
    return AssociationLifecycleEngine(store, identity, notifier, policy)


def get_replacement_saga(
    store: AssociationStore = Depends(get_store),
    identity: IdentityRegistrationAdapter = Depends(get_identity_registry),
    vehicles: VehicleRegistryAdapter = Depends(get_vehicle_registry),
    messenger: DeviceMessenger = Depends(get_device_messenger),
    policy: AssociationPolicy = Depends(get_policy),
) -> ReplacementSaga:
    return ReplacementSaga(store, identity, vehicles, messenger, policy)


def get_wipe_orchestrator(engine: AssociationLifecycleEngine = Depends(get_engine)) -> WipeDataOrchestrator:
    return WipeDataOrchestrator(engine)
