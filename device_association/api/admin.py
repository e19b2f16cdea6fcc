"""Routes administrateur / Admin association routes.

Requiert le scope AssociationAdmin / Requires the AssociationAdmin scope.
"""

from fastapi import APIRouter, Depends, Request

from device_association.api.deps import get_engine, require_admin
from device_association.config import settings
from device_association.rate_limit import limiter
from device_association.schemas.association import (
    AdminAssociateRequest,
    AssociationResult,
    DelegateRequest,
    DeviceSelector,
)
from device_association.services.lifecycle import AssociationLifecycleEngine

router = APIRouter()


@router.post("/", response_model=AssociationResult, status_code=201)
@limiter.limit(settings.RATE_LIMIT_ASSOCIATE)
async def associate_for_user(
    request: Request,
    data: AdminAssociateRequest,
    admin_id: str = Depends(require_admin),
    engine: AssociationLifecycleEngine = Depends(get_engine),
):
    """Associer pour le compte d'un utilisateur / Associate on behalf of a user."""
    return await engine.associate(data, data.user_id, acting_user=admin_id)


@router.post("/terminate", response_model=AssociationResult)
async def terminate_for_user(
    data: DeviceSelector,
    admin_id: str = Depends(require_admin),
    engine: AssociationLifecycleEngine = Depends(get_engine),
):
    return await engine.terminate(data, admin_id, is_admin=True)


@router.post("/delegate", response_model=AssociationResult, status_code=201)
async def delegate_for_owner(
    data: DelegateRequest,
    admin_id: str = Depends(require_admin),
    engine: AssociationLifecycleEngine = Depends(get_engine),
):
    """owner_user_id obligatoire / owner_user_id is mandatory."""
    return await engine.delegate(data, admin_id, is_admin=True)
