"""Routes associations / Association routes (self-service)."""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from device_association.api.deps import (
    get_engine,
    get_replacement_saga,
    get_user_id,
    get_wipe_orchestrator,
)
from device_association.config import settings
from device_association.database import get_db
from device_association.rate_limit import limiter
from device_association.schemas.association import (
    AssociationHistoryPage,
    AssociationRead,
    AssociationResult,
    AssociationTypeUsage,
    AssociationUpdateRequest,
    DelegateRequest,
    DeviceSelector,
    ReplaceRequest,
    SerialAssociation,
    WipeRequest,
    WipeResult,
)
from device_association.services.association_query import AssociationQueryService
from device_association.services.lifecycle import AssociationLifecycleEngine
from device_association.services.replacement import ReplacementSaga
from device_association.services.wipe import WipeDataOrchestrator

router = APIRouter()


@router.post("/", response_model=AssociationResult, status_code=201)
@limiter.limit(settings.RATE_LIMIT_ASSOCIATE)
async def associate(
    request: Request,
    data: DeviceSelector,
    user_id: str = Depends(get_user_id),
    engine: AssociationLifecycleEngine = Depends(get_engine),
):
    """Associer un appareil a l'utilisateur / Associate a device with the user."""
    return await engine.associate(data, user_id)


@router.post("/devices/{serial_number}/activate", response_model=AssociationResult)
async def activate(
    serial_number: str,
    user_id: str = Depends(get_user_id),
    engine: AssociationLifecycleEngine = Depends(get_engine),
):
    return await engine.activate(serial_number, user_id)


@router.post("/terminate", response_model=AssociationResult)
async def terminate(
    data: DeviceSelector,
    user_id: str = Depends(get_user_id),
    engine: AssociationLifecycleEngine = Depends(get_engine),
):
    """Dissocier / Terminate an association."""
    return await engine.terminate(data, user_id)


@router.post("/suspend", response_model=AssociationResult)
async def suspend(
    data: DeviceSelector,
    user_id: str = Depends(get_user_id),
    engine: AssociationLifecycleEngine = Depends(get_engine),
):
    return await engine.suspend(data, user_id)


@router.post("/restore", response_model=AssociationResult)
async def restore(
    data: DeviceSelector,
    user_id: str = Depends(get_user_id),
    engine: AssociationLifecycleEngine = Depends(get_engine),
):
    return await engine.restore(data, user_id)


@router.post("/delegate", response_model=AssociationResult, status_code=201)
async def delegate(
    data: DelegateRequest,
    user_id: str = Depends(get_user_id),
    engine: AssociationLifecycleEngine = Depends(get_engine),
):
    """Deleguer l'acces a un autre utilisateur / Delegate access to another user."""
    return await engine.delegate(data, user_id)


@router.post("/replace", response_model=AssociationResult)
@limiter.limit(settings.RATE_LIMIT_DEFAULT)
async def replace(
    request: Request,
    data: ReplaceRequest,
    user_id: str = Depends(get_user_id),
    saga: ReplacementSaga = Depends(get_replacement_saga),
):
    """Remplacer un appareil defectueux / Replace a faulty device."""
    return await saga.replace(data, user_id)


@router.post("/wipe-data", response_model=WipeResult)
@limiter.limit(settings.RATE_LIMIT_DEFAULT)
async def wipe_data(
    request: Request,
    data: WipeRequest,
    user_id: str = Depends(get_user_id),
    orchestrator: WipeDataOrchestrator = Depends(get_wipe_orchestrator),
):
    device_ids = await orchestrator.wipe(user_id, data.serial_numbers)
    return WipeResult(device_ids=device_ids)


# ─── Lecture / Read ───

@router.get("/", response_model=list[AssociationRead])
async def list_associations(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Associations vivantes de l'utilisateur / Live associations of the user."""
    return await AssociationQueryService(db).list_for_user(user_id)


@router.get("/history", response_model=AssociationHistoryPage)
async def association_history(
    imei: str,
    sort_by: str = "associated_on",
    order: str = "desc",
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=200),
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await AssociationQueryService(db).history(imei, sort_by, order, page, size)


@router.get("/types", response_model=list[str])
async def association_types(db: AsyncSession = Depends(get_db)):
    return await AssociationQueryService(db).association_types()


@router.get("/types/usage", response_model=list[AssociationTypeUsage])
async def association_type_usage(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await AssociationQueryService(db).type_usage()


@router.get("/serial/{serial_number}", response_model=SerialAssociation)
async def serial_association(
    serial_number: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await AssociationQueryService(db).is_associated(serial_number)


@router.get("/{association_id}", response_model=AssociationRead)
async def association_details(
    association_id: int,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await AssociationQueryService(db).details(association_id, user_id)


@router.patch("/{association_id}", response_model=AssociationResult)
async def update_association(
    association_id: int,
    data: AssociationUpdateRequest,
    user_id: str = Depends(get_user_id),
    engine: AssociationLifecycleEngine = Depends(get_engine),
):
    """Modifier une delegation (proprietaire uniquement) / Update a delegation (owner only)."""
    return await engine.update_association(association_id, user_id, data)
