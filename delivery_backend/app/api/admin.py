"""
Admin endpoints for zones and their rules (tiers, weekly schedule, date
exceptions, district assignments). Mounted with require_admin_token.

Handlers commit on success and roll back on any service error; every write
drops the cached public zone data.
"""
import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.api.deps import get_cache, get_session, handle_service_error
from delivery_backend.app.core.exceptions import ServiceError
from delivery_backend.app.core.logging import get_logger
from delivery_backend.app.schemas import (
    AssignmentCreate,
    AssignmentResponse,
    AssignmentUpdate,
    ExceptionCreate,
    ExceptionResponse,
    ExceptionType,
    ExceptionUpdate,
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
    TierCreate,
    TierResponse,
    TierUpdate,
    ZoneCreate,
    ZoneResponse,
    ZoneUpdate,
)
from delivery_backend.app.services.cache import CacheService
from delivery_backend.app.services.zone_admin import ZoneAdminService

router = APIRouter()
logger = get_logger(__name__)


async def _commit(session: AsyncSession, cache: CacheService, zone_id: Optional[int] = None):
    await session.commit()
    await cache.invalidate_zones(zone_id)


# ── Zones ───────────────────────────────────────────────────────

@router.get("/zones", response_model=List[ZoneResponse])
async def list_zones(
    include_inactive: bool = Query(True),
    session: AsyncSession = Depends(get_session),
):
    return await ZoneAdminService(session).list_zones(include_inactive=include_inactive)


@router.post("/zones", response_model=ZoneResponse, status_code=201)
async def create_zone(
    data: ZoneCreate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        zone = await ZoneAdminService(session).create_zone(data.model_dump())
        await _commit(session, cache)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return zone


@router.get("/zones/{zone_id}", response_model=ZoneResponse)
async def get_zone(zone_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await ZoneAdminService(session).get_zone(zone_id)
    except ServiceError as e:
        handle_service_error(e)


@router.put("/zones/{zone_id}", response_model=ZoneResponse)
async def update_zone(
    zone_id: int,
    data: ZoneUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        zone = await ZoneAdminService(session).update_zone(zone_id, data.model_dump(exclude_unset=True))
        await _commit(session, cache, zone_id)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return zone


@router.post("/zones/{zone_id}/toggle-status", response_model=ZoneResponse)
async def toggle_zone_status(
    zone_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Activate / deactivate a zone. Zones are never hard-deleted."""
    try:
        zone = await ZoneAdminService(session).toggle_status(zone_id)
        await _commit(session, cache, zone_id)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return zone


# ── Cost tiers ──────────────────────────────────────────────────

@router.get("/zones/{zone_id}/tiers", response_model=List[TierResponse])
async def list_tiers(zone_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await ZoneAdminService(session).list_tiers(zone_id)
    except ServiceError as e:
        handle_service_error(e)


@router.post("/zones/{zone_id}/tiers", response_model=TierResponse, status_code=201)
async def create_tier(
    zone_id: int,
    data: TierCreate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        tier = await ZoneAdminService(session).create_tier(zone_id, data.model_dump())
        await _commit(session, cache, zone_id)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return tier


@router.put("/tiers/{tier_id}", response_model=TierResponse)
async def update_tier(
    tier_id: int,
    data: TierUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        tier = await ZoneAdminService(session).update_tier(tier_id, data.model_dump(exclude_unset=True))
        await _commit(session, cache, tier.zone_id)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return tier


@router.delete("/tiers/{tier_id}")
async def delete_tier(
    tier_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        await ZoneAdminService(session).delete_tier(tier_id)
        await _commit(session, cache)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return {"status": "ok"}


# ── Weekly schedules ────────────────────────────────────────────

@router.get("/zones/{zone_id}/schedules", response_model=List[ScheduleResponse])
async def list_schedules(zone_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await ZoneAdminService(session).list_schedules(zone_id)
    except ServiceError as e:
        handle_service_error(e)


@router.post("/zones/{zone_id}/schedules", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    zone_id: int,
    data: ScheduleCreate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        schedule = await ZoneAdminService(session).create_schedule(zone_id, data.model_dump())
        await _commit(session, cache, zone_id)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return schedule


@router.put("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: int,
    data: ScheduleUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        schedule = await ZoneAdminService(session).update_schedule(schedule_id, data.model_dump(exclude_unset=True))
        await _commit(session, cache, schedule.zone_id)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return schedule


@router.delete("/schedules/{schedule_id}")
async def delete_schedule(
    schedule_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        await ZoneAdminService(session).delete_schedule(schedule_id)
        await _commit(session, cache)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return {"status": "ok"}


# ── Date exceptions ─────────────────────────────────────────────

@router.get("/zones/{zone_id}/exceptions", response_model=List[ExceptionResponse])
async def list_exceptions(
    zone_id: int,
    type: Optional[ExceptionType] = Query(None),
    date_from: Optional[datetime.date] = Query(None),
    date_to: Optional[datetime.date] = Query(None),
    active_only: bool = Query(False),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await ZoneAdminService(session).list_exceptions(
            zone_id, type_=type, date_from=date_from, date_to=date_to, active_only=active_only
        )
    except ServiceError as e:
        handle_service_error(e)


@router.post("/zones/{zone_id}/exceptions", response_model=ExceptionResponse, status_code=201)
async def create_exception(
    zone_id: int,
    data: ExceptionCreate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        exception = await ZoneAdminService(session).create_exception(zone_id, data.model_dump())
        await _commit(session, cache, zone_id)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return exception


@router.put("/exceptions/{exception_id}", response_model=ExceptionResponse)
async def update_exception(
    exception_id: int,
    data: ExceptionUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        exception = await ZoneAdminService(session).update_exception(
            exception_id, data.model_dump(exclude_unset=True)
        )
        await _commit(session, cache, exception.zone_id)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return exception


@router.delete("/exceptions/{exception_id}")
async def delete_exception(
    exception_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        await ZoneAdminService(session).delete_exception(exception_id)
        await _commit(session, cache)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return {"status": "ok"}


# ── District assignments ────────────────────────────────────────

@router.get("/assignments", response_model=List[AssignmentResponse])
async def list_assignments(
    zone_id: Optional[int] = Query(None),
    district_id: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    return await ZoneAdminService(session).list_assignments(zone_id=zone_id, district_id=district_id)


@router.post("/zones/{zone_id}/assignments", response_model=AssignmentResponse, status_code=201)
async def create_assignment(
    zone_id: int,
    data: AssignmentCreate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        assignment = await ZoneAdminService(session).create_assignment(zone_id, data.model_dump())
        await _commit(session, cache, zone_id)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return assignment


@router.put("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(
    assignment_id: int,
    data: AssignmentUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        assignment = await ZoneAdminService(session).update_assignment(
            assignment_id, data.model_dump(exclude_unset=True)
        )
        await _commit(session, cache, assignment.zone_id)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return assignment


@router.delete("/assignments/{assignment_id}")
async def delete_assignment(
    assignment_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        await ZoneAdminService(session).delete_assignment(assignment_id)
        await _commit(session, cache)
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    return {"status": "ok"}
