"""Address coverage validation (admin-token protected)."""
import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from delivery_backend.app.api.deps import get_session, get_session_factory, handle_service_error
from delivery_backend.app.core.exceptions import ServiceError
from delivery_backend.app.core.logging import bind_request_context, clear_request_context, get_logger
from delivery_backend.app.schemas import (
    RevalidateRequest,
    RevalidationResponse,
    ValidateAddressRequest,
    ValidatedAddressResponse,
)
from delivery_backend.app.services.validated_addresses import (
    RevalidationFilter,
    ValidatedAddressFilter,
    ValidatedAddressStore,
)

router = APIRouter()
logger = get_logger(__name__)


@router.post("/validate", response_model=ValidatedAddressResponse)
async def validate_address(
    data: ValidateAddressRequest,
    session: AsyncSession = Depends(get_session),
):
    """Resolve and store coverage, cost and ETA of an address. Uncovered addresses are stored too."""
    bind_request_context(address_id=data.address_id)
    try:
        row = await ValidatedAddressStore(session).validate(
            data.address_id, (data.lat, data.lng), district_id=data.district_id, note=data.note
        )
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        handle_service_error(e)
    finally:
        clear_request_context()
    return row


@router.post("/revalidate", response_model=RevalidationResponse)
async def revalidate_addresses(
    data: RevalidateRequest,
    session: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Recompute stored addresses after zone changes; failures are reported per address."""
    store = ValidatedAddressStore(session, session_factory=session_factory)
    report = await store.revalidate_batch(RevalidationFilter(**data.model_dump()))
    return RevalidationResponse(succeeded=report.succeeded, failed=report.failed)


@router.get("/statistics")
async def address_statistics(session: AsyncSession = Depends(get_session)):
    return await ValidatedAddressStore(session).statistics()


@router.get("", response_model=List[ValidatedAddressResponse])
async def list_addresses(
    zone_id: Optional[int] = Query(None),
    in_coverage: Optional[bool] = Query(None),
    validated_from: Optional[datetime.datetime] = Query(None),
    validated_to: Optional[datetime.datetime] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    filters = ValidatedAddressFilter(
        zone_id=zone_id,
        in_coverage=in_coverage,
        validated_from=validated_from,
        validated_to=validated_to,
        limit=limit,
        offset=offset,
    )
    return await ValidatedAddressStore(session).list(filters)


@router.get("/{address_id}", response_model=ValidatedAddressResponse)
async def get_address(address_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await ValidatedAddressStore(session).get(address_id)
    except ServiceError as e:
        handle_service_error(e)
