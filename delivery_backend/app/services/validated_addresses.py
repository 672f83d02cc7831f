"""
Durable cache of address coverage resolutions.

One row per external address, upserted on every validation. Revalidation
recomputes a filtered set of rows after zone data changes.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from delivery_backend.app.core.constants import ONE_CENT
from delivery_backend.app.core.exceptions import NotFoundError
from delivery_backend.app.core.geo import validate_coordinate
from delivery_backend.app.core.logging import get_logger
from delivery_backend.app.core.metrics import address_revalidations_total
from delivery_backend.app.core.settings import get_settings
from delivery_backend.app.models.validated_address import ValidatedAddress
from delivery_backend.app.services.shipping_quote import ShippingQuote, ShippingQuoteService

logger = get_logger(__name__)

UNCOVERED_NOTE = "Address is outside every active delivery zone"


class ValidatedAddressNotFoundError(NotFoundError):
    def __init__(self, address_id: int):
        self.address_id = address_id
        super().__init__(f"Address {address_id} has not been validated")


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class ValidatedAddressFilter:
    zone_id: Optional[int] = None
    in_coverage: Optional[bool] = None
    validated_from: Optional[datetime] = None
    validated_to: Optional[datetime] = None
    limit: int = 100
    offset: int = 0


@dataclass
class RevalidationFilter:
    """Selects previously validated addresses. Empty filter selects all of them."""
    address_ids: Optional[Sequence[int]] = None
    zone_id: Optional[int] = None
    in_coverage: Optional[bool] = None
    validated_before: Optional[datetime] = None


@dataclass
class RevalidationReport:
    succeeded: List[int] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)


class ValidatedAddressStore:
    def __init__(
        self,
        session: AsyncSession,
        session_factory: Optional[async_sessionmaker] = None,
        clock: Callable[[], datetime] = utc_now,
        quote_service: Optional[ShippingQuoteService] = None,
    ):
        self.session = session
        self.session_factory = session_factory
        self.clock = clock
        self.quotes = quote_service or ShippingQuoteService(session)

    async def _get_row(self, address_id: int) -> Optional[ValidatedAddress]:
        result = await self.session.execute(
            select(ValidatedAddress).where(ValidatedAddress.address_id == address_id)
        )
        return result.scalar_one_or_none()

    async def validate(
        self,
        address_id: int,
        coord: Sequence[Any],
        district_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> ValidatedAddress:
        """
        Resolve coverage, cost and ETA for an address and upsert its row.

        The quote runs with no order context and no schedule so the stored
        result does not depend on the moment of validation; only
        `last_validated_at` changes between identical calls.
        """
        point = validate_coordinate(*coord)
        quote = await self.quotes.quote(point.lat, point.lng, district_id=district_id)

        row = await self._get_row(address_id)
        if row is None:
            row = ValidatedAddress(address_id=address_id)
            self.session.add(row)

        row.lat = point.lat
        row.lng = point.lng
        row.district_id = district_id
        self._apply_quote(row, quote)
        row.validation_note = note if note is not None else (None if quote.in_coverage else UNCOVERED_NOTE)
        row.last_validated_at = self.clock()

        await self.session.flush()
        logger.info(
            "address_validated",
            address_id=address_id,
            zone_id=row.zone_id,
            in_coverage=row.in_coverage,
        )
        return row

    @staticmethod
    def _apply_quote(row: ValidatedAddress, quote: ShippingQuote) -> None:
        row.in_coverage = quote.in_coverage
        if not quote.in_coverage:
            row.zone_id = None
            row.distance_km = None
            row.shipping_cost = None
            row.eta_minutes = None
            return
        row.zone_id = quote.zone_id
        row.distance_km = round(quote.distance_km, 2)
        row.shipping_cost = quote.final_cost.quantize(ONE_CENT)
        row.eta_minutes = quote.eta_minutes

    async def get(self, address_id: int) -> ValidatedAddress:
        row = await self._get_row(address_id)
        if row is None:
            raise ValidatedAddressNotFoundError(address_id)
        return row

    async def list(self, filters: Optional[ValidatedAddressFilter] = None) -> List[ValidatedAddress]:
        filters = filters or ValidatedAddressFilter()
        query = select(ValidatedAddress)
        if filters.zone_id is not None:
            query = query.where(ValidatedAddress.zone_id == filters.zone_id)
        if filters.in_coverage is not None:
            query = query.where(ValidatedAddress.in_coverage == filters.in_coverage)
        if filters.validated_from is not None:
            query = query.where(ValidatedAddress.last_validated_at >= filters.validated_from)
        if filters.validated_to is not None:
            query = query.where(ValidatedAddress.last_validated_at <= filters.validated_to)
        query = query.order_by(ValidatedAddress.address_id).offset(filters.offset).limit(filters.limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def revalidate_batch(
        self,
        filters: Optional[RevalidationFilter] = None,
        concurrency: Optional[int] = None,
    ) -> RevalidationReport:
        """
        Re-run validation for every address selected by `filters`.

        With a session factory each address runs in its own session and
        transaction, at most `concurrency` at a time. Without one, addresses
        run one by one on this store's session and the caller commits.
        A failing address is reported in `failed`; the rest still run.
        """
        filters = filters or RevalidationFilter()
        query = select(
            ValidatedAddress.address_id,
            ValidatedAddress.lat,
            ValidatedAddress.lng,
            ValidatedAddress.district_id,
        )
        if filters.address_ids:
            query = query.where(ValidatedAddress.address_id.in_(list(filters.address_ids)))
        if filters.zone_id is not None:
            query = query.where(ValidatedAddress.zone_id == filters.zone_id)
        if filters.in_coverage is not None:
            query = query.where(ValidatedAddress.in_coverage == filters.in_coverage)
        if filters.validated_before is not None:
            query = query.where(ValidatedAddress.last_validated_at < filters.validated_before)
        targets = (await self.session.execute(query.order_by(ValidatedAddress.address_id))).all()

        if self.session_factory is None:
            limit = 1
        else:
            limit = max(1, concurrency or get_settings().REVALIDATION_CONCURRENCY)
        semaphore = asyncio.Semaphore(limit)
        report = RevalidationReport()

        async def revalidate_one(target) -> None:
            async with semaphore:
                try:
                    await self._revalidate(target.address_id, (target.lat, target.lng), target.district_id)
                except Exception as e:
                    logger.warning("address_revalidation_failed", address_id=target.address_id, error=str(e))
                    address_revalidations_total.labels(status="failed").inc()
                    report.failed.append({"address_id": target.address_id, "error": str(e)})
                else:
                    address_revalidations_total.labels(status="ok").inc()
                    report.succeeded.append(target.address_id)

        await asyncio.gather(*(revalidate_one(t) for t in targets))

        report.succeeded.sort()
        report.failed.sort(key=lambda f: f["address_id"])
        logger.info(
            "revalidation_finished",
            selected=len(targets),
            succeeded=len(report.succeeded),
            failed=len(report.failed),
        )
        return report

    async def _revalidate(self, address_id: int, coord, district_id: Optional[int]) -> None:
        if self.session_factory is None:
            await self.validate(address_id, coord, district_id)
            return

        async with self.session_factory() as session:
            store = ValidatedAddressStore(session, clock=self.clock, quote_service=self.quotes.bind(session))
            try:
                await store.validate(address_id, coord, district_id)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def statistics(self) -> Dict[str, Any]:
        totals = await self.session.execute(
            select(
                func.count(ValidatedAddress.id),
                func.count(ValidatedAddress.id).filter(ValidatedAddress.in_coverage == True),
                func.avg(ValidatedAddress.shipping_cost),
                func.avg(ValidatedAddress.distance_km),
                func.avg(ValidatedAddress.eta_minutes),
            )
        )
        total, covered, avg_cost, avg_distance, avg_eta = totals.one()

        per_zone = await self.session.execute(
            select(ValidatedAddress.zone_id, func.count(ValidatedAddress.id))
            .where(ValidatedAddress.zone_id.is_not(None))
            .group_by(ValidatedAddress.zone_id)
            .order_by(ValidatedAddress.zone_id)
        )

        return {
            "total": total or 0,
            "in_coverage": covered or 0,
            "out_of_coverage": (total or 0) - (covered or 0),
            "average_cost": round(float(avg_cost), 2) if avg_cost is not None else None,
            "average_distance_km": round(float(avg_distance), 2) if avg_distance is not None else None,
            "average_eta_minutes": round(float(avg_eta), 1) if avg_eta is not None else None,
            "by_zone": [{"zone_id": zone_id, "count": count} for zone_id, count in per_zone.all()],
        }
