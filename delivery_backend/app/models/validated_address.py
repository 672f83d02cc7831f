from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DECIMAL, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from delivery_backend.app.core.base import Base


class ValidatedAddress(Base):
    """Last coverage/cost resolution of an external address record (overwritten on revalidation)."""
    __tablename__ = 'validated_addresses'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    address_id: Mapped[int] = mapped_column(BigInteger, unique=True)
    lat: Mapped[float] = mapped_column(DECIMAL(10, 8))
    lng: Mapped[float] = mapped_column(DECIMAL(11, 8))
    district_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    zone_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey('delivery_zones.id', ondelete='SET NULL'), nullable=True
    )
    in_coverage: Mapped[bool] = mapped_column(Boolean, default=False)
    distance_km: Mapped[Optional[float]] = mapped_column(DECIMAL(8, 2), nullable=True)
    shipping_cost: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    eta_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_validated_at: Mapped[datetime] = mapped_column(DateTime)
    validation_note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index('ix_validated_addresses_zone', 'zone_id'),
        Index('ix_validated_addresses_coverage', 'in_coverage'),
    )
