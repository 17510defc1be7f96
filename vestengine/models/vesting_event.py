import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from vestengine.db.base import Base


class VestingEvent(Base):
    __tablename__ = "vesting_events"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("shares_vested > 0", name="ck_vesting_events_shares_positive"),
        CheckConstraint("source IN ('scheduled', 'manual')", name="ck_vesting_events_source"),
        UniqueConstraint("grant_id", "vest_date", name="uq_vesting_events_grant_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    grant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("equity_grants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    vest_date = Column(Date, nullable=False, index=True)
    shares_vested = Column(Numeric(18, 3), nullable=False)
    price_per_share = Column(Numeric(18, 6), nullable=True)
    source = Column(String(20), nullable=False, default="scheduled")
    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    grant = relationship("EquityGrant", back_populates="vesting_events")
