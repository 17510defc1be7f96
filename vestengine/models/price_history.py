import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from vestengine.db.base import Base


class PriceHistory(Base):
    __tablename__ = "price_history"
    __table_args__ = (
        CheckConstraint("price_per_share >= 0", name="ck_price_history_price_nonnegative"),
        UniqueConstraint("org_id", "effective_date", name="uq_price_history_org_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    effective_date = Column(Date, nullable=False, index=True)
    price_per_share = Column(Numeric(18, 6), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
