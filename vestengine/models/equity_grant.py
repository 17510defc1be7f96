import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from vestengine.db.base import Base


class EquityGrant(Base):
    __tablename__ = "equity_grants"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("share_amount > 0", name="ck_equity_grants_share_amount_positive"),
        CheckConstraint("vested_amount >= 0", name="ck_equity_grants_vested_amount_nonnegative"),
        CheckConstraint("vested_amount <= share_amount", name="ck_equity_grants_vested_within_total"),
        CheckConstraint("status IN ('active', 'inactive')", name="ck_equity_grants_status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(String(255), nullable=False, index=True)
    grant_date = Column(Date, nullable=False)
    share_amount = Column(Numeric(18, 3), nullable=False)
    vested_amount = Column(Numeric(18, 3), nullable=False, default=0, server_default="0")
    status = Column(String(50), nullable=False, default="active")
    version = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    vesting_events = relationship(
        "VestingEvent",
        back_populates="grant",
        cascade="all, delete-orphan",
        order_by="VestingEvent.vest_date",
    )
