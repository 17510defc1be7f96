from vestengine.models.audit_log import AuditLog
from vestengine.models.equity_grant import EquityGrant
from vestengine.models.price_history import PriceHistory
from vestengine.models.tenant import Tenant
from vestengine.models.vesting_event import VestingEvent

__all__ = [
    "AuditLog",
    "EquityGrant",
    "PriceHistory",
    "Tenant",
    "VestingEvent",
]
