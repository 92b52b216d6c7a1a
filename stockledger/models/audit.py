"""
Audit Trail Model
Record of every ledger-changing action
"""
from sqlalchemy import Column, String, Integer, DateTime, JSON

from stockledger.core.database import Base
from stockledger.core.timeutils import utcnow


class AuditLog(Base):
    """Audit trail for transaction and stock changes"""
    __tablename__ = "audit_log"

    audit_id = Column(Integer, primary_key=True, autoincrement=True)
    audit_timestamp = Column(DateTime, default=utcnow, index=True)
    audit_user = Column(String(64), nullable=False, index=True)
    audit_action = Column(String(20), nullable=False, index=True)  # TXN_CREATE, TXN_COMPLETE, etc
    audit_table = Column(String(50), index=True)
    audit_key = Column(String(100))
    audit_old_values = Column(JSON)
    audit_new_values = Column(JSON)
    audit_module = Column(String(10))  # LEDGER, STOCK
