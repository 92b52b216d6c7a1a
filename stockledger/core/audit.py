"""
Audit trail helper
"""
from typing import Dict, Optional

from sqlalchemy.orm import Session


def log_ledger_action(
    db: Session,
    actor: str,
    action: str,
    table: Optional[str] = None,
    key: Optional[str] = None,
    old_values: Optional[Dict] = None,
    new_values: Optional[Dict] = None,
    module: Optional[str] = "LEDGER"
) -> None:
    """
    Add an audit entry to the current session

    The entry is committed together with the change it describes; callers
    own the commit.
    """
    from stockledger.models.audit import AuditLog

    audit_entry = AuditLog(
        audit_user=str(actor or "SYSTEM"),
        audit_action=action,
        audit_table=table,
        audit_key=key,
        audit_old_values=old_values,
        audit_new_values=new_values,
        audit_module=module
    )

    db.add(audit_entry)
