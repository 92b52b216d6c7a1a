"""
Transaction reference numbers
"""
from datetime import datetime
from typing import Optional
import random

from sqlalchemy.orm import Session

from stockledger.core.timeutils import utcnow
from stockledger.models.transaction import TransactionRec

_EPOCH = datetime(1970, 1, 1)


def reference_prefix(transaction_type: str) -> str:
    """First three letters of the type, upper-cased (REC, DEL, TRA, ADJ)"""
    return str(transaction_type).upper()[:3]


def generate_reference(transaction_type: str, now: Optional[datetime] = None,
                       rng: Optional[random.Random] = None) -> str:
    """
    Build a <PREFIX>-<epoch millis>-<random 0..999> reference

    Uniqueness is probabilistic; reference_exists() is the collision check
    applied before the record is persisted.
    """
    now = now or utcnow()
    millis = int((now - _EPOCH).total_seconds() * 1000)
    suffix = (rng or random).randint(0, 999)
    return f"{reference_prefix(transaction_type)}-{millis}-{suffix}"


def reference_exists(db: Session, reference: str) -> bool:
    return db.query(TransactionRec.id).filter(TransactionRec.reference == reference).first() is not None
