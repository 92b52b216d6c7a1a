"""
Stock Ledger Service
Authoritative (item, location) quantity state and the per-type mutation policy
"""
from typing import List, Optional, Tuple
import logging

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.core.audit import log_ledger_action
from stockledger.core.exceptions import NotFoundError, PersistenceError, ValidationError
from stockledger.core.timeutils import utcnow
from stockledger.models.catalog import ItemRec
from stockledger.models.stock import StockRec
from stockledger.models.transaction import TransactionRec, TransactionLineRec, TransactionType

logger = logging.getLogger("stockledger.business")

_UPSERT_DIALECTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


def line_mutations(txn: TransactionRec, line: TransactionLineRec) -> List[Tuple[int, int]]:
    """
    (location_id, delta) pairs one line applies for its transaction type

    receipt adds at the destination, delivery removes at the source,
    transfer does both, adjustment adds the signed quantity at the source.
    """
    txn_type = TransactionType(txn.type)
    quantity = line.quantity
    if txn_type == TransactionType.RECEIPT:
        return [(txn.to_location_id, quantity)]
    if txn_type == TransactionType.DELIVERY:
        return [(txn.from_location_id, -quantity)]
    if txn_type == TransactionType.TRANSFER:
        return [(txn.from_location_id, -quantity), (txn.to_location_id, quantity)]
    return [(txn.from_location_id, quantity)]


class StockLedgerService:
    """
    Stock Ledger functionality

    Every quantity change is a single atomic upsert-with-increment on the
    unique (item_id, location_id) key. Quantities are never clamped.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_stock(self, item_id: Optional[int] = None,
                  location_id: Optional[int] = None) -> List[StockRec]:
        """List stock records, optionally filtered by item and/or location"""
        query = select(StockRec)
        if item_id is not None:
            query = query.where(StockRec.item_id == item_id)
        if location_id is not None:
            query = query.where(StockRec.location_id == location_id)
        query = query.order_by(StockRec.item_id, StockRec.location_id)
        return list(self.db.execute(query).scalars().all())

    def get_stock_record(self, item_id: int, location_id: int) -> Optional[StockRec]:
        return self.db.execute(
            select(StockRec).where(
                StockRec.item_id == item_id,
                StockRec.location_id == location_id,
            )
        ).scalar_one_or_none()

    def available_quantity(self, item_id: int, location_id: int) -> int:
        """quantity - reserved_quantity, or 0 when no record exists"""
        stock = self.get_stock_record(item_id, location_id)
        return stock.available_quantity if stock else 0

    def get_low_stock_alerts(self, location_id: Optional[int] = None) -> List[StockRec]:
        """Records of active items at or below their minimum level, lowest first"""
        query = (
            select(StockRec)
            .join(ItemRec, ItemRec.id == StockRec.item_id)
            .where(ItemRec.is_active.is_(True))
            .where(StockRec.quantity <= ItemRec.min_stock_level)
        )
        if location_id is not None:
            query = query.where(StockRec.location_id == location_id)
        query = query.order_by(StockRec.quantity, StockRec.item_id)
        return list(self.db.execute(query).scalars().all())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def adjust_quantity(self, item_id: int, location_id: int, delta: int) -> int:
        """
        Atomically add delta to the (item, location) quantity

        Creates the record with quantity = delta when none exists. Does not
        commit. Returns the resulting quantity.
        """
        table = StockRec.__table__
        now = utcnow()
        values = dict(
            item_id=item_id,
            location_id=location_id,
            quantity=delta,
            reserved_quantity=0,
            last_updated=now,
            created_at=now,
        )
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)

        if insert is not None:
            stmt = insert(table).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.item_id, table.c.location_id],
                set_={
                    "quantity": table.c.quantity + stmt.excluded.quantity,
                    "last_updated": now,
                },
            )
            self.db.execute(stmt)
        else:
            self._increment_or_insert(item_id, location_id, delta, values)

        stock = self.db.execute(
            select(StockRec)
            .where(StockRec.item_id == item_id, StockRec.location_id == location_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return stock.quantity

    def _increment_or_insert(self, item_id: int, location_id: int, delta: int, values: dict) -> None:
        """UPDATE ... SET quantity = quantity + delta, inserting on zero rows"""
        table = StockRec.__table__
        increment = (
            update(table)
            .where(table.c.item_id == item_id, table.c.location_id == location_id)
            .values(quantity=table.c.quantity + delta, last_updated=values["last_updated"])
        )
        if self.db.execute(increment).rowcount:
            return
        try:
            with self.db.begin_nested():
                self.db.execute(table.insert().values(**values))
        except IntegrityError:
            # Another writer created the record first
            self.db.execute(increment)

    def apply_transaction(self, txn: TransactionRec, commit_each_line: bool = True) -> List[int]:
        """
        Apply the transaction's stock effect over all of its lines

        With commit_each_line every line is committed on its own and stays
        applied if a later line fails. Returns the applied line numbers; on
        failure raises PersistenceError carrying them.
        """
        if not txn.lines:
            raise ValidationError(f"Transaction {txn.reference} has no items")

        transaction_id = txn.id
        reference = txn.reference
        pending = [(line.line_no, line_mutations(txn, line), line.item_id) for line in txn.lines]
        applied: List[int] = []

        for line_no, mutations, item_id in pending:
            try:
                for location_id, delta in mutations:
                    new_quantity = self.adjust_quantity(item_id, location_id, delta)
                    logger.info(
                        f"{reference} line {line_no}: item {item_id} @ location {location_id} "
                        f"{delta:+d} -> {new_quantity}"
                    )
                if commit_each_line:
                    self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    f"Stock mutation failed for transaction {transaction_id} ({reference}) "
                    f"at line {line_no}; lines already applied: {applied or 'none'}: {e}"
                )
                raise PersistenceError(
                    f"Stock update failed at line {line_no} of {reference}",
                    transaction_id=transaction_id,
                    applied_lines=applied if commit_each_line else [],
                ) from e
            applied.append(line_no)

        return applied

    def update_bin_location(self, stock_id: int, bin_location: Optional[str],
                            actor: str = "SYSTEM") -> StockRec:
        """Change the shelf / bin note of a stock record"""
        stock = self.db.get(StockRec, stock_id)
        if stock is None:
            raise NotFoundError(f"Stock record {stock_id} not found")

        old_bin = stock.bin_location
        stock.bin_location = bin_location
        log_ledger_action(
            self.db,
            actor=actor,
            action="STOCK_BIN_UPDATE",
            table="stock_records",
            key=str(stock_id),
            old_values={"bin_location": old_bin},
            new_values={"bin_location": bin_location},
            module="STOCK",
        )
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Could not update stock record {stock_id}: {e}") from e
        self.db.refresh(stock)
        return stock
