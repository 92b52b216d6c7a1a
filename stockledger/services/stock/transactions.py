"""
Stock Transactions Service
Transaction lifecycle state machine: create, advance, complete and cancel
stock movements
"""
from collections import OrderedDict
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy import desc, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.core.audit import log_ledger_action
from stockledger.core.config import settings
from stockledger.core.exceptions import (
    InsufficientStockError, InvalidStateError, NotFoundError,
    PersistenceError, ValidationError
)
from stockledger.core.timeutils import utcnow
from stockledger.models.transaction import (
    ALLOWED_TRANSITIONS, TERMINAL_STATUSES,
    TransactionRec, TransactionLineRec, TransactionStatus, TransactionType
)
from stockledger.services.catalog import CatalogLookup
from stockledger.services.notifications import NotificationSink, StockChangedEvent, stock_events
from stockledger.services.stock.references import generate_reference, reference_exists
from stockledger.services.stock.stock_ledger import StockLedgerService

logger = logging.getLogger("stockledger.business")

# Endpoints each type must name
REQUIRED_ENDPOINTS = {
    TransactionType.RECEIPT: ("to_location_id",),
    TransactionType.DELIVERY: ("from_location_id",),
    TransactionType.TRANSFER: ("from_location_id", "to_location_id"),
    TransactionType.ADJUSTMENT: ("from_location_id",),
}

# Types whose source stock is checked at creation
OUTBOUND_TYPES = (TransactionType.DELIVERY, TransactionType.TRANSFER)


def _parse_type(transaction_type) -> TransactionType:
    try:
        return TransactionType(transaction_type)
    except ValueError:
        raise ValidationError(f"Unknown transaction type: {transaction_type}")


def _parse_status(status) -> TransactionStatus:
    try:
        return TransactionStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown transaction status: {status}")


class TransactionService:
    """
    Stock Transactions functionality

    Creation never touches stock. Completion applies the type's mutation
    through the stock ledger exactly once, then records the completed status
    and notifies subscribers.
    """

    def __init__(
        self,
        db: Session,
        catalog: Optional[CatalogLookup] = None,
        ledger: Optional[StockLedgerService] = None,
        notifier: Optional[NotificationSink] = stock_events,
        reference_generator: Callable[[str], str] = generate_reference,
        atomic_completion: Optional[bool] = None,
    ):
        self.db = db
        self.catalog = catalog or CatalogLookup(db)
        self.ledger = ledger or StockLedgerService(db)
        self.notifier = notifier if settings.NOTIFY_STOCK_CHANGES else None
        self.reference_generator = reference_generator
        self.atomic_completion = (
            settings.ATOMIC_COMPLETION if atomic_completion is None else atomic_completion
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_transaction(self, transaction_id: int) -> TransactionRec:
        txn = self.db.get(TransactionRec, transaction_id)
        if txn is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return txn

    def list_transactions(
        self,
        transaction_type: Optional[str] = None,
        status: Optional[str] = None,
        location_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[TransactionRec], int]:
        """
        Filtered transaction listing, newest first

        location_id matches either endpoint. Returns (page, total).
        """
        query = self.db.query(TransactionRec)
        if transaction_type:
            query = query.filter(TransactionRec.type == _parse_type(transaction_type).value)
        if status:
            query = query.filter(TransactionRec.status == _parse_status(status).value)
        if location_id is not None:
            query = query.filter(or_(
                TransactionRec.from_location_id == location_id,
                TransactionRec.to_location_id == location_id,
            ))

        total = query.count()
        transactions = (
            query.order_by(desc(TransactionRec.created_at), desc(TransactionRec.id))
            .offset(skip)
            .limit(limit)
            .all()
        )
        return transactions, total

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create_transaction(
        self,
        transaction_type: str,
        items: List[Dict],
        from_location_id: Optional[int] = None,
        to_location_id: Optional[int] = None,
        counterparty_name: Optional[str] = None,
        notes: Optional[str] = None,
        actor: str = "SYSTEM",
    ) -> TransactionRec:
        """
        Create a draft transaction

        items is a list of {item_id, quantity, unit_price?, location_note?}.
        Adjustment quantities are signed and must be non-zero; every other
        type needs quantities of at least 1. Delivery and transfer check the
        source's available stock; the check is advisory and is not repeated
        at completion.
        """
        txn_type = _parse_type(transaction_type)
        endpoints = {"from_location_id": from_location_id, "to_location_id": to_location_id}
        lines = self._validate_lines(txn_type, items)
        self._validate_endpoints(txn_type, endpoints)
        self._check_catalog(lines, endpoints)

        if txn_type in OUTBOUND_TYPES:
            self._check_availability(lines, from_location_id)

        return self._persist_new(
            txn_type, lines, endpoints, counterparty_name, notes, str(actor or "SYSTEM")
        )

    def _validate_lines(self, txn_type: TransactionType, items: List[Dict]) -> List[Dict]:
        if not items:
            raise ValidationError("Transaction must contain at least one item")
        if len(items) > settings.MAX_TRANSACTION_LINES:
            raise ValidationError(
                f"Transaction cannot exceed {settings.MAX_TRANSACTION_LINES} lines"
            )

        lines = []
        for line_no, raw in enumerate(items, start=1):
            item_id = raw.get("item_id")
            quantity = raw.get("quantity")
            if item_id is None:
                raise ValidationError(f"Line {line_no}: item_id is required")
            if not isinstance(quantity, int) or isinstance(quantity, bool):
                raise ValidationError(f"Line {line_no}: quantity must be a whole number")

            if txn_type == TransactionType.ADJUSTMENT:
                if quantity == 0:
                    raise ValidationError(f"Line {line_no}: adjustment quantity cannot be zero")
            elif quantity < 1:
                raise ValidationError(f"Line {line_no}: quantity must be at least 1")

            try:
                unit_price = Decimal(str(raw.get("unit_price") or 0))
            except InvalidOperation:
                raise ValidationError(f"Line {line_no}: unit_price is not a number")
            if unit_price < 0:
                raise ValidationError(f"Line {line_no}: unit_price cannot be negative")

            lines.append({
                "line_no": line_no,
                "item_id": item_id,
                "quantity": quantity,
                "unit_price": unit_price,
                "location_note": raw.get("location_note"),
            })
        return lines

    def _validate_endpoints(self, txn_type: TransactionType, endpoints: Dict) -> None:
        for field in REQUIRED_ENDPOINTS[txn_type]:
            if endpoints[field] is None:
                raise ValidationError(f"{txn_type.value} requires {field}")
        if (txn_type == TransactionType.TRANSFER
                and endpoints["from_location_id"] == endpoints["to_location_id"]):
            raise ValidationError("Transfer source and destination must differ")

    def _check_catalog(self, lines: List[Dict], endpoints: Dict) -> None:
        for location_id in endpoints.values():
            if location_id is None:
                continue
            location = self.catalog.get_location(location_id)
            if location is None:
                raise NotFoundError(f"Location {location_id} not found")
            if not location.is_active:
                raise ValidationError(f"Location {location.code} is inactive")

        for item_id in OrderedDict.fromkeys(line["item_id"] for line in lines):
            item = self.catalog.get_item(item_id)
            if item is None:
                raise NotFoundError(f"Item {item_id} not found")
            if not item.is_active:
                raise ValidationError(f"Item {item.code} is inactive")

    def _check_availability(self, lines: List[Dict], location_id: int) -> None:
        """Repeated lines for one item are checked against their summed quantity"""
        requested: Dict[int, int] = OrderedDict()
        for line in lines:
            requested[line["item_id"]] = requested.get(line["item_id"], 0) + line["quantity"]

        for item_id, quantity in requested.items():
            available = self.ledger.available_quantity(item_id, location_id)
            if available < quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for item {item_id} at location {location_id}: "
                    f"available {available}, requested {quantity}",
                    item_id=item_id,
                    location_id=location_id,
                    available=available,
                    requested=quantity,
                )

    def _persist_new(self, txn_type: TransactionType, lines: List[Dict], endpoints: Dict,
                     counterparty_name: Optional[str], notes: Optional[str],
                     actor: str) -> TransactionRec:
        """
        Insert the draft under a fresh reference

        A generated reference already on file is discarded and regenerated;
        a unique-constraint race on insert is retried the same way.
        """
        attempts = settings.REFERENCE_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            reference = self.reference_generator(txn_type.value)
            if reference_exists(self.db, reference):
                logger.warning(f"Reference {reference} already in use (attempt {attempt}/{attempts})")
                continue

            txn = TransactionRec(
                reference=reference,
                type=txn_type.value,
                status=TransactionStatus.DRAFT.value,
                from_location_id=endpoints["from_location_id"],
                to_location_id=endpoints["to_location_id"],
                counterparty_name=counterparty_name,
                notes=notes,
                created_by=actor,
                lines=[TransactionLineRec(**line) for line in lines],
            )
            self.db.add(txn)
            log_ledger_action(
                self.db,
                actor=actor,
                action="TXN_CREATE",
                table="stock_transactions",
                key=reference,
                new_values={
                    "type": txn_type.value,
                    "lines": len(lines),
                    "from_location_id": endpoints["from_location_id"],
                    "to_location_id": endpoints["to_location_id"],
                },
                module="STOCK",
            )

            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                if not reference_exists(self.db, reference):
                    raise PersistenceError(f"Could not create transaction: {e.orig}") from e
                logger.warning(f"Reference {reference} taken concurrently (attempt {attempt}/{attempts})")
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                raise PersistenceError(f"Could not create transaction: {e}") from e

            self.db.refresh(txn)
            logger.info(f"Created {txn_type.value} {reference} with {len(lines)} line(s) by {actor}")
            return txn

        raise PersistenceError(
            f"Could not allocate a unique {txn_type.value} reference after {attempts} attempts"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def transition(self, transaction_id: int, target_status: str,
                   actor: str = "SYSTEM") -> TransactionRec:
        """Move a transaction to target_status along a legal edge"""
        target = _parse_status(target_status)
        if target == TransactionStatus.COMPLETED:
            return self.complete_transaction(transaction_id, actor=actor)
        if target == TransactionStatus.CANCELLED:
            return self.cancel_transaction(transaction_id, actor=actor)

        txn = self.get_transaction(transaction_id)
        current = TransactionStatus(txn.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStateError(
                f"Transaction {txn.reference} cannot move from {current.value} to {target.value}"
            )

        txn.status = target.value
        txn.updated_at = utcnow()
        log_ledger_action(
            self.db,
            actor=actor,
            action="TXN_STATUS",
            table="stock_transactions",
            key=txn.reference,
            old_values={"status": current.value},
            new_values={"status": target.value},
            module="STOCK",
        )
        self._commit(txn, f"Could not update transaction {transaction_id}")
        return txn

    def mark_waiting(self, transaction_id: int, actor: str = "SYSTEM") -> TransactionRec:
        return self.transition(transaction_id, TransactionStatus.WAITING.value, actor=actor)

    def mark_ready(self, transaction_id: int, actor: str = "SYSTEM") -> TransactionRec:
        return self.transition(transaction_id, TransactionStatus.READY.value, actor=actor)

    def complete_transaction(self, transaction_id: int, actor: str = "SYSTEM") -> TransactionRec:
        """
        Finalize a transaction and apply its stock effect once

        Lines are committed one by one unless atomic completion is enabled;
        a failure part-way raises PersistenceError naming the lines already
        applied, and the transaction keeps its previous status.

        The record is claimed with a conditional status update before any
        stock moves, so concurrent completions apply the effect only once.
        """
        txn = self.get_transaction(transaction_id)
        if txn.is_terminal:
            raise InvalidStateError(f"Transaction {txn.reference} is already {txn.status}")
        if not txn.lines:
            raise ValidationError(f"Transaction {txn.reference} has no items")

        reference = txn.reference
        old_status = txn.status
        commit_each_line = not self.atomic_completion
        self._claim_for_completion(txn, commit=commit_each_line)

        try:
            applied = self.ledger.apply_transaction(txn, commit_each_line=commit_each_line)
        except PersistenceError:
            if commit_each_line:
                self._release_claim(transaction_id, reference, old_status)
            raise

        now = utcnow()
        txn.status = TransactionStatus.COMPLETED.value
        txn.completed_at = now
        txn.updated_at = now
        log_ledger_action(
            self.db,
            actor=actor,
            action="TXN_COMPLETE",
            table="stock_transactions",
            key=reference,
            old_values={"status": old_status},
            new_values={"status": TransactionStatus.COMPLETED.value, "lines": applied},
            module="STOCK",
        )

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            applied_lines = applied if commit_each_line else []
            logger.error(
                f"Status write failed for transaction {transaction_id} ({reference}) after "
                f"stock update; lines already applied: {applied_lines or 'none'}: {e}"
            )
            if commit_each_line:
                self._release_claim(transaction_id, reference, old_status)
            raise PersistenceError(
                f"Could not mark {reference} completed",
                transaction_id=transaction_id,
                applied_lines=applied_lines,
            ) from e

        self.db.refresh(txn)
        logger.info(f"Completed {txn.type} {reference} ({len(applied)} line(s)) by {actor}")
        self._notify(txn)
        return txn

    def _claim_for_completion(self, txn: TransactionRec, commit: bool) -> None:
        """
        Move the stored status to completed only while it is non-terminal

        Raises InvalidStateError when another writer finished or cancelled
        the transaction since it was read.
        """
        open_statuses = [s.value for s in TransactionStatus if s not in TERMINAL_STATUSES]
        claim = (
            update(TransactionRec)
            .where(TransactionRec.id == txn.id, TransactionRec.status.in_(open_statuses))
            .values(status=TransactionStatus.COMPLETED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        try:
            claimed = self.db.execute(claim).rowcount
            if claimed and commit:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(
                f"Could not claim {txn.reference} for completion: {e}", transaction_id=txn.id
            ) from e

        if not claimed:
            self.db.rollback()
            current = self.get_transaction(txn.id)
            self.db.refresh(current)
            raise InvalidStateError(f"Transaction {current.reference} is already {current.status}")

    def _release_claim(self, transaction_id: int, reference: str, old_status: str) -> None:
        """Put back the pre-completion status after a failed completion"""
        release = (
            update(TransactionRec)
            .where(
                TransactionRec.id == transaction_id,
                TransactionRec.status == TransactionStatus.COMPLETED.value,
                TransactionRec.completed_at.is_(None),
            )
            .values(status=old_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        try:
            self.db.execute(release)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Could not restore status {old_status} on transaction {transaction_id} "
                f"({reference}) after failed completion: {e}"
            )
            return
        logger.warning(f"Transaction {reference} returned to {old_status} after failed completion")

    def cancel_transaction(self, transaction_id: int, actor: str = "SYSTEM") -> TransactionRec:
        """Cancel a non-completed transaction; stock is never touched"""
        txn = self.get_transaction(transaction_id)
        if txn.status == TransactionStatus.CANCELLED.value:
            logger.debug(f"Transaction {txn.reference} already cancelled")
            return txn
        if txn.status == TransactionStatus.COMPLETED.value:
            raise InvalidStateError(f"Completed transaction {txn.reference} cannot be cancelled")

        old_status = txn.status
        now = utcnow()
        txn.status = TransactionStatus.CANCELLED.value
        txn.cancelled_at = now
        txn.updated_at = now
        log_ledger_action(
            self.db,
            actor=actor,
            action="TXN_CANCEL",
            table="stock_transactions",
            key=txn.reference,
            old_values={"status": old_status},
            new_values={"status": TransactionStatus.CANCELLED.value},
            module="STOCK",
        )
        self._commit(txn, f"Could not cancel transaction {transaction_id}")
        logger.info(f"Cancelled {txn.reference} by {actor}")
        return txn

    def _commit(self, txn: TransactionRec, failure_message: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"{failure_message}: {e}", transaction_id=txn.id) from e
        self.db.refresh(txn)

    def _notify(self, txn: TransactionRec) -> None:
        if self.notifier is None:
            return
        self.notifier.publish(StockChangedEvent(
            transaction_id=txn.id,
            type=txn.type,
            locations=txn.affected_location_ids,
            reference=txn.reference,
        ))
