"""Stock Transaction API endpoints"""

from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from stockledger.api import deps
from stockledger.models.transaction import TransactionStatus, TransactionType
from stockledger.schemas.common import ErrorResponse, PaginatedResponse
from stockledger.schemas.transaction import StatusChange, Transaction, TransactionCreate
from stockledger.services.stock import TransactionService

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.get("", response_model=PaginatedResponse[Transaction])
def list_transactions(
    transaction_type: Optional[TransactionType] = Query(None, alias="type", description="Filter by type"),
    status_filter: Optional[TransactionStatus] = Query(None, alias="status", description="Filter by status"),
    location_id: Optional[int] = Query(None, description="Source or destination location"),
    pagination: dict = Depends(deps.get_pagination_params),
    service: TransactionService = Depends(deps.get_transaction_service),
):
    """
    List transactions, newest first.
    """
    transactions, total = service.list_transactions(
        transaction_type=transaction_type.value if transaction_type else None,
        status=status_filter.value if status_filter else None,
        location_id=location_id,
        skip=pagination["skip"],
        limit=pagination["page_size"],
    )
    return PaginatedResponse[Transaction].build(
        [Transaction.model_validate(txn) for txn in transactions],
        total=total,
        page=pagination["page"],
        page_size=pagination["page_size"],
    )


@router.post("", response_model=Transaction, status_code=status.HTTP_201_CREATED,
             responses=ERROR_RESPONSES)
def create_transaction(
    payload: TransactionCreate,
    actor: str = Depends(deps.get_actor),
    service: TransactionService = Depends(deps.get_transaction_service),
):
    """
    Create a draft transaction.

    Delivery and transfer are checked against available stock at the source.
    """
    return service.create_transaction(
        transaction_type=payload.type.value,
        items=[line.model_dump() for line in payload.items],
        from_location_id=payload.from_location_id,
        to_location_id=payload.to_location_id,
        counterparty_name=payload.counterparty_name,
        notes=payload.notes,
        actor=actor,
    )


@router.get("/{transaction_id}", response_model=Transaction, responses=ERROR_RESPONSES)
def get_transaction(
    transaction_id: int,
    service: TransactionService = Depends(deps.get_transaction_service),
):
    """Get specific transaction by ID."""
    return service.get_transaction(transaction_id)


@router.post("/{transaction_id}/complete", response_model=Transaction, responses=ERROR_RESPONSES)
def complete_transaction(
    transaction_id: int,
    actor: str = Depends(deps.get_actor),
    service: TransactionService = Depends(deps.get_transaction_service),
):
    """Complete a transaction and apply its stock movement."""
    return service.complete_transaction(transaction_id, actor=actor)


@router.post("/{transaction_id}/cancel", response_model=Transaction, responses=ERROR_RESPONSES)
def cancel_transaction(
    transaction_id: int,
    actor: str = Depends(deps.get_actor),
    service: TransactionService = Depends(deps.get_transaction_service),
):
    """Cancel a transaction that has not been completed."""
    return service.cancel_transaction(transaction_id, actor=actor)


@router.post("/{transaction_id}/status", response_model=Transaction, responses=ERROR_RESPONSES)
def change_status(
    transaction_id: int,
    change: StatusChange,
    actor: str = Depends(deps.get_actor),
    service: TransactionService = Depends(deps.get_transaction_service),
):
    """Move a transaction along its lifecycle (waiting, ready, completed, cancelled)."""
    return service.transition(transaction_id, change.status.value, actor=actor)
