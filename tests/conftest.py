"""
Test Configuration and Fixtures
Shared testing infrastructure for the stock ledger
"""

import itertools
import pytest
from datetime import datetime
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from stockledger.main import app
from stockledger.api.deps import get_db
from stockledger.core.database import Base
from stockledger.models import (
    ItemRec, LocationRec, TransactionRec, TransactionLineRec,
    TransactionStatus, TransactionType
)
from stockledger.services.notifications import NotificationSink, RecordingSubscriber
from stockledger.services.stock import StockLedgerService, TransactionService

# In-memory SQLite shared by every session of a test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)



@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _add(db: Session, record):
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def warehouse_a(db_session: Session) -> LocationRec:
    return _add(db_session, LocationRec(code="WH-A", name="Warehouse A"))


@pytest.fixture
def warehouse_b(db_session: Session) -> LocationRec:
    return _add(db_session, LocationRec(code="WH-B", name="Warehouse B"))


@pytest.fixture
def closed_location(db_session: Session) -> LocationRec:
    return _add(db_session, LocationRec(code="OLD", name="Closed Depot", is_active=False))


@pytest.fixture
def rod(db_session: Session) -> ItemRec:
    """Fishing rod, min 20 / max 200"""
    return _add(db_session, ItemRec(
        code="ROD-001", name="Carbon Fishing Rod", unit_of_measure="pcs",
        min_stock_level=20, max_stock_level=200,
    ))


@pytest.fixture
def reel(db_session: Session) -> ItemRec:
    """Spinning reel, min 10 with no maximum set"""
    return _add(db_session, ItemRec(
        code="REEL-01", name="Spinning Reel", unit_of_measure="pcs", min_stock_level=10,
    ))


@pytest.fixture
def discontinued_item(db_session: Session) -> ItemRec:
    return _add(db_session, ItemRec(
        code="LINE-OLD", name="Discontinued Line", min_stock_level=5, is_active=False,
    ))


@pytest.fixture
def ledger(db_session: Session) -> StockLedgerService:
    return StockLedgerService(db_session)


@pytest.fixture
def events() -> RecordingSubscriber:
    return RecordingSubscriber()


@pytest.fixture
def transaction_service(db_session: Session, events: RecordingSubscriber) -> TransactionService:
    """TransactionService publishing to a private sink"""
    sink = NotificationSink()
    sink.subscribe(events)
    return TransactionService(db_session, notifier=sink, atomic_completion=False)


@pytest.fixture
def stock_at(db_session: Session, ledger: StockLedgerService) -> Callable[..., int]:
    """Seed on-hand quantity for an (item, location) pair"""
    def _stock_at(item: ItemRec, location: LocationRec, quantity: int) -> int:
        new_quantity = ledger.adjust_quantity(item.id, location.id, quantity)
        db_session.commit()
        return new_quantity
    return _stock_at


@pytest.fixture
def completed_delivery(db_session: Session) -> Callable[..., TransactionRec]:
    """Insert an already completed delivery with a chosen completion time"""
    counter = itertools.count(1)

    def _completed_delivery(location: LocationRec, completed_at: datetime, *lines) -> TransactionRec:
        txn = TransactionRec(
            reference=f"DEL-TEST-{next(counter)}",
            type=TransactionType.DELIVERY.value,
            status=TransactionStatus.COMPLETED.value,
            from_location_id=location.id,
            created_by="tester",
            created_at=completed_at,
            completed_at=completed_at,
            lines=[
                TransactionLineRec(line_no=no, item_id=item.id, quantity=quantity)
                for no, (item, quantity) in enumerate(lines, start=1)
            ],
        )
        return _add(db_session, txn)
    return _completed_delivery
