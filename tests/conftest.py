"""
Shared fixtures for the ridepay test suite.

Each test gets a fresh in-memory SQLite database, a `records` helper for
building users/rides/bookings/payments, and a `provider` fake that every
service module resolves instead of a real mobile-money client.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import os
from typing import Any, Dict, List, Optional

# Settings are read at import time; keep the suite hermetic.
os.environ["CI"] = "1"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REDIS_URL", None)
os.environ.pop("USE_PAWAPAY", None)

from fastapi.testclient import TestClient  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ridepay import models  # noqa: E402,F401
from ridepay.core.enums import (  # noqa: E402
    BookingPaymentStatus,
    BookingStatus,
    PaymentStatus,
    PayoutStatus,
    RefundStatus,
    RefundType,
)
from ridepay.database import Base  # noqa: E402
from ridepay.integrations.payment_providers import ProviderResponse  # noqa: E402
from ridepay.models.booking import Booking  # noqa: E402
from ridepay.models.payment import Payment  # noqa: E402
from ridepay.models.payout import Payout  # noqa: E402
from ridepay.models.refund import Refund  # noqa: E402
from ridepay.models.ride import Ride  # noqa: E402
from ridepay.models.user import User  # noqa: E402

MTN_PHONE = "677123456"
ORANGE_PHONE = "699123456"

# Modules that look up provider clients by name at call time.
PROVIDER_CLIENT_MODULES = (
    "ridepay.services.payment_creation_service",
    "ridepay.services.cancellation_service",
    "ridepay.services.refund_service",
    "ridepay.services.payout_service",
    "ridepay.services.payout_retry_service",
    "ridepay.services.payout_reconciliation_service",
    "ridepay.services.payment_reconciliation_service",
    "ridepay.services.reconciliation_sweep_service",
)


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(db_engine) -> Session:
    SessionLocal = sessionmaker(bind=db_engine, expire_on_commit=False, future=True)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class Records:
    """Small builders for persisted rows; every call commits."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def user(self, phone: Optional[str] = MTN_PHONE, full_name: str = "Test User", **kw) -> User:
        return self._save(User(phone=phone, full_name=full_name, **kw))

    def ride(
        self,
        driver: Optional[User] = None,
        price: Optional[float] = 2500.0,
        seats_available: int = 4,
        **kw: Any,
    ) -> Ride:
        driver = driver or self.user(phone=MTN_PHONE, full_name="Driver", role="driver")
        kw.setdefault("departure_time", datetime.now(timezone.utc) + timedelta(days=1))
        kw.setdefault("origin", "Douala")
        kw.setdefault("destination", "Yaounde")
        return self._save(
            Ride(driver_id=driver.id, price=price, seats_available=seats_available, **kw)
        )

    def booking(
        self,
        ride: Optional[Ride] = None,
        passenger: Optional[User] = None,
        seats: int = 1,
        status: str = BookingStatus.PENDING.value,
        payment_status: str = BookingPaymentStatus.PENDING.value,
        **kw: Any,
    ) -> Booking:
        ride = ride or self.ride()
        passenger = passenger or self.user()
        booking = Booking(
            ride_id=ride.id,
            user_id=passenger.id,
            seats=seats,
            status=status,
            payment_status=payment_status,
            **kw,
        )
        if status in (
            BookingStatus.PENDING.value,
            BookingStatus.PENDING_VERIFICATION.value,
            BookingStatus.CONFIRMED.value,
        ):
            ride.seats_available = ride.seats_available - seats
        return self._save(booking)

    def paid_booking(self, ride: Optional[Ride] = None, seats: int = 2, **kw: Any) -> Booking:
        """A booking in pending_verification with one completed payment for it."""
        booking = self.booking(
            ride=ride,
            seats=seats,
            status=BookingStatus.PENDING_VERIFICATION.value,
            payment_status=BookingPaymentStatus.COMPLETED.value,
            **kw,
        )
        self.payment(
            booking,
            amount=round(seats * float(booking.ride.price or 0), 2),
            status=PaymentStatus.COMPLETED.value,
        )
        return booking

    def payment(
        self,
        booking: Optional[Booking] = None,
        amount: float = 2500.0,
        status: str = PaymentStatus.PENDING.value,
        provider: str = "mtn",
        transaction_id: Optional[str] = None,
        booking_id: Optional[str] = None,
        **kw: Any,
    ) -> Payment:
        kw.setdefault("phone_number", MTN_PHONE)
        kw.setdefault("currency", "XAF")
        kw.setdefault("metadata_", {})
        return self._save(
            Payment(
                booking_id=booking_id or booking.id,
                amount=amount,
                status=status,
                provider=provider,
                transaction_id=transaction_id,
                **kw,
            )
        )

    def payout(
        self,
        booking: Booking,
        status: str = PayoutStatus.PROCESSING.value,
        transaction_id: Optional[str] = "payout-ref-1",
        provider: str = "mtn",
        amount: float = 4750.0,
        **kw: Any,
    ) -> Payout:
        kw.setdefault("phone_number", MTN_PHONE)
        kw.setdefault("metadata_", {"retryCount": 0})
        return self._save(
            Payout(
                booking_id=booking.id,
                driver_id=booking.ride.driver_id,
                amount=amount,
                original_amount=amount,
                provider=provider,
                status=status,
                transaction_id=transaction_id,
                reason=f"Ride Payment - Booking {booking.id}",
                **kw,
            )
        )

    def refund(
        self,
        booking: Booking,
        amount: float = 2500.0,
        status: str = RefundStatus.PROCESSING.value,
        refund_type: str = RefundType.FULL.value,
        transaction_id: Optional[str] = "refund-ref-1",
        provider: str = "mtn",
        payment: Optional[Payment] = None,
        **kw: Any,
    ) -> Refund:
        kw.setdefault("metadata_", {"payment_ids": [payment.id] if payment else []})
        return self._save(
            Refund(
                booking_id=booking.id,
                user_id=booking.user_id,
                payment_id=payment.id if payment else None,
                amount=amount,
                currency="XAF",
                provider=provider,
                phone_number=MTN_PHONE,
                refund_type=refund_type,
                status=status,
                transaction_id=transaction_id,
                **kw,
            )
        )


@pytest.fixture
def records(db) -> Records:
    return Records(db)


class FakeProviderClient:
    """Stands in for MTN/Orange/pawaPay clients; canned responses, recorded calls."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.providers: List[Any] = []
        self.payin_response = ProviderResponse(
            success=True, message="Payment initiated successfully", transaction_id="payin-ref-1"
        )
        self.payout_response = ProviderResponse(
            success=True, message="Payout initiated successfully", transaction_id="payout-ref-1"
        )
        self.payment_status = ProviderResponse(success=True, status="PENDING")
        self.payout_status = ProviderResponse(success=True, status="PENDING")
        self.errors: Dict[str, Exception] = {}

    def _record(self, operation: str, **kwargs: Any) -> None:
        self.calls.append({"operation": operation, **kwargs})
        if operation in self.errors:
            raise self.errors[operation]

    def operations(self) -> List[str]:
        return [call["operation"] for call in self.calls]

    def payin(self, *, amount, phone_number, reason, currency=None, callback_url=None):
        self._record("payin", amount=amount, phone_number=phone_number, reason=reason)
        return self.payin_response

    def check_payment(self, transaction_id):
        self._record("check_payment", transaction_id=transaction_id)
        return self.payment_status

    def payout(self, *, amount, phone_number, reason):
        self._record("payout", amount=amount, phone_number=phone_number, reason=reason)
        return self.payout_response

    def check_payout_status(self, transaction_id):
        self._record("check_payout_status", transaction_id=transaction_id)
        return self.payout_status

    def refund(self, *, amount, phone_number, reason):
        self._record("refund", amount=amount, phone_number=phone_number, reason=reason)
        return self.payout_response


@pytest.fixture
def provider(monkeypatch: pytest.MonkeyPatch) -> FakeProviderClient:
    fake = FakeProviderClient()

    def _lookup(provider_name):
        fake.providers.append(provider_name)
        return fake

    for module in PROVIDER_CLIENT_MODULES:
        monkeypatch.setattr(f"{module}.get_provider_client", _lookup)
    return fake


@pytest.fixture
def client(db, provider) -> TestClient:
    from ridepay.api.dependencies.database import get_db
    from ridepay.main import create_app

    app = create_app()

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    return TestClient(app)


def auth(user: User) -> Dict[str, str]:
    return {"X-User-Id": user.id}


@pytest.fixture
def as_user():
    return auth
