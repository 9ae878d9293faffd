# ridepay/services/payment_creation_service.py
"""
Payment Creation Service.

Starts a collection: validates the request, creates (or re-uses, by
idempotency key) the payment row, calls the provider's payin and moves the
payment to `processing` or `failed` through the orchestrator.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import PaymentProvider, PaymentStatus
from ..core.exceptions import (
    ForbiddenException,
    NotFoundException,
    ProviderException,
    ValidationException,
)
from ..integrations.payment_providers import ProviderResponse, get_provider_client, resolve_provider
from ..repositories.factory import RepositoryFactory
from ..utils.phone import is_mtn_phone_number, is_orange_phone_number
from .base import BaseService
from .payment_orchestration_service import PaymentOrchestrationService
from .payment_service import PaymentService

logger = logging.getLogger(__name__)


def validate_phone_for_provider(provider: PaymentProvider, phone_number: str) -> None:
    if provider == PaymentProvider.MTN and not is_mtn_phone_number(phone_number):
        raise ValidationException("Phone number is not a valid MTN Mobile Money number")
    if provider == PaymentProvider.ORANGE and not is_orange_phone_number(phone_number):
        raise ValidationException("Phone number is not a valid Orange Money number")
    if provider == PaymentProvider.PAWAPAY and not (
        is_mtn_phone_number(phone_number) or is_orange_phone_number(phone_number)
    ):
        raise ValidationException("Phone number is not a valid mobile money number")


class PaymentCreationService(BaseService):
    def __init__(
        self,
        db: Session,
        payment_service: Optional[PaymentService] = None,
        orchestration_service: Optional[PaymentOrchestrationService] = None,
    ) -> None:
        super().__init__(db)
        self.payment_service = payment_service or PaymentService(db)
        self.orchestration_service = orchestration_service or PaymentOrchestrationService(
            db, payment_service=self.payment_service
        )
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("initiate_payment")
    def initiate_payment(
        self,
        *,
        booking_id: str,
        user_id: str,
        amount: float,
        provider: str,
        phone_number: str,
        currency: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not booking_id or not user_id or not phone_number:
            raise ValidationException("booking_id, user_id and phone_number are required")
        if amount is None or math.isnan(float(amount)) or float(amount) <= 0:
            raise ValidationException("Amount must be greater than zero", code="INVALID_AMOUNT")
        try:
            requested = PaymentProvider.parse(provider)
        except ValueError:
            raise ValidationException(
                f"Unsupported payment provider: {provider}", code="INVALID_PROVIDER"
            )
        validate_phone_for_provider(requested, phone_number)

        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking not found: {booking_id}", code="BOOKING_NOT_FOUND")
        if booking.user_id != user_id:
            raise ForbiddenException("You can only pay for your own bookings")

        carrier = resolve_provider(requested)
        key = idempotency_key or f"payment_{booking_id}_{user_id}_{int(time.time() * 1000)}"
        payment = self.payment_service.create_payment(
            booking_id=booking_id,
            amount=float(amount),
            provider=carrier.value,
            phone_number=phone_number,
            currency=currency or settings.default_currency,
            idempotency_key=key,
            metadata={"requested_provider": requested.value},
        )
        if payment.status != PaymentStatus.PENDING.value or payment.transaction_id:
            self.logger.info("Payment %s already initiated (%s)", payment.id, payment.status)
            return self._result(payment, "Payment already initiated")

        try:
            response = get_provider_client(carrier).payin(
                amount=float(payment.amount),
                phone_number=phone_number,
                reason=f"Booking {booking_id}",
                currency=payment.currency,
            )
        except ProviderException as exc:
            response = ProviderResponse.failure(exc.message)

        if response.success:
            self.orchestration_service.handle_payment_status_change(
                payment.id,
                PaymentStatus.PROCESSING.value,
                {
                    "transaction_id": response.transaction_id,
                    "provider_status": response.status,
                    "provider_response": response.api_response,
                },
                source="payin",
            )
        else:
            self.logger.warning("Payin failed for payment %s: %s", payment.id, response.message)
            self.orchestration_service.handle_payment_status_change(
                payment.id,
                PaymentStatus.FAILED.value,
                {
                    "transaction_id": response.transaction_id,
                    "error_message": response.message,
                    "provider_response": response.api_response,
                },
                source="payin",
            )
        return self._result(payment, response.message)

    @staticmethod
    def _result(payment, message: str) -> Dict[str, Any]:
        return {
            "payment_id": payment.id,
            "status": payment.status,
            "transaction_id": payment.transaction_id,
            "message": message,
        }
