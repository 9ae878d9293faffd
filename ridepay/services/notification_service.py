# ridepay/services/notification_service.py
"""
Notification dispatch for booking and payout events.

Every method here is best-effort: delivery problems are logged and never
raised, so a failing SMS or push channel can not undo or delay a payment
state change. Passengers are reached by SMS, drivers by web push.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import NotificationSource, PayoutStatus
from ..models.booking import Booking
from ..models.payment import Payment
from ..models.payout import Payout
from ..models.ride import Ride
from ..repositories.factory import RepositoryFactory
from ..utils.time import utcnow
from .base import BaseService
from .push_notification_service import PushNotificationService
from .sms_service import SMSService

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "Paiement non autorisé"
NOTIFIABLE_PAYOUT_STATUSES = (PayoutStatus.COMPLETED.value, PayoutStatus.FAILED.value)


def format_amount(amount: Any, currency: str = "XAF") -> str:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        value = 0.0
    return f"{value:,.0f}".replace(",", " ") + f" {currency or 'XAF'}"


def _route(ride: Optional[Ride]) -> str:
    if ride is None:
        return "votre trajet"
    return f"{ride.origin or '?'} - {ride.destination or '?'}"


class NotificationService(BaseService):
    """Passenger SMS + driver push, plus once-per-status payout notifications."""

    def __init__(
        self,
        db: Session,
        sms_service: Optional[SMSService] = None,
        push_service: Optional[PushNotificationService] = None,
    ) -> None:
        super().__init__(db)
        self.sms_service = sms_service or SMSService()
        self.push_service = push_service or PushNotificationService(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.payout_repository = RepositoryFactory.create_payout_repository(db)
        self._frontend = settings.frontend_url.rstrip("/")

    def _dispatch(self, label: str, send: Callable[[], Any]) -> bool:
        try:
            send()
            return True
        except Exception as exc:
            self.logger.warning(
                "Notification %s failed: %s",
                label,
                exc,
                extra={"notification": label, "error_type": type(exc).__name__},
            )
            return False

    def _sms_user(self, label: str, user_id: str, message: str) -> bool:
        phone = self.user_repository.get_phone(user_id)
        if not phone:
            self.logger.info("No phone on file for user %s; skipping %s SMS", user_id, label)
            return False
        return self._dispatch(label, lambda: self.sms_service.send_sms(phone, message))

    def _push_user(self, label: str, user_id: str, title: str, body: str, **kwargs: Any) -> bool:
        return self._dispatch(
            label, lambda: self.push_service.send_push_notification(user_id, title, body, **kwargs)
        )

    # ------------------------------------------------------------------
    # Payment events
    # ------------------------------------------------------------------

    def notify_payment_completed(
        self,
        booking: Booking,
        payment: Payment,
        ride: Optional[Ride],
        verification_code: Optional[str],
    ) -> None:
        """Passenger gets the verification code; the driver never does."""
        amount = format_amount(payment.amount, payment.currency)
        passenger_message = f"Paiement de {amount} confirmé pour {_route(ride)}."
        if verification_code:
            passenger_message += (
                f" Code de vérification: {verification_code}. "
                "Présentez-le au chauffeur au moment du départ."
            )
        self._sms_user("payment_completed", booking.user_id, passenger_message)

        if ride is not None:
            passenger_name = self.user_repository.get_display_name(booking.user_id)
            places = f"{booking.seats} place{'s' if booking.seats > 1 else ''}"
            self._push_user(
                "payment_received",
                ride.driver_id,
                "Paiement reçu",
                f"{passenger_name} a payé {amount} pour {_route(ride)} ({places}).",
                url="/driver/dashboard",
                tag=f"booking-{booking.id}",
                data={"bookingId": booking.id, "type": "payment_received"},
            )

    def notify_payment_failed(
        self, booking: Booking, payment: Payment, reason: Optional[str] = None
    ) -> None:
        retry_link = f"{self._frontend}/payment/retry?paymentId={payment.id}"
        message = (
            f"Votre paiement de {format_amount(payment.amount, payment.currency)} a échoué: "
            f"{reason or DEFAULT_FAILURE_REASON}. Réessayez ici: {retry_link}"
        )
        self._sms_user("payment_failed", booking.user_id, message)

    # ------------------------------------------------------------------
    # Booking events
    # ------------------------------------------------------------------

    def notify_booking_cancelled(
        self,
        booking: Booking,
        ride: Optional[Ride],
        refund_amount: float,
        refund_initiated: bool,
    ) -> None:
        if ride is not None:
            self._push_user(
                "booking_cancelled",
                ride.driver_id,
                "Réservation annulée",
                f"Un passager a annulé {booking.seats} place(s) pour {_route(ride)}.",
                tag=f"booking-{booking.id}",
                data={"bookingId": booking.id, "type": "booking_cancelled"},
            )

        if refund_amount <= 0:
            message = f"Votre réservation pour {_route(ride)} a été annulée."
        elif refund_initiated:
            message = (
                f"Votre réservation pour {_route(ride)} a été annulée. "
                f"Un remboursement de {format_amount(refund_amount)} est en cours."
            )
        else:
            message = (
                f"Votre réservation pour {_route(ride)} a été annulée. "
                f"Le remboursement de {format_amount(refund_amount)} sera traité par notre support."
            )
        self._sms_user("booking_cancelled", booking.user_id, message)

    def notify_partial_refund(
        self, booking: Booking, refund_amount: float, refund_initiated: bool
    ) -> None:
        state = "est en cours" if refund_initiated else "sera traité par notre support"
        message = (
            f"Votre réservation compte maintenant {booking.seats} place(s). "
            f"Le remboursement de {format_amount(refund_amount)} {state}."
        )
        self._sms_user("partial_refund", booking.user_id, message)

    # ------------------------------------------------------------------
    # Payout events
    # ------------------------------------------------------------------

    def send_payout_notification_if_needed(
        self,
        payout: Payout,
        status: str,
        source: "str | NotificationSource" = NotificationSource.CALLBACK,
        reason: Optional[str] = None,
    ) -> bool:
        """
        Notify the driver at most once per payout status.

        The sent flag, timestamp and triggering source are stored under
        `metadata.notificationSent`. Returns True only when a notification
        was dispatched by this call.
        """
        if status not in NOTIFIABLE_PAYOUT_STATUSES:
            return False
        sent = dict((payout.metadata_ or {}).get("notificationSent") or {})
        if sent.get(status):
            self.logger.info(
                "Skipping %s notification for payout %s - already sent by %s",
                status,
                payout.id,
                sent.get(f"{status}By"),
            )
            return False
        if not payout.driver_id:
            self.logger.warning("Cannot send %s notification - payout %s has no driver", status, payout.id)
            return False

        amount = format_amount(payout.amount, payout.currency)
        if status == PayoutStatus.COMPLETED.value:
            title = "Paiement reçu"
            body = f"Le transfert de {amount} a été effectué sur votre compte mobile money."
        else:
            title = "Échec du paiement"
            body = (
                f"Le transfert de {amount} a échoué. Raison: {reason or 'Raison inconnue'}. "
                "Veuillez contacter le support si le problème persiste."
            )

        dispatched = self._push_user(
            f"payout_{status}",
            payout.driver_id,
            title,
            body,
            url="/driver/dashboard?tab=payments",
            tag=f"payout-{payout.id}",
            data={"payoutId": payout.id, "bookingId": payout.booking_id, "type": f"payout_{status}"},
        )
        if not dispatched:
            return False

        source_value = source.value if isinstance(source, NotificationSource) else str(source)
        sent.update(
            {status: True, f"{status}At": utcnow().isoformat(), f"{status}By": source_value}
        )
        with self.transaction():
            self.payout_repository.merge_metadata(payout, notificationSent=sent)
        return True
