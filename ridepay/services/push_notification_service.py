# ridepay/services/push_notification_service.py
"""
Web push delivery to drivers and passengers.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from pywebpush import WebPushException, webpush
from sqlalchemy.orm import Session

from ..core.config import secret_or_plain, settings
from ..models.notification import PushSubscription
from ..repositories.factory import RepositoryFactory
from ..repositories.push_subscription_repository import PushSubscriptionRepository
from .base import BaseService

logger = logging.getLogger(__name__)

DEFAULT_ICON = "/icons/icon-192x192.png"


class PushNotificationService(BaseService):
    """Service for sending web push notifications."""

    def __init__(
        self,
        db: Session,
        subscription_repository: Optional[PushSubscriptionRepository] = None,
    ) -> None:
        super().__init__(db)
        self.subscription_repository = (
            subscription_repository or RepositoryFactory.create_push_subscription_repository(db)
        )
        self._frontend_base = settings.frontend_url.rstrip("/")

    def _resolve_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self._frontend_base}{path}"

    @staticmethod
    def is_configured() -> bool:
        """Check if VAPID keys are configured."""
        return bool(
            settings.vapid_public_key and secret_or_plain(settings.vapid_private_key).strip()
        )

    @BaseService.measure_operation("send_push_notification")
    def send_push_notification(
        self,
        user_id: str,
        title: str,
        body: str,
        url: Optional[str] = None,
        tag: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, int]:
        """
        Send push notification to all of a user's subscribed devices.

        Returns:
            dict with 'sent', 'failed', 'expired' counts
        """
        counts = {"sent": 0, "failed": 0, "expired": 0}
        if not self.is_configured():
            self.logger.debug("Push notifications not configured; skipping send")
            return counts

        subscriptions = self.subscription_repository.get_user_subscriptions(user_id)
        if not subscriptions:
            return counts

        payload_data: Dict[str, Any] = dict(data or {})
        if url:
            payload_data.setdefault("url", self._resolve_url(url))
        payload = json.dumps(
            {
                key: value
                for key, value in {
                    "title": title,
                    "body": body,
                    "icon": self._resolve_url(DEFAULT_ICON),
                    "tag": tag,
                    "data": payload_data or None,
                }.items()
                if value is not None
            }
        )

        for subscription in subscriptions:
            counts[self._send_to_subscription(subscription, payload)] += 1
        return counts

    def _send_to_subscription(self, subscription: PushSubscription, payload: str) -> str:
        """Returns 'sent', 'expired' or 'failed'. Expired subscriptions are deleted."""
        try:
            webpush(
                subscription_info={
                    "endpoint": subscription.endpoint,
                    "keys": {"p256dh": subscription.p256dh_key, "auth": subscription.auth_key},
                },
                data=payload,
                vapid_private_key=secret_or_plain(settings.vapid_private_key).strip(),
                vapid_claims={"sub": settings.vapid_claims_email},
            )
            return "sent"
        except WebPushException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            if status_code in (404, 410):
                self.logger.info(
                    "Push subscription expired; deleting endpoint for user_id=%s",
                    subscription.user_id,
                )
                with self.transaction():
                    self.subscription_repository.delete_subscription(subscription)
                return "expired"
            self.logger.error("Push send failed: %s", exc)
            return "failed"
