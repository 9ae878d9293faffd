"""Provider client lookup; honours the pawaPay exclusivity flag."""

from __future__ import annotations

import logging
import threading
from typing import Dict

from ridepay.core.config import settings
from ridepay.core.enums import PaymentProvider

from .base import PaymentProviderClient
from .mtn_client import MTNMoMoClient
from .orange_client import OrangeMoneyClient
from .pawapay_client import PawaPayClient

logger = logging.getLogger(__name__)

_CLIENTS: Dict[PaymentProvider, PaymentProviderClient] = {}
_CLIENTS_LOCK = threading.Lock()

_BUILDERS = {
    PaymentProvider.MTN: MTNMoMoClient,
    PaymentProvider.ORANGE: OrangeMoneyClient,
    PaymentProvider.PAWAPAY: PawaPayClient,
}


def resolve_provider(provider: "str | PaymentProvider") -> PaymentProvider:
    """The provider that will actually carry the operation."""
    if settings.use_pawapay:
        return PaymentProvider.PAWAPAY
    return PaymentProvider.parse(provider)


def get_provider_client(provider: "str | PaymentProvider") -> PaymentProviderClient:
    """Shared client per provider so token caches survive between calls."""
    resolved = resolve_provider(provider)
    client = _CLIENTS.get(resolved)
    if client is not None:
        return client
    with _CLIENTS_LOCK:
        client = _CLIENTS.get(resolved)
        if client is None:
            client = _BUILDERS[resolved]()
            _CLIENTS[resolved] = client
            logger.debug("Created %s provider client", resolved.value)
        return client


def reset_provider_clients() -> None:
    with _CLIENTS_LOCK:
        _CLIENTS.clear()
