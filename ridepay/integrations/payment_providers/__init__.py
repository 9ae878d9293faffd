"""Mobile-money provider adapters (MTN MoMo, Orange Money, pawaPay)."""

from .base import PaymentProviderClient, ProviderResponse
from .factory import get_provider_client, reset_provider_clients, resolve_provider
from .mtn_client import MTNMoMoClient
from .orange_client import OrangeMoneyClient
from .pawapay_client import PawaPayClient

__all__ = [
    "MTNMoMoClient",
    "OrangeMoneyClient",
    "PawaPayClient",
    "PaymentProviderClient",
    "ProviderResponse",
    "get_provider_client",
    "reset_provider_clients",
    "resolve_provider",
]
