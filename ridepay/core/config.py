# ridepay/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


def secret_or_plain(value: Optional[SecretStr | str]) -> str:
    """Return the plain string behind an optional secret."""
    if value is None:
        return ""
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return value


class Settings(BaseSettings):
    """Runtime configuration for the ride payment service."""

    environment: str = Field(default="development")
    database_url: str = Field(default="sqlite:///./ridepay.db")
    redis_url: Optional[str] = Field(default=None)
    celery_broker_url: Optional[str] = Field(default=None)
    frontend_url: str = Field(default="http://localhost:3000")
    lock_namespace: str = Field(default="ridepay")

    # MTN Mobile Money
    mtn_base_url: str = Field(default="https://sandbox.momodeveloper.mtn.com")
    mtn_target_environment: str = Field(default="sandbox")
    mtn_collection_subscription_key: Optional[SecretStr] = None
    mtn_collection_api_user: Optional[str] = None
    mtn_collection_api_key: Optional[SecretStr] = None
    mtn_disbursement_subscription_key: Optional[SecretStr] = None
    mtn_disbursement_api_user: Optional[str] = None
    mtn_disbursement_api_key: Optional[SecretStr] = None
    mtn_callback_url: Optional[str] = None

    # Orange Money
    orange_base_url: str = Field(default="https://api-s1.orange.cm/omcoreapis/1.0.2/")
    orange_token_url: str = Field(default="https://api-s1.orange.cm/token")
    orange_consumer_key: Optional[str] = None
    orange_consumer_secret: Optional[SecretStr] = None
    orange_api_username: Optional[str] = None
    orange_api_password: Optional[SecretStr] = None
    orange_merchant_number: Optional[str] = None
    orange_pin: Optional[SecretStr] = None
    orange_callback_url: Optional[str] = None

    # pawaPay
    pawapay_base_url: str = Field(default="https://api.sandbox.pawapay.io")
    pawapay_api_token: Optional[SecretStr] = None
    pawapay_callback_url: Optional[str] = None

    use_pawapay: bool = Field(
        default=False,
        description="Route every mobile-money operation through pawaPay and skip other providers",
    )
    sandbox_payout_test_phone: Optional[str] = None

    # Fees (rates are percentages)
    transaction_fee_rate: float = Field(default=0.0, ge=0)
    transaction_fee_fixed: float = Field(default=0.0, ge=0)
    commission_rate: float = Field(default=0.0, ge=0)

    # Reconciliation and retry policy
    payment_stale_minutes: int = Field(default=5, ge=0)
    payout_max_retries: int = Field(default=3, ge=0)
    payout_retry_delay_minutes: int = Field(default=5, ge=0)
    verification_code_ttl_hours: int = Field(default=24, ge=1)
    reconciliation_sweep_minutes: int = Field(default=5, ge=1)
    default_currency: str = Field(default="XAF")

    # Notifications
    sms_enabled: bool = Field(default=False)
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[SecretStr] = None
    twilio_phone_number: Optional[str] = None
    vapid_public_key: Optional[str] = None
    vapid_private_key: Optional[SecretStr] = None
    vapid_claims_email: str = Field(default="mailto:support@ridepay.local")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("mtn_target_environment")
    @classmethod
    def _normalize_target_environment(cls, value: str) -> str:
        normalized = (value or "sandbox").strip().lower()
        if normalized == "production":
            return "mtncameroon"
        return normalized

    @field_validator("default_currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return (value or "XAF").strip().upper()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in {"prod", "production"}

    def get_database_url(self) -> str:
        """Return the configured database URL."""
        return self.database_url


settings = Settings()
