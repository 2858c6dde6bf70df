"""
Ledger configuration using Pydantic Settings.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import RefundOvershootPolicy


class LedgerSettings(BaseSettings):
    """Ledger policies loaded from LEDGER_* environment variables."""

    # A payment not applied to debt is a pure top-up; when enabled it is held as credit.
    treat_unapplied_payment_as_credit: bool = False

    # What happens to the part of a refund that exceeds outstanding debt.
    refund_overshoot_policy: RefundOvershootPolicy = RefundOvershootPolicy.CREDIT

    currency: str = "NGN"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="LEDGER_", env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> LedgerSettings:
    return LedgerSettings()
