"""Runtime configuration.

Values come from ``GIFTFLOW_*`` environment variables or a local ``.env``
file; everything has a default that works for a local checkout.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from giftflow.application.retry import RetryPolicy
from giftflow.domain.exceptions import CommitInProgress, FatalError, TransientError
from giftflow.domain.service.rate_quoter import FallbackTier


class FallbackRate(BaseModel):
    id: str
    title: str
    price: Decimal
    delivery_days: int = Field(gt=0)

    def to_tier(self) -> FallbackTier:
        return FallbackTier(self.id, self.title, self.price, self.delivery_days)


class RetrySettings(BaseModel):
    max_attempts: int = Field(default=4, ge=1)
    initial_backoff: float = Field(default=0.5, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)
    max_backoff: float = Field(default=8.0, ge=0)
    attempt_timeout: float | None = Field(default=None, gt=0)

    def policy(self, retry_on: tuple[type[Exception], ...] = (TransientError,)) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_backoff=self.initial_backoff,
            backoff_factor=self.backoff_factor,
            max_backoff=self.max_backoff,
            attempt_timeout=self.attempt_timeout,
            retry_on=retry_on,
        )


def _default_fallback_rates() -> list[FallbackRate]:
    return [
        FallbackRate(id="standard", title="Standard Shipping", price=Decimal("9.99"), delivery_days=5),
        FallbackRate(id="expedited", title="Expedited Shipping", price=Decimal("19.99"), delivery_days=2),
    ]


class Settings(BaseSettings):
    """Giftflow settings.

    Nested values use ``__`` as delimiter, e.g.
    ``GIFTFLOW_COMMIT_RETRY__MAX_ATTEMPTS=6``.
    """

    # Storage
    data_dir: Path = Field(default_factory=lambda: Path.cwd() / "data")

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # Money
    currency: str = Field(default="USD", min_length=3, max_length=3)
    default_min_contribution: Decimal = Field(default=Decimal("5.00"), gt=0)

    # Shipping
    fallback_rates: list[FallbackRate] = Field(default_factory=_default_fallback_rates)

    # Retry budgets
    commit_retry: RetrySettings = Field(
        default_factory=lambda: RetrySettings(attempt_timeout=30.0)
    )
    refund_retry: RetrySettings = Field(
        default_factory=lambda: RetrySettings(attempt_timeout=15.0)
    )
    fulfillment_attempts: int = Field(default=3, ge=1)
    stale_pending_seconds: float = Field(default=300.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="GIFTFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> str:
        level = str(v).upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v: Any) -> str:
        return str(v).upper()

    @field_validator("data_dir", mode="before")
    @classmethod
    def resolve_data_dir(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    # --- Derived objects ------------------------------------------------------

    def fallback_tiers(self) -> tuple[FallbackTier, ...]:
        return tuple(rate.to_tier() for rate in self.fallback_rates)

    def commit_policy(self) -> RetryPolicy:
        return self.commit_retry.policy()

    def refund_policy(self) -> RetryPolicy:
        return self.refund_retry.policy()

    def fulfillment_policy(self) -> RetryPolicy:
        """Whole campaign-to-order unit; the committer retries the call inside it."""
        return RetrySettings(max_attempts=self.fulfillment_attempts).policy(
            retry_on=(FatalError, CommitInProgress, TransientError)
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
