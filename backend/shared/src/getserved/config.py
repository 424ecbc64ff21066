"""Runtime configuration read from environment variables.

Settings are read once per process (``get_settings`` is cached). Tests that
change the environment call ``get_settings.cache_clear()``.
"""

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator

from getserved.models.enums import GatewayProvider


class EscrowPolicy(BaseModel):
    """Commercial policy applied by the escrow core."""

    platform_fee_rate: Decimal = Field(
        default=Decimal("0.10"), ge=0, lt=1, description="Platform take rate"
    )
    min_refund_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    refund_percentage_step: Decimal | None = Field(
        default=None, gt=0, le=100, description="Refunds must be a multiple of this"
    )
    currency: str = "NGN"
    reference_prefix: str = Field(default="BK", min_length=1)

    @field_validator("reference_prefix")
    @classmethod
    def prefix_has_no_separator(cls, v: str) -> str:
        if "_" in v:
            raise ValueError("reference_prefix must not contain '_'")
        return v


class Settings(BaseModel):
    """Process-wide settings."""

    environment: str = "dev"
    table_prefix: str
    payment_gateway: GatewayProvider = GatewayProvider.PAYSTACK
    policy: EscrowPolicy = Field(default_factory=EscrowPolicy)
    app_base_url: str = "http://localhost:3000"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    ses_from_email: str | None = None
    ses_region: str | None = None
    face_match_api_url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    face_match_model: str = "google/gemini-2.5-flash"

    def ssm_path(self, name: str) -> str:
        """SSM parameter path for a secret in this environment."""
        return f"/getserved/{self.environment}/{name}"


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings from the environment."""
    environment = os.getenv("ENVIRONMENT", "dev")

    policy_kwargs: dict[str, object] = {
        "currency": os.getenv("PAYMENT_CURRENCY", "NGN"),
        "reference_prefix": os.getenv("PAYMENT_REFERENCE_PREFIX", "BK"),
        "platform_fee_rate": Decimal(os.getenv("PLATFORM_FEE_RATE", "0.10")),
        "min_refund_percentage": Decimal(os.getenv("REFUND_MIN_PERCENTAGE", "0")),
    }
    step = os.getenv("REFUND_PERCENTAGE_STEP")
    if step:
        policy_kwargs["refund_percentage_step"] = Decimal(step)

    settings_kwargs: dict[str, object] = {
        "environment": environment,
        "table_prefix": os.getenv("DYNAMODB_TABLE_PREFIX", f"getserved-{environment}"),
        "payment_gateway": GatewayProvider(os.getenv("PAYMENT_GATEWAY", "paystack")),
        "policy": EscrowPolicy(**policy_kwargs),
        "app_base_url": os.getenv("APP_BASE_URL", "http://localhost:3000"),
        "ses_from_email": os.getenv("SES_FROM_EMAIL") or None,
        "ses_region": os.getenv("SES_REGION") or None,
    }
    cors = os.getenv("CORS_ORIGINS")
    if cors:
        settings_kwargs["cors_origins"] = _split_csv(cors)
    if os.getenv("FACE_MATCH_API_URL"):
        settings_kwargs["face_match_api_url"] = os.environ["FACE_MATCH_API_URL"]
    if os.getenv("FACE_MATCH_MODEL"):
        settings_kwargs["face_match_model"] = os.environ["FACE_MATCH_MODEL"]

    return Settings(**settings_kwargs)
