"""Provider verification and earnings models."""

from pydantic import Field

from getserved.models.payment import ProviderEarnings
from getserved.models.verification import ProviderVerification

from .common import ApiRequest, SuccessResponse


class SubmitVerificationRequest(ApiRequest):
    id_document_url: str = Field(..., min_length=1)
    selfie_url: str = Field(..., min_length=1)


class ApproveProviderRequest(ApiRequest):
    notes: str | None = None


class RejectProviderRequest(ApiRequest):
    reason: str | None = Field(default=None, description="Required; shown to the provider")


class VerificationResponse(SuccessResponse):
    verification: ProviderVerification


class EarningsResponse(SuccessResponse):
    earnings: ProviderEarnings
