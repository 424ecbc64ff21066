"""Provider identity verification models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import MatchConfidence, VerificationStatus


class FaceMatchVerdict(BaseModel):
    """Verdict returned by the face-match oracle.

    The oracle answers in camelCase; both spellings are accepted.
    """

    model_config = ConfigDict(populate_by_name=True)

    match: bool = Field(..., description="Whether the selfie matches the ID photo")
    confidence: MatchConfidence = MatchConfidence.LOW
    reason: str = ""
    id_face_detected: bool = Field(default=False, alias="idFaceDetected")
    selfie_face_detected: bool = Field(default=False, alias="selfieFaceDetected")

    @classmethod
    def unreadable(cls) -> "FaceMatchVerdict":
        """Verdict used when the oracle's answer cannot be parsed."""
        return cls(
            match=False,
            confidence=MatchConfidence.LOW,
            reason="Could not process verification result",
        )


class ProviderVerification(BaseModel):
    """A provider's verification row."""

    provider_id: str
    verification_status: VerificationStatus = VerificationStatus.PENDING
    id_document_url: str | None = None
    selfie_url: str | None = None
    face_match: FaceMatchVerdict | None = None
    rejection_reason: str | None = None
    review_notes: str | None = None
    reviewed_by: str | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class VerificationSubmission(BaseModel):
    """Documents a provider submits for review."""

    id_document_url: str = Field(..., min_length=1)
    selfie_url: str = Field(..., min_length=1)
