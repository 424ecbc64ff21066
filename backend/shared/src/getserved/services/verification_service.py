"""Provider identity verification.

A separate state machine on the ``providers`` table:

    pending --submit--> under_review --approve--> approved
                                    --reject---> rejected

Approval requires a stored face-match verdict with ``match = true``.
Rejection requires a reason. Every write is conditional on the current
status, and a decided provider is never re-decided by a retried call.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from getserved.config import Settings, get_settings
from getserved.models.enums import VerificationStatus
from getserved.models.errors import ErrorCode, EscrowError
from getserved.models.verification import (
    FaceMatchVerdict,
    ProviderVerification,
    VerificationSubmission,
)
from getserved.utils.logging import get_logger

from .dynamodb import PROVIDERS_TABLE, DynamoDBService
from .face_match_service import FaceMatchOracle, OracleError
from .ssm_service import resolve_secret

logger = get_logger(__name__)

DECIDED = (VerificationStatus.APPROVED, VerificationStatus.REJECTED)


def oracle_failure(e: OracleError) -> EscrowError:
    """Convert an oracle exception to a distinguishable upstream error."""
    if e.status_code == 429:
        return EscrowError(ErrorCode.ORACLE_RATE_LIMITED)
    if e.status_code == 402:
        return EscrowError(ErrorCode.ORACLE_CREDITS_EXHAUSTED)
    return EscrowError(ErrorCode.ORACLE_ERROR, str(e))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderVerificationService:
    """Submit, face-match and review provider identity documents."""

    KEY = "provider_id"

    def __init__(
        self,
        db: DynamoDBService,
        oracle: FaceMatchOracle | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.db = db
        self.oracle = oracle
        self._clock = clock

    def _load(self, provider_id: str) -> ProviderVerification | None:
        item = self.db.get_item(PROVIDERS_TABLE, {self.KEY: provider_id})
        return ProviderVerification.model_validate(item) if item else None

    def get(self, provider_id: str) -> ProviderVerification:
        row = self._load(provider_id)
        if row is None:
            raise EscrowError(ErrorCode.PROVIDER_NOT_FOUND, details={"provider_id": provider_id})
        return row

    def _update(
        self,
        provider_id: str,
        updates: dict[str, Any],
        condition: str,
        condition_values: dict[str, Any],
        extra_names: dict[str, str] | None = None,
    ) -> ProviderVerification | None:
        names = {f"#u{i}": attr for i, attr in enumerate(updates)}
        names["#status"] = "verification_status"
        if extra_names:
            names.update(extra_names)
        values = {f":u{i}": value for i, value in enumerate(updates.values())}
        values.update(condition_values)
        set_clause = ", ".join(f"#u{i} = :u{i}" for i in range(len(updates)))

        attrs = self.db.update_item(
            PROVIDERS_TABLE,
            key={self.KEY: provider_id},
            update_expression=f"SET {set_clause}",
            expression_attribute_values=values,
            expression_attribute_names=names,
            condition_expression=condition,
        )
        return ProviderVerification.model_validate(attrs) if attrs else None

    @staticmethod
    def _not_under_review(row: ProviderVerification) -> EscrowError:
        return EscrowError(
            ErrorCode.VERIFICATION_NOT_UNDER_REVIEW,
            details={
                "provider_id": row.provider_id,
                "verification_status": row.verification_status.value,
            },
        )

    def submit(self, provider_id: str, submission: VerificationSubmission) -> ProviderVerification:
        """Move a provider from pending (or no row yet) to under_review."""
        now = self._clock().isoformat()
        updates: dict[str, Any] = {
            "verification_status": VerificationStatus.UNDER_REVIEW.value,
            "id_document_url": submission.id_document_url,
            "selfie_url": submission.selfie_url,
            "submitted_at": now,
            "updated_at": now,
        }
        row = self._update(
            provider_id,
            updates,
            condition="attribute_not_exists(#status) OR #status = :pending",
            condition_values={":pending": VerificationStatus.PENDING.value},
        )
        if row is not None:
            logger.info("Provider %s submitted for verification review", provider_id)
            return row

        current = self.get(provider_id)
        if current.verification_status == VerificationStatus.UNDER_REVIEW:
            return current
        raise EscrowError(
            ErrorCode.VERIFICATION_NOT_UNDER_REVIEW,
            "Provider verification has already been decided",
            details={
                "provider_id": provider_id,
                "verification_status": current.verification_status.value,
            },
        )

    def run_face_match(self, provider_id: str) -> ProviderVerification:
        """Ask the oracle for a verdict and store it while under review.

        A decided provider returns its stored record without calling the oracle.
        """
        row = self.get(provider_id)
        if row.verification_status in DECIDED:
            return row
        if row.verification_status != VerificationStatus.UNDER_REVIEW:
            raise self._not_under_review(row)
        if not row.id_document_url or not row.selfie_url:
            raise EscrowError(
                ErrorCode.VALIDATION_FAILED,
                "Missing required fields: id_document_url, selfie_url",
            )
        if self.oracle is None:
            raise EscrowError(ErrorCode.ORACLE_NOT_CONFIGURED)

        logger.info("Running face match for provider %s", provider_id)
        try:
            verdict = self.oracle.compare(row.id_document_url, row.selfie_url)
        except OracleError as e:
            raise oracle_failure(e) from e

        updated = self._update(
            provider_id,
            {
                "face_match": verdict.model_dump(mode="json"),
                "updated_at": self._clock().isoformat(),
            },
            condition="#status = :review",
            condition_values={":review": VerificationStatus.UNDER_REVIEW.value},
        )
        if updated is None:
            # Decided while the oracle was running; keep the decision
            return self.get(provider_id)

        logger.info(
            "Face match for provider %s: match=%s confidence=%s",
            provider_id,
            verdict.match,
            verdict.confidence.value,
        )
        return updated

    def approve(
        self, provider_id: str, reviewer_id: str, notes: str | None = None
    ) -> ProviderVerification:
        """Approve a provider whose stored verdict is a match."""
        row = self.get(provider_id)
        if row.verification_status == VerificationStatus.APPROVED:
            return row
        if row.verification_status != VerificationStatus.UNDER_REVIEW:
            raise self._not_under_review(row)
        if row.face_match is None or not row.face_match.match:
            raise EscrowError(
                ErrorCode.FACE_MATCH_REQUIRED,
                details={"provider_id": provider_id},
            )

        now = self._clock().isoformat()
        updated = self._update(
            provider_id,
            {
                "verification_status": VerificationStatus.APPROVED.value,
                "reviewed_by": reviewer_id,
                "reviewed_at": now,
                "review_notes": notes,
                "updated_at": now,
            },
            condition="#status = :review AND #fm.#match = :true",
            condition_values={
                ":review": VerificationStatus.UNDER_REVIEW.value,
                ":true": True,
            },
            extra_names={"#fm": "face_match", "#match": "match"},
        )
        if updated is None:
            current = self.get(provider_id)
            if current.verification_status == VerificationStatus.APPROVED:
                return current
            raise EscrowError(
                ErrorCode.CONCURRENT_UPDATE, details={"provider_id": provider_id}
            )

        logger.info("Provider %s approved by %s", provider_id, reviewer_id)
        return updated

    def reject(self, provider_id: str, reason: str | None, reviewer_id: str) -> ProviderVerification:
        """Reject a provider under review. A reason is mandatory."""
        cleaned = (reason or "").strip()
        if not cleaned:
            raise EscrowError(ErrorCode.REJECTION_REASON_REQUIRED)

        row = self.get(provider_id)
        if row.verification_status == VerificationStatus.REJECTED:
            return row
        if row.verification_status != VerificationStatus.UNDER_REVIEW:
            raise self._not_under_review(row)

        now = self._clock().isoformat()
        updated = self._update(
            provider_id,
            {
                "verification_status": VerificationStatus.REJECTED.value,
                "rejection_reason": cleaned,
                "reviewed_by": reviewer_id,
                "reviewed_at": now,
                "updated_at": now,
            },
            condition="#status = :review",
            condition_values={":review": VerificationStatus.UNDER_REVIEW.value},
        )
        if updated is None:
            current = self.get(provider_id)
            if current.verification_status == VerificationStatus.REJECTED:
                return current
            raise EscrowError(
                ErrorCode.CONCURRENT_UPDATE, details={"provider_id": provider_id}
            )

        logger.info("Provider %s rejected by %s", provider_id, reviewer_id)
        return updated


def build_face_match_oracle(settings: Settings) -> FaceMatchOracle | None:
    """Build the oracle client, or None when no API key is available."""
    api_key = resolve_secret("FACE_MATCH_API_KEY", settings.ssm_path("face_match/api_key"))
    if not api_key:
        logger.warning("No face-match API key; face matching is disabled")
        return None
    return FaceMatchOracle(
        api_key, api_url=settings.face_match_api_url, model=settings.face_match_model
    )


@lru_cache(maxsize=1)
def get_face_match_oracle() -> FaceMatchOracle | None:
    return build_face_match_oracle(get_settings())
