"""Provider endpoints: identity verification gate and earnings.

- POST /providers/{id}/verification: provider submits ID document and selfie
- GET /providers/{id}/verification: provider or admin reads the record
- POST /providers/{id}/verification/face-match: admin runs the face-match oracle
- POST /providers/{id}/verification/approve: admin approves (needs a matching verdict)
- POST /providers/{id}/verification/reject: admin rejects with a reason
- GET /providers/{id}/earnings: provider or admin reads the earnings summary
"""

from fastapi import APIRouter, Depends

from getserved.models.verification import VerificationSubmission
from getserved.services.escrow_service import EscrowService
from getserved.services.verification_service import ProviderVerificationService
from getserved_api.dependencies import get_escrow_service, get_verification_service
from getserved_api.models.common import ERROR_RESPONSES
from getserved_api.models.providers import (
    ApproveProviderRequest,
    EarningsResponse,
    RejectProviderRequest,
    SubmitVerificationRequest,
    VerificationResponse,
)
from getserved_api.security import (
    Principal,
    ensure_self_or_admin,
    get_principal,
    require_admin,
)

router = APIRouter(prefix="/providers", tags=["providers"])

ORACLE_RESPONSES = {
    **ERROR_RESPONSES,
    402: {"description": "Face-match credits exhausted"},
    429: {"description": "Face-match rate limit"},
    502: {"description": "Face-match service error"},
    503: {"description": "Face matching is not configured"},
}


@router.post(
    "/{provider_id}/verification",
    summary="Submit verification documents",
    description="Move a pending provider to `under_review`. Resubmitting while under review is a no-op.",
    response_model=VerificationResponse,
    responses=ERROR_RESPONSES,
)
async def submit_verification(
    provider_id: str,
    body: SubmitVerificationRequest,
    principal: Principal = Depends(get_principal),
    verification: ProviderVerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    ensure_self_or_admin(principal, provider_id)
    row = verification.submit(
        provider_id,
        VerificationSubmission(
            id_document_url=body.id_document_url, selfie_url=body.selfie_url
        ),
    )
    return VerificationResponse(verification=row)


@router.get(
    "/{provider_id}/verification",
    summary="Get verification record",
    response_model=VerificationResponse,
    responses=ERROR_RESPONSES,
)
async def get_verification(
    provider_id: str,
    principal: Principal = Depends(get_principal),
    verification: ProviderVerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    ensure_self_or_admin(principal, provider_id)
    return VerificationResponse(verification=verification.get(provider_id))


@router.post(
    "/{provider_id}/verification/face-match",
    summary="Run face match",
    description="""
Compare the submitted ID document with the selfie and store the verdict.

**Admin only.** A provider that is already approved or rejected returns its
stored record without calling the oracle.
""",
    response_model=VerificationResponse,
    responses=ORACLE_RESPONSES,
)
async def run_face_match(
    provider_id: str,
    admin: Principal = Depends(require_admin),
    verification: ProviderVerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    return VerificationResponse(verification=verification.run_face_match(provider_id))


@router.post(
    "/{provider_id}/verification/approve",
    summary="Approve provider",
    description="**Admin only.** Requires a stored face-match verdict with `match = true`.",
    response_model=VerificationResponse,
    responses=ERROR_RESPONSES,
)
async def approve_provider(
    provider_id: str,
    body: ApproveProviderRequest,
    admin: Principal = Depends(require_admin),
    verification: ProviderVerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    row = verification.approve(provider_id, reviewer_id=admin.sub, notes=body.notes)
    return VerificationResponse(verification=row)


@router.post(
    "/{provider_id}/verification/reject",
    summary="Reject provider",
    description="**Admin only.** A rejection reason is required.",
    response_model=VerificationResponse,
    responses=ERROR_RESPONSES,
)
async def reject_provider(
    provider_id: str,
    body: RejectProviderRequest,
    admin: Principal = Depends(require_admin),
    verification: ProviderVerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    row = verification.reject(provider_id, body.reason, reviewer_id=admin.sub)
    return VerificationResponse(verification=row)


@router.get(
    "/{provider_id}/earnings",
    summary="Provider earnings",
    description="Released payouts, escrow still held and job counts for a provider.",
    response_model=EarningsResponse,
    responses=ERROR_RESPONSES,
)
async def provider_earnings(
    provider_id: str,
    principal: Principal = Depends(get_principal),
    escrow: EscrowService = Depends(get_escrow_service),
) -> EarningsResponse:
    ensure_self_or_admin(principal, provider_id)
    return EarningsResponse(earnings=escrow.provider_earnings(provider_id))
