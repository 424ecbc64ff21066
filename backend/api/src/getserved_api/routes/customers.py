"""Customer endpoints.

- GET /customers/{customer_id}/payments: the customer (or an admin) reads their payment history
"""

from fastapi import APIRouter, Depends

from getserved.services.escrow_service import EscrowService
from getserved_api.dependencies import get_escrow_service
from getserved_api.models.common import ERROR_RESPONSES
from getserved_api.models.customers import PaymentHistoryResponse
from getserved_api.security import Principal, ensure_self_or_admin, get_principal

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get(
    "/{customer_id}/payments",
    summary="Customer payment history",
    description="""
Payments and refunds across a customer's bookings, newest booking first.

`total_paid` counts every payment the gateway collected, including ones later
refunded; `total_refunded` is the money returned.
""",
    response_model=PaymentHistoryResponse,
    responses=ERROR_RESPONSES,
)
async def customer_payments(
    customer_id: str,
    principal: Principal = Depends(get_principal),
    escrow: EscrowService = Depends(get_escrow_service),
) -> PaymentHistoryResponse:
    ensure_self_or_admin(principal, customer_id)
    return PaymentHistoryResponse(payments=escrow.customer_payments(customer_id))
