"""Customer payment history models."""

from getserved.models.payment import CustomerPayments

from .common import SuccessResponse


class PaymentHistoryResponse(SuccessResponse):
    payments: CustomerPayments
