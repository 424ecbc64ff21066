"""Unit tests for EscrowService against moto DynamoDB.

Concurrency is simulated deterministically: RacingLedger runs a rival
request right before this request's conditional write, so the write meets a
row that changed after it was read.

Test categories:
- Happy path through release
- InitiatePayment idempotency and lost races
- ConfirmPayment gateway outcomes and replays
- MarkComplete / release edge triggering and crash recovery
- RequestRefund, including refund-vs-release races
- Provider earnings and customer payment history
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable

import pytest
from pydantic import ValidationError

from factories import (
    CUSTOMER_ID,
    FIXED_NOW,
    PROVIDER_ID,
    REFERENCE,
    TOTAL,
    build_booking,
    paid_booking,
    released_booking,
)
from getserved.config import EscrowPolicy
from getserved.models.booking import BookingCreate
from getserved.models.enums import BookingStatus, CompletionRole, PaymentStatus
from getserved.models.errors import ErrorCode, EscrowError
from getserved.models.events import PaymentConfirmed, PaymentReleased, RefundIssued
from getserved.models.payment import Checkout, GatewayRefund, GatewayTransaction
from getserved.models.transition import Transition
from getserved.services.dynamodb import DynamoDBService
from getserved.services.escrow_service import EscrowService
from getserved.services.gateway import DemoGateway, GatewayError
from getserved.services.ledger import BookingLedger


# === Test Doubles ===


class FakeGateway(DemoGateway):
    """Scriptable gateway that records every call."""

    def __init__(self) -> None:
        super().__init__()
        self.initialized: list[dict[str, Any]] = []
        self.verified: list[str] = []
        self.refunded: list[dict[str, Any]] = []
        self.status = "success"
        self.amount: Decimal | None = None
        self.metadata_booking_id: str | None = None
        self.error: GatewayError | None = None
        self.refund_error: GatewayError | None = None

    def initialize(self, **kwargs: Any) -> Checkout:
        self.initialized.append(kwargs)
        if self.error:
            raise self.error
        n = len(self.initialized)
        return Checkout(
            reference=kwargs["reference"],
            access_code=f"acc_{n}",
            authorization_url=f"https://checkout.example/acc_{n}",
        )

    def verify(self, reference: str, access_code: str | None = None) -> GatewayTransaction:
        self.verified.append(reference)
        if self.error:
            raise self.error
        return GatewayTransaction(
            reference=reference,
            status=self.status,
            amount=self.amount,
            booking_id=self.metadata_booking_id,
        )

    def refund(self, **kwargs: Any) -> GatewayRefund:
        self.refunded.append(kwargs)
        if self.refund_error:
            raise self.refund_error
        return GatewayRefund(refund_id="rf_1", status="pending", amount=kwargs["amount"])


class RacingLedger(BookingLedger):
    """Runs a rival request once, immediately before the next conditional write."""

    def __init__(self, db: DynamoDBService) -> None:
        super().__init__(db)
        self.before_apply: Callable[[], Any] | None = None

    def apply(self, transition: Transition):
        rival, self.before_apply = self.before_apply, None
        if rival is not None:
            rival()
        return super().apply(transition)


# === Fixtures ===


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def racing_ledger(dynamodb: DynamoDBService) -> RacingLedger:
    return RacingLedger(dynamodb)


@pytest.fixture
def service(racing_ledger: RacingLedger, gateway: FakeGateway, clock) -> EscrowService:
    return EscrowService(racing_ledger, gateway, EscrowPolicy(), clock=clock)


@pytest.fixture
def rival(dynamodb: DynamoDBService, clock) -> EscrowService:
    """A second request handler sharing the same table."""
    return EscrowService(BookingLedger(dynamodb), FakeGateway(), EscrowPolicy(), clock=clock)


def _pay(service: EscrowService, booking_id: str = "bk-001") -> str:
    result = service.initiate_payment(booking_id, amount=TOTAL, email="ada@example.com")
    service.confirm_payment(result.checkout.reference)
    return result.checkout.reference


# === Bookings ===


class TestCreateBooking:
    def test_creates_pending_row(self, service: EscrowService, racing_ledger: RacingLedger) -> None:
        booking = service.create_booking(
            CUSTOMER_ID,
            BookingCreate(
                provider_id=PROVIDER_ID,
                total_amount=Decimal("7500"),
                scheduled_date="2026-11-02",
                scheduled_time="09:00",
            ),
        )

        stored = racing_ledger.require(booking.booking_id)
        assert stored.customer_id == CUSTOMER_ID
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.status == BookingStatus.PENDING_PAYMENT
        assert stored.currency == "NGN"
        assert not stored.customer_completed and not stored.provider_completed

    @pytest.mark.parametrize("amount", ["100.005", "0.001", "7500.125"])
    def test_sub_minor_unit_total_rejected(self, amount: str) -> None:
        with pytest.raises(ValidationError, match="decimal places"):
            BookingCreate(
                provider_id=PROVIDER_ID,
                total_amount=Decimal(amount),
                scheduled_date="2026-11-02",
                scheduled_time="09:00",
            )

    def test_trailing_zeros_accepted(self) -> None:
        create = BookingCreate(
            provider_id=PROVIDER_ID,
            total_amount=Decimal("100.10"),
            scheduled_date="2026-11-02",
            scheduled_time="09:00",
        )

        assert create.total_amount == Decimal("100.1")


# === Happy Path ===


class TestHappyPath:
    def test_pay_complete_release(
        self, service: EscrowService, racing_ledger: RacingLedger, store
    ) -> None:
        store(build_booking())

        initiated = service.initiate_payment("bk-001", amount=TOTAL, email="ada@example.com")
        assert initiated.created is True
        assert initiated.checkout.reference.startswith("BK_bk-001_")

        verified = service.confirm_payment(initiated.checkout.reference)
        assert verified.confirmed is True
        assert verified.payment_status == "paid"
        assert [type(e) for e in verified.events] == [PaymentConfirmed]

        first = service.mark_complete("bk-001", CompletionRole.CUSTOMER)
        assert first.released is False
        assert first.events == []

        second = service.mark_complete("bk-001", CompletionRole.PROVIDER)
        assert second.released is True
        assert second.split is not None
        assert second.split.provider_payout == Decimal("9000.00")
        assert second.split.platform_fee == Decimal("1000.00")
        assert [type(e) for e in second.events] == [PaymentReleased]

        row = racing_ledger.require("bk-001")
        assert row.payment_status == PaymentStatus.RELEASED
        assert row.status == BookingStatus.COMPLETED
        assert row.completed_at == FIXED_NOW
        assert row.provider_payout_amount + row.platform_fee_amount == row.total_amount


# === InitiatePayment ===


class TestInitiatePayment:
    def test_replay_returns_stored_checkout_without_gateway_call(
        self, service: EscrowService, gateway: FakeGateway, store
    ) -> None:
        store(build_booking())

        first = service.initiate_payment("bk-001", amount=TOTAL, email="ada@example.com")
        second = service.initiate_payment("bk-001", amount=TOTAL, email="ada@example.com")

        assert second.created is False
        assert second.checkout == first.checkout
        assert len(gateway.initialized) == 1

    def test_amount_mismatch_rejected_before_gateway(
        self, service: EscrowService, gateway: FakeGateway, store
    ) -> None:
        store(build_booking())

        with pytest.raises(EscrowError) as exc_info:
            service.initiate_payment("bk-001", amount=Decimal("1"), email="ada@example.com")

        assert exc_info.value.code == ErrorCode.AMOUNT_MISMATCH
        assert gateway.initialized == []

    def test_gateway_failure_leaves_row_untouched(
        self, service: EscrowService, gateway: FakeGateway, racing_ledger: RacingLedger, store
    ) -> None:
        store(build_booking())
        gateway.error = GatewayError("boom")

        with pytest.raises(EscrowError) as exc_info:
            service.initiate_payment("bk-001", amount=TOTAL, email="ada@example.com")

        assert exc_info.value.code == ErrorCode.GATEWAY_ERROR
        assert racing_ledger.require("bk-001").payment_reference is None

    def test_rate_limited_gateway(self, service: EscrowService, gateway: FakeGateway, store) -> None:
        store(build_booking())
        gateway.error = GatewayError("slow down", status_code=429, rate_limited=True)

        with pytest.raises(EscrowError) as exc_info:
            service.initiate_payment("bk-001", amount=TOTAL, email="ada@example.com")

        assert exc_info.value.code == ErrorCode.GATEWAY_RATE_LIMITED

    def test_lost_race_returns_winners_checkout(
        self,
        service: EscrowService,
        rival: EscrowService,
        racing_ledger: RacingLedger,
        store,
    ) -> None:
        store(build_booking())
        winner: dict[str, Checkout] = {}
        racing_ledger.before_apply = lambda: winner.setdefault(
            "checkout",
            rival.initiate_payment("bk-001", amount=TOTAL, email="ada@example.com").checkout,
        )

        result = service.initiate_payment("bk-001", amount=TOTAL, email="ada@example.com")

        assert result.created is False
        assert result.checkout.reference == winner["checkout"].reference
        assert racing_ledger.require("bk-001").payment_reference == winner["checkout"].reference

    def test_cannot_initiate_after_payment(self, service: EscrowService, store) -> None:
        store(paid_booking())

        with pytest.raises(EscrowError) as exc_info:
            service.initiate_payment("bk-001", amount=TOTAL, email="ada@example.com")

        assert exc_info.value.code == ErrorCode.PAYMENT_NOT_PENDING


# === ConfirmPayment ===


class TestConfirmPayment:
    def test_replay_does_not_call_gateway_or_notify(
        self, service: EscrowService, gateway: FakeGateway, store
    ) -> None:
        store(build_booking())
        reference = _pay(service)

        replay = service.confirm_payment(reference)

        assert replay.confirmed is True
        assert replay.events == []
        assert gateway.verified == [reference]

    def test_unsuccessful_gateway_status_leaves_row_pending(
        self, service: EscrowService, gateway: FakeGateway, racing_ledger: RacingLedger, store
    ) -> None:
        store(build_booking(payment_reference=REFERENCE))
        gateway.status = "abandoned"

        result = service.confirm_payment(REFERENCE)

        assert result.confirmed is False
        assert result.payment_status == "abandoned"
        assert racing_ledger.require("bk-001").payment_status == PaymentStatus.PENDING

    def test_paid_amount_must_match_total(
        self, service: EscrowService, gateway: FakeGateway, racing_ledger: RacingLedger, store
    ) -> None:
        store(build_booking(payment_reference=REFERENCE))
        gateway.amount = Decimal("100")

        with pytest.raises(EscrowError) as exc_info:
            service.confirm_payment(REFERENCE)

        assert exc_info.value.code == ErrorCode.AMOUNT_MISMATCH
        assert racing_ledger.require("bk-001").payment_status == PaymentStatus.PENDING

    def test_gateway_metadata_cross_check(
        self, service: EscrowService, gateway: FakeGateway, store
    ) -> None:
        store(build_booking(payment_reference=REFERENCE))
        gateway.metadata_booking_id = "bk-other"

        with pytest.raises(EscrowError) as exc_info:
            service.confirm_payment(REFERENCE)

        assert exc_info.value.code == ErrorCode.REFERENCE_MISMATCH

    def test_unknown_booking(self, service: EscrowService) -> None:
        with pytest.raises(EscrowError) as exc_info:
            service.confirm_payment("BK_nope_1767225600000")

        assert exc_info.value.code == ErrorCode.BOOKING_NOT_FOUND

    def test_lost_race_confirms_once(
        self,
        service: EscrowService,
        rival: EscrowService,
        racing_ledger: RacingLedger,
        store,
    ) -> None:
        store(build_booking(payment_reference=REFERENCE))
        rival_result: dict[str, Any] = {}
        racing_ledger.before_apply = lambda: rival_result.setdefault(
            "verify", rival.confirm_payment(REFERENCE)
        )

        result = service.confirm_payment(REFERENCE)

        assert result.confirmed is True
        assert result.events == []
        assert len(rival_result["verify"].events) == 1


# === MarkComplete / Release ===


class TestMarkComplete:
    def test_marking_twice_is_noop(self, service: EscrowService, racing_ledger: RacingLedger, store) -> None:
        store(paid_booking())

        service.mark_complete("bk-001", CompletionRole.CUSTOMER)
        again = service.mark_complete("bk-001", CompletionRole.CUSTOMER)

        assert again.customer_completed is True
        assert again.provider_completed is False
        assert again.events == []
        assert racing_ledger.require("bk-001").payment_status == PaymentStatus.PAID

    def test_unpaid_rejected(self, service: EscrowService, store) -> None:
        store(build_booking())

        with pytest.raises(EscrowError) as exc_info:
            service.mark_complete("bk-001", CompletionRole.PROVIDER)

        assert exc_info.value.code == ErrorCode.PAYMENT_NOT_PAID

    def test_concurrent_completion_releases_exactly_once(
        self,
        service: EscrowService,
        rival: EscrowService,
        racing_ledger: RacingLedger,
        store,
    ) -> None:
        store(paid_booking())
        rival_result: dict[str, Any] = {}
        racing_ledger.before_apply = lambda: rival_result.setdefault(
            "provider", rival.mark_complete("bk-001", CompletionRole.PROVIDER)
        )

        customer = service.mark_complete("bk-001", CompletionRole.CUSTOMER)

        assert rival_result["provider"].released is False
        assert customer.released is True
        assert [type(e) for e in customer.events] == [PaymentReleased]
        assert racing_ledger.require("bk-001").payment_status == PaymentStatus.RELEASED

    def test_replay_after_crash_releases_once(
        self, service: EscrowService, racing_ledger: RacingLedger, store
    ) -> None:
        # Both flags written but the release never ran
        store(paid_booking(customer_completed=True, provider_completed=True))

        first = service.mark_complete("bk-001", CompletionRole.PROVIDER)
        second = service.mark_complete("bk-001", CompletionRole.CUSTOMER)

        assert first.released is True
        assert len(first.events) == 1
        assert second.released is True
        assert second.events == []

    def test_refund_wins_race_against_completion(
        self,
        service: EscrowService,
        rival: EscrowService,
        racing_ledger: RacingLedger,
        store,
    ) -> None:
        store(paid_booking())
        racing_ledger.before_apply = lambda: rival.request_refund(
            "bk-001", percentage=100, reason="Cancelled by admin"
        )

        with pytest.raises(EscrowError) as exc_info:
            service.mark_complete("bk-001", CompletionRole.CUSTOMER)

        assert exc_info.value.code == ErrorCode.PAYMENT_NOT_PAID
        row = racing_ledger.require("bk-001")
        assert row.payment_status == PaymentStatus.REFUNDED
        assert row.customer_completed is False


class TestReleasePayment:
    def test_outstanding_party_named(self, service: EscrowService, racing_ledger: RacingLedger, store) -> None:
        store(paid_booking(customer_completed=True))

        with pytest.raises(EscrowError) as exc_info:
            service.release_payment("bk-001")

        assert exc_info.value.code == ErrorCode.COMPLETION_OUTSTANDING
        assert exc_info.value.message == "Waiting for provider to mark job as complete"
        assert racing_ledger.require("bk-001").provider_payout_amount is None

    def test_release_when_both_confirmed(self, service: EscrowService, store) -> None:
        store(paid_booking(customer_completed=True, provider_completed=True))

        result = service.release_payment("bk-001")

        assert result.split.provider_payout == Decimal("9000.00")
        assert len(result.events) == 1

    def test_already_released_returns_stored_split(self, service: EscrowService, store) -> None:
        store(released_booking(provider_payout_amount=Decimal("8500.00"), platform_fee_amount=Decimal("1500.00")))

        result = service.release_payment("bk-001")

        # Stored values, not a recomputation at the current rate
        assert result.split.provider_payout == Decimal("8500.00")
        assert result.split.platform_fee == Decimal("1500.00")
        assert result.events == []


# === RequestRefund ===


class TestRequestRefund:
    def test_partial_refund_disbursed_through_gateway(
        self, service: EscrowService, gateway: FakeGateway, racing_ledger: RacingLedger, store
    ) -> None:
        store(paid_booking())

        result = service.request_refund("bk-001", percentage=50, reason="Partial no-show")

        assert result.refund_amount == Decimal("5000.00")
        assert result.original_amount == TOTAL
        assert [type(e) for e in result.events] == [RefundIssued]
        assert gateway.refunded[0]["reference"] == REFERENCE
        assert gateway.refunded[0]["amount"] == Decimal("5000.00")
        row = racing_ledger.require("bk-001")
        assert row.payment_status == PaymentStatus.REFUNDED
        assert row.status == BookingStatus.CANCELLED
        assert row.cancellation_reason == "Partial no-show"

    def test_zero_percent_skips_gateway(self, service: EscrowService, gateway: FakeGateway, store) -> None:
        store(paid_booking())

        result = service.request_refund("bk-001", percentage=0, reason="Audit only")

        assert result.refund_amount == Decimal("0")
        assert gateway.refunded == []

    def test_gateway_refund_failure_does_not_reverse_ledger(
        self, service: EscrowService, gateway: FakeGateway, racing_ledger: RacingLedger, store
    ) -> None:
        store(paid_booking())
        gateway.refund_error = GatewayError("bank offline")

        result = service.request_refund("bk-001", percentage=100, reason="Cancelled")

        assert result.refund_amount == Decimal("10000.00")
        assert racing_ledger.require("bk-001").payment_status == PaymentStatus.REFUNDED

    def test_second_refund_rejected(self, service: EscrowService, store) -> None:
        store(paid_booking())
        service.request_refund("bk-001", percentage=100, reason="Cancelled")

        with pytest.raises(EscrowError) as exc_info:
            service.request_refund("bk-001", percentage=100, reason="Cancelled")

        assert exc_info.value.message == "Payment has already been refunded"

    def test_input_validated_before_lookup(self, service: EscrowService) -> None:
        with pytest.raises(EscrowError) as exc_info:
            service.request_refund("missing", percentage=120, reason="x")

        assert exc_info.value.code == ErrorCode.INVALID_REFUND_PERCENTAGE

    def test_release_wins_race_against_refund(
        self,
        service: EscrowService,
        rival: EscrowService,
        racing_ledger: RacingLedger,
        gateway: FakeGateway,
        store,
    ) -> None:
        store(paid_booking(customer_completed=True, provider_completed=True))
        racing_ledger.before_apply = lambda: rival.release_payment("bk-001")

        with pytest.raises(EscrowError) as exc_info:
            service.request_refund("bk-001", percentage=100, reason="Too late")

        assert exc_info.value.code == ErrorCode.PAYMENT_NOT_PAID
        row = racing_ledger.require("bk-001")
        assert row.payment_status == PaymentStatus.RELEASED
        assert row.refund_amount is None
        assert gateway.refunded == []


# === Earnings ===


class TestProviderEarnings:
    def test_summary(self, service: EscrowService, store) -> None:
        last_month = datetime(2026, 9, 30, 18, 0, tzinfo=timezone.utc)
        store(released_booking(booking_id="bk-1"))
        store(released_booking(booking_id="bk-2", completed_at=last_month))
        store(paid_booking(booking_id="bk-3"))
        store(
            paid_booking(
                booking_id="bk-4",
                payment_status=PaymentStatus.REFUNDED,
                status=BookingStatus.CANCELLED,
                refund_amount=Decimal("10000"),
                refunded_at=FIXED_NOW,
            )
        )
        store(build_booking(booking_id="bk-5"))

        earnings = service.provider_earnings(PROVIDER_ID)

        assert earnings.total_earnings == Decimal("18000.00")
        assert earnings.this_month_earnings == Decimal("9000.00")
        assert earnings.last_month_earnings == Decimal("9000.00")
        assert earnings.pending_payouts == Decimal("9000.00")
        assert earnings.completed_jobs == 2
        assert earnings.refunded_jobs == 1
        assert earnings.total_jobs == 5

    def test_provider_without_bookings(self, service: EscrowService) -> None:
        earnings = service.provider_earnings("prov-new")

        assert earnings.total_earnings == 0
        assert earnings.total_jobs == 0


class TestCustomerPayments:
    def test_history(self, service: EscrowService, store) -> None:
        earlier = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)
        store(released_booking(booking_id="bk-1", created_at=earlier))
        store(paid_booking(booking_id="bk-2", total_amount=Decimal("5000")))
        store(
            paid_booking(
                booking_id="bk-3",
                total_amount=Decimal("8000"),
                payment_status=PaymentStatus.REFUNDED,
                status=BookingStatus.CANCELLED,
                refund_amount=Decimal("4000.00"),
                refund_reason="Late arrival",
                refunded_at=FIXED_NOW,
            )
        )
        store(build_booking(booking_id="bk-4"))
        store(build_booking(booking_id="bk-other", customer_id="cust-other"))

        history = service.customer_payments(CUSTOMER_ID)

        assert history.total_paid == Decimal("23000")
        assert history.total_refunded == Decimal("4000")
        assert history.records[-1].booking_id == "bk-1"
        lines = {(r.booking_id, r.kind): r for r in history.records}
        assert set(lines) == {
            ("bk-1", "payment"),
            ("bk-2", "payment"),
            ("bk-3", "payment"),
            ("bk-3", "refund"),
        }
        refund = lines[("bk-3", "refund")]
        assert refund.amount == Decimal("4000")
        assert refund.status == PaymentStatus.REFUNDED
        assert refund.occurred_on == FIXED_NOW.date()
        assert lines[("bk-2", "payment")].status == PaymentStatus.PAID

    def test_zero_refund_has_no_refund_line(self, service: EscrowService, store) -> None:
        store(
            paid_booking(
                payment_status=PaymentStatus.REFUNDED,
                status=BookingStatus.CANCELLED,
                refund_amount=Decimal("0"),
                refunded_at=FIXED_NOW,
            )
        )

        history = service.customer_payments(CUSTOMER_ID)

        assert [r.kind for r in history.records] == ["payment"]
        assert history.total_refunded == 0

    def test_failed_payment_not_counted(self, service: EscrowService, store) -> None:
        store(paid_booking(payment_status=PaymentStatus.FAILED))

        history = service.customer_payments(CUSTOMER_ID)

        assert history.records[0].status == PaymentStatus.FAILED
        assert history.total_paid == 0
