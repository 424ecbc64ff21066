"""Escrow service: runs state-machine plans against the ledger and the gateway.

Each operation follows the same shape:

1. Read the row and ask the state machine for a plan (or a no-op / error).
2. Apply the plan as one conditional update.
3. If the guard failed, re-read the row and re-plan. A no-op means another
   request already did the work; anything else is a concurrent update.
4. Only a committed write returns events (for notifications) and triggers
   gateway disbursement.
"""

import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import TypeVar

from getserved.config import EscrowPolicy
from getserved.models.booking import Booking, BookingCreate
from getserved.models.enums import BookingStatus, CompletionRole, PaymentStatus
from getserved.models.errors import ErrorCode, EscrowError
from getserved.models.escrow_state import (
    AwaitingCompletion,
    PaymentFailed,
    Refunded,
    Released,
    escrow_state,
)
from getserved.models.events import EscrowEvent
from getserved.models.money import to_money
from getserved.models.payment import (
    CompletionResult,
    CustomerPayments,
    InitiateResult,
    PaymentRecord,
    PayoutSplit,
    ProviderEarnings,
    RefundResult,
    ReleaseResult,
    VerifyResult,
)
from getserved.models.transition import NoOp, Transition
from getserved.utils.logging import get_logger, log_escrow_transition

from .completion_gate import flipped_second_flag, is_fully_confirmed
from .gateway import GatewayError, PaymentGateway
from .ledger import BookingLedger
from .payout import split_payout
from .references import generate_reference, parse_booking_id
from .refund_policy_service import RefundPolicyService
from .state_machine import (
    check_initiate,
    plan_confirm,
    plan_initiate,
    plan_mark_complete,
    plan_refund,
    plan_release,
    validate_refund_request,
)

logger = get_logger(__name__)

T = TypeVar("T")
Planner = Callable[[Booking], Transition | NoOp]


def gateway_failure(e: GatewayError) -> EscrowError:
    """Convert a gateway exception to the matching upstream error."""
    if e.rate_limited:
        return EscrowError(ErrorCode.GATEWAY_RATE_LIMITED, details={"gateway_error": str(e)})
    return EscrowError(ErrorCode.GATEWAY_ERROR, str(e))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EscrowService:
    """Booking payment lifecycle: initiate, confirm, complete, release, refund."""

    def __init__(
        self,
        ledger: BookingLedger,
        gateway: PaymentGateway,
        policy: EscrowPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.ledger = ledger
        self.gateway = gateway
        self.policy = policy or EscrowPolicy()
        self.refunds = RefundPolicyService(self.policy)
        self._clock = clock

    # =========================================================================
    # Plumbing
    # =========================================================================

    def _plan(self, operation: str, booking: Booking, planner: Callable[[Booking], T]) -> T:
        """Run a planner, logging rejections."""
        try:
            return planner(booking)
        except EscrowError as e:
            log_escrow_transition(
                logger,
                operation,
                booking_id=booking.booking_id,
                result="rejected",
                payment_status=booking.payment_status.value,
                error=e.code.value,
            )
            raise

    def _commit(self, transition: Transition, replan: Planner) -> tuple[Booking, bool]:
        """Apply a transition; on a lost race, re-plan against the fresh row.

        Returns:
            (row after the attempt, whether this call's write was applied)

        Raises:
            EscrowError: precondition error from the re-plan, or CONCURRENT_UPDATE
        """
        after = self.ledger.apply(transition)
        if after is not None:
            log_escrow_transition(
                logger,
                transition.operation,
                booking_id=transition.booking_id,
                result="applied",
                payment_status=after.payment_status.value,
            )
            return after, True

        current = self.ledger.require(transition.booking_id)
        log_escrow_transition(
            logger,
            transition.operation,
            booking_id=transition.booking_id,
            result="lost_race",
            payment_status=current.payment_status.value,
        )
        outcome = self._plan(transition.operation, current, replan)
        if isinstance(outcome, NoOp):
            return current, False

        raise EscrowError(
            ErrorCode.CONCURRENT_UPDATE,
            details={"booking_id": transition.booking_id, "operation": transition.operation},
        )

    def _noop(self, outcome: NoOp, booking: Booking) -> None:
        log_escrow_transition(
            logger,
            outcome.operation,
            booking_id=outcome.booking_id,
            result="noop",
            payment_status=booking.payment_status.value,
            reason=outcome.reason,
        )

    # =========================================================================
    # Bookings
    # =========================================================================

    def create_booking(self, customer_id: str, data: BookingCreate) -> Booking:
        """Open a booking request awaiting payment."""
        now = self._clock()
        booking = Booking(
            booking_id=str(uuid.uuid4()),
            customer_id=customer_id,
            provider_id=data.provider_id,
            category_id=data.category_id,
            address=data.address,
            notes=data.notes,
            total_amount=to_money(data.total_amount),
            currency=data.currency or self.policy.currency,
            duration_hours=data.duration_hours,
            scheduled_date=data.scheduled_date,
            scheduled_time=data.scheduled_time,
            status=BookingStatus.PENDING_PAYMENT,
            payment_status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.ledger.create(booking)
        logger.info("Created booking %s for customer %s", booking.booking_id, customer_id)
        return booking

    def get_booking(self, booking_id: str) -> Booking:
        return self.ledger.require(booking_id)

    # =========================================================================
    # InitiatePayment
    # =========================================================================

    def initiate_payment(
        self,
        booking_id: str,
        *,
        amount: Decimal | int | str,
        email: str,
        currency: str | None = None,
        callback_url: str | None = None,
    ) -> InitiateResult:
        """Create a hosted checkout and store its reference on the booking.

        Replays return the stored checkout without calling the gateway.
        """
        booking = self.ledger.require(booking_id)
        existing = self._plan("initiate_payment", booking, lambda b: check_initiate(b, amount))
        if existing is not None:
            log_escrow_transition(
                logger,
                "initiate_payment",
                booking_id=booking_id,
                result="noop",
                reference=existing.reference,
            )
            return InitiateResult(checkout=existing, created=False)

        reference = generate_reference(self.policy.reference_prefix, booking_id)
        charge_currency = currency or booking.currency

        try:
            checkout = self.gateway.initialize(
                reference=reference,
                booking_id=booking_id,
                amount=booking.total_amount,
                currency=charge_currency,
                email=email,
                callback_url=callback_url,
            )
        except GatewayError as e:
            log_escrow_transition(
                logger,
                "initiate_payment",
                booking_id=booking_id,
                result="rejected",
                reference=reference,
                error=str(e),
            )
            raise gateway_failure(e) from e

        # The gateway may echo a different reference; ours is the anchor
        checkout = checkout.model_copy(update={"reference": reference})
        transition = plan_initiate(booking, checkout, charge_currency, self._clock())

        after = self.ledger.apply(transition)
        if after is None:
            current = self.ledger.require(booking_id)
            log_escrow_transition(
                logger,
                "initiate_payment",
                booking_id=booking_id,
                result="lost_race",
                payment_status=current.payment_status.value,
                reference=reference,
            )
            stored = self._plan("initiate_payment", current, lambda b: check_initiate(b, amount))
            if stored is None:
                raise EscrowError(
                    ErrorCode.CONCURRENT_UPDATE,
                    details={"booking_id": booking_id, "operation": "initiate_payment"},
                )
            logger.warning(
                "Orphaned checkout %s for booking %s; returning stored checkout %s",
                reference,
                booking_id,
                stored.reference,
            )
            return InitiateResult(checkout=stored, created=False)

        log_escrow_transition(
            logger,
            "initiate_payment",
            booking_id=booking_id,
            result="applied",
            payment_status=after.payment_status.value,
            reference=reference,
        )
        return InitiateResult(checkout=checkout, created=True)

    # =========================================================================
    # ConfirmPayment
    # =========================================================================

    def confirm_payment(self, reference: str, access_code: str | None = None) -> VerifyResult:
        """Verify a reference with the gateway and mark the booking paid on success."""
        booking_id = parse_booking_id(reference, self.policy.reference_prefix)
        booking = self.ledger.require(booking_id)

        plan = self._plan("confirm_payment", booking, lambda b: plan_confirm(b, reference, self._clock()))
        if isinstance(plan, NoOp):
            self._noop(plan, booking)
            return _verify_result(booking, reference, confirmed=True)

        try:
            transaction = self.gateway.verify(reference, access_code or booking.payment_access_code)
        except GatewayError as e:
            raise gateway_failure(e) from e

        if transaction.booking_id and transaction.booking_id != booking_id:
            raise EscrowError(
                ErrorCode.REFERENCE_MISMATCH,
                details={"reference": reference, "gateway_booking_id": transaction.booking_id},
            )

        if not transaction.succeeded:
            log_escrow_transition(
                logger,
                "confirm_payment",
                booking_id=booking_id,
                result="noop",
                payment_status=booking.payment_status.value,
                reference=reference,
                gateway_status=transaction.status,
            )
            return VerifyResult(
                booking_id=booking_id,
                reference=reference,
                payment_status=transaction.status,
                confirmed=False,
            )

        if transaction.amount is not None and transaction.amount != booking.total_amount:
            raise EscrowError(
                ErrorCode.AMOUNT_MISMATCH,
                "Amount paid does not match the booking total",
                details={
                    "paid": str(transaction.amount),
                    "total_amount": str(booking.total_amount),
                },
            )

        after, applied = self._commit(plan, lambda b: plan_confirm(b, reference, self._clock()))
        return _verify_result(after, reference, confirmed=True, events=plan.events if applied else [])

    # =========================================================================
    # MarkComplete / ReleasePayment
    # =========================================================================

    def mark_complete(self, booking_id: str, role: CompletionRole) -> CompletionResult:
        """Record one party's completion; release escrow when the pair completes."""
        booking = self.ledger.require(booking_id)

        plan = self._plan("mark_complete", booking, lambda b: plan_mark_complete(b, role, self._clock()))
        if isinstance(plan, NoOp):
            self._noop(plan, booking)
            after, applied = booking, False
        else:
            after, applied = self._commit(
                plan, lambda b: plan_mark_complete(b, role, self._clock())
            )

        events: list[EscrowEvent] = []
        should_release = (applied and flipped_second_flag(booking, after, role)) or (
            # Replay after a crash between the flag write and the release
            not applied
            and after.payment_status == PaymentStatus.PAID
            and is_fully_confirmed(after)
        )
        if should_release:
            try:
                after, release_events = self._release(after)
                events.extend(release_events)
            except EscrowError as e:
                # The flag write is committed; a failed release is retried by the next replay
                logger.warning("Auto-release for booking %s failed: %s", booking_id, e.message)

        return _completion_result(after, events)

    def release_payment(self, booking_id: str) -> ReleaseResult:
        """Release held funds to the provider once both parties have confirmed.

        An already-released booking returns the stored split.
        """
        booking = self.ledger.require(booking_id)
        after, events = self._release(booking)
        return ReleaseResult(booking_id=booking_id, split=_stored_split(after), events=events)

    def _release(self, booking: Booking) -> tuple[Booking, list[EscrowEvent]]:
        def planner(b: Booking) -> Transition | NoOp:
            return plan_release(b, self.policy, self._clock())

        plan = self._plan("release_payment", booking, planner)
        if isinstance(plan, NoOp):
            self._noop(plan, booking)
            return booking, []

        after, applied = self._commit(plan, planner)
        if applied:
            logger.info(
                "Released %s to provider %s for booking %s (fee %s)",
                after.provider_payout_amount,
                after.provider_id,
                after.booking_id,
                after.platform_fee_amount,
            )
        return after, plan.events if applied else []

    # =========================================================================
    # RequestRefund
    # =========================================================================

    def request_refund(
        self,
        booking_id: str,
        *,
        percentage: Decimal | int | str,
        reason: str | None,
    ) -> RefundResult:
        """Refund a percentage of held funds and cancel the booking."""
        validate_refund_request(percentage, reason, self.refunds)
        booking = self.ledger.require(booking_id)

        def planner(b: Booking) -> Transition:
            return plan_refund(b, percentage, reason, self.refunds, self._clock())

        plan = self._plan("request_refund", booking, planner)
        after, _ = self._commit(plan, planner)
        refund_amount = after.refund_amount if after.refund_amount is not None else Decimal("0")

        self._disburse_refund(after, refund_amount)

        return RefundResult(
            booking_id=booking_id,
            refund_amount=refund_amount,
            original_amount=after.total_amount,
            events=plan.events,
        )

    def _disburse_refund(self, booking: Booking, amount: Decimal) -> None:
        """Return money through the gateway. Never reverses the committed refund."""
        if amount <= 0 or not booking.payment_reference:
            return
        try:
            receipt = self.gateway.refund(
                reference=booking.payment_reference,
                amount=amount,
                reason=booking.refund_reason or "",
                access_code=booking.payment_access_code,
            )
            logger.info(
                "Gateway refund %s (%s) for booking %s",
                receipt.refund_id,
                receipt.status,
                booking.booking_id,
            )
        except GatewayError as e:
            logger.error(
                "Gateway refund for booking %s failed; manual follow-up needed: %s",
                booking.booking_id,
                e,
            )

    # =========================================================================
    # Earnings
    # =========================================================================

    def provider_earnings(self, provider_id: str) -> ProviderEarnings:
        """Summarize released, held and refunded money for a provider."""
        bookings = self.ledger.for_provider(provider_id)
        now = self._clock()
        this_month = (now.year, now.month)
        last_month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)

        total = pending = this_month_total = last_month_total = Decimal("0")
        completed = refunded = 0

        for booking in bookings:
            state = escrow_state(booking)
            if isinstance(state, Released):
                total += state.payout
                completed += 1
                month = (state.completed_at.year, state.completed_at.month)
                if month == this_month:
                    this_month_total += state.payout
                elif month == last_month:
                    last_month_total += state.payout
            elif isinstance(state, AwaitingCompletion):
                pending += split_payout(
                    booking.total_amount, self.policy.platform_fee_rate
                ).provider_payout
            elif isinstance(state, Refunded):
                refunded += 1

        return ProviderEarnings(
            provider_id=provider_id,
            currency=self.policy.currency,
            total_earnings=total,
            pending_payouts=pending,
            this_month_earnings=this_month_total,
            last_month_earnings=last_month_total,
            completed_jobs=completed,
            total_jobs=len(bookings),
            refunded_jobs=refunded,
        )

    def customer_payments(self, customer_id: str) -> CustomerPayments:
        """Payment history for a customer.

        Each booking that reached the gateway yields a payment line; a refund
        of a positive amount adds a refund line. Bookings still awaiting
        payment are left out.
        """
        bookings = sorted(
            self.ledger.for_customer(customer_id),
            key=lambda b: b.created_at,
            reverse=True,
        )

        records: list[PaymentRecord] = []
        paid = refunded = Decimal("0")
        for booking in bookings:
            if booking.payment_status == PaymentStatus.PENDING:
                continue
            state = escrow_state(booking)
            records.append(
                PaymentRecord(
                    booking_id=booking.booking_id,
                    kind="payment",
                    amount=booking.total_amount,
                    status=booking.payment_status,
                    occurred_on=booking.scheduled_date,
                    reference=booking.payment_reference,
                )
            )
            if not isinstance(state, PaymentFailed):
                paid += booking.total_amount
            if isinstance(state, Refunded) and state.amount > 0:
                refunded += state.amount
                records.append(
                    PaymentRecord(
                        booking_id=booking.booking_id,
                        kind="refund",
                        amount=state.amount,
                        status=PaymentStatus.REFUNDED,
                        occurred_on=state.refunded_at.date(),
                        reference=booking.payment_reference,
                    )
                )

        return CustomerPayments(
            customer_id=customer_id,
            currency=self.policy.currency,
            total_paid=paid,
            total_refunded=refunded,
            records=records,
        )


def _stored_split(booking: Booking) -> PayoutSplit:
    state = escrow_state(booking)
    if not isinstance(state, Released):
        raise EscrowError(
            ErrorCode.INCONSISTENT_LEDGER_ROW,
            details={"booking_id": booking.booking_id, "problem": "expected a released row"},
        )
    return PayoutSplit(provider_payout=state.payout, platform_fee=state.fee)


def _verify_result(
    booking: Booking,
    reference: str,
    *,
    confirmed: bool,
    events: list[EscrowEvent] | None = None,
) -> VerifyResult:
    return VerifyResult(
        booking_id=booking.booking_id,
        reference=reference,
        payment_status=booking.payment_status.value,
        confirmed=confirmed,
        events=events or [],
    )


def _completion_result(booking: Booking, events: list[EscrowEvent]) -> CompletionResult:
    released = booking.payment_status == PaymentStatus.RELEASED
    return CompletionResult(
        booking_id=booking.booking_id,
        customer_completed=booking.customer_completed,
        provider_completed=booking.provider_completed,
        released=released,
        split=_stored_split(booking) if released else None,
        events=events,
    )
