"""Tests for the Payment aggregate's state machine and webhook receipts."""

import pytest
from payments.payment.events import PaymentCancelled, PaymentInitiated, PaymentSucceeded
from payments.payment.payment import Payment, PaymentStatus
from protean.exceptions import ValidationError


def _make_payment(amount=45.0):
    return Payment.create(
        order_id="ord-001",
        amount=amount,
        currency="USD",
        provider="fake",
        provider_payment_id="fake_pi_001",
        idempotency_key="payment:ord-001",
    )


class TestCreatePayment:
    def test_starts_pending(self):
        payment = _make_payment()
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.amount == 45.0
        assert payment.provider_payment_id == "fake_pi_001"

    def test_raises_initiated_event(self):
        payment = _make_payment()
        assert len(payment._events) == 1
        event = payment._events[0]
        assert isinstance(event, PaymentInitiated)
        assert event.order_id == "ord-001"
        assert event.idempotency_key == "payment:ord-001"

    @pytest.mark.parametrize("amount", [0, -5.0])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError):
            _make_payment(amount=amount)


class TestOutcomes:
    def test_success_records_transaction_and_receipt(self):
        payment = _make_payment()
        payment.record_success("txn-001")
        assert payment.status == PaymentStatus.SUCCESS.value
        assert payment.provider_transaction_id == "txn-001"
        assert payment.has_processed("txn-001")

    def test_failure_keeps_reason(self):
        payment = _make_payment()
        payment.record_failure("txn-001", "Card declined")
        assert payment.status == PaymentStatus.FAILED.value
        assert payment.failure_reason == "Card declined"
        assert payment.has_processed("txn-001")

    def test_failure_without_reason_gets_default(self):
        payment = _make_payment()
        payment.record_failure("txn-001", "")
        assert payment.failure_reason == "Unknown failure"

    def test_cancel_pending(self):
        payment = _make_payment()
        payment._events.clear()
        payment.cancel("Order cancelled")
        assert payment.status == PaymentStatus.CANCELLED.value
        assert payment.cancellation_reason == "Order cancelled"
        assert isinstance(payment._events[0], PaymentCancelled)

    def test_cancel_without_transaction_leaves_no_receipt(self):
        payment = _make_payment()
        payment.cancel("Order cancelled")
        assert not payment.receipts

    def test_refund_after_success(self):
        payment = _make_payment()
        payment.record_success("txn-001")
        payment.refund("Customer request", "fake_ref_001")
        assert payment.status == PaymentStatus.REFUNDED.value
        assert payment.refund_reason == "Customer request"
        assert payment.provider_refund_id == "fake_ref_001"


class TestLateCapture:
    def test_success_after_cancel_is_marked_late(self):
        payment = _make_payment()
        payment.cancel("Order cancelled")
        payment._events.clear()

        payment.record_success("txn-late")

        assert payment.status == PaymentStatus.SUCCESS.value
        event = payment._events[0]
        assert isinstance(event, PaymentSucceeded)
        assert event.late_capture is True

    def test_regular_success_is_not_late(self):
        payment = _make_payment()
        payment._events.clear()
        payment.record_success("txn-001")
        assert payment._events[0].late_capture is False


class TestInvalidTransitions:
    def test_cannot_refund_pending(self):
        with pytest.raises(ValidationError):
            _make_payment().refund("nope", None)

    def test_failed_is_terminal(self):
        payment = _make_payment()
        payment.record_failure("txn-001", "Card declined")
        for target in PaymentStatus:
            assert not payment.can_transition(target)
        with pytest.raises(ValidationError):
            payment.record_success("txn-002")

    def test_refunded_is_terminal(self):
        payment = _make_payment()
        payment.record_success("txn-001")
        payment.refund("Customer request", None)
        with pytest.raises(ValidationError):
            payment.refund("again", None)

    def test_cannot_fail_after_success(self):
        payment = _make_payment()
        payment.record_success("txn-001")
        with pytest.raises(ValidationError):
            payment.record_failure("txn-002", "late decline")

    def test_cancelled_payment_cannot_fail(self):
        payment = _make_payment()
        payment.cancel("Order cancelled")
        assert payment.can_transition(PaymentStatus.SUCCESS)
        assert not payment.can_transition(PaymentStatus.FAILED)
