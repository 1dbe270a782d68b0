"""
Unit tests for payrecon/services/adapters.py and the intent issuer.

Covers: reference parsing, status tables, validation before any ledger call,
the verify adapter's dependence on the provider port.
"""
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from payrecon.errors import DuplicateActiveError, ValidationError
from payrecon.models import PaymentStatus
from payrecon.providers.paytoday import RejectingProvider, UnverifiedProvider
from payrecon.services import adapters
from payrecon.services.intents import IntentIssuer
from payrecon.services.ledger import Identity, utcnow
from payrecon.services.reconciler import Reason
from tests.conftest import identity, make_txn


def mock_provider(answer):
    m = MagicMock()
    m.verify_transaction = AsyncMock(return_value=answer)
    return m


# ---------------------------------------------------------------------------
# Correlation reference
# ---------------------------------------------------------------------------
class TestParseReference:
    def test_simple_reference(self):
        ident, issued = adapters.parse_reference("E1_deposit_1700000000")
        assert ident == Identity("E1", "deposit")
        assert issued == 1700000000

    def test_payment_type_containing_delimiter(self):
        ident, _ = adapters.parse_reference("E1_first_half_1700000000")
        assert ident == Identity("E1", "first_half")

    def test_round_trips_build_reference(self):
        ref = adapters.build_reference(Identity("E9", "final"), 1700000000123)
        assert ref == "E9_final_1700000000123"
        assert adapters.parse_reference(ref)[0] == Identity("E9", "final")

    @pytest.mark.parametrize("ref", [
        "", "   ", "E1", "E1_1700000000", "E1_deposit", "E1_deposit_notatime", "_deposit_1700000000",
    ])
    def test_malformed_reference_raises(self, ref):
        with pytest.raises(ValidationError):
            adapters.parse_reference(ref)

    def test_none_reference_raises(self):
        with pytest.raises(ValidationError, match="ref"):
            adapters.parse_reference(None)


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------
class TestWebhookAdapter:
    @pytest.mark.parametrize("token", ["OK", "SUCCESS"])
    def test_success_tokens_complete(self, db, reconciler, token):
        make_txn(db)
        result = adapters.handle_webhook(reconciler, "E1_first_half_1700000000", token, "PT-1")
        assert result.applied is True
        assert result.status is PaymentStatus.COMPLETED
        assert result.record.transaction_id == "PT-1"

    @pytest.mark.parametrize("token", ["FAILED", "DECLINED", "PENDING", "success", "ok", " OK", "SUCCESS ", "", None])
    def test_other_tokens_are_unrecognized(self, db, reconciler, token):
        make_txn(db)
        result = adapters.handle_webhook(reconciler, "E1_first_half_1700000000", token, "PT-1")
        assert result.applied is False
        assert result.reason is Reason.UNRECOGNIZED_OUTCOME
        assert result.status is PaymentStatus.PENDING

    def test_malformed_ref_never_reaches_reconciler(self):
        spy = MagicMock()
        with pytest.raises(ValidationError):
            adapters.handle_webhook(spy, "garbage", "OK", "PT-1")
        spy.reconcile.assert_not_called()

    def test_stale_reference_settling_newer_attempt_is_logged(self, db, reconciler):
        make_txn(db, reference="E1_first_half_1700000000999")
        with patch.object(adapters, "logger") as log:
            result = adapters.handle_webhook(reconciler, "E1_first_half_1700000000123", "OK", "PT-1")

        assert result.applied is True
        log.warning.assert_called_once()
        event = log.warning.call_args
        assert event.args == ("webhook.reference_mismatch",)
        assert event.kwargs["record_reference"] == "E1_first_half_1700000000999"

    def test_matching_reference_logs_nothing(self, db, reconciler):
        make_txn(db, reference="E1_first_half_1700000000123")
        with patch.object(adapters, "logger") as log:
            result = adapters.handle_webhook(reconciler, "E1_first_half_1700000000123", "OK", "PT-1")

        assert result.applied is True
        log.warning.assert_not_called()


# ---------------------------------------------------------------------------
# Return redirect
# ---------------------------------------------------------------------------
class TestReturnAdapter:
    @pytest.mark.parametrize("status", ["completed", "success"])
    def test_success_statuses_complete(self, db, reconciler, status):
        make_txn(db)
        result = adapters.handle_return(reconciler, "E1", "first_half", "PT-1", status)
        assert result.status is PaymentStatus.COMPLETED

    @pytest.mark.parametrize("status", ["cancelled", "failed", "SUCCESS", "Completed", " success", "", None])
    def test_everything_else_fails(self, db, reconciler, status):
        make_txn(db)
        result = adapters.handle_return(reconciler, "E1", "first_half", None, status)
        assert result.status is PaymentStatus.FAILED
        assert result.record.error_message == adapters.RETURN_FAILURE_DETAIL

    @pytest.mark.parametrize("errand_id,payment_type", [(None, "final"), ("E1", None), ("", "final"), ("E1", "  ")])
    def test_missing_identity_raises_before_reconcile(self, errand_id, payment_type):
        spy = MagicMock()
        with pytest.raises(ValidationError):
            adapters.handle_return(spy, errand_id, payment_type, None, "completed")
        spy.reconcile.assert_not_called()


# ---------------------------------------------------------------------------
# Failure report
# ---------------------------------------------------------------------------
class TestFailureReportAdapter:
    def test_proposes_failed_with_message(self, db, reconciler):
        make_txn(db)
        result = adapters.handle_failure_report(reconciler, "E1", "first_half", "SDK crashed", {"code": 7})
        assert result.status is PaymentStatus.FAILED
        assert result.record.error_message == "SDK crashed"

    def test_report_after_completion_is_noop(self, db, reconciler):
        make_txn(db, status="completed", transaction_id="PT-1")
        result = adapters.handle_failure_report(reconciler, "E1", "first_half", "late", None)
        assert result.applied is False
        assert result.status is PaymentStatus.COMPLETED

    def test_missing_identity_raises(self):
        spy = MagicMock()
        with pytest.raises(ValidationError):
            adapters.handle_failure_report(spy, "E1", None, "boom")
        spy.reconcile.assert_not_called()


# ---------------------------------------------------------------------------
# Verify / poll
# ---------------------------------------------------------------------------
class TestVerifyAdapter:
    async def test_confirmed_by_provider_completes(self, db, reconciler):
        make_txn(db)
        provider = mock_provider({"confirmed": True, "transaction_id": "PT-7"})
        verified, result = await adapters.handle_verify(reconciler, provider, "E1", "PT-7", "first_half")

        assert verified is True
        assert result.status is PaymentStatus.COMPLETED
        assert result.record.transaction_id == "PT-7"
        provider.verify_transaction.assert_awaited_once_with("PT-7", "E1")

    async def test_unconfirmed_leaves_pending(self, db, reconciler):
        make_txn(db)
        verified, result = await adapters.handle_verify(
            reconciler, RejectingProvider(), "E1", "PT-7", "first_half"
        )
        assert verified is False
        assert result.status is PaymentStatus.PENDING

    async def test_unverified_provider_always_completes(self, db, reconciler):
        make_txn(db)
        verified, result = await adapters.handle_verify(
            reconciler, UnverifiedProvider(), "E1", None, "first_half"
        )
        assert verified is True
        assert result.status is PaymentStatus.COMPLETED

    async def test_locates_identity_without_payment_type(self, db, reconciler):
        make_txn(db, payment_type="deposit")
        provider = mock_provider({"confirmed": True})
        verified, result = await adapters.handle_verify(reconciler, provider, "E1", "PT-7")
        assert verified is True
        assert result.record.payment_type == "deposit"

    async def test_unknown_errand_is_not_verified(self, reconciler):
        provider = mock_provider({"confirmed": True})
        verified, result = await adapters.handle_verify(reconciler, provider, "E404", "PT-7")
        assert verified is False
        assert result.reason is Reason.NOT_FOUND
        provider.verify_transaction.assert_not_called()

    async def test_already_failed_is_not_verified(self, db, reconciler):
        make_txn(db, status="failed", error_message="declined")
        verified, result = await adapters.handle_verify(
            reconciler, UnverifiedProvider(), "E1", "PT-7", "first_half"
        )
        assert verified is False
        assert result.status is PaymentStatus.FAILED

    async def test_missing_errand_raises(self):
        with pytest.raises(ValidationError):
            await adapters.handle_verify(MagicMock(), mock_provider({}), None, "PT-7")


# ---------------------------------------------------------------------------
# Intent issuer
# ---------------------------------------------------------------------------
class TestIntentIssuer:
    def test_issues_pending_intent_with_reference(self, ledger, settings):
        issued = IntentIssuer(ledger, settings).issue("E1", "first_half", 250.0, "nad", "cust_1", "https://app/return")

        record = issued.record
        assert record.status == "pending"
        assert record.currency == "NAD"
        assert adapters.parse_reference(record.reference)[0] == identity()
        assert issued.checkout["invoice_number"] == record.reference
        assert issued.checkout["shop_handle"] == "test-shop"
        assert issued.intent_id

    def test_defaults_currency(self, ledger, settings):
        issued = IntentIssuer(ledger, settings).issue("E1", "final", 10.0)
        assert issued.record.currency == "NAD"

    @pytest.mark.parametrize("amount", [None, 0, -5.0])
    def test_rejects_non_positive_amount(self, ledger, settings, amount):
        with pytest.raises(ValidationError, match="amount"):
            IntentIssuer(ledger, settings).issue("E1", "final", amount)

    def test_rejects_missing_identity(self, ledger, settings):
        with pytest.raises(ValidationError):
            IntentIssuer(ledger, settings).issue(None, "final", 10.0)

    def test_duplicate_pending_rejected(self, db, ledger, settings):
        make_txn(db)
        with pytest.raises(DuplicateActiveError):
            IntentIssuer(ledger, settings).issue("E1", "first_half", 250.0)

    def test_expired_pending_superseded(self, db, ledger, settings):
        make_txn(db, created_at=utcnow() - timedelta(hours=1))
        issued = IntentIssuer(ledger, settings).issue("E1", "first_half", 250.0)
        assert issued.record.status == "pending"
