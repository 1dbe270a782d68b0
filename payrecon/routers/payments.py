from fastapi import APIRouter, Depends, HTTPException

from payrecon.deps import (
    get_intent_issuer,
    get_provider,
    get_reconciler,
    require_client,
)
from payrecon.providers.base import PaymentProvider
from payrecon.schemas.requests import (
    CreateIntentRequest,
    FailureReportRequest,
    ReturnRequest,
    VerifyRequest,
    WebhookRequest,
)
from payrecon.schemas.responses import (
    ErrorResponse,
    FailureReportResponse,
    IntentResponse,
    PaymentRecord,
    ReturnResponse,
    VerifyResponse,
    WebhookResponse,
)
from payrecon.services import adapters
from payrecon.services.intents import IntentIssuer
from payrecon.services.ledger import Identity
from payrecon.services.reconciler import Reason, Reconciler

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or malformed payload"},
    500: {"model": ErrorResponse, "description": "Ledger failure; safe to retry"},
}
AUTH_RESPONSES = {401: {"model": ErrorResponse, "description": "Missing or unknown bearer token"}}

router = APIRouter(responses=ERROR_RESPONSES)

RETURN_MESSAGES = {
    Reason.NOT_FOUND: "No pending transaction found for this errand and payment type",
    Reason.ALREADY_SETTLED: "Payment was already settled",
    Reason.PENDING: "Payment is still pending",
}


@router.post(
    "/intents",
    response_model=IntentResponse,
    dependencies=[Depends(require_client)],
    responses={
        **AUTH_RESPONSES,
        409: {"model": ErrorResponse, "description": "A live pending payment already exists"},
    },
)
def create_intent(
    request: CreateIntentRequest, issuer: IntentIssuer = Depends(get_intent_issuer)
):
    """
    Start a payment: records a pending transaction and returns the correlation
    reference `{errand_id}_{payment_type}_{issued_at_ms}` used as PayToday's
    invoice number.
    """
    issued = issuer.issue(
        errand_id=request.errand_id,
        payment_type=request.payment_type,
        amount=request.amount,
        currency=request.currency,
        customer_id=request.customer_id,
        return_url=request.return_url,
    )
    return IntentResponse(
        intent_id=issued.intent_id,
        reference=issued.record.reference,
        errand_id=issued.record.errand_id,
        payment_type=issued.record.payment_type,
        status=issued.record.status,
        checkout=issued.checkout,
    )


@router.post("/webhook", response_model=WebhookResponse)
def webhook(request: WebhookRequest, reconciler: Reconciler = Depends(get_reconciler)):
    """
    PayToday server-to-server notification. OK/SUCCESS completes the payment;
    any other token is logged and leaves the record untouched.
    """
    result = adapters.handle_webhook(
        reconciler, request.ref, request.status, request.transaction_id
    )
    return WebhookResponse(
        applied=result.applied,
        status=result.status.value if result.status else None,
        reason=result.reason.value,
    )


@router.post(
    "/return",
    response_model=ReturnResponse,
    dependencies=[Depends(require_client)],
    responses=AUTH_RESPONSES,
)
def complete_return(request: ReturnRequest, reconciler: Reconciler = Depends(get_reconciler)):
    """Browser return-redirect from the PayToday checkout page."""
    result = adapters.handle_return(
        reconciler,
        request.errand_id,
        request.payment_type,
        request.transaction_id,
        request.status,
    )
    return ReturnResponse(
        updated=result.applied,
        status=result.status.value if result.status else None,
        reason=result.reason.value,
        message=RETURN_MESSAGES.get(result.reason),
    )


@router.post(
    "/verify",
    response_model=VerifyResponse,
    dependencies=[Depends(require_client)],
    responses=AUTH_RESPONSES,
)
async def verify(
    request: VerifyRequest,
    reconciler: Reconciler = Depends(get_reconciler),
    provider: PaymentProvider = Depends(get_provider),
):
    """Client poll after checkout."""
    verified, result = await adapters.handle_verify(
        reconciler,
        provider,
        request.errand_id,
        request.transaction_id,
        request.payment_type,
    )
    return VerifyResponse(
        verified=verified,
        status=result.status.value if result.status else None,
    )


@router.post(
    "/failure",
    response_model=FailureReportResponse,
    dependencies=[Depends(require_client)],
    responses=AUTH_RESPONSES,
)
def report_failure(
    request: FailureReportRequest, reconciler: Reconciler = Depends(get_reconciler)
):
    """
    Client-side failure report. Always answers success: a report for a payment
    that already completed, or never existed, is recorded in the log only.
    """
    adapters.handle_failure_report(
        reconciler,
        request.errand_id,
        request.payment_type,
        request.error_message,
        request.details,
    )
    return FailureReportResponse()


@router.get(
    "/{errand_id}/{payment_type}",
    response_model=PaymentRecord,
    dependencies=[Depends(require_client)],
    responses=AUTH_RESPONSES,
)
def read_payment(
    errand_id: str, payment_type: str, reconciler: Reconciler = Depends(get_reconciler)
):
    """Current state of the latest attempt; the re-read path after a timeout."""
    record = reconciler.read(Identity(errand_id, payment_type))
    if record is None:
        raise HTTPException(
            status_code=404,
            detail=f"No payment found for {errand_id}/{payment_type}",
        )
    return record
