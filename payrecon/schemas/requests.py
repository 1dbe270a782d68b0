from typing import Any, Dict, Optional

from pydantic import BaseModel, field_validator

# Identity fields are optional here so a missing one reaches the adapter and
# is reported as a ValidationError before any ledger call.


class CreateIntentRequest(BaseModel):
    errand_id: Optional[str] = None
    payment_type: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    customer_id: Optional[str] = None
    return_url: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v):
        if v is not None and len(v.strip()) != 3:
            raise ValueError("currency must be a 3-letter code")
        return v


class WebhookRequest(BaseModel):
    ref: Optional[str] = None
    status: Optional[str] = None
    transaction_id: Optional[str] = None


class ReturnRequest(BaseModel):
    errand_id: Optional[str] = None
    payment_type: Optional[str] = None
    transaction_id: Optional[str] = None
    status: Optional[str] = None


class VerifyRequest(BaseModel):
    errand_id: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_type: Optional[str] = None


class FailureReportRequest(BaseModel):
    errand_id: Optional[str] = None
    payment_type: Optional[str] = None
    error_message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
