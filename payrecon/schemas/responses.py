from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class PaymentRecord(BaseModel):
    id: str
    errand_id: str
    payment_type: str
    reference: str
    status: str
    transaction_id: Optional[str]
    error_message: Optional[str]
    amount: float
    currency: str
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class IntentResponse(BaseModel):
    intent_id: str
    reference: str
    errand_id: str
    payment_type: str
    status: str
    checkout: Dict[str, Any]


class WebhookResponse(BaseModel):
    received: bool = True
    applied: bool
    status: Optional[str]
    reason: str


class ReturnResponse(BaseModel):
    updated: bool
    status: Optional[str]
    reason: str
    message: Optional[str] = None


class VerifyResponse(BaseModel):
    verified: bool
    status: Optional[str]


class FailureReportResponse(BaseModel):
    success: bool = True


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    retryable: bool = False
