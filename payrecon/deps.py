import hmac
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from payrecon.config import Settings, get_settings
from payrecon.database import get_db
from payrecon.errors import AuthError
from payrecon.providers.base import PaymentProvider
from payrecon.providers.paytoday import RejectingProvider, UnverifiedProvider
from payrecon.services.intents import IntentIssuer
from payrecon.services.ledger import Ledger
from payrecon.services.reconciler import Reconciler

bearer = HTTPBearer(auto_error=False)


def get_ledger(
    db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
) -> Ledger:
    return Ledger(db, settings)


def get_reconciler(ledger: Ledger = Depends(get_ledger)) -> Reconciler:
    return Reconciler(ledger)


def get_intent_issuer(
    ledger: Ledger = Depends(get_ledger), settings: Settings = Depends(get_settings)
) -> IntentIssuer:
    return IntentIssuer(ledger, settings)


def get_provider(settings: Settings = Depends(get_settings)) -> PaymentProvider:
    # TODO: add a PayToday API provider once its verification endpoint is available
    if settings.ALLOW_UNVERIFIED_COMPLETION:
        return UnverifiedProvider()
    return RejectingProvider()


def require_client(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    settings: Settings = Depends(get_settings),
) -> str:
    """Accept only bearer tokens listed in CLIENT_API_KEYS."""
    if credentials is None or not credentials.credentials:
        raise AuthError("Missing bearer token")
    token = credentials.credentials
    for key in settings.client_api_keys:
        if hmac.compare_digest(token.encode(), key.encode()):
            return token
    raise AuthError("Invalid bearer token")
