from typing import Any, Dict, Optional

from payrecon.logging_config import get_logger
from payrecon.providers.base import PaymentProvider

logger = get_logger(__name__)


class UnverifiedProvider(PaymentProvider):
    """
    PayToday stand-in that confirms every transaction without asking PayToday.

    Kept so the verify/poll flow behaves as it does today. It is NOT a
    verification: any authenticated client can mark its own payment
    completed. validate_settings() refuses to start in production while
    ALLOW_UNVERIFIED_COMPLETION is set.
    """

    @property
    def provider_name(self) -> str:
        return "paytoday-unverified"

    async def verify_transaction(
        self, transaction_id: Optional[str], errand_id: str
    ) -> Dict[str, Any]:
        logger.warning(
            "provider.unverified_confirmation",
            provider=self.provider_name,
            errand_id=errand_id,
            transaction_id=transaction_id,
        )
        return {"confirmed": True, "transaction_id": transaction_id}


class RejectingProvider(PaymentProvider):
    """Confirms nothing; used when unverified completion is switched off."""

    @property
    def provider_name(self) -> str:
        return "paytoday-disabled"

    async def verify_transaction(
        self, transaction_id: Optional[str], errand_id: str
    ) -> Dict[str, Any]:
        return {"confirmed": False, "transaction_id": transaction_id}
