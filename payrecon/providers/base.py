from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class PaymentProvider(ABC):
    """Abstract base for the payment provider's verification lookup."""

    @abstractmethod
    async def verify_transaction(
        self, transaction_id: Optional[str], errand_id: str
    ) -> Dict[str, Any]:
        """
        Ask the provider whether the transaction was paid.
        Returns a dict with at least `confirmed` (bool); `transaction_id`
        is echoed back when the provider reports one.
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass
