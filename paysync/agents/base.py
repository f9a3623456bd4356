"""Base abstraction for payment extraction agents.

An agent receives fetched messages and answers, per message, with a provisional payment
or ``None`` when the message is not about a payment.
"""

from abc import ABC, abstractmethod
from typing import Any

from paysync.core.models import MailMessage, PaymentCandidate


class ExtractionOracle(ABC):
    """Abstract base class for all extraction agents."""

    @abstractmethod
    def extract_batch(
        self, messages: list[MailMessage]
    ) -> tuple[list[PaymentCandidate | None], list[dict[str, Any]]]:
        """Return one candidate slot and one raw response per message, in input order.

        Raises ``ExtractionError`` on network failures or unparseable answers.
        """
