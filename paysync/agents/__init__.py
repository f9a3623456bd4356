"""Agents package: provides the extraction interface and the LLM payment agent."""

from .base import ExtractionOracle  # noqa: F401
from .payment_agent import PaymentAgent  # noqa: F401
